"""
Unit tests for remote estimate -> local quote mapping and outgoing payloads.
"""

import pytest
from datetime import datetime, date
from types import SimpleNamespace
from opsconsole.services.quickbooks_payloads import (
    CustomerInput,
    PayloadError,
    QuickBooksEstimate,
)
from opsconsole.services.quote_sync_service import (
    QuoteReconciler,
    compose_address_line,
    is_placeholder_number,
    map_estimate_status,
    map_estimate_to_quote,
)


def _estimate(**overrides):
    data = {
        'Id': '42',
        'SyncToken': '2',
        'DocNumber': '260007',
        'TxnStatus': 'Pending',
        'TotalAmt': 90,
        'ExpirationDate': '2026-12-31',
        'CustomerRef': {'value': '7', 'name': 'Acme Corp'},
        'CustomerMemo': {'value': 'Thanks!'},
        'Line': [
            {'DetailType': 'SalesItemLineDetail', 'Description': 'Widget', 'Amount': 60,
             'SalesItemLineDetail': {'Qty': 3, 'UnitPrice': 20}},
            {'DetailType': 'SalesItemLineDetail', 'Description': 'Gadget', 'Amount': 40,
             'SalesItemLineDetail': {'Qty': 2}},
            {'DetailType': 'SubTotalLineDetail', 'Amount': 100, 'SubTotalLineDetail': {}},
        ],
    }
    data.update(overrides)
    return QuickBooksEstimate.from_dict(data)


class TestStatusMapping:
    """Tests for map_estimate_status."""

    @pytest.mark.parametrize('remote,local', [
        ('Accepted', 'ACCEPTED'),
        ('Rejected', 'REJECTED'),
        ('Closed', 'EXPIRED'),
        ('Pending', 'SENT'),
        (None, 'SENT'),
    ])
    def test_mapping(self, remote, local):
        assert map_estimate_status(remote) == local


class TestEstimateMapping:
    """Tests for map_estimate_to_quote."""

    def test_only_sales_lines_become_items(self):
        mapped = map_estimate_to_quote(_estimate())
        assert [item['product_name'] for item in mapped.items] == ['Widget', 'Gadget']

    def test_unit_price_falls_back_to_amount_over_qty(self):
        mapped = map_estimate_to_quote(_estimate())
        gadget = mapped.items[1]
        assert gadget['quantity'] == 2
        assert gadget['unit_price'] == 20.0
        assert gadget['total_price'] == 40.0

    def test_discount_is_gap_to_total_amt(self):
        mapped = map_estimate_to_quote(_estimate())
        assert mapped.fields['subtotal'] == 100.0
        assert mapped.fields['total'] == 90.0
        assert mapped.fields['discount_amount'] == 10.0
        assert mapped.fields['discount_type'] == 'fixed'
        assert mapped.fields['discount_value'] == 10.0

    def test_no_discount_when_total_covers_subtotal(self):
        mapped = map_estimate_to_quote(_estimate(TotalAmt=100))
        assert mapped.fields['discount_amount'] == 0.0
        assert mapped.fields['discount_type'] is None
        assert mapped.fields['discount_value'] is None

    def test_header_fields(self):
        mapped = map_estimate_to_quote(_estimate())
        assert mapped.quote_number == '260007'
        assert mapped.fields['status'] == 'SENT'
        assert mapped.fields['customer_name'] == 'Acme Corp'
        assert mapped.fields['customer_email'] is None
        assert mapped.fields['customer_phone'] is None
        assert mapped.fields['notes'] == 'Thanks!'
        assert mapped.fields['valid_until'] == datetime(2026, 12, 31)

    def test_notes_fall_back_to_private_note(self):
        mapped = map_estimate_to_quote(_estimate(CustomerMemo=None, PrivateNote='internal'))
        assert mapped.fields['notes'] == 'internal'

    def test_missing_doc_number_gets_placeholder(self):
        mapped = map_estimate_to_quote(_estimate(DocNumber=None, CustomerRef={'value': '7'}))
        assert mapped.quote_number == 'QB-42'
        assert is_placeholder_number(mapped.quote_number)
        assert mapped.fields['customer_name'] == 'Unknown'

    def test_line_defaults(self):
        mapped = map_estimate_to_quote(_estimate(Line=[
            {'DetailType': 'SalesItemLineDetail', 'Amount': 12.5, 'SalesItemLineDetail': {}},
        ], TotalAmt=None))
        item = mapped.items[0]
        assert item['product_name'] == 'Item'
        assert item['quantity'] == 1
        assert item['unit_price'] == 12.5
        assert mapped.fields['total'] == 0.0

    def test_quantity_rounds_half_up(self):
        mapped = map_estimate_to_quote(_estimate(Line=[
            {'DetailType': 'SalesItemLineDetail', 'Amount': 25,
             'SalesItemLineDetail': {'Qty': 2.5, 'UnitPrice': 10}},
        ]))
        assert mapped.items[0]['quantity'] == 3

    def test_zero_qty_without_unit_price_fails(self):
        estimate = _estimate(Line=[
            {'DetailType': 'SalesItemLineDetail', 'Amount': 10, 'SalesItemLineDetail': {'Qty': 0}},
        ])
        with pytest.raises(ValueError):
            map_estimate_to_quote(estimate)

    def test_malformed_payload_rejected_at_boundary(self):
        with pytest.raises(PayloadError):
            QuickBooksEstimate.from_dict({'Id': '1', 'TotalAmt': {'bad': True}})
        with pytest.raises(PayloadError):
            QuickBooksEstimate.from_dict({'TotalAmt': 5})


class TestOutgoingPayloads:
    """Tests for push payload construction."""

    def _quote(self, **overrides):
        values = dict(
            quote_number='260003',
            customer_name='Acme Corp',
            customer_email='ops@acme.test',
            customer_phone=None,
            customer_address='1 Main St',
            customer_city='Springfield',
            customer_state='IL',
            customer_zip='62701',
            customer_country=None,
            valid_until=datetime(2026, 11, 30, 18, 0),
            notes='Net 30',
            items=[
                SimpleNamespace(product_name='Widget', sku='W-1', quantity=3, unit_price=10.0, total_price=30.0),
                SimpleNamespace(product_name='Gadget', sku=None, quantity=1, unit_price=5.0, total_price=None),
            ],
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_build_estimate_input(self):
        reconciler = QuoteReconciler(client=None, store=None)
        estimate_input = reconciler.build_estimate_input(self._quote(), '55', today=date(2026, 10, 18))
        payload = estimate_input.to_payload()

        assert payload['CustomerRef'] == {'value': '55'}
        assert payload['DocNumber'] == '260003'
        assert payload['TxnDate'] == '2026-10-18'
        assert payload['ExpirationDate'] == '2026-11-30'
        assert payload['CustomerMemo'] == {'value': 'Net 30'}
        assert payload['Line'][0]['Description'] == 'Widget (W-1)'
        assert payload['Line'][0]['Amount'] == 30.0
        assert payload['Line'][0]['SalesItemLineDetail'] == {'Qty': 3, 'UnitPrice': 10.0}
        assert payload['Line'][1]['Description'] == 'Gadget'
        assert payload['Line'][1]['Amount'] == 5.0

    def test_optional_fields_omitted(self):
        reconciler = QuoteReconciler(client=None, store=None)
        payload = reconciler.build_estimate_input(
            self._quote(valid_until=None, notes=None), '55', today=date(2026, 10, 18)
        ).to_payload()
        assert 'ExpirationDate' not in payload
        assert 'CustomerMemo' not in payload

    def test_address_line(self):
        assert compose_address_line(self._quote()) == '1 Main St, Springfield, IL, 62701'
        empty = self._quote(customer_address=None, customer_city=None, customer_state=None, customer_zip=None)
        assert compose_address_line(empty) is None

    def test_customer_payload(self):
        payload = CustomerInput(display_name=' Acme ', email='a@b.test', line1='1 Main St', city='X').to_payload()
        assert payload == {
            'DisplayName': 'Acme',
            'PrimaryEmailAddr': {'Address': 'a@b.test'},
            'BillAddr': {'Line1': '1 Main St', 'City': 'X'},
        }
