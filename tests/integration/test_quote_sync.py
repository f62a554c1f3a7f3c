"""
Integration tests for pushing quotes to and pulling estimates from QuickBooks.
"""

import pytest
from opsconsole.exceptions import ConfigurationError, UpstreamError
from opsconsole.models import Quote
from opsconsole.services.quickbooks_client import MalformedEstimate
from opsconsole.services.quickbooks_payloads import QuickBooksCustomer, QuickBooksEstimate
from opsconsole.services.quote_sync_service import QuoteReconciler, push_quote_and_record


def _remote(estimate_id, doc_number='260050', total=35, status='Pending', lines=None):
    return QuickBooksEstimate.from_dict({
        'Id': estimate_id,
        'SyncToken': '0',
        'DocNumber': doc_number,
        'TxnStatus': status,
        'TotalAmt': total,
        'CustomerRef': {'value': '7', 'name': 'Remote Customer'},
        'Line': lines if lines is not None else [
            {'DetailType': 'SalesItemLineDetail', 'Description': 'Widget', 'Amount': 30,
             'SalesItemLineDetail': {'Qty': 3, 'UnitPrice': 10}},
            {'DetailType': 'SalesItemLineDetail', 'Description': 'Gadget', 'Amount': 5,
             'SalesItemLineDetail': {'Qty': 1, 'UnitPrice': 5}},
        ],
    })


@pytest.fixture
def reconciler(fake_qb, store):
    return QuoteReconciler(fake_qb, store)


class TestPush:
    """Tests for QuoteReconciler.push_quote."""

    def test_new_quote_creates_estimate_once(self, reconciler, fake_qb, store, quote_items):
        quote = store.create({'customer_name': 'Acme'}, quote_items)

        result = push_quote_and_record(reconciler, store, quote.id)

        assert result.created is True
        assert fake_qb.call_names().count('create_estimate') == 1
        assert 'get_estimate' not in fake_qb.call_names()
        assert 'update_estimate' not in fake_qb.call_names()
        stored = store.get(quote.id)
        assert stored.quickbooks_estimate_id == result.quickbooks_estimate_id
        assert stored.quickbooks_synced_at is not None

    def test_linked_quote_fetches_token_then_updates(self, reconciler, fake_qb, store, quote_items):
        quote = store.create({'customer_name': 'Acme'}, quote_items)
        store.mark_synced(quote.id, '900')
        fake_qb.estimates['900'] = QuickBooksEstimate(id='900', sync_token='6')

        result = reconciler.push_quote(store.get(quote.id))

        names = fake_qb.call_names()
        assert result.created is False
        assert result.quickbooks_estimate_id == '900'
        assert 'create_estimate' not in names
        assert names.index('get_estimate') < names.index('update_estimate')
        update_call = [call for call in fake_qb.calls if call[0] == 'update_estimate'][0]
        assert update_call[1:3] == ('900', '6')

    def test_existing_customer_is_reused(self, reconciler, fake_qb, store, quote_items):
        fake_qb.customers = [
            QuickBooksCustomer(id='7', display_name='Acme'),
            QuickBooksCustomer(id='8', display_name='Acme'),
        ]
        quote = store.create({'customer_name': 'Acme'}, quote_items)

        reconciler.push_quote(quote)

        assert 'create_customer' not in fake_qb.call_names()
        create_call = [call for call in fake_qb.calls if call[0] == 'create_estimate'][0]
        assert create_call[1].customer_ref == '7'

    def test_missing_customer_is_created_with_address(self, reconciler, fake_qb, store, quote_items):
        quote = store.create({
            'customer_name': 'Globex',
            'customer_address': '1 Main St',
            'customer_city': 'Springfield',
            'customer_country': 'US',
        }, quote_items)

        reconciler.push_quote(quote)

        create_call = [call for call in fake_qb.calls if call[0] == 'create_customer'][0]
        assert create_call[1].display_name == 'Globex'
        assert create_call[1].line1 == '1 Main St, Springfield, US'

    def test_push_failure_leaves_quote_unlinked(self, reconciler, fake_qb, store, quote_items):
        quote = store.create({'customer_name': 'Acme'}, quote_items)
        fake_qb.error = UpstreamError('QuickBooks API 500', upstream_status=500)

        with pytest.raises(UpstreamError):
            push_quote_and_record(reconciler, store, quote.id)

        assert store.get(quote.id).quickbooks_estimate_id is None


class TestPull:
    """Tests for QuoteReconciler.sync_from_quickbooks."""

    def test_pull_twice_yields_one_quote(self, reconciler, fake_qb, session):
        fake_qb.query_results = [_remote('501')]

        first = reconciler.sync_from_quickbooks()
        number = session.query(Quote).one().quote_number
        second = reconciler.sync_from_quickbooks()

        assert (first.created, first.updated, first.errors) == (1, 0, [])
        assert (second.created, second.updated, second.errors) == (0, 1, [])
        quote = session.query(Quote).one()
        assert quote.quote_number == number == '260050'
        assert quote.quickbooks_estimate_id == '501'
        assert quote.status == 'SENT'
        assert len(quote.items) == 2

    def test_pull_overwrites_header_but_keeps_number(self, reconciler, fake_qb, session):
        fake_qb.query_results = [_remote('501')]
        reconciler.sync_from_quickbooks()

        fake_qb.query_results = [_remote('501', doc_number='999999', total=30, status='Accepted')]
        result = reconciler.sync_from_quickbooks()

        quote = session.query(Quote).one()
        assert result.updated == 1
        assert quote.quote_number == '260050'
        assert quote.status == 'ACCEPTED'
        assert quote.discount_type == 'fixed'
        assert quote.discount_amount == 5.0
        assert quote.total == 30.0

    def test_placeholder_number_is_regenerated(self, reconciler, fake_qb, session):
        fake_qb.query_results = [_remote('502', doc_number=None)]

        result = reconciler.sync_from_quickbooks()

        quote = session.query(Quote).one()
        assert result.created == 1
        assert not quote.quote_number.startswith('QB-')
        assert quote.quote_number.isdigit()

    def test_literal_placeholder_doc_number_is_regenerated(self, reconciler, fake_qb, session):
        fake_qb.query_results = [_remote('504', doc_number='QB-77')]

        result = reconciler.sync_from_quickbooks()

        quote = session.query(Quote).one()
        assert result.created == 1
        assert quote.quote_number != 'QB-77'
        assert quote.quote_number.isdigit()
        assert len(quote.quote_number) == 6

    def test_colliding_number_is_regenerated(self, reconciler, fake_qb, store, session, quote_items):
        local = store.create({'customer_name': 'Local'}, quote_items)
        fake_qb.query_results = [_remote('503', doc_number=local.quote_number)]

        result = reconciler.sync_from_quickbooks()

        assert result.created == 1
        pulled = session.query(Quote).filter(Quote.quickbooks_estimate_id == '503').one()
        assert pulled.quote_number != local.quote_number

    def test_failing_estimate_does_not_abort_others(self, reconciler, fake_qb, session):
        bad = _remote('A1', lines=[
            {'DetailType': 'SalesItemLineDetail', 'Amount': 10, 'SalesItemLineDetail': {'Qty': 0}},
        ])
        fake_qb.query_results = [bad, _remote('B2', doc_number='260060')]

        result = reconciler.sync_from_quickbooks()

        assert result.ok is True
        assert result.created == 1
        assert result.total == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith('Estimate A1:')
        assert session.query(Quote).one().quickbooks_estimate_id == 'B2'

    def test_malformed_row_is_reported(self, reconciler, fake_qb):
        fake_qb.query_results = [MalformedEstimate(id='C3', error='TotalAmt must be numeric'), _remote('D4')]

        result = reconciler.sync_from_quickbooks()

        assert result.created == 1
        assert result.errors == ['Estimate C3: TotalAmt must be numeric']

    def test_configuration_failure(self, reconciler, fake_qb):
        fake_qb.error = ConfigurationError()

        result = reconciler.sync_from_quickbooks()

        assert result.ok is False
        assert result.error_kind == 'configuration'
        assert result.status_code == 401
        assert result.to_dict()['ok'] is False

    def test_upstream_failure(self, reconciler, fake_qb):
        fake_qb.error = UpstreamError('QuickBooks API 503', upstream_status=503)

        result = reconciler.sync_from_quickbooks()

        assert result.ok is False
        assert result.error_kind == 'upstream'
        assert result.status_code == 502
