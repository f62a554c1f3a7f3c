"""
Typed QuickBooks Online payloads.

Remote JSON is narrowed into these dataclasses at the client boundary; the
reconciler never sees raw dicts. Only the fields this system reads are kept.
"""
from dataclasses import dataclass, field
from numbers import Number
from typing import Any, Dict, List, Optional

SALES_ITEM_LINE = 'SalesItemLineDetail'


class PayloadError(ValueError):
    """A QuickBooks response did not have the expected shape."""


def _opt_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value)
    raise PayloadError(f"{key} must be a string, got {type(value).__name__}")


def _opt_float(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (Number, str)):
        raise PayloadError(f"{key} must be numeric, got {type(value).__name__}")
    try:
        return float(value)
    except ValueError:
        raise PayloadError(f"{key} must be numeric, got {value!r}")


def _opt_dict(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadError(f"{key} must be an object")
    return value


def _require_id(data: Dict[str, Any], entity: str) -> str:
    value = _opt_str(data, 'Id')
    if not value:
        raise PayloadError(f"{entity} is missing Id")
    return value


@dataclass
class Reference:
    """A QuickBooks *Ref ({"value": ..., "name": ...})."""
    value: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Reference':
        return cls(value=_opt_str(data, 'value'), name=_opt_str(data, 'name'))


@dataclass
class QuickBooksCustomer:
    id: str
    display_name: Optional[str] = None
    sync_token: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuickBooksCustomer':
        if not isinstance(data, dict):
            raise PayloadError("Customer must be an object")
        return cls(
            id=_require_id(data, 'Customer'),
            display_name=_opt_str(data, 'DisplayName'),
            sync_token=_opt_str(data, 'SyncToken'),
            email=_opt_str(_opt_dict(data, 'PrimaryEmailAddr'), 'Address'),
            phone=_opt_str(_opt_dict(data, 'PrimaryPhone'), 'FreeFormNumber'),
        )


@dataclass
class QuickBooksEstimateLine:
    detail_type: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    qty: Optional[float] = None
    unit_price: Optional[float] = None
    has_sales_detail: bool = False

    @property
    def is_sales_item(self) -> bool:
        return self.detail_type == SALES_ITEM_LINE and self.has_sales_detail

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuickBooksEstimateLine':
        if not isinstance(data, dict):
            raise PayloadError("Line must be an object")
        detail = data.get(SALES_ITEM_LINE)
        if detail is not None and not isinstance(detail, dict):
            raise PayloadError(f"{SALES_ITEM_LINE} must be an object")
        detail = detail or {}
        return cls(
            detail_type=_opt_str(data, 'DetailType'),
            description=_opt_str(data, 'Description'),
            amount=_opt_float(data, 'Amount'),
            qty=_opt_float(detail, 'Qty'),
            unit_price=_opt_float(detail, 'UnitPrice'),
            has_sales_detail=data.get(SALES_ITEM_LINE) is not None,
        )


@dataclass
class QuickBooksEstimate:
    id: str
    sync_token: Optional[str] = None
    doc_number: Optional[str] = None
    txn_date: Optional[str] = None
    expiration_date: Optional[str] = None
    total_amt: Optional[float] = None
    txn_status: Optional[str] = None
    customer_ref: Reference = field(default_factory=Reference)
    lines: List[QuickBooksEstimateLine] = field(default_factory=list)
    customer_memo: Optional[str] = None
    private_note: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuickBooksEstimate':
        if not isinstance(data, dict):
            raise PayloadError("Estimate must be an object")
        raw_lines = data.get('Line') or []
        if not isinstance(raw_lines, list):
            raise PayloadError("Line must be an array")
        return cls(
            id=_require_id(data, 'Estimate'),
            sync_token=_opt_str(data, 'SyncToken'),
            doc_number=_opt_str(data, 'DocNumber'),
            txn_date=_opt_str(data, 'TxnDate'),
            expiration_date=_opt_str(data, 'ExpirationDate'),
            total_amt=_opt_float(data, 'TotalAmt'),
            txn_status=_opt_str(data, 'TxnStatus'),
            customer_ref=Reference.from_dict(_opt_dict(data, 'CustomerRef')),
            lines=[QuickBooksEstimateLine.from_dict(line) for line in raw_lines],
            customer_memo=_opt_str(_opt_dict(data, 'CustomerMemo'), 'value'),
            private_note=_opt_str(data, 'PrivateNote'),
        )


@dataclass
class EstimateLineInput:
    """One outgoing sales line."""
    description: str
    quantity: float
    unit_price: float
    amount: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            'DetailType': SALES_ITEM_LINE,
            'Amount': self.amount,
            'Description': self.description,
            SALES_ITEM_LINE: {
                'Qty': self.quantity,
                'UnitPrice': self.unit_price,
            },
        }


@dataclass
class EstimateInput:
    """Fields written on estimate create/update."""
    customer_ref: str
    lines: List[EstimateLineInput]
    txn_date: str
    doc_number: Optional[str] = None
    expiration_date: Optional[str] = None
    customer_memo: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        body = {
            'CustomerRef': {'value': self.customer_ref},
            'TxnDate': self.txn_date,
            'Line': [line.to_payload() for line in self.lines],
        }
        if self.doc_number:
            body['DocNumber'] = self.doc_number
        if self.expiration_date:
            body['ExpirationDate'] = self.expiration_date
        if self.customer_memo:
            body['CustomerMemo'] = {'value': self.customer_memo}
        return body


@dataclass
class CustomerInput:
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'DisplayName': self.display_name.strip()}
        if self.email:
            body['PrimaryEmailAddr'] = {'Address': self.email}
        if self.phone:
            body['PrimaryPhone'] = {'FreeFormNumber': self.phone}
        if self.company_name:
            body['CompanyName'] = self.company_name
        if any([self.line1, self.city, self.state, self.postal_code, self.country]):
            address = {
                'Line1': self.line1,
                'City': self.city,
                'CountrySubDivisionCode': self.state,
                'PostalCode': self.postal_code,
                'Country': self.country,
            }
            body['BillAddr'] = {k: v for k, v in address.items() if v}
        return body
