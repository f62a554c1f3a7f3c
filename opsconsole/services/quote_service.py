"""Quote record store: validation, persistence and item replacement for quotes."""
import logging
import math
from numbers import Number
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from opsconsole.exceptions import ConflictError, NotFoundError, ValidationError
from opsconsole.models import DiscountType, Quote, QuoteItem, QuoteStatus
from opsconsole.services.quote_calculator import calculate_quote_totals
from opsconsole.services.quote_number_service import generate_quote_number, is_quote_number_taken
from opsconsole.utils.timeutils import parse_datetime, utcnow

logger = logging.getLogger(__name__)

# API (camelCase) -> column (snake_case) for the editable header fields
HEADER_FIELDS = {
    'status': 'status',
    'customerName': 'customer_name',
    'customerEmail': 'customer_email',
    'customerPhone': 'customer_phone',
    'customerAddress': 'customer_address',
    'customerCity': 'customer_city',
    'customerState': 'customer_state',
    'customerZip': 'customer_zip',
    'customerCountry': 'customer_country',
    'discountType': 'discount_type',
    'discountValue': 'discount_value',
    'validUntil': 'valid_until',
    'notes': 'notes',
}

DISCOUNT_FIELDS = ('discount_type', 'discount_value')


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool) and math.isfinite(value)


def _optional_text(value, field):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string', field=field)
    return value.strip() or None


def parse_quote_items(raw_items) -> List[Dict[str, Any]]:
    """
    Validate and normalize the quoteItems array of a request.

    totalPrice is always recomputed as quantity * unitPrice; any value sent by
    the caller is ignored.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError('At least one quote item is required', field='quoteItems')

    items = []
    for index, raw in enumerate(raw_items):
        prefix = f'quoteItems[{index}]'
        if not isinstance(raw, dict):
            raise ValidationError(f'{prefix} must be an object', field='quoteItems')

        product_name = raw.get('productName')
        if not isinstance(product_name, str) or not product_name.strip():
            raise ValidationError(f'{prefix}.productName is required', field=f'{prefix}.productName')

        quantity = raw.get('quantity')
        if not _is_number(quantity) or quantity != int(quantity) or quantity <= 0:
            raise ValidationError(f'{prefix}.quantity must be a positive integer', field=f'{prefix}.quantity')

        unit_price = raw.get('unitPrice')
        if not _is_number(unit_price) or unit_price < 0:
            raise ValidationError(f'{prefix}.unitPrice must be a non-negative number', field=f'{prefix}.unitPrice')

        product_id = raw.get('productId')
        quantity = int(quantity)
        unit_price = float(unit_price)
        items.append({
            'product_id': str(product_id) if product_id not in (None, '') else None,
            'product_name': product_name.strip(),
            'sku': _optional_text(raw.get('sku'), f'{prefix}.sku'),
            'quantity': quantity,
            'unit_price': unit_price,
            'total_price': quantity * unit_price,
        })
    return items


def parse_quote_fields(body: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate the header fields of a create (partial=False) or PATCH (partial=True) body.

    Only keys present in the body are returned for PATCH, so callers can tell
    "not supplied" apart from an explicit null.
    """
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')

    fields = {}
    for api_key, column in HEADER_FIELDS.items():
        if api_key in body:
            fields[column] = body[api_key]

    if not partial or 'customer_name' in fields:
        name = fields.get('customer_name')
        if not isinstance(name, str) or not name.strip():
            raise ValidationError('Customer name is required', field='customerName')
        fields['customer_name'] = name.strip()

    if 'status' in fields and fields['status'] is None:
        del fields['status']
    if 'status' in fields:
        if fields['status'] not in QuoteStatus.values():
            raise ValidationError(
                f"Invalid status. Expected one of: {', '.join(QuoteStatus.values())}",
                field='status'
            )

    if 'discount_type' in fields:
        discount_type = fields['discount_type'] or None
        if discount_type is not None and discount_type not in DiscountType.values():
            raise ValidationError("discountType must be 'percentage', 'fixed' or null", field='discountType')
        fields['discount_type'] = discount_type

    if 'discount_value' in fields:
        discount_value = fields['discount_value']
        if discount_value is not None and not _is_number(discount_value):
            raise ValidationError('discountValue must be a number or null', field='discountValue')
        fields['discount_value'] = float(discount_value) if discount_value is not None else None

    if 'valid_until' in fields:
        try:
            fields['valid_until'] = parse_datetime(fields['valid_until'])
        except ValueError:
            raise ValidationError('validUntil must be an ISO-8601 date', field='validUntil')

    for column in ('customer_email', 'customer_phone', 'customer_address', 'customer_city',
                   'customer_state', 'customer_zip', 'customer_country'):
        if column in fields:
            fields[column] = _optional_text(fields[column], column)

    if 'notes' in fields and fields['notes'] is not None and not isinstance(fields['notes'], str):
        raise ValidationError('notes must be a string', field='notes')

    return fields


class QuoteStore:
    """
    Owns the Quote aggregate (header + items).

    Every write commits on success and rolls the session back on failure, so
    a quote is never left without the item set it was written with.
    """

    def __init__(self, session: Session, max_number_attempts: int = 5,
                 number_generator: Callable[[Session], str] = generate_quote_number):
        self.session = session
        self.max_number_attempts = max(1, max_number_attempts)
        self.number_generator = number_generator

    # ------------------------------------------------------------------ reads

    def get(self, quote_id: str) -> Quote:
        quote = self.session.get(Quote, quote_id)
        if not quote:
            raise NotFoundError(f'Quote {quote_id} not found')
        return quote

    def list(self, status: Optional[str] = None, search: Optional[str] = None,
             limit: Optional[int] = None) -> List[Quote]:
        """Quotes ordered newest-created first, optionally filtered by status and text."""
        query = self.session.query(Quote)

        if status:
            if status not in QuoteStatus.values():
                raise ValidationError('Invalid status', field='status')
            query = query.filter(Quote.status == status)

        if search:
            pattern = f'%{search}%'
            query = query.filter(
                or_(
                    Quote.quote_number.ilike(pattern),
                    Quote.customer_name.ilike(pattern),
                    Quote.customer_email.ilike(pattern),
                )
            )

        query = query.order_by(Quote.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def next_quote_number(self) -> str:
        return self.number_generator(self.session)

    def is_quote_number_taken(self, quote_number: str, exclude_quote_id: Optional[str] = None) -> bool:
        return is_quote_number_taken(self.session, quote_number, exclude_quote_id)

    def find_by_estimate_id(self, estimate_id: str) -> Optional[Quote]:
        return self.session.query(Quote).filter(
            Quote.quickbooks_estimate_id == estimate_id
        ).first()

    # ----------------------------------------------------------------- writes

    def create(self, fields: Dict[str, Any], items: List[Dict[str, Any]]) -> Quote:
        """Create a local quote; totals are computed here, never taken from the caller."""
        totals = calculate_quote_totals(items, fields.get('discount_type'), fields.get('discount_value'))
        header = dict(fields)
        header.setdefault('status', QuoteStatus.DRAFT.value)
        header.update(
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            total=totals.total,
        )
        quote = self._insert(header, items)
        logger.info(f"[QUOTES] Created quote {quote.quote_number} ({quote.id}) total={quote.total}")
        return quote

    def create_from_snapshot(self, fields: Dict[str, Any], items: List[Dict[str, Any]],
                             quote_number: Optional[str] = None) -> Quote:
        """Insert a quote whose monetary fields were already derived (pull path)."""
        return self._insert(dict(fields), items, quote_number=quote_number)

    def update(self, quote_id: str, patch: Dict[str, Any],
               items: Optional[List[Dict[str, Any]]] = None) -> Quote:
        """
        Apply a PATCH.

        With items: the stored set is replaced and totals recomputed from the
        new items. Without items but with discount fields: totals recomputed
        from the stored items. Otherwise only the supplied header fields change.
        """
        quote = self.get(quote_id)

        try:
            for column, value in patch.items():
                setattr(quote, column, value)

            discount_changed = any(column in patch for column in DISCOUNT_FIELDS)

            if items is not None:
                self._replace_items(quote, items)
                totals = calculate_quote_totals(items, quote.discount_type, quote.discount_value)
            elif discount_changed:
                totals = calculate_quote_totals(quote.items, quote.discount_type, quote.discount_value)
            else:
                totals = None

            if totals is not None:
                quote.subtotal = totals.subtotal
                quote.discount_amount = totals.discount_amount
                quote.total = totals.total

            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"[QUOTES] Updated quote {quote.quote_number} ({quote.id})")
        return quote

    def replace_from_snapshot(self, quote_id: str, fields: Dict[str, Any],
                              items: List[Dict[str, Any]]) -> Quote:
        """Overwrite header fields and the item set verbatim (pull path). quote_number is kept."""
        quote = self.get(quote_id)
        fields = {k: v for k, v in fields.items() if k != 'quote_number'}

        try:
            for column, value in fields.items():
                setattr(quote, column, value)
            self._replace_items(quote, items)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return quote

    def mark_synced(self, quote_id: str, estimate_id: str, synced_at=None) -> Quote:
        """Persist the correlation id and sync timestamp returned by a push."""
        quote = self.get(quote_id)
        try:
            quote.quickbooks_estimate_id = estimate_id
            quote.quickbooks_synced_at = synced_at or utcnow()
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(f'Estimate {estimate_id} is already linked to another quote') from e
        except Exception:
            self.session.rollback()
            raise
        return quote

    def delete(self, quote_id: str) -> None:
        quote = self.get(quote_id)
        try:
            self.session.delete(quote)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(f"[QUOTES] Deleted quote {quote_id}")

    # ---------------------------------------------------------------- helpers

    def _insert(self, header: Dict[str, Any], items: List[Dict[str, Any]],
                quote_number: Optional[str] = None) -> Quote:
        number = quote_number or self.number_generator(self.session)

        for attempt in range(1, self.max_number_attempts + 1):
            quote = Quote(quote_number=number, **header)
            self.session.add(quote)
            try:
                self.session.flush()
            except IntegrityError as e:
                self.session.rollback()
                estimate_id = header.get('quickbooks_estimate_id')
                if estimate_id and self.find_by_estimate_id(estimate_id):
                    raise ConflictError(f'Estimate {estimate_id} is already linked to a quote') from e
                if not is_quote_number_taken(self.session, number):
                    raise
                logger.warning(f"[QUOTES] Quote number {number} taken (attempt {attempt}), regenerating")
                number = self.number_generator(self.session)
                continue

            try:
                self._add_items(quote, items)
                self.session.flush()
                self.session.commit()
            except Exception:
                # The header was only flushed: rolling back discards it with the items
                self.session.rollback()
                logger.error(f"[QUOTES] Item insert failed for quote {number}, header discarded")
                raise
            return quote

        raise ConflictError(
            f'Could not allocate a unique quote number after {self.max_number_attempts} attempts'
        )

    def _replace_items(self, quote: Quote, items: List[Dict[str, Any]]) -> None:
        quote.items.clear()
        self.session.flush()
        self._add_items(quote, items)
        self.session.flush()

    @staticmethod
    def _add_items(quote: Quote, items: List[Dict[str, Any]]) -> None:
        for position, item in enumerate(items):
            quote.items.append(QuoteItem(
                position=position,
                product_id=item.get('product_id'),
                product_name=item['product_name'],
                sku=item.get('sku'),
                quantity=item['quantity'],
                unit_price=item['unit_price'],
                total_price=item.get('total_price', item['quantity'] * item['unit_price']),
            ))
