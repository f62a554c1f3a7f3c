"""
Quote <-> QuickBooks estimate reconciliation.

Push: a local quote becomes a remote estimate (create, or update using a
freshly fetched SyncToken when the quote already carries an estimate id).
Pull: remote estimates are upserted into local quotes keyed by estimate id.

The client and the store are passed in; nothing here reaches for globals.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from opsconsole.exceptions import ConfigurationError, OpsError, PartialSyncError
from opsconsole.models import DiscountType, Quote, QuoteStatus
from opsconsole.services.quickbooks_client import MalformedEstimate, QuickBooksClient
from opsconsole.services.quickbooks_payloads import (
    CustomerInput, EstimateInput, EstimateLineInput, QuickBooksEstimate,
)
from opsconsole.services.quote_service import QuoteStore
from opsconsole.utils.timeutils import parse_datetime, utcnow

logger = logging.getLogger(__name__)

# DocNumber stand-in for estimates that carry none; never imported as a real number
PLACEHOLDER_PREFIX = 'QB-'

_REMOTE_STATUS = {
    'accepted': QuoteStatus.ACCEPTED.value,
    'rejected': QuoteStatus.REJECTED.value,
    'closed': QuoteStatus.EXPIRED.value,
}


# ---------------------------------------------------------------------- mapping

@dataclass
class MappedQuote:
    """Local quote shape derived from a remote estimate."""
    quote_number: str
    fields: Dict[str, Any]
    items: List[Dict[str, Any]]


def map_estimate_status(txn_status: Optional[str]) -> str:
    """Accepted/Rejected/Closed map across; anything else is SENT, never DRAFT."""
    return _REMOTE_STATUS.get((txn_status or '').lower(), QuoteStatus.SENT.value)


def is_placeholder_number(quote_number: Optional[str]) -> bool:
    return not quote_number or quote_number.startswith(PLACEHOLDER_PREFIX)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def map_estimate_to_quote(estimate: QuickBooksEstimate) -> MappedQuote:
    """
    Map a remote estimate to local quote fields and items.

    Subtotal is recomputed from the sales lines; the gap to TotalAmt becomes a
    fixed discount. Email, phone and address are not carried by estimates and
    stay null.
    """
    items = []
    for line in estimate.lines:
        if not line.is_sales_item:
            continue
        qty = line.qty if line.qty is not None else 1.0
        if line.unit_price is not None:
            unit_price = line.unit_price
        elif qty == 0:
            raise ValueError('Sales line has zero quantity and no unit price')
        else:
            unit_price = (line.amount or 0.0) / qty
        total_price = line.amount if line.amount is not None else qty * unit_price
        items.append({
            'product_id': None,
            'product_name': line.description or 'Item',
            'sku': None,
            'quantity': _round_half_up(qty),
            'unit_price': unit_price,
            'total_price': total_price,
        })

    total = estimate.total_amt if estimate.total_amt is not None else 0.0
    subtotal = sum(item['total_price'] for item in items)
    discount_amount = max(0.0, subtotal - total)

    try:
        valid_until = parse_datetime(estimate.expiration_date)
    except ValueError:
        raise ValueError(f'Invalid ExpirationDate {estimate.expiration_date!r}')

    fields = {
        'status': map_estimate_status(estimate.txn_status),
        'customer_name': estimate.customer_ref.name or 'Unknown',
        'customer_email': None,
        'customer_phone': None,
        'customer_address': None,
        'customer_city': None,
        'customer_state': None,
        'customer_zip': None,
        'customer_country': None,
        'subtotal': subtotal,
        'discount_type': DiscountType.FIXED.value if discount_amount > 0 else None,
        'discount_value': discount_amount if discount_amount > 0 else None,
        'discount_amount': discount_amount,
        'total': total,
        'valid_until': valid_until,
        'notes': estimate.customer_memo or estimate.private_note,
    }
    return MappedQuote(
        quote_number=estimate.doc_number or f'{PLACEHOLDER_PREFIX}{estimate.id}',
        fields=fields,
        items=items,
    )


def compose_address_line(quote: Quote) -> Optional[str]:
    parts = [quote.customer_address, quote.customer_city, quote.customer_state,
             quote.customer_zip, quote.customer_country]
    line = ', '.join(part for part in parts if part)
    return line or quote.customer_address or None


# ----------------------------------------------------------------------- results

@dataclass
class PushResult:
    quickbooks_estimate_id: str
    created: bool


@dataclass
class SyncResult:
    ok: bool
    created: int = 0
    updated: int = 0
    total: int = 0
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def status_code(self) -> int:
        if self.ok:
            return 200
        return 401 if self.error_kind == 'configuration' else 502

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'ok': self.ok,
            'created': self.created,
            'updated': self.updated,
            'total': self.total,
            'errors': self.errors,
        }
        if not self.ok:
            data['error'] = self.error
            data['errorKind'] = self.error_kind
        return data


def error_kind(error: Exception) -> str:
    return 'configuration' if isinstance(error, ConfigurationError) else 'upstream'


# -------------------------------------------------------------------- reconciler

class QuoteReconciler:
    """Translates between local quotes and QuickBooks estimates in both directions."""

    def __init__(self, client: QuickBooksClient, store: QuoteStore, clock: Callable = utcnow):
        self.client = client
        self.store = store
        self.clock = clock

    # ----------------------------------------------------------------- push

    def resolve_or_create_customer(self, quote: Quote) -> str:
        """
        Remote customer id for the quote's customer.

        First exact display-name match wins; otherwise a customer is created
        from the quote's customer snapshot.
        """
        matches = self.client.search_customers_by_display_name(quote.customer_name)
        if matches:
            if len(matches) > 1:
                logger.info(f"[SYNC] {len(matches)} customers named '{quote.customer_name}', using {matches[0].id}")
            return matches[0].id

        created = self.client.create_customer(CustomerInput(
            display_name=quote.customer_name,
            email=quote.customer_email,
            phone=quote.customer_phone,
            line1=compose_address_line(quote),
            city=quote.customer_city,
            state=quote.customer_state,
            postal_code=quote.customer_zip,
            country=quote.customer_country,
        ))
        return created.id

    def build_estimate_input(self, quote: Quote, customer_id: str,
                             today: Optional[date] = None) -> EstimateInput:
        lines = []
        for item in quote.items:
            description = item.product_name + (f' ({item.sku})' if item.sku else '')
            amount = item.total_price if item.total_price is not None else item.unit_price * item.quantity
            lines.append(EstimateLineInput(
                description=description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=amount,
            ))

        today = today or self.clock().date()
        return EstimateInput(
            customer_ref=customer_id,
            lines=lines,
            txn_date=today.isoformat(),
            doc_number=quote.quote_number,
            expiration_date=quote.valid_until.date().isoformat() if quote.valid_until else None,
            customer_memo=quote.notes or None,
        )

    def push_quote(self, quote: Quote) -> PushResult:
        """
        Create or update the remote estimate for a quote.

        Does not persist anything locally; see push_quote_and_record.
        """
        customer_id = self.resolve_or_create_customer(quote)
        estimate_input = self.build_estimate_input(quote, customer_id)

        if quote.quickbooks_estimate_id:
            current = self.client.get_estimate(quote.quickbooks_estimate_id)
            self.client.update_estimate(
                quote.quickbooks_estimate_id,
                current.sync_token or '0',
                estimate_input,
            )
            logger.info(f"[SYNC] Quote {quote.quote_number} updated estimate {quote.quickbooks_estimate_id}")
            return PushResult(quickbooks_estimate_id=quote.quickbooks_estimate_id, created=False)

        created = self.client.create_estimate(estimate_input)
        logger.info(f"[SYNC] Quote {quote.quote_number} created estimate {created.id}")
        return PushResult(quickbooks_estimate_id=created.id, created=True)

    # ----------------------------------------------------------------- pull

    def sync_from_quickbooks(self, max_results: int = 100) -> SyncResult:
        """
        Pull estimates and upsert local quotes.

        Each estimate is handled on its own; a failing one is reported in
        errors and the rest continue. A failure to fetch at all comes back as
        ok=False with error_kind 'configuration' or 'upstream'.
        """
        try:
            estimates = self.client.query_estimates(max_results=max_results)
        except OpsError as e:
            logger.error(f"[SYNC] Pull aborted: {e.message}")
            return SyncResult(ok=False, error=e.message, error_kind=error_kind(e))
        except Exception as e:
            logger.exception("[SYNC] Pull aborted by unexpected error")
            return SyncResult(ok=False, error=str(e), error_kind='upstream')

        result = SyncResult(ok=True, total=len(estimates))
        for estimate in estimates:
            try:
                if isinstance(estimate, MalformedEstimate):
                    raise PartialSyncError(estimate.id, estimate.error)
                outcome = self._upsert_estimate(estimate)
            except PartialSyncError as e:
                logger.warning(f"[SYNC] {e}")
                result.errors.append(str(e))
                continue
            except Exception as e:
                message = e.message if isinstance(e, OpsError) else str(e)
                error = PartialSyncError(estimate.id, message)
                logger.warning(f"[SYNC] {error}")
                result.errors.append(str(error))
                continue

            if outcome == 'created':
                result.created += 1
            else:
                result.updated += 1

        logger.info(
            f"[SYNC] Pull finished: {result.created} created, {result.updated} updated, "
            f"{len(result.errors)} errors of {result.total}"
        )
        return result

    def _upsert_estimate(self, estimate: QuickBooksEstimate) -> str:
        mapped = map_estimate_to_quote(estimate)
        fields = dict(mapped.fields, quickbooks_synced_at=self.clock())

        existing = self.store.find_by_estimate_id(estimate.id)
        if existing is not None:
            self.store.replace_from_snapshot(existing.id, fields, mapped.items)
            return 'updated'

        quote_number = mapped.quote_number
        if is_placeholder_number(quote_number) or self.store.is_quote_number_taken(quote_number):
            quote_number = self.store.next_quote_number()

        fields['quickbooks_estimate_id'] = estimate.id
        self.store.create_from_snapshot(fields, mapped.items, quote_number=quote_number)
        return 'created'


def push_quote_and_record(reconciler: QuoteReconciler, store: QuoteStore, quote_id: str) -> PushResult:
    """Push a stored quote and persist the returned estimate id and sync time."""
    quote = store.get(quote_id)
    result = reconciler.push_quote(quote)
    store.mark_synced(quote.id, result.quickbooks_estimate_id)
    return result
