"""Models package - exports all SQLAlchemy models."""
from opsconsole.models.quote import Quote, QuoteStatus, DiscountType
from opsconsole.models.quote_item import QuoteItem
from opsconsole.models.alert import Alert, AlertType, AlertSeverity
from opsconsole.models.quickbooks_connection import QuickBooksConnection

__all__ = [
    'Quote', 'QuoteStatus', 'DiscountType', 'QuoteItem',
    'Alert', 'AlertType', 'AlertSeverity',
    'QuickBooksConnection',
]
