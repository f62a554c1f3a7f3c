"""Quote model for customer quotes mirrored to QuickBooks estimates."""
import enum
import uuid
from sqlalchemy import Column, String, Float, DateTime, Text
from sqlalchemy.orm import relationship
from opsconsole.database import Base
from opsconsole.utils.timeutils import utcnow, isoformat_or_none


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @classmethod
    def values(cls):
        return [status.value for status in cls]


class DiscountType(enum.Enum):
    """Discount policy applied on top of the item subtotal."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def values(cls):
        return [discount.value for discount in cls]


class Quote(Base):
    """
    Quote (locally owned aggregate root).

    Customer fields are a denormalized snapshot, not a reference to a customer
    record. discount_amount and total are always computed by the store.
    quickbooks_estimate_id correlates the quote with its remote estimate.
    """

    __tablename__ = 'quotes'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_number = Column(String(64), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    customer_address = Column(String(255), nullable=True)
    customer_city = Column(String(120), nullable=True)
    customer_state = Column(String(120), nullable=True)
    customer_zip = Column(String(20), nullable=True)
    customer_country = Column(String(120), nullable=True)

    subtotal = Column(Float, nullable=False, default=0.0)
    discount_type = Column(String(20), nullable=True)
    discount_value = Column(Float, nullable=True)
    discount_amount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)

    valid_until = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    quickbooks_estimate_id = Column(String(64), nullable=True, unique=True)
    quickbooks_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    items = relationship(
        'QuoteItem',
        back_populates='quote',
        cascade='all, delete-orphan',
        passive_deletes=True,
        order_by='QuoteItem.position',
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status='{self.status}', total={self.total})>"

    def to_dict(self):
        """Convert to the camelCased API shape."""
        return {
            'id': self.id,
            'quoteNumber': self.quote_number,
            'status': self.status,
            'customerName': self.customer_name,
            'customerEmail': self.customer_email,
            'customerPhone': self.customer_phone,
            'customerAddress': self.customer_address,
            'customerCity': self.customer_city,
            'customerState': self.customer_state,
            'customerZip': self.customer_zip,
            'customerCountry': self.customer_country,
            'subtotal': self.subtotal,
            'discountType': self.discount_type,
            'discountValue': self.discount_value,
            'discountAmount': self.discount_amount,
            'total': self.total,
            'validUntil': isoformat_or_none(self.valid_until),
            'notes': self.notes,
            'quickbooksEstimateId': self.quickbooks_estimate_id,
            'quickbooksSyncedAt': isoformat_or_none(self.quickbooks_synced_at),
            'createdAt': isoformat_or_none(self.created_at),
            'updatedAt': isoformat_or_none(self.updated_at),
            'quoteItems': [item.to_dict() for item in self.items],
        }
