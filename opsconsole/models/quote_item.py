"""QuoteItem model for quote line items."""
import uuid
from sqlalchemy import Column, String, Integer, Float, ForeignKey
from sqlalchemy.orm import relationship
from opsconsole.database import Base


class QuoteItem(Base):
    """
    Quote Item.

    Stores a snapshot of product details at the time the quote was written.
    Owned exclusively by one quote; the whole set is replaced on item updates.
    """

    __tablename__ = 'quote_items'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_id = Column(String(36), ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String(64), nullable=True)
    product_name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    # Relationships
    quote = relationship('Quote', back_populates='items')

    def __repr__(self):
        return f"<QuoteItem(id={self.id}, quote_id={self.quote_id}, product='{self.product_name}', qty={self.quantity}, total={self.total_price})>"

    def to_dict(self):
        return {
            'id': self.id,
            'quoteId': self.quote_id,
            'productId': self.product_id,
            'productName': self.product_name,
            'sku': self.sku,
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'totalPrice': self.total_price,
        }
