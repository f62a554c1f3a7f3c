"""Alert model for operational notifications (expiring quotes, etc.)."""
import enum
import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime
from opsconsole.database import Base
from opsconsole.utils.timeutils import utcnow, isoformat_or_none


class AlertType(enum.Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    PENDING_ORDER = "pending_order"
    QUOTE_EXPIRED = "quote_expired"
    MANUFACTURER_ORDER = "manufacturer_order"


class AlertSeverity(enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Alert(Base):
    """An alert raised about one entity; at most one unresolved alert per (type, entity)."""

    __tablename__ = 'alerts'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(40), nullable=False, index=True)
    severity = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    entity_type = Column(String(40), nullable=True)
    entity_id = Column(String(64), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Alert(id={self.id}, type='{self.type}', entity={self.entity_type}:{self.entity_id}, resolved={self.resolved})>"

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'severity': self.severity,
            'title': self.title,
            'message': self.message,
            'entityType': self.entity_type,
            'entityId': self.entity_id,
            'read': self.read,
            'resolved': self.resolved,
            'createdAt': isoformat_or_none(self.created_at),
            'resolvedAt': isoformat_or_none(self.resolved_at),
        }
