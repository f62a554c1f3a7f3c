"""QuickBooks OAuth connection (realm + tokens) stored after connecting the company."""
import uuid
from sqlalchemy import Column, String, Text, DateTime
from opsconsole.database import Base
from opsconsole.utils.timeutils import utcnow, isoformat_or_none


class QuickBooksConnection(Base):
    """
    Stored QuickBooks connection.

    access_token expires in about an hour; refresh_token is exchanged for a new
    pair by the explicit refresh command, never implicitly by the API client.
    """

    __tablename__ = 'quickbooks_connections'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    realm_id = Column(String(64), nullable=False, unique=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=True)
    connected_by_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, index=True)

    def __repr__(self):
        return f"<QuickBooksConnection(realm_id='{self.realm_id}', expires={self.token_expires_at})>"

    def to_dict(self):
        """Connection status without secrets."""
        return {
            'realmId': self.realm_id,
            'tokenExpiresAt': isoformat_or_none(self.token_expires_at),
            'connectedByEmail': self.connected_by_email,
            'updatedAt': isoformat_or_none(self.updated_at),
        }
