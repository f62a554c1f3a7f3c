"""
QuickBooks credential resolution.

Supplies realm id + bearer token to the API client. The most recently updated
stored connection wins; static configuration is the fallback. An expired
stored token is reported as a reconnect condition, never refreshed implicitly.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Mapping, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from opsconsole.exceptions import ConfigurationError
from opsconsole.models import QuickBooksConnection
from opsconsole.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class QuickBooksCredentials:
    realm_id: str
    access_token: str
    refresh_token: Optional[str] = None
    source: str = 'database'


def get_latest_connection(session: Session) -> Optional[QuickBooksConnection]:
    return session.query(QuickBooksConnection).order_by(
        QuickBooksConnection.updated_at.desc()
    ).first()


class CredentialResolver:
    """Callable returning fresh QuickBooksCredentials or raising ConfigurationError."""

    def __init__(self, session: Session, static_realm_id: str = '', static_access_token: str = '',
                 expiry_buffer_seconds: int = 300, clock: Callable = utcnow):
        self.session = session
        self.static_realm_id = (static_realm_id or '').strip()
        self.static_access_token = (static_access_token or '').strip()
        self.expiry_buffer = timedelta(seconds=expiry_buffer_seconds)
        self.clock = clock

    @classmethod
    def from_config(cls, session: Session, config: Mapping[str, Any]) -> 'CredentialResolver':
        return cls(
            session,
            static_realm_id=config.get('QUICKBOOKS_REALM_ID', ''),
            static_access_token=config.get('QUICKBOOKS_ACCESS_TOKEN', ''),
            expiry_buffer_seconds=config.get('QUICKBOOKS_TOKEN_EXPIRY_BUFFER_SECONDS', 300),
        )

    def __call__(self) -> QuickBooksCredentials:
        return self.get_credentials()

    def get_credentials(self) -> QuickBooksCredentials:
        try:
            connection = get_latest_connection(self.session)
        except SQLAlchemyError as e:
            # Connection table unavailable: fall back to static configuration
            self.session.rollback()
            logger.warning(f"[QB] Could not read stored connection: {e}")
            connection = None

        if connection is not None:
            return self._from_connection(connection)

        if not self.static_realm_id or not self.static_access_token:
            raise ConfigurationError()

        return QuickBooksCredentials(
            realm_id=self.static_realm_id,
            access_token=self.static_access_token,
            source='env',
        )

    def _from_connection(self, connection: QuickBooksConnection) -> QuickBooksCredentials:
        realm_id = (connection.realm_id or '').strip()
        access_token = (connection.access_token or '').strip()
        if not realm_id or not access_token:
            raise ConfigurationError('QuickBooks connection is incomplete. Reconnect QuickBooks.')

        expires_at = connection.token_expires_at
        if expires_at is not None and expires_at <= self.clock() + self.expiry_buffer:
            logger.warning(f"[QB] Access token for realm {realm_id} expired at {expires_at}")
            raise ConfigurationError('QuickBooks token expired. Reconnect QuickBooks.')

        return QuickBooksCredentials(
            realm_id=realm_id,
            access_token=access_token,
            refresh_token=(connection.refresh_token or '').strip() or None,
            source='database',
        )


def save_connection(session: Session, realm_id: str, access_token: str, refresh_token: str,
                    expires_in: Optional[int] = None, connected_by_email: Optional[str] = None) -> QuickBooksConnection:
    """Upsert the connection row for realm_id."""
    now = utcnow()
    connection = session.query(QuickBooksConnection).filter_by(realm_id=realm_id).first()
    if connection is None:
        connection = QuickBooksConnection(realm_id=realm_id)
        session.add(connection)

    connection.access_token = access_token
    connection.refresh_token = refresh_token
    connection.token_expires_at = now + timedelta(seconds=expires_in) if expires_in else None
    if connected_by_email:
        connection.connected_by_email = connected_by_email
    connection.updated_at = now

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    return connection


def refresh_connection_tokens(session: Session, connection: QuickBooksConnection, client_id: str,
                              client_secret: str, token_url: str, timeout: int = 15) -> QuickBooksConnection:
    """
    Exchange the stored refresh token for a new token pair and persist it.

    Raises:
        ConfigurationError: OAuth app not configured or refresh rejected.
    """
    if not client_id or not client_secret:
        raise ConfigurationError(
            'QuickBooks token refresh requires QUICKBOOKS_CLIENT_ID and QUICKBOOKS_CLIENT_SECRET.'
        )

    logger.info(f"[QB] Refreshing tokens for realm {connection.realm_id}")
    try:
        response = requests.post(
            token_url,
            data={'grant_type': 'refresh_token', 'refresh_token': connection.refresh_token},
            headers={'Accept': 'application/json'},
            auth=(client_id, client_secret),
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.error(f"[QB] Token refresh request failed: {e}")
        raise ConfigurationError(f'QuickBooks token refresh failed: {e}. Reconnect QuickBooks.')

    if not response.ok:
        logger.error(f"[QB] Token refresh rejected ({response.status_code}): {response.text}")
        raise ConfigurationError(
            f'QuickBooks token expired. Reconnect QuickBooks. (Refresh failed: {response.status_code})'
        )

    data = response.json()
    return save_connection(
        session,
        realm_id=connection.realm_id,
        access_token=data['access_token'],
        refresh_token=data.get('refresh_token') or connection.refresh_token,
        expires_in=data.get('expires_in', 3600),
    )


def connection_status(session: Session, config: Mapping[str, Any]) -> Dict[str, Any]:
    """Connection summary for the UI; never includes tokens."""
    connection = get_latest_connection(session)
    if connection is not None:
        expires_at = connection.token_expires_at
        status = connection.to_dict()
        status.update(
            connected=True,
            source='database',
            tokenExpired=bool(expires_at and expires_at <= utcnow()),
        )
        return status

    if config.get('QUICKBOOKS_REALM_ID') and config.get('QUICKBOOKS_ACCESS_TOKEN'):
        return {
            'connected': True,
            'source': 'env',
            'realmId': config.get('QUICKBOOKS_REALM_ID'),
            'tokenExpiresAt': None,
            'tokenExpired': False,
            'connectedByEmail': None,
            'updatedAt': None,
        }

    return {'connected': False, 'source': None, 'realmId': None, 'tokenExpiresAt': None,
            'tokenExpired': False, 'connectedByEmail': None, 'updatedAt': None}
