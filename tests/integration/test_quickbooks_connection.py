"""
Integration tests for QuickBooks credential resolution and connection storage.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch
from opsconsole.exceptions import ConfigurationError
from opsconsole.models import QuickBooksConnection
from opsconsole.services.quickbooks_connection_service import (
    CredentialResolver,
    connection_status,
    refresh_connection_tokens,
    save_connection,
)

NOW = datetime(2026, 10, 18, 12, 0, 0)


def _connection(session, realm_id='9130', expires_at=None, updated_at=NOW, access_token='db-token'):
    connection = QuickBooksConnection(
        realm_id=realm_id,
        access_token=access_token,
        refresh_token='refresh-1',
        token_expires_at=expires_at,
        updated_at=updated_at,
    )
    session.add(connection)
    session.commit()
    return connection


class TestCredentialResolver:
    """Tests for CredentialResolver."""

    def test_stored_connection_wins_over_env(self, session):
        _connection(session, expires_at=NOW + timedelta(hours=1))
        resolver = CredentialResolver(session, 'env-realm', 'env-token', clock=lambda: NOW)

        credentials = resolver()

        assert credentials.realm_id == '9130'
        assert credentials.access_token == 'db-token'
        assert credentials.refresh_token == 'refresh-1'
        assert credentials.source == 'database'

    def test_most_recently_updated_connection_wins(self, session):
        _connection(session, realm_id='old', updated_at=NOW - timedelta(days=2))
        _connection(session, realm_id='new', updated_at=NOW - timedelta(hours=1))

        credentials = CredentialResolver(session, clock=lambda: NOW).get_credentials()

        assert credentials.realm_id == 'new'

    def test_expired_token_needs_reconnect(self, session):
        _connection(session, expires_at=NOW + timedelta(minutes=2))
        resolver = CredentialResolver(session, 'env-realm', 'env-token', clock=lambda: NOW)

        with pytest.raises(ConfigurationError) as exc:
            resolver()
        assert 'Reconnect' in exc.value.message

    def test_falls_back_to_env(self, session):
        credentials = CredentialResolver(session, ' env-realm ', 'env-token').get_credentials()

        assert credentials.realm_id == 'env-realm'
        assert credentials.source == 'env'

    def test_not_configured(self, session):
        with pytest.raises(ConfigurationError) as exc:
            CredentialResolver(session, '', '').get_credentials()
        assert exc.value.status_code == 401


class TestConnectionStorage:
    """Tests for save_connection, refresh and status."""

    def test_save_connection_upserts_by_realm(self, session):
        save_connection(session, '9130', 'a1', 'r1', expires_in=3600, connected_by_email='ops@acme.test')
        save_connection(session, '9130', 'a2', 'r2', expires_in=3600)

        rows = session.query(QuickBooksConnection).all()
        assert len(rows) == 1
        assert rows[0].access_token == 'a2'
        assert rows[0].connected_by_email == 'ops@acme.test'
        assert rows[0].token_expires_at is not None

    @patch('opsconsole.services.quickbooks_connection_service.requests.post')
    def test_refresh_persists_new_tokens(self, mock_post, session):
        connection = _connection(session, expires_at=NOW)
        mock_post.return_value = MagicMock(
            ok=True, status_code=200,
            json=MagicMock(return_value={'access_token': 'fresh', 'refresh_token': 'refresh-2', 'expires_in': 3600}),
        )

        refreshed = refresh_connection_tokens(session, connection, 'cid', 'secret', 'https://token.test')

        assert refreshed.access_token == 'fresh'
        assert refreshed.refresh_token == 'refresh-2'
        _, kwargs = mock_post.call_args
        assert kwargs['auth'] == ('cid', 'secret')
        assert kwargs['data'] == {'grant_type': 'refresh_token', 'refresh_token': 'refresh-1'}

    @patch('opsconsole.services.quickbooks_connection_service.requests.post')
    def test_rejected_refresh(self, mock_post, session):
        connection = _connection(session)
        mock_post.return_value = MagicMock(ok=False, status_code=400, text='invalid_grant')

        with pytest.raises(ConfigurationError):
            refresh_connection_tokens(session, connection, 'cid', 'secret', 'https://token.test')

    def test_refresh_requires_client_credentials(self, session):
        connection = _connection(session)
        with pytest.raises(ConfigurationError):
            refresh_connection_tokens(session, connection, '', '', 'https://token.test')

    def test_status_never_exposes_tokens(self, session):
        _connection(session, expires_at=NOW)

        status = connection_status(session, {})

        assert status['connected'] is True
        assert status['source'] == 'database'
        assert status['realmId'] == '9130'
        assert 'db-token' not in str(status)
        assert 'refresh-1' not in str(status)

    def test_status_from_env_and_disconnected(self, session):
        env = connection_status(session, {'QUICKBOOKS_REALM_ID': 'r', 'QUICKBOOKS_ACCESS_TOKEN': 't'})
        assert env['source'] == 'env'
        assert connection_status(session, {})['connected'] is False
