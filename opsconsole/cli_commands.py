"""
Flask CLI commands for quote sync and maintenance.

Commands:
- flask init-db: Create database tables
- flask sync-quickbooks-estimates: Pull QuickBooks estimates into local quotes
- flask check-quote-alerts: Raise quote expiration alerts
- flask quickbooks-refresh: Exchange the stored refresh token for a new access token
"""

import click
from flask import current_app
from opsconsole.database import get_session, create_all
from opsconsole.exceptions import OpsError
from opsconsole.services.alert_service import check_quote_expiration_alerts
from opsconsole.services.quickbooks_connection_service import get_latest_connection, refresh_connection_tokens
from opsconsole.services.quote_service import QuoteStore
from opsconsole.services.quote_sync_service import QuoteReconciler
from opsconsole.blueprints.metrics import record_pull


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables (development / first deploy)."""
        create_all()
        click.echo(click.style('Tables created.', fg='green'))

    @app.cli.command('sync-quickbooks-estimates')
    @click.option('--max-results', type=int, default=None, help='Estimates to fetch (default QUICKBOOKS_ESTIMATE_PAGE_SIZE)')
    def sync_quickbooks_estimates(max_results):
        """Pull QuickBooks estimates into local quotes."""
        session = get_session()
        store = QuoteStore(session, max_number_attempts=current_app.config.get('QUOTE_NUMBER_MAX_ATTEMPTS', 5))
        client = current_app.extensions['quickbooks_client_factory'](session, current_app.config)
        page_size = max_results or current_app.config.get('QUICKBOOKS_ESTIMATE_PAGE_SIZE', 100)

        result = QuoteReconciler(client, store).sync_from_quickbooks(max_results=page_size)
        record_pull(result)

        if not result.ok:
            click.echo(click.style(f'Sync failed ({result.error_kind}): {result.error}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(
            f'Fetched {result.total}: {result.created} created, {result.updated} updated, '
            f'{len(result.errors)} errors',
            fg='green' if not result.errors else 'yellow'
        ))
        for error in result.errors:
            click.echo(f'   {error}')

    @app.cli.command('check-quote-alerts')
    def check_quote_alerts():
        """Raise alerts for expiring and expired quotes."""
        count = check_quote_expiration_alerts(
            get_session(), window_days=current_app.config.get('QUOTE_EXPIRY_ALERT_DAYS', 7)
        )
        click.echo(f'{count} alert(s) created or refreshed.')

    @app.cli.command('quickbooks-refresh')
    def quickbooks_refresh():
        """Refresh the tokens of the most recent QuickBooks connection."""
        session = get_session()
        connection = get_latest_connection(session)
        if connection is None or not connection.refresh_token:
            click.echo(click.style('No stored QuickBooks connection with a refresh token.', fg='red'))
            raise SystemExit(1)

        try:
            connection = refresh_connection_tokens(
                session,
                connection,
                client_id=current_app.config.get('QUICKBOOKS_CLIENT_ID'),
                client_secret=current_app.config.get('QUICKBOOKS_CLIENT_SECRET'),
                token_url=current_app.config['QUICKBOOKS_TOKEN_URL'],
                timeout=current_app.config.get('QUICKBOOKS_HTTP_TIMEOUT', 15),
            )
        except OpsError as e:
            click.echo(click.style(f'Refresh failed: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(
            f'Tokens refreshed for realm {connection.realm_id}; expires at {connection.token_expires_at}',
            fg='green'
        ))
