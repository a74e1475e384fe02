"""
Flask CLI commands for stock ledger maintenance.

Commands:
- flask init-db: Create all tables
- flask ensure-stock-items: Provision a stock item for products lacking one
- flask stock-monitor: Print the low/out/critical/expired stock report
- flask create-api-key: Issue an API key for a merchant
"""

import json

import click

from sjfulfillment.database import create_all, get_session
from sjfulfillment.exceptions import FulfillmentError
from sjfulfillment.models import Merchant
from sjfulfillment.services.api_key_service import create_api_key
from sjfulfillment.services.provisioning_service import provision_missing_stock_items
from sjfulfillment.services.stock_monitor_service import run_stock_monitor


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('ensure-stock-items')
    def ensure_stock_items():
        """Create an empty stock item for every product without one."""
        try:
            created = provision_missing_stock_items(get_session(), performed_by='CLI')
        except FulfillmentError as e:
            click.echo(click.style(f'Provisioning failed: {e.message}', fg='red'))
            raise SystemExit(1)
        click.echo(click.style(f'Created stock items for {created} products.', fg='green'))

    @app.cli.command('stock-monitor')
    def stock_monitor():
        """Print the stock monitor report as JSON."""
        report = run_stock_monitor(get_session())
        click.echo(json.dumps(report, indent=2, default=str))

    @app.cli.command('create-api-key')
    @click.option('--merchant-id', required=True, type=int, help='Merchant that owns the key')
    @click.option('--name', default='Integration key', help='Label shown to the merchant')
    @click.option('--permissions', default='{"inventory": {"read": true, "write": true}}',
                  help='Permissions as a JSON object')
    @click.option('--rate-limit', type=int, default=None, help='Requests per hour')
    def create_api_key_command(merchant_id, name, permissions, rate_limit):
        """Issue an API key pair; the secret is printed once and never stored."""
        try:
            permissions = json.loads(permissions)
        except json.JSONDecodeError as e:
            click.echo(click.style(f'Invalid permissions JSON: {e}', fg='red'))
            return
        if not isinstance(permissions, dict):
            click.echo(click.style('Permissions must be a JSON object.', fg='red'))
            return

        session = get_session()
        if session.get(Merchant, merchant_id) is None:
            click.echo(click.style(f'Merchant {merchant_id} not found.', fg='red'))
            return

        if rate_limit is None:
            rate_limit = app.config.get('API_DEFAULT_RATE_LIMIT', 1000)

        try:
            api_key, secret_key = create_api_key(session, merchant_id, name, permissions, rate_limit)
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'Error creating API key: {e}', fg='red'))
            return

        click.echo(click.style('API key created.', fg='green', bold=True))
        click.echo(f'   ID: {api_key.id}')
        click.echo(f'   Public key: {api_key.public_key}')
        click.echo(f'   Secret key: {secret_key}')
        click.echo('   Store the secret now; it cannot be shown again.')
