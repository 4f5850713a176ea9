# Overview: Flask CLI command groups for bootstrap, provisioning, and ledger audit.

# backend/fieldledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts:
# - python -m flask accounts create --name "Asha" --email asha@example.com --role salesman --managed-by 2
# - python -m flask accounts create --name "Corner Shop" --email shop@example.com --role shopkeeper --pending-amount-cents 100000
# - python -m flask accounts list [--role shopkeeper] [--all]
#
# Products:
# - python -m flask products create --name "Salted Chips 50g" --sku CHIPS-50 --price-cents 2000 --stock 500
# - python -m flask products restock --product-id 1 --quantity 100
#
# Ledger:
# - python -m flask ledger audit
#   Re-check every recovery formula, distribution total and salesman stock level.
#   Exits non-zero when findings exist.

import json

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models.accounts import ROLES
from .services import account_service, audit_service, product_service, stock_service
from .services.concurrency import run_in_transaction


def _fail(exc: LedgerError):
    db.session.rollback()
    click.echo(f"FAIL {exc.message}")
    if exc.details:
        click.echo(f"     {json.dumps(exc.details, default=str)}")
    raise click.exceptions.Exit(1)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('accounts')
def accounts_group():
    """Account provisioning and inspection."""


@accounts_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@click.option('--phone', default=None)
@click.option('--address', default=None)
@click.option('--managed-by', 'managed_by_id', type=int, default=None, help='Admin id (salesmen only)')
@click.option('--pending-amount-cents', type=int, default=0, show_default=True, help='Opening balance (shopkeepers only)')
@click.option('--credit-limit-cents', type=int, default=None)
@click.option('--commission-rate-bps', type=click.IntRange(0, 10000), default=0, show_default=True, help='Sales commission in basis points (salesmen only)')
@with_appcontext
def create_account_cli(
    name, email, role, phone, address, managed_by_id, pending_amount_cents, credit_limit_cents, commission_rate_bps
):
    """Create an account of any role."""
    try:
        account = account_service.create_account(
            name=name,
            email=email,
            role=role,
            phone=phone,
            address=address,
            managed_by_id=managed_by_id,
            pending_amount_cents=pending_amount_cents,
            credit_limit_cents=credit_limit_cents,
            commission_rate_bps=commission_rate_bps,
        )
        db.session.commit()
    except LedgerError as e:
        _fail(e)

    click.echo(f"PASS Created {account.role} '{account.name}' ({account.email})")
    click.echo(f"     Account ID: {account.id}")


@accounts_group.command('list')
@click.option('--role', type=click.Choice(ROLES), default=None)
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive accounts')
@with_appcontext
def list_accounts_cli(role, include_inactive):
    """List accounts with their pending balances."""
    accounts = account_service.list_accounts(role, active_only=not include_inactive)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Role':<12} {'Name':<25} {'Email':<30} {'Active':<8} {'Pending':>12}")
    click.echo("="*100)
    for account in accounts:
        active_str = "Yes" if account.is_active else "No"
        click.echo(
            f"{account.id:<5} {account.role:<12} {account.name[:25]:<25} {account.email[:30]:<30} "
            f"{active_str:<8} {account.pending_amount_cents:>12}"
        )
    click.echo("="*100 + "\n")


@click.group('products')
def products_group():
    """Product catalogue and warehouse stock."""


@products_group.command('create')
@click.option('--name', prompt=True)
@click.option('--sku', default=None)
@click.option('--category', default=None)
@click.option('--price-cents', type=int, default=None)
@click.option('--stock', type=int, default=0, show_default=True, help='Opening warehouse stock')
@with_appcontext
def create_product_cli(name, sku, category, price_cents, stock):
    try:
        product = product_service.create_product(
            name=name, sku=sku, category=category, price_cents=price_cents, stock=stock
        )
        db.session.commit()
    except LedgerError as e:
        _fail(e)

    click.echo(f"PASS Created product '{product.name}' (ID: {product.id}, stock: {product.stock})")


@products_group.command('restock')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True, help='Units received into the warehouse')
@click.option('--reason', default='restock', show_default=True)
@with_appcontext
def restock_product_cli(product_id, quantity, reason):
    """Add units to warehouse stock (records a stock.adjusted event)."""
    if quantity < 1:
        click.echo("FAIL quantity must be >= 1")
        raise click.exceptions.Exit(1)
    try:
        product = run_in_transaction(
            lambda: stock_service.adjust_warehouse_stock(product_id, quantity, reason=reason)
        )
    except LedgerError as e:
        _fail(e)

    click.echo(f"PASS Product {product.id} stock is now {product.stock}")


@click.group('ledger')
def ledger_group():
    """Ledger consistency tooling."""


@ledger_group.command('audit')
@click.option('--json', 'as_json', is_flag=True, help='Print the full report as JSON')
@with_appcontext
def audit_cli(as_json):
    """Re-check stored formulas and derived stock. Exit code 1 on findings."""
    report = audit_service.run_audit()
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(
            f"Checked {report.recoveries_checked} recoveries, "
            f"{report.distributions_checked} distributions, "
            f"{report.sales_checked} sales, "
            f"{report.custodians_checked} salesman stock levels."
        )
        for finding in report.findings:
            click.echo(f"FAIL [{finding.check}] {finding.entity_type} {finding.entity_id}: {finding.message}")
        if report.ok:
            click.echo("PASS No findings.")

    if not report.ok:
        raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(products_group)
    app.cli.add_command(ledger_group)
