# Overview: Flask CLI command groups for bootstrap, inspection, and invariant checks.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--tenant "Tenant Name"]
#   Idempotent bootstrap: creates tables, a default tenant and a default store.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Store management:
# - python -m flask stores create --tenant-id 1 --name "Second Store" --code "S2"
#   Create a store within a tenant.
#
# Stock inspection:
# - python -m flask stock show --store-id 1
#   Print every stock row of a store.
# - python -m flask stock low --store-id 1 [--threshold 5]
#   Print rows at or below their reorder point (or the given threshold).
# - python -m flask stock verify [--tenant-id 1]
#   Check qty_available = qty_on_hand - qty_reserved on every row, and that
#   on-hand equals the net quantity of the row's stock moves. Exits 1 on failure.

import click
from flask.cli import with_appcontext

from .context import ActorContext
from .extensions import db
from .models import Tenant, Store, StockItem
from .services.ledger_service import net_moved_qty
from .services.stock_service import find_inconsistent_stock_items, list_low_stock
from .services.tenant_service import get_tenant_store_ids


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Tenant', help='Tenant name')
@click.option('--tenant-code', default='DEFAULT', help='Tenant code')
@with_appcontext
def init_system(tenant_name, tenant_code):
    """
    Initialize the ledger database with a default tenant and store.

    Safe to run repeatedly: existing rows are reused.
    """
    click.echo("START Initializing RetailPOS ledger...")

    db.create_all()

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, code=tenant_code, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    store = db.session.query(Store).filter_by(tenant_id=tenant.id).first()
    if not store:
        store = Store(tenant_id=tenant.id, name="Main Store", code="MAIN")
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    click.echo("\nDONE RetailPOS ledger initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Store code (unique within tenant)')
@with_appcontext
def create_store_cli(tenant_id, name, code):
    """Create a store within a tenant."""
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise click.ClickException(f"Tenant {tenant_id} not found")

    if code and db.session.query(Store).filter_by(tenant_id=tenant_id, code=code).first():
        raise click.ClickException(f"Store code '{code}' already exists in tenant {tenant.code}")

    store = Store(tenant_id=tenant_id, name=name, code=code)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Tenant: {tenant.name})")


@click.group('stock')
def stock_group():
    """Stock inspection and invariant checks."""


def _system_actor(store_id: int) -> ActorContext:
    store = db.session.get(Store, store_id)
    if not store:
        raise click.ClickException(f"Store {store_id} not found")
    return ActorContext.with_all_permissions(tenant_id=store.tenant_id, user_id=0)


def _echo_rows(items):
    if not items:
        click.echo("No stock rows.")
        return
    click.echo(f"{'VARIANT':>8} {'ON_HAND':>8} {'RESERVED':>8} {'AVAIL':>8} {'REORDER':>8}")
    for item in items:
        click.echo(
            f"{item.variant_id:>8} {item.qty_on_hand:>8} {item.qty_reserved:>8} "
            f"{item.qty_available:>8} {item.reorder_point:>8}"
        )


@stock_group.command('show')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def show_stock(store_id):
    """Print every stock row of a store."""
    _system_actor(store_id)
    items = (
        db.session.query(StockItem)
        .filter_by(store_id=store_id)
        .order_by(StockItem.variant_id)
        .all()
    )
    _echo_rows(items)


@stock_group.command('low')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--threshold', type=int, help='Override every reorder point')
@with_appcontext
def low_stock(store_id, threshold):
    """Print rows at or below their reorder point."""
    actor = _system_actor(store_id)
    _echo_rows(list_low_stock(actor, store_id, threshold=threshold))


@stock_group.command('verify')
@click.option('--tenant-id', type=int, help='Limit the check to one tenant')
@with_appcontext
def verify_stock(tenant_id):
    """Check the quantity invariant and ledger agreement on every stock row."""
    store_ids = get_tenant_store_ids(tenant_id) if tenant_id else None

    failures = 0
    for item in find_inconsistent_stock_items(store_ids):
        failures += 1
        click.echo(
            f"FAIL stock_item {item.id}: available {item.qty_available} != "
            f"on_hand {item.qty_on_hand} - reserved {item.qty_reserved}"
        )

    q = db.session.query(StockItem)
    if store_ids is not None:
        q = q.filter(StockItem.store_id.in_(store_ids))
    checked = 0
    for item in q.order_by(StockItem.id):
        checked += 1
        net = net_moved_qty(item.variant_id, item.store_id)
        if net != item.qty_on_hand:
            failures += 1
            click.echo(
                f"FAIL stock_item {item.id} (variant {item.variant_id}, store {item.store_id}): "
                f"on_hand {item.qty_on_hand} != ledger net {net}"
            )

    if failures:
        click.echo(f"\nFAIL {failures} problem(s) across {checked} stock row(s)")
        raise SystemExit(1)
    click.echo(f"PASS {checked} stock row(s) consistent with the ledger")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(stock_group)
