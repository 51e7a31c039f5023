# Overview: Flask CLI command groups for schema bootstrap, stock resync, reconciliation and code previews.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory:
# - python -m flask inventory sync-stock [--item-id 4]
#   Rebuild materialized stock rows from entries and outputs.
# - python -m flask inventory low-stock
#   List items under their minimum stock at any location.
#
# Orders:
# - python -m flask orders reconcile [--order-id 12]
#   Recompute order / pre-invoice status from payments (all orders when omitted).
#
# Codes:
# - python -m flask codes next PRODUCT --category "Telas Especiales"
#   Preview the next code of a family (nothing is reserved).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import InventoryItem, Order
from .services import inventory_service, reconciliation_service, sequence_service
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@click.group('inventory')
def inventory_group():
    """Stock ledger maintenance."""


@inventory_group.command('sync-stock')
@click.option('--item-id', type=int, default=None, help='Only this inventory item')
@with_appcontext
def sync_stock(item_id):
    """Rebuild InventoryStock rows from the entry/output ledger."""
    if item_id is not None:
        item_ids = [item_id]
    else:
        item_ids = [row.id for row in db.session.query(InventoryItem.id).order_by(InventoryItem.id).all()]

    for current_id in item_ids:
        try:
            synced = inventory_service.sync_inventory_stock(current_id)
        except LookupError as e:
            click.echo(f"FAIL item {current_id}: {e}")
            continue
        levels = ", ".join(f"{loc}={qty}" for loc, qty in sorted(synced.items()))
        click.echo(f"PASS item {current_id}: {levels}")

    click.echo(f"Synced {len(item_ids)} item(s).")


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active items below min_stock at any location."""
    rows = inventory_service.list_low_stock_items()
    if not rows:
        click.echo("No items below minimum stock.")
        return
    for row in rows:
        levels = ", ".join(f"{loc}={qty}" for loc, qty in sorted(row["locations"].items()))
        click.echo(f"{row['inventory_item_id']:>5}  {row['name']:<30} min={row['min_stock']}  {levels}")


@click.group('orders')
def orders_group():
    """Order and payment maintenance."""


@orders_group.command('reconcile')
@click.option('--order-id', type=int, default=None, help='Only this order')
@with_appcontext
def reconcile(order_id):
    """Recompute order and pre-invoice status from recorded payments."""
    if order_id is not None:
        order_ids = [order_id]
    else:
        order_ids = [row.id for row in db.session.query(Order.id).order_by(Order.id).all()]

    changed = 0
    for current_id in order_ids:
        result = reconciliation_service.reconcile_order_payments(current_id, commit=True)
        if result is None:
            click.echo(f"SKIP order {current_id}: not found")
            continue
        if result.changed:
            changed += 1
            click.echo(f"PASS order {current_id}: {result.previous_status} -> {result.order_status} ({result.paid_percent}% paid)")

    click.echo(f"Reconciled {len(order_ids)} order(s), {changed} status change(s).")


@click.group('codes')
def codes_group():
    """Code sequence inspection."""


@codes_group.command('next')
@click.argument('kind')
@click.option('--category', 'category_name', default=None, help='Category name (PRODUCT / ADDITION)')
@with_appcontext
def next_code(kind, category_name):
    """Show the next code of a family without reserving it."""
    try:
        code = sequence_service.allocate_code(kind, category_name)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(code)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(codes_group)
