# Overview: Flask CLI command groups for bootstrap, seeding, and back-office tasks.

# backend/inventory_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username alice --password "secret" --role CASHIER
# - python -m flask users list
#
# Products (development seeding):
# - python -m flask products add --name "Sugar 1kg" --price-cents 15000 --quantity 40
# - python -m flask products list
#
# Stock:
# - python -m flask stock adjust --product-id 1 --change -3 --type SUBTRACTION --reason "Damaged" --actor alice
# - python -m flask stock history [--product-id 1] [--limit 20]
#
# Receipts:
# - python -m flask receipts list [--cashier-id 2] [--payment-method CASH] [--product-name sugar]
# - python -m flask receipts reverse 42 --yes

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.auth import VALID_ROLES, ROLE_CASHIER
from .models.sales import VALID_PAYMENT_METHODS
from .models.stock import VALID_ADJUSTMENT_TYPES
from .services import inventory_service, receipt_service, stock_adjustment_service, user_service
from .services.errors import InventoryError
from .time_utils import to_utc_z
from .validation import ValidationError


def _format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES), case_sensitive=False),
              default=ROLE_CASHIER, show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """Create a user with a bcrypt-hashed password."""
    try:
        user = user_service.create_user(username, password, role.upper())
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = user_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<5} {'Username':<25} {'Role':<10} {'Active'}")
    click.echo("=" * 60)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<25} {user.role:<10} {active_str}")
    click.echo("=" * 60 + "\n")


@click.group('products')
def products_group():
    """Product seeding and inspection."""


@products_group.command('add')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--quantity', type=int, default=0, show_default=True, help='Opening stock')
@click.option('--min-stock-level', type=int, default=0, show_default=True, help='Low-stock threshold')
@click.option('--description', default=None, help='Description')
@with_appcontext
def add_product(name, price_cents, quantity, min_stock_level, description):
    """Add a product (development seeding)."""
    try:
        product = inventory_service.create_product(
            name=name,
            price_cents=price_cents,
            quantity=quantity,
            min_stock_level=min_stock_level,
            description=description,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, qty: {product.quantity})")


@products_group.command('list')
@click.option('--limit', type=int, default=200, show_default=True)
@with_appcontext
def list_products(limit):
    """List products with stock on hand."""
    products = inventory_service.list_products(limit=limit)
    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Price':>10} {'Qty':>8} {'Low'}")
    click.echo("=" * 70)
    for p in products:
        low = "!" if p.is_low_stock else ""
        click.echo(f"{p.id:<5} {p.name[:30]:<30} {_format_cents(p.price_cents):>10} {p.quantity:>8} {low}")
    click.echo("=" * 70 + "\n")


@click.group('stock')
def stock_group():
    """Manual stock adjustments."""


@stock_group.command('adjust')
@click.option('--product-id', type=int, required=True)
@click.option('--change', 'quantity_change', type=int, required=True,
              help='Signed change; pass a negative number for SUBTRACTION')
@click.option('--type', 'adjustment_type', type=click.Choice(sorted(VALID_ADJUSTMENT_TYPES), case_sensitive=False),
              required=True)
@click.option('--reason', required=True)
@click.option('--actor', 'actor_username', required=True, help='Username performing the adjustment')
@with_appcontext
def adjust_stock_cli(product_id, quantity_change, adjustment_type, reason, actor_username):
    """Apply a stock adjustment and record it in the history."""
    try:
        adjustment = stock_adjustment_service.adjust_stock(
            product_id=product_id,
            quantity_change=quantity_change,
            adjustment_type=adjustment_type.upper(),
            reason=reason,
            actor_username=actor_username,
        )
    except (InventoryError, ValidationError) as e:
        raise click.ClickException(str(e))

    product = inventory_service.get_product(product_id)
    click.echo(
        f"PASS Adjustment {adjustment.id}: {adjustment.adjustment_type} {adjustment.quantity_change:+d} "
        f"on {product.name}, now {product.quantity}"
    )


@stock_group.command('history')
@click.option('--product-id', type=int, default=None)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def stock_history(product_id, limit):
    """Show recent stock adjustments, newest first."""
    rows = stock_adjustment_service.list_stock_adjustments(product_id=product_id, limit=limit)
    if not rows:
        click.echo("No adjustments found.")
        return

    for r in rows:
        click.echo(
            f"{to_utc_z(r.adjustment_date)}  #{r.id:<5} product={r.product_id:<5} "
            f"{r.adjustment_type:<12} {r.quantity_change:+6d}  by={r.user.username}  {r.reason}"
        )


@click.group('receipts')
def receipts_group():
    """Receipt inspection and reversal."""


@receipts_group.command('list')
@click.option('--cashier-id', type=int, default=None)
@click.option('--payment-method', type=click.Choice(sorted(VALID_PAYMENT_METHODS), case_sensitive=False),
              default=None)
@click.option('--product-name', default=None, help='Case-insensitive substring of a sold product name')
@with_appcontext
def list_receipts_cli(cashier_id, payment_method, product_name):
    """List receipts, newest first."""
    receipts = receipt_service.list_receipts(
        cashier_id=cashier_id,
        payment_method=payment_method.upper() if payment_method else None,
        product_name=product_name,
    )
    if not receipts:
        click.echo("No receipts found.")
        return

    for r in receipts:
        click.echo(
            f"{to_utc_z(r.transaction_date)}  {r.receipt_number}  {r.payment_method:<6} "
            f"{_format_cents(r.total_amount_cents):>10}  lines={len(r.sales)}  cashier={r.cashier.username}"
        )


@receipts_group.command('reverse')
@click.argument('receipt_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reverse_receipt_cli(receipt_id, yes):
    """Delete a receipt and return its quantities to stock."""
    if not yes:
        click.confirm(f"Reverse receipt {receipt_id}?", abort=True)

    try:
        summary = receipt_service.reverse_receipt(receipt_id)
    except InventoryError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Reversed {summary['receipt_number']}")
    for line in summary["restored"]:
        click.echo(f"     product {line['product_id']}: +{line['quantity']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(receipts_group)
