# Overview: Flask CLI command groups for bootstrap, catalog upkeep, and reports.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --name "Castle Lager" --price 25.00 --cost 18.00 --stock 120
#   Create a product; alcohol is detected from the name unless --six-pack/--single is given.
# - python -m flask catalog receive 1 48 --note "PO-1001"
#   Add single items to stock.
# - python -m flask catalog low-stock
#   List active products at or below their minimum stock level.
#
# Reports:
# - python -m flask reports sales --start 2026-01-01 --end 2026-01-31 [--top 5]

import json

import click
from flask.cli import with_appcontext

from .errors import EngineError
from .extensions import db
from .services import inventory_service, products_service, reporting_service
from .services.pack_service import default_engine


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready")


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

    click.echo("PASS Database reset complete")


@click.group('catalog')
def catalog_group():
    """Product and stock upkeep."""


@catalog_group.command('add-product')
@click.option('--name', required=True)
@click.option('--price', 'unit_price', required=True, help='Pack price for six-packs, item price otherwise')
@click.option('--cost', 'cost_price', required=True)
@click.option('--description', default='')
@click.option('--stock', 'stock_level', default=0, type=int, help='Opening stock in single items')
@click.option('--min-stock', 'minimum_stock_level', default=10, type=int)
@click.option('--six-pack/--single', 'is_six_pack', default=None, help='Override alcohol auto-detection')
@click.option('--pack-size', 'pack_quantity', default=None, type=int)
@with_appcontext
def add_product(name, unit_price, cost_price, description, stock_level, minimum_stock_level,
                is_six_pack, pack_quantity):
    """Create a product."""
    try:
        product = products_service.create_product(
            default_engine,
            name=name,
            unit_price=unit_price,
            cost_price=cost_price,
            description=description,
            stock_level=stock_level,
            minimum_stock_level=minimum_stock_level,
            is_six_pack=is_six_pack,
            pack_quantity=pack_quantity,
        )
    except EngineError as e:
        raise click.ClickException(e.message)

    kind = f"{product.pack_quantity}-pack" if product.is_six_pack else "single"
    click.echo(
        f"PASS Created product {product.id}: {product.name} ({kind}) "
        f"price R{product.unit_price:.2f} cost R{product.cost_price:.2f} stock {product.stock_level}"
    )


@catalog_group.command('receive')
@click.argument('product_id', type=int)
@click.argument('units', type=int)
@click.option('--note', default=None, help='Delivery reference')
@with_appcontext
def receive(product_id, units, note):
    """Add UNITS single items to PRODUCT_ID's stock."""
    try:
        level = inventory_service.receive_stock(product_id, units, note)
    except EngineError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Product {product_id} stock is now {level}")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their minimum level."""
    products = inventory_service.low_stock_products()
    if not products:
        click.echo("PASS No products are low on stock")
        return

    click.echo(f"\n{'ID':<6} {'Name':<30} {'Stock':>7} {'Min':>5}  Status")
    click.echo("-" * 62)
    for p in products:
        click.echo(f"{p.id:<6} {p.name[:30]:<30} {p.stock_level:>7} {p.minimum_stock_level:>5}  {p.stock_status}")


@click.group('reports')
def reports_group():
    """Read-only reports."""


@reports_group.command('sales')
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD (inclusive)')
@click.option('--top', 'top_n', default=None, type=int)
@with_appcontext
def sales_report(start, end, top_n):
    """Print the sales report as JSON."""
    try:
        report = reporting_service.generate_sales_report(start, end, top_n=top_n)
    except EngineError as e:
        raise click.ClickException(e.message)
    click.echo(json.dumps(report, indent=2))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(reports_group)
