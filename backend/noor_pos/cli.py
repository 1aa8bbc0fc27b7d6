# Overview: Flask CLI command groups for bootstrap, imports, inventory checks, and report exports.

# backend/noor_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default categories and the invoice sequence.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Imports:
# - python -m flask imports run stock.xlsx --operator-id admin
#   Parse a spreadsheet and commit its valid rows, printing progress.
#
# Inventory:
# - python -m flask inventory low-stock
#   List active products at or under their alert threshold.
#
# Reports:
# - python -m flask reports export customers --output customers.csv
# - python -m flask reports export orders --days 30
# - python -m flask reports export sales --days 90 --output sales.csv

from pathlib import Path

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Category
from .services import import_service, inventory_service, report_service
from .services.document_service import INVOICE, ensure_sequence
from .services.import_parser import CATEGORY_KEYWORDS, ImportError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Idempotent bootstrap.

    - Tables (create_all; use `flask db upgrade` for managed schemas)
    - Categories: LEHENGA, RM DRESS, SAREE, SUIT (the import keyword set)
    - Invoice number sequence
    """
    click.echo("START Initializing Noor POS...")
    db.create_all()

    created = []
    for index, name in enumerate(CATEGORY_KEYWORDS):
        exists = db.session.query(Category).filter_by(name=name).first()
        if exists:
            continue
        db.session.add(Category(name=name, slug=name.lower().replace(" ", "-"), sort_order=index))
        created.append(name)
    sequence = ensure_sequence(INVOICE)
    db.session.commit()

    if created:
        click.echo(f"PASS Created categories: {', '.join(created)}")
    else:
        click.echo("PASS Categories already present")
    click.echo(f"PASS Invoice sequence ready (next number: {sequence.next_number})")
    click.echo("DONE Noor POS initialized")


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


@click.group('imports')
def imports_group():
    """Spreadsheet product imports."""


@imports_group.command('run')
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--operator-id', default=None, help='Recorded as imported_by')
@click.option('--batch-size', type=int, default=None, help='Rows per batch (default from config)')
@with_appcontext
def run_import_cli(file, operator_id, batch_size):
    """Parse FILE (.xlsx or .csv) and commit its valid rows."""
    try:
        parsed, result = import_service.run_import(
            file.read_bytes(),
            file.name,
            imported_by=operator_id,
            batch_size=batch_size or current_app.config["IMPORT_BATCH_SIZE"],
            max_rows=current_app.config["IMPORT_MAX_ROWS"],
            progress=lambda pct: click.echo(f"  {pct}%"),
        )
    except ImportError as e:
        raise click.ClickException(str(e))

    for warning in parsed.warnings:
        click.echo(f"WARN {warning}")
    invalid = len(parsed.products) - len(parsed.valid_products)
    if invalid:
        click.echo(f"WARN {invalid} invalid rows skipped")
    click.echo(
        f"PASS Imported {file.name}: {result.created} created, {result.updated} updated, "
        f"{len(result.errors)} errors"
    )
    for error in result.errors:
        click.echo(f"FAIL Row {error['row']} ({error['sku']}): {error['error']}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    threshold = current_app.config["LOW_STOCK_DEFAULT_THRESHOLD"]
    products = inventory_service.low_stock_products(threshold)
    if not products:
        click.echo("No low-stock products.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'SKU':<20} {'Name':<35} {'Stock':<6} {'Alert'}")
    click.echo("="*70)
    for p in products:
        click.echo(f"{p.sku:<20} {p.name[:35]:<35} {p.stock_quantity:<6} {p.min_stock_alert or threshold}")
    click.echo("="*70 + "\n")


@click.group('reports')
def reports_group():
    """Report exports."""


@reports_group.command('export')
@click.argument('kind', type=click.Choice(['customers', 'orders', 'sales']))
@click.option('--days', type=int, default=None, help='Window in days (orders, sales)')
@click.option('--output', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Write to this file instead of stdout')
@with_appcontext
def export_report(kind, days, output):
    try:
        if kind == 'customers':
            content = report_service.export_customers_csv()
        elif kind == 'orders':
            content = report_service.export_orders_csv(days)
        else:
            content = report_service.export_sales_csv(days or 30)
    except report_service.ReportError as e:
        raise click.ClickException(str(e))

    if output is None:
        click.echo(content, nl=False)
        return
    output.write_text(content, encoding="utf-8")
    click.echo(f"PASS Wrote {kind} export to {output}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(imports_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
