# Overview: Flask CLI command groups for bootstrap, inspection, and reporting.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockledger (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Items:
# - python -m flask items stock-in SN-001 --category "Interactive Panel" --model IFP-65 --size 65 --batch B1
#   Receive one serialized unit.
# - python -m flask items show SN-001
#   Print an item and its transaction history.
#
# Ledger:
# - python -m flask ledger verify
#   Replay the transaction log and report items whose status disagrees.
#
# Reports:
# - python -m flask reports monthly --year 2024 --month 1 [--no-cache]
# - python -m flask reports months

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import InventoryError, OperationOutcome
from .services import ledger_service
from .services.transaction_service import get_transaction_history
from .services.reporting_service import get_engine


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
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

    get_engine().cache.clear()
    click.echo("PASS Database reset complete.")


@click.group('items')
def items_group():
    """Inventory item commands."""


@items_group.command('stock-in')
@click.argument('serial_number')
@click.option('--category', required=True, help='Equipment category')
@click.option('--model', 'model_name', required=True, help='Model name')
@click.option('--size', default=None, help='Physical size (blank for none)')
@click.option('--batch', required=True, help='Batch identifier')
@click.option('--remarks', default=None)
@with_appcontext
def stock_in_command(serial_number, category, model_name, size, batch, remarks):
    """Receive one serialized unit."""
    outcome = OperationOutcome.capture(
        ledger_service.stock_in,
        serial_number=serial_number,
        equipment_category=category,
        model=model_name,
        size=size,
        batch=batch,
        remarks=remarks,
        source="cli",
    )
    if not outcome.ok:
        hint = " (store busy, try again)" if outcome.retryable else ""
        raise click.ClickException(f"{outcome.message}{hint}")
    item = outcome.value
    click.echo(f"PASS Stocked in {item.serial_number} ({item.equipment_category}, {item.model})")


@items_group.command('show')
@click.argument('serial_number')
@with_appcontext
def show_item(serial_number):
    """Print an item and its transactions."""
    item = ledger_service.find_item(serial_number)
    if item is None:
        raise click.ClickException(f"Item {serial_number} not found")

    click.echo(f"{item.serial_number}  {item.equipment_category}  {item.model}  size={item.size or '-'}  status={item.status}")
    for tx in get_transaction_history(item.serial_number):
        click.echo(
            f"  #{tx.entry_number:<6} {tx.type:<9} {tx.status:<9} "
            f"{tx.date.isoformat() if tx.date else '-':<26} order={tx.order_number or '-'}"
        )


@click.group('ledger')
def ledger_group():
    """Ledger consistency commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Replay the log and compare with stored item statuses."""
    result = ledger_service.verify_projection()
    for row in result["mismatches"]:
        click.echo(
            f"MISMATCH {row['serial_number']}: ledger={row['ledger_status']} "
            f"replayed={row['derived_status']}"
        )
    click.echo(f"Checked {result['checked']} items, {len(result['mismatches'])} mismatches.")
    if not result["ok"]:
        raise SystemExit(1)


@click.group('reports')
def reports_group():
    """Reporting commands."""


@reports_group.command('monthly')
@click.option('--year', type=int, required=True)
@click.option('--month', type=int, required=True)
@click.option('--no-cache', is_flag=True, help='Recompute instead of using a cached report')
@with_appcontext
def monthly_report(year, month, no_cache):
    """Print the monthly activity report as JSON."""
    try:
        report = get_engine().monthly_activity(year, month, use_cache=not no_cache)
    except InventoryError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(report, indent=2))


@reports_group.command('months')
@with_appcontext
def list_months():
    """List months that have data, newest first."""
    for entry in get_engine().available_months():
        click.echo(f"{entry['year']}-{entry['month']:02d}  {entry['displayName']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(items_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(reports_group)
