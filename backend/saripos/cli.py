# Overview: Flask CLI command groups for bootstrap, seeding, and ledger inspection.

# backend/saripos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database bootstrap:
# - python -m flask db upgrade
#   Apply migrations (preferred for real shop databases).
# - python -m flask db-tools init
#   DEV only: create_all() plus default settings, no migration history.
# - python -m flask db-tools seed [--with-batches]
#   Insert units, categories, sample products (and sample stock).
# - python -m flask db-tools reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger inspection:
# - python -m flask ledger verify
#   List batches whose quantity differs from the sum of their history.
# - python -m flask ledger history --batch-id 3 --limit 20
#   Print recent inventory history rows.

import click
from flask.cli import with_appcontext

from .extensions import db
from .seed import seed_reference_data, seed_sample_batches
from .services.history_service import HistoryQuery, get_inventory_history
from .services.ledger_audit_service import find_unreconciled_batches
from .services.settings_service import ensure_default_settings


@click.group('db-tools')
def db_tools_group():
    """Database bootstrap and seeding commands."""


@db_tools_group.command('init')
@with_appcontext
def init_db():
    """Create all tables and insert default settings (idempotent)."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    inserted = ensure_default_settings()
    click.echo(f"PASS Database ready ({inserted} default settings inserted).")


@db_tools_group.command('seed')
@click.option('--with-batches', is_flag=True, help='Also add sample stock through the batch ledger')
@with_appcontext
def seed_db(with_batches):
    """Insert reference units, categories and sample products."""
    counts = seed_reference_data()
    click.echo(
        f"PASS Seeded {counts['units']} units, {counts['categories']} categories, "
        f"{counts['products']} products."
    )
    if with_batches:
        created = seed_sample_batches()
        click.echo(f"PASS Added {created} sample batches.")


@db_tools_group.command('reset-db')
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
    ensure_default_settings()

    click.echo("PASS Database reset complete. Run 'python -m flask db-tools seed' to add sample data.")


@click.group('ledger')
def ledger_group():
    """Inventory ledger inspection commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Check quantity == SUM(history.change) for every batch. Exits 1 on mismatch."""
    mismatches = find_unreconciled_batches()
    if not mismatches:
        click.echo("PASS All batches reconcile with their history.")
        return

    click.echo(f"FAIL {len(mismatches)} batch(es) do not reconcile:")
    for m in mismatches:
        click.echo(f"  batch {m.batch_id}: quantity={m.quantity} history_total={m.history_total}")
    raise SystemExit(1)


@ledger_group.command('history')
@click.option('--batch-id', type=int, default=None)
@click.option('--product-id', type=int, default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def show_history(batch_id, product_id, limit):
    """Print the newest inventory history rows."""
    result = get_inventory_history(HistoryQuery(batch_id=batch_id, product_id=product_id, limit=limit))
    click.echo(f"{result['total']} row(s) match; showing {len(result['records'])}")
    click.echo("-" * 100)
    for r in result["records"]:
        click.echo(
            f"{r['created_at']}  batch {r['batch_id']:<5} {r['change']:>+6}  "
            f"{r['reason']:<14} {r['product_name']}  {r['note'] or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(db_tools_group)
    app.cli.add_command(ledger_group)
