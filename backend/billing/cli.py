# Overview: Flask CLI command group for billing bootstrap and maintenance.

# backend/billing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Set FLASK_APP to "billing:create_app".
# - Use: python -m flask billing <command> [options]
#
# - python -m flask billing init-business --name "Acme Retail" --code "ACME"
#   Create a business (tenant) if it does not already exist.
# - python -m flask billing mark-overdue --business-id 1 [--as-of 2025-02-01]
#   Flag PENDING/PARTIAL bills past their due date as OVERDUE.
# - python -m flask billing verify --business-id 1
#   Check every bill and payment of a business against the ledger invariants.

import click
from flask.cli import with_appcontext

from .errors import BillingError
from .extensions import db
from .models import Business
from .services import billing_service


@click.group('billing')
def billing_group():
    """Billing bootstrap and maintenance commands."""


@billing_group.command('init-business')
@click.option('--name', required=True, help='Business name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def init_business_cli(name, code):
    """Create a business (tenant)."""
    existing = db.session.query(Business).filter_by(code=code).first()
    if existing:
        click.echo(f"WARN  Business with code '{code}' already exists (ID: {existing.id})")
        return

    business = Business(name=name, code=code, is_active=True)
    db.session.add(business)
    db.session.commit()
    click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Code: {business.code})")


@billing_group.command('mark-overdue')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--as-of', 'as_of', default=None, help='ISO date to evaluate against (default: now)')
@with_appcontext
def mark_overdue_cli(business_id, as_of):
    """Flag unpaid bills past their due date as OVERDUE."""
    try:
        marked = billing_service.mark_overdue_bills(business_id, as_of=as_of)
    except BillingError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Marked {marked} bill(s) overdue")


@billing_group.command('verify')
@click.option('--business-id', type=int, required=True, help='Business ID')
@with_appcontext
def verify_cli(business_id):
    """Check bills and payments against the ledger invariants."""
    violations = billing_service.find_invariant_violations(business_id)
    if not violations:
        click.echo("PASS All bills and payments are consistent")
        return

    for v in violations:
        click.echo(f"FAIL {v['entity']} {v['id']}: {v['error']}")
    raise click.ClickException(f"{len(violations)} invariant violation(s) found")


def register_commands(app):
    app.cli.add_command(billing_group)
