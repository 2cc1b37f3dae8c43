# Overview: Flask CLI command groups for bootstrap and inventory inspection.

# backend/branchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed [--branch "Main Branch"] [--email owner@branchpos.local] [--password "Password123!"]
#   Idempotent: one branch and one OWNER user.
#
# Inventory inspection:
# - python -m flask inventory alerts [--branch-id 1]
#   List active products below their min_stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, User
from .services.stock_ledger import StockLedger
from .services.user_service import create_user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables from the current models."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('seed')
@click.option('--branch', 'branch_name', default='Main Branch', help='Branch name')
@click.option('--email', default='owner@branchpos.local', help='Owner e-mail')
@click.option('--password', default='Password123!', help='Owner password')
@with_appcontext
def seed(branch_name, email, password):
    """
    Seed one branch and one OWNER user.

    SECURITY: Change the default password immediately in production!
    """
    branch = db.session.query(Branch).filter_by(name=branch_name).first()
    if not branch:
        branch = Branch(name=branch_name, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    user = db.session.query(User).filter_by(email=email.lower()).first()
    if not user:
        user = create_user(
            email=email,
            password=password,
            full_name="Owner",
            role="OWNER",
            branch_id=branch.id,
        )
        click.echo(f"PASS Created OWNER user: {user.email} (ID: {user.id})")
    else:
        click.echo(f"PASS Using existing user: {user.email} (ID: {user.id})")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('alerts')
@click.option('--branch-id', type=int, default=None, help='Only this branch')
@with_appcontext
def stock_alerts(branch_id):
    """List active products whose on-hand stock is below min_stock."""
    alerts = StockLedger(db.session).get_stock_alerts(branch_id=branch_id)
    if not alerts:
        click.echo("PASS No low-stock products")
        return
    for a in alerts:
        click.echo(
            f"LOW  {a['branch_name']}: {a['product_name']} (#{a['product_id']}) "
            f"{a['current_stock']} < {a['min_stock']}"
        )
    click.echo(f"\n{len(alerts)} product(s) below minimum")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
