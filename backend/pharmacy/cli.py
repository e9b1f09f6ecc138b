# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/pharmacy/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123"]
#   Create all tables and an "admin" user if none exists. Idempotent.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username jdoe --email jdoe@pharmacy.local --password "Password123" --role cashier
#   Create a staff account (prompts if options are omitted).
#
# Sales:
# - python -m flask sales replay-loyalty RCP-20261016-0042
#   Re-run loyalty accrual for a committed sale. Safe to repeat.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import ROLES, User
from .services import sales_service
from .services.auth_service import create_user


@click.group("system")
def system_group():
    """System bootstrap and repair commands."""


@system_group.command("init")
@click.option("--admin-email", default="admin@pharmacy.local", help="Email for the seeded admin")
@click.option("--admin-password", default="Password123", help="Password for the seeded admin")
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Create the schema and seed an admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing pharmacy system...")
    db.create_all()
    click.echo("PASS Tables created")

    admin = db.session.query(User).filter_by(username="admin").first()
    if admin:
        click.echo(f"PASS Using existing admin user (ID: {admin.id})")
        return

    try:
        admin = create_user("admin", admin_email, admin_password, role="admin")
    except DomainError as e:
        raise click.ClickException(f"Failed to create admin: {e.message}")
    click.echo(f"PASS Created admin user: admin ({admin_email})")


@system_group.command("reset-db")
@click.option("--yes", is_flag=True, help="Skip confirmation")
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


@click.group("users")
def users_group():
    """User bootstrap commands."""


@users_group.command("create")
@click.option("--username", prompt=True, help="Username")
@click.option("--email", prompt=True, help="Email address")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Password")
@click.option("--role", type=click.Choice(list(ROLES)), prompt=True, help="Role")
@with_appcontext
def create_user_cli(username, email, password, role):
    """Create a staff account. Password: 8+ chars with a letter and a digit."""
    try:
        user = create_user(username=username, email=email, password=password, role=role)
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group("sales")
def sales_group():
    """Sale maintenance commands."""


@sales_group.command("replay-loyalty")
@click.argument("receipt_number")
@click.option("--as-user", "username", default="admin", help="Principal recorded on the ledger entry")
@with_appcontext
def replay_loyalty_cli(receipt_number, username):
    """Re-apply loyalty accrual for a committed sale."""
    sale = sales_service.find_sale_by_receipt(receipt_number)
    if sale is None:
        raise click.ClickException(f"Sale {receipt_number} not found")

    principal = db.session.query(User).filter_by(username=username).first()
    if principal is None:
        raise click.ClickException(f"User {username} not found")

    try:
        txn = sales_service.replay_loyalty(sale.id, principal)
    except DomainError as e:
        raise click.ClickException(e.message)

    if txn is None:
        click.echo(f"SKIP Sale {receipt_number} matches no loyalty customer")
    else:
        click.echo(f"PASS Customer {txn.customer_id} holds {txn.points} point(s) for sale {receipt_number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sales_group)
