# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the settings row, and default admin/staff users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --email admin@riom.local --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
#
# Stock:
# - python -m flask stock low [--threshold 5]
#   Print the low-stock report.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import User
from .services.auth_service import create_user
from .services.settings_service import init_settings_if_missing
from .services.stock_service import find_low_stock


DEFAULT_USERS = (
    ("admin@riom.local", "Admin", "admin"),
    ("staff@riom.local", "Staff", "staff"),
)
DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the system: schema, global settings and default users.

    All default passwords are "Password123!". Change them in production.
    """
    click.echo("START Initializing RIOM...")

    db.create_all()
    init_settings_if_missing()
    db.session.commit()
    click.echo("PASS Schema and settings ready")

    for email, name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(email=email, password=DEFAULT_PASSWORD, name=name, role=role)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except ServiceError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e.message}")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for email, _, role in DEFAULT_USERS:
        click.echo(f"   {role:<6} -> {email} / {DEFAULT_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'staff']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, name, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(email=email, password=password, name=name, role=role)
    except ServiceError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<8} {'Active'}")
    click.echo("=" * 70)
    for user in users:
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<8} {'yes' if user.is_active else 'no'}")
    click.echo("=" * 70 + "\n")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@click.option('--threshold', type=int, default=None, help='Override the default reorder threshold')
@with_appcontext
def low_stock_cli(threshold):
    """Print SKUs at or below their reorder threshold."""
    rows = find_low_stock(default_threshold=threshold)
    if not rows:
        click.echo("PASS No SKUs at or below their reorder threshold.")
        return

    click.echo(f"{'SKU':<24} {'Product':<30} {'Stock':>6} {'Reorder':>8}")
    for row in rows:
        click.echo(
            f"{row['sku']:<24} {(row['product_name'] or '-'):<30} {row['stock']:>6} {row['reorder_threshold']:>8}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
