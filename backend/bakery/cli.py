# Overview: Flask CLI command groups for bootstrap and staff accounts.

# backend/bakery/cli.py
# Commands (run from the backend directory, FLASK_APP=wsgi.py):
#
# - python -m flask system init [--admin-password ...]
#   Idempotent bootstrap: creates tables, default units and an admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask users list
#   List staff accounts with role and active status.
# - python -m flask users create --username chef --email chef@boulangerie.local --password "Password123" --role chef_patissier
#   Create a staff account.
# - python -m flask users deactivate chef
#   Disable a staff account and revoke its sessions on next use.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Unit, User
from .models.auth import ROLES, ROLE_ADMIN
from .services.auth_service import create_user, deactivate_user, PasswordValidationError


DEFAULT_UNITS = [
    ("kg", "Kilogramme"),
    ("g", "Gramme"),
    ("l", "Litre"),
    ("ml", "Millilitre"),
    ("piece", "Pièce"),
    ("sachet", "Sachet"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Admin username')
@click.option('--admin-email', default='admin@boulangerie.local', help='Admin email')
@click.option('--admin-password', default='Password123', help='Admin password')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Create the schema, default units and an admin account.

    Safe to run repeatedly.
    """
    click.echo("START Initializing bakery ledger...")
    db.create_all()

    created_units = 0
    for value, label in DEFAULT_UNITS:
        if db.session.query(Unit).filter_by(value=value).first():
            continue
        db.session.add(Unit(value=value, label=label))
        created_units += 1
    db.session.commit()
    click.echo(f"PASS Units ready ({created_units} created)")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            create_user(admin_username, admin_email, admin_password, ROLE_ADMIN)
            click.echo(f"PASS Created admin user: {admin_username} ({admin_email})")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create admin '{admin_username}': {e}")

    click.echo("DONE Bakery ledger initialized. Change the admin password in production!")


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


@click.group('users')
def users_group():
    """Staff account commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<20} {'Active'}")
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<20} {'Yes' if user.is_active else 'No'}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), prompt=True)
@click.option('--full-name', default=None)
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """Create a staff account."""
    try:
        user = create_user(username, email, password, role, full_name=full_name)
    except (PasswordValidationError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Disable a staff account."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    deactivate_user(user.id)
    click.echo(f"PASS Deactivated user {username}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
