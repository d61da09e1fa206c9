# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, shop settings, default admin, dashboard snapshot.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --name "Till 1" --email till@shop.local --password secret --role staff
#
# Dashboard:
# - python -m flask dashboard show
# - python -m flask dashboard recalculate
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLES
from .services import auth_service, session_service, settings_service
from .services.consistency import ConsistencyStrategy
from .services.dashboard_service import DashboardRecomputeError, get_dashboard
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the shop: schema, settings row, default admin, dashboard.

    The admin account comes from DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD /
    DEFAULT_ADMIN_NAME. SECURITY: change that password in production!
    """
    click.echo("START Initializing shop...")

    db.create_all()
    click.echo("PASS Tables ready")

    settings = settings_service.get_settings()
    click.echo(f"PASS Shop settings: {settings.shop_name}")

    try:
        user, created = auth_service.ensure_default_admin()
    except ValidationError as e:
        click.echo(f"FAIL Default admin not created: {e}")
        return
    if created:
        click.echo(f"PASS Created admin: {user.email}")
    else:
        click.echo(f"WARN  Admin '{user.email}' already exists, skipping...")

    try:
        snapshot = get_dashboard().recompute()
        click.echo(f"PASS Dashboard computed ({snapshot.orders} orders)")
    except DashboardRecomputeError as e:
        click.echo(f"FAIL Dashboard recompute failed: {e}")

    topology = ConsistencyStrategy.from_app(current_app).topology()
    click.echo(
        f"INFO  DB topology {topology.topology} (from {topology.source}); "
        f"DB_TRANSACTIONS={'on' if current_app.config.get('DB_TRANSACTIONS') else 'off'}"
    )
    click.echo("DONE Shop initialized")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default='staff', show_default=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """Create a staff account (password: 6+ characters)."""
    try:
        user = auth_service.create_user(name, email, password, role=role)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return
    click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Role':<8} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<30} {user.role:<8} {active_str}")
    click.echo("="*80 + "\n")


@click.group('dashboard')
def dashboard_group():
    """Dashboard snapshot commands."""


@dashboard_group.command('show')
@with_appcontext
def show_dashboard():
    """Print the stored snapshot (computed on first use)."""
    click.echo(json.dumps(get_dashboard().snapshot().to_dict(), indent=2))


@dashboard_group.command('recalculate')
@with_appcontext
def recalculate_dashboard():
    """Rebuild the snapshot from products, sales and purchases."""
    try:
        snapshot = get_dashboard().recompute()
    except DashboardRecomputeError as e:
        click.echo(f"FAIL Dashboard recompute failed: {e}")
        return
    click.echo(json.dumps(snapshot.to_dict(), indent=2))


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired or revoked sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(dashboard_group)
    app.cli.add_command(maintenance_group)
