# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/prodtrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to prodtrack (PowerShell: $env:FLASK_APP="prodtrack").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and seeds the default roster.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Clear clients, projects, production entries, invoices and the activity log; keep the roster.
#
# Inspection:
# - python -m flask users list
# - python -m flask activity list [--as mahape] [--limit 20]
#   Activity log, optionally as seen by a roster user.
# - python -m flask activity clear --as boss --yes
#
# Projects:
# - python -m flask projects reconcile
#   Persist freshly derived produced/status onto every project.
#
# Maintenance:
# - python -m flask maintenance cleanup-change-events --retention-hours 24
#   Delete change journal rows older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from . import get_data_service
from .extensions import db
from .services import maintenance_service
from .services.auth_service import AuthService
from .services.permission_service import PermissionDeniedError, as_actor, require_permission
from .services.record_store import (
    ACTIVITY_LOG_KEY,
    CLIENTS_KEY,
    CURRENT_USER_KEY,
    ENTRIES_PREFIX,
    INVOICES_KEY,
    PROJECTS_KEY,
)


def _auth_service() -> AuthService:
    return AuthService(get_data_service(), bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12))


def _roster_actor(username: str):
    for user in _auth_service().list_users():
        if str(user.get("username", "")).lower() == username.lower():
            return as_actor(user)
    raise click.ClickException(f"Unknown user: {username}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the record store tables and seed the default roster.

    Users: boss (owner), accountant, mahape and taloja (factory supervisors).
    Existing rosters are left alone.
    """
    click.echo("START Initializing prodtrack...")
    db.create_all()
    seeded = _auth_service().seed_users()
    if seeded:
        click.echo(f"PASS Seeded {seeded} users")
    else:
        click.echo("WARN  Roster already present, skipping...")
    click.echo("DONE prodtrack initialized")


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
    # The journal restarted; a service built before the reset holds a stale cursor
    current_app.extensions.pop("prodtrack.data_service", None)

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """
    Clear business data while keeping the roster.

    Removes: clients, projects, every production entry partition, invoices,
    the activity log and the signed-in user.
    """
    if not yes:
        click.confirm("WARN This will DELETE all business data. Are you sure?", abort=True)

    service = get_data_service()
    keys = [CLIENTS_KEY, PROJECTS_KEY, INVOICES_KEY, ACTIVITY_LOG_KEY, CURRENT_USER_KEY]
    keys += service.store.keys(ENTRIES_PREFIX)

    deleted = 0
    for key in keys:
        if service.store.delete(key, origin=service.instance_id):
            deleted += 1
            click.echo(f"  - {key}")
    service.reset()
    click.echo(f"PASS Wiped {deleted} keys")


@click.group('users')
def users_group():
    """Roster inspection commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List the roster."""
    users = _auth_service().list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("=" * 80)
    click.echo(f"{'ID':<5} {'Username':<15} {'Name':<20} {'Role':<20} {'Factory'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(
            f"{str(user.get('id')):<5} {user.get('username', ''):<15} {user.get('name', ''):<20} "
            f"{user.get('role') or '':<20} {user.get('factory') or '-'}"
        )


@click.group('activity')
def activity_group():
    """Activity log commands."""


@activity_group.command('list')
@click.option('--as', 'username', help='Show the log as this roster user sees it')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_activity(username, limit):
    """List recent activity, newest first."""
    log = get_data_service().activity
    records = log.read_filtered(_roster_actor(username)) if username else log.read_all()
    if not records:
        click.echo("No activity recorded.")
        return
    for record in records[:limit]:
        click.echo(
            f"{record.get('timestamp')}  {record.get('userName')} ({record.get('userRole')})  "
            f"{record.get('action')} {record.get('entityType')}: {record.get('entityName')}"
        )


@activity_group.command('clear')
@click.option('--as', 'username', required=True, help='Roster user performing the clear')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_activity(username, yes):
    """Delete the whole activity log (owner only)."""
    try:
        require_permission(_roster_actor(username), "CLEAR_ACTIVITY")
    except PermissionDeniedError as e:
        raise click.ClickException(str(e))
    if not yes:
        click.confirm("WARN This will DELETE the activity log. Are you sure?", abort=True)
    get_data_service().activity.clear()
    click.echo("PASS Activity log cleared")


@click.group('projects')
def projects_group():
    """Project commands."""


@projects_group.command('reconcile')
@with_appcontext
def reconcile_projects():
    """Recompute produced/status for every project and persist the snapshot."""
    changed = get_data_service().refresh_project_snapshots()
    click.echo(f"PASS Updated {changed} project snapshots")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-change-events')
@click.option('--retention-hours', type=int, default=None, help='Defaults to CHANGE_EVENT_RETENTION_HOURS')
@with_appcontext
def cleanup_change_events_cli(retention_hours):
    """
    Delete change journal rows older than the retention window.
    """
    if retention_hours is None:
        retention_hours = current_app.config.get("CHANGE_EVENT_RETENTION_HOURS", 24)
    deleted = maintenance_service.cleanup_change_events(retention_hours=retention_hours)
    click.echo(f"Deleted {deleted} change events older than {retention_hours} hours.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(activity_group)
    app.cli.add_command(projects_group)
    app.cli.add_command(maintenance_group)
