# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopadmin/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use "flask db upgrade" for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Admin accounts:
# - python -m flask admins create --username admin --email admin@shop.local
#   Create an admin account.
# - python -m flask admins list
#   List admin accounts.
# - python -m flask admins issue-token --username admin
#   Print a new bearer session token for the admin.
#
# Maintenance:
# - python -m flask maintenance check-invariants
#   Report categories deeper than the limit and customers without exactly one main phone.
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete session tokens that expired before the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import AdminUser
from .services import maintenance_service, session_service
from .services.taxonomy_service import MAX_DEPTH


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask admins create' next.")


@click.group('admins')
def admins_group():
    """Admin account commands."""


@admins_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@with_appcontext
def create_admin_cli(username, email):
    """Create an admin account."""
    username = username.strip()
    email = email.strip().lower()

    existing = db.session.query(AdminUser).filter(
        db.or_(AdminUser.username == username, AdminUser.email == email)
    ).first()
    if existing:
        raise click.ClickException(f"Admin '{existing.username}' already uses that username or email")

    admin = AdminUser(username=username, email=email, is_active=True)
    db.session.add(admin)
    db.session.commit()

    click.echo(f"PASS Created admin: {admin.username} (ID: {admin.id})")


@admins_group.command('list')
@with_appcontext
def list_admins():
    """List all admin accounts."""
    admins = db.session.query(AdminUser).order_by(AdminUser.id.asc()).all()

    if not admins:
        click.echo("No admins found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active'}")
    click.echo("="*70)

    for admin in admins:
        active_str = "Yes" if admin.is_active else "No"
        click.echo(f"{admin.id:<5} {admin.username:<20} {admin.email:<35} {active_str}")

    click.echo("="*70 + "\n")


@admins_group.command('issue-token')
@click.option('--username', prompt=True, help='Admin username')
@with_appcontext
def issue_token_cli(username):
    """Create a session and print its bearer token (shown once)."""
    admin = db.session.query(AdminUser).filter_by(username=username.strip()).first()
    if not admin:
        raise click.ClickException(f"Admin '{username}' not found")

    try:
        session, token = session_service.create_session(admin.id)
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"Token (expires {session.expires_at.isoformat()}Z):")
    click.echo(token)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('check-invariants')
@with_appcontext
def check_invariants_cli():
    """
    Report stored rows that break the tree or main-phone rules.

    Exits with status 1 when anything is found.
    """
    report = maintenance_service.find_invariant_violations()

    too_deep = report["categories_too_deep"]
    bad_owners = report["customers_without_single_main"]

    if too_deep:
        click.echo(f"FAIL {len(too_deep)} category(ies) deeper than {MAX_DEPTH} or in a cycle:")
        for row in too_deep:
            click.echo(f"  - category {row['id']} ({row['slug']}): depth {row['depth']}")
    else:
        click.echo("PASS Category tree depth/cycle check")

    if bad_owners:
        click.echo(f"FAIL {len(bad_owners)} customer(s) without exactly one main phone:")
        for row in bad_owners:
            click.echo(
                f"  - customer {row['customer_id']}: {row['phones']} phone(s), "
                f"{row['main_phones']} main"
            )
    else:
        click.echo("PASS Main phone check")

    if too_deep or bad_owners:
        raise SystemExit(1)


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """
    Delete expired session tokens.

    Default retention: 30 days after expiry.
    """
    deleted = maintenance_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} session token(s) expired more than {retention_days} days ago.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admins_group)
    app.cli.add_command(maintenance_group)
