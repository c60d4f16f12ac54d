# Overview: Flask CLI command groups for bootstrap, accounts, sessions and stock inspection.

# backend/workshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "My Workshop"] [--owner-email owner@workshop.local]
#   Create tables (when migrations were not run), a default organization and its Owner.
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Second Workshop"
#
# Users:
# - python -m flask users create --org-id 1 --email a@b.c --name "Anna" --password "Password123" --role Member
#   Create a user (prompts if options are omitted) and add them to the organization.
#
# Sessions:
# - python -m flask sessions issue --email a@b.c --org-id 1
#   Print a bearer token for API calls. The token is shown once and stored hashed.
# - python -m flask sessions revoke --token <token>
#
# Stock inspection:
# - python -m flask materials balances --org-id 1 [--all]
#   Current stock, average price and value per material.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, OrganizationMember, User, ROLES, ROLE_OWNER, ROLE_MEMBER
from .services.auth_service import create_user, add_member, PasswordValidationError, AccountError
from .services.session_service import create_session, revoke_session
from .services.stock_ledger import get_all_balances
from .decimal_utils import money_str, quantity_str


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Workshop', help='Organization name')
@click.option('--owner-email', default='owner@workshop.local', help='Owner account email')
@click.option('--owner-password', default='Password123', help='Owner account password')
@with_appcontext
def init_system(org_name, owner_email, owner_password):
    """
    Idempotent bootstrap: tables, default organization and its Owner.

    SECURITY: Change the default password immediately outside development!
    """
    click.echo("START Initializing workshop...")
    db.create_all()

    org = db.session.query(Organization).first()
    if not org:
        org = Organization(name=org_name, is_active=True)
        db.session.add(org)
        db.session.flush()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    user = db.session.query(User).filter_by(email=owner_email.strip().lower()).first()
    try:
        if not user:
            user = create_user(owner_email, "Owner", owner_password)
            click.echo(f"PASS Created owner: {user.email}")
        add_member(org.id, user.id, ROLE_OWNER)
    except (PasswordValidationError, AccountError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    db.session.commit()
    click.echo(f"DONE Owner {user.email} is a member of {org.name}")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<5} {'Name':<35} {'Active':<8} {'Members'}")
    click.echo("=" * 60)

    for org in orgs:
        member_count = db.session.query(OrganizationMember).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<35} {active_str:<8} {member_count}")

    click.echo("=" * 60 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@with_appcontext
def create_org_cli(name):
    """Create a new organization (tenant)."""
    name = name.strip()
    if not name:
        click.echo("FAIL Organization name cannot be blank")
        return

    org = Organization(name=name, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (uses the first organization if not specified)')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default=ROLE_MEMBER, show_default=True, help='Role')
@with_appcontext
def create_user_cli(org_id, email, name, password, role):
    """
    Create a user and add them to an organization.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if org_id:
        org = db.session.query(Organization).filter_by(id=org_id).first()
    else:
        org = db.session.query(Organization).order_by(Organization.id).first()
    if not org:
        click.echo("FAIL Organization not found. Run 'python -m flask system init' first.")
        return

    try:
        user = create_user(email, name, password)
        add_member(org.id, user.id, role)
        db.session.commit()
    except (PasswordValidationError, AccountError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user {user.email} (ID: {user.id}) as {role} in {org.name}")


@click.group('sessions')
def sessions_group():
    """Bearer session commands."""


@sessions_group.command('issue')
@click.option('--email', required=True, help='User email')
@click.option('--org-id', type=int, required=True, help='Organization the session acts in')
@with_appcontext
def issue_session_cli(email, org_id):
    """
    Issue a bearer token for a member of an organization.

    SECURITY: Only the SHA-256 hash is stored; the printed token cannot be recovered.
    """
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    try:
        session, token = create_session(user.id, org_id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Session {session.id} expires at {session.expires_at.isoformat()}Z")
    click.echo(token)


@sessions_group.command('revoke')
@click.option('--token', required=True, help='Bearer token to revoke')
@click.option('--reason', default='Revoked from CLI', show_default=True)
@with_appcontext
def revoke_session_cli(token, reason):
    """Revoke an active bearer token."""
    if revoke_session(token, reason):
        click.echo("PASS Session revoked")
    else:
        click.echo("FAIL No active session for that token")


@click.group('materials')
def materials_group():
    """Stock inspection commands."""


@materials_group.command('balances')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--all', 'include_zero', is_flag=True, help='Include materials with zero stock')
@with_appcontext
def material_balances_cli(org_id, include_zero):
    """Print current stock, weighted average price and value per material."""
    balances = get_all_balances(org_id, include_zero_stock=include_zero)
    if not balances:
        click.echo("No materials in stock.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Material':<30} {'Unit':<6} {'Stock':>14} {'Avg price':>12} {'Value':>14}  Low")
    click.echo("=" * 90)
    for b in balances:
        low = "!" if b.is_below_minimum else ""
        click.echo(
            f"{b.material_id:<5} {b.material_name[:30]:<30} {b.unit:<6} "
            f"{quantity_str(b.current_stock):>14} {money_str(b.average_price):>12} "
            f"{money_str(b.total_value):>14}  {low}"
        )
    click.echo("=" * 90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(materials_group)
