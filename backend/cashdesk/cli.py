# Overview: Flask CLI command groups for bootstrap, inspection, and daily consolidation.

# backend/cashdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates roles and the default admin, supervisor, cashier and waiter users.
#
# User bootstrap:
# - python -m flask users create --username ana --email ana@cashdesk.local --password "Password123!" --role cashier
#   Create a user (prompts if options are omitted).
#
# Shift inspection:
# - python -m flask shifts list --till PRINCIPAL --state CLOSED --limit 20
#   List recent shifts with their reconciliation deltas.
# - python -m flask shifts consolidate --till PRINCIPAL --date 2026-03-14
#   Build and dispatch the daily report for a till regardless of how many shifts closed.

import click
from datetime import date
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Shift, ShiftState, User
from .permissions import DEFAULT_ROLE_PERMISSIONS
from .services.auth_service import create_user, create_default_roles, PasswordValidationError
from .services import consolidation_service
from .time_utils import business_date, utcnow


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize roles and default users.

    Creates:
    - Roles: admin, supervisor, cashier, waiter
    - Users: admin, supervisor, cashier, waiter (@cashdesk.local)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing cashdesk...")

    created = create_default_roles()
    click.echo(f"PASS Roles ready ({created} created): {', '.join(DEFAULT_ROLE_PERMISSIONS)}")

    default_password = "Password123!"

    for role_name in DEFAULT_ROLE_PERMISSIONS:
        username = role_name
        email = f"{role_name}@cashdesk.local"
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username=username,
                email=email,
                password=default_password,
                first_name=role_name.capitalize(),
                role_name=role_name,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role_name}'")
        except (PasswordValidationError, ValueError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {e}")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for role_name in DEFAULT_ROLE_PERMISSIONS:
        click.echo(f"   {role_name:<10} -> {role_name}@cashdesk.local / {default_password}")
    click.echo("")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(DEFAULT_ROLE_PERMISSIONS)), prompt=True, help='Role')
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@with_appcontext
def create_user_cli(username, email, password, role, first_name, last_name):
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
        create_default_roles()
        user = create_user(
            username=username,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role_name=role,
        )
        click.echo(f"PASS Created user {user.username} (ID: {user.id}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")


@click.group('shifts')
def shifts_group():
    """Shift inspection and daily consolidation."""


@shifts_group.command('list')
@click.option('--till', default=None, help='Till code (defaults to DEFAULT_TILL)')
@click.option('--state', type=click.Choice([s.value for s in ShiftState]), help='Filter by state')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(till, state, limit):
    """
    List recent shifts.

    Example:
        flask shifts list
        flask shifts list --till BAR --state FORCED_CLOSED
    """
    till = (till or current_app.config["DEFAULT_TILL"]).upper()
    query = db.session.query(Shift).filter_by(till=till)
    if state:
        query = query.filter_by(state=ShiftState(state))

    shifts = query.order_by(Shift.opened_at.desc(), Shift.id.desc()).limit(limit).all()

    if not shifts:
        click.echo(f"No shifts found for till {till}.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Name':<14} {'State':<14} {'Opened':<20} {'Closed':<20} {'Initial':>12} {'Delta':>12}")
    click.echo("="*110)

    for shift in shifts:
        delta = f"${shift.reconciliation_delta:+.2f}" if shift.reconciliation_delta is not None else "-"
        closed = str(shift.closed_at)[:19] if shift.closed_at else "-"
        click.echo(f"{shift.id:<5} {shift.name[:14]:<14} {ShiftState(shift.state).value:<14} "
                   f"{str(shift.opened_at)[:19]:<20} {closed:<20} {shift.initial_fund:>12} {delta:>12}")

    click.echo("="*110 + "\n")


@shifts_group.command('consolidate')
@click.option('--till', default=None, help='Till code (defaults to DEFAULT_TILL)')
@click.option('--date', 'day', default=None, help='Business day as YYYY-MM-DD (defaults to today)')
@with_appcontext
def consolidate_cli(till, day):
    """
    Build and dispatch a till's daily report, ignoring the closed-shift count.

    Example:
        flask shifts consolidate --till PRINCIPAL --date 2026-03-14
    """
    till = (till or current_app.config["DEFAULT_TILL"]).upper()
    try:
        target = date.fromisoformat(day) if day else business_date(utcnow(), current_app.config["BUSINESS_TIMEZONE"])
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--date")

    outcome = consolidation_service.consolidate(till, target)
    summary = outcome.report["summary"]

    click.echo(f"PASS Daily report {outcome.report_file}")
    click.echo(f"   Shifts: {summary['shift_count']}  Sales: {summary['sales_count']} (${summary['sales_total']})")
    click.echo(f"   Cash: ${summary['cash_total']}  Reconciliation: ${summary['reconciliation_delta_total']}")
    click.echo(f"   Dispatch: {outcome.dispatch_status} {', '.join(outcome.recipients)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(shifts_group)
