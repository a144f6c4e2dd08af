# Overview: Flask CLI command groups for bootstrap, account inspection, and integrity audits.

# backend/latidos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--org-code LATIDOS] [--admin-pin 1234]
#   Idempotent bootstrap: organization, admin user with PIN, default ledger accounts.
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#
# Ledger accounts:
# - python -m flask accounts list --org-id 1 [--all]
#
# Finance integrity:
# - python -m flask finance audit --org-id 1
#   Recompute account balances, invoice paid amounts and credit balances.
#   Exits with status 1 when a mismatch is found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, PaymentAccount, User
from .models.auth import USER_ROLE_ADMIN
from .services.auth_service import create_user, PasswordValidationError
from .services import account_service
from .services.audit_service import audit_integrity
from .services.errors import FinanceError


DEFAULT_ACCOUNTS = [
    ("Caja General", account_service.ACCOUNT_TYPE_CASH, True),
    ("Banco", account_service.ACCOUNT_TYPE_BANK, False),
    ("Notas Crédito", account_service.ACCOUNT_TYPE_CREDIT_NOTE, False),
    ("Retomas", account_service.ACCOUNT_TYPE_TRADE_IN, False),
]


def _format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100:,}.{cents % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='LATIDOS', help='Organization code')
@click.option('--admin-password', default='Password123', help='Initial admin password')
@click.option('--admin-pin', default='1234', help='Initial admin security PIN')
@with_appcontext
def init_system(org_name, org_code, admin_password, admin_pin):
    """
    Initialize a tenant: organization, admin user and default accounts.

    Creates (skipping whatever already exists):
    - Organization
    - Admin user with password and signing PIN
    - Accounts: Caja General (CASH, default), Banco (BANK),
      Notas Crédito (CREDIT_NOTE), Retomas (TRADE_IN)

    SECURITY: Change the password and PIN immediately in production!
    """
    click.echo("START Initializing LATIDOS...")

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    existing = db.session.query(User).filter_by(org_id=org.id, username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists in org, skipping...")
    else:
        try:
            create_user(
                username="admin",
                email=f"admin@{org_code.lower()}.local",
                password=admin_password,
                org_id=org.id,
                role=USER_ROLE_ADMIN,
                name="Administrador",
                pin=admin_pin,
            )
            click.echo("PASS Created user: admin (ADMIN)")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {str(e)}")

    for name, account_type, is_default in DEFAULT_ACCOUNTS:
        if db.session.query(PaymentAccount).filter_by(org_id=org.id, name=name).first():
            click.echo(f"WARN  Account '{name}' already exists, skipping...")
            continue
        if is_default and account_service.get_default_account(org.id):
            is_default = False
        account_service.create_account(org.id, name, account_type, is_default=is_default)
        click.echo(f"PASS Created account: {name} ({account_type}{', default' if is_default else ''})")

    click.echo("\n" + "="*60)
    click.echo("DONE LATIDOS Initialized Successfully!")
    click.echo("="*60)


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("="*70)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {user_count}")

    click.echo("="*70 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('accounts')
def accounts_group():
    """Ledger account inspection."""


@accounts_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--all', 'include_archived', is_flag=True, help='Include archived accounts')
@with_appcontext
def list_accounts_cli(org_id, include_archived):
    """List ledger accounts with balances."""
    accounts = account_service.list_accounts(org_id, include_archived=include_archived)

    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*78)
    click.echo(f"{'ID':<5} {'Name':<28} {'Type':<12} {'Balance':>16} {'Flags'}")
    click.echo("="*78)

    for account in accounts:
        flags = []
        if account.is_default:
            flags.append("default")
        if account.is_archived:
            flags.append("archived")
        click.echo(
            f"{account.id:<5} {account.name:<28} {account.type:<12} "
            f"{_format_cents(account.balance_cents):>16} {','.join(flags)}"
        )

    click.echo("="*78 + "\n")


@click.group('finance')
def finance_group():
    """Finance integrity commands."""


@finance_group.command('audit')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def audit_cli(org_id):
    """Check cached balances against their journals."""
    try:
        report = audit_integrity(org_id)
    except FinanceError as e:
        raise click.ClickException(str(e))

    if report["ok"]:
        click.echo(f"PASS Org {org_id}: all balances match their journals")
        return

    for issue in report["issues"]:
        click.echo(
            f"FAIL {issue['kind']} id={issue['id']} "
            f"cached={issue['cached_cents']} computed={issue['computed_cents']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(finance_group)
