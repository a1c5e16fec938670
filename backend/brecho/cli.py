# Overview: Flask CLI command groups for bootstrap, inspection, and scheduled jobs.

# backend/brecho/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="brecho:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and the permission catalog (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Shops (tenants):
# - python -m flask shops create --name "Brechó da Ana" --username ana --email ana@example.com --password "Senha123!"
#   Register a shop with its owner account, roles and default payment methods.
# - python -m flask shops list
#
# Users:
# - python -m flask users create --shop-id 1 --username maria --email maria@example.com --password "Senha123!" --role seller
# - python -m flask users list [--shop-id 1]
#
# Scheduled jobs (cron these daily):
# - python -m flask recurring process [--shop-id 1]
#   Generate due occurrences of recurring revenues and expenses.
# - python -m flask alerts check [--shop-id 1]
#   Deadline, overdue-goal and low-stock alerts.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Shop, User
from .permissions import DEFAULT_ROLES
from .services import goal_service, permission_service, revenue_service
from .services.auth_service import create_user, register_shop, PasswordValidationError, ShopNotFoundError
from .services.session_service import cleanup_expired_sessions
from .validation import ValidationError, ConflictError


def _target_shops(shop_id):
    query = db.session.query(Shop).filter(Shop.is_active.is_(True))
    if shop_id:
        query = query.filter(Shop.id == shop_id)
    return query.order_by(Shop.id.asc()).all()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create missing tables and the permission catalog.

    Safe to run repeatedly. Shops are created with `flask shops create`
    or through the sign-up endpoint.
    """
    click.echo("START Initializing brecho database...")
    db.create_all()
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    db.session.commit()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")


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


@click.group('shops')
def shops_group():
    """Shop (tenant) management."""


@shops_group.command('create')
@click.option('--name', required=True, help='Shop name')
@click.option('--document', help='CPF or CNPJ of the owner')
@click.option('--username', prompt=True, help='Owner username')
@click.option('--email', prompt=True, help='Owner email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
@with_appcontext
def create_shop(name, document, username, email, password):
    try:
        shop, owner = register_shop(
            shop_name=name,
            username=username,
            email=email,
            password=password,
            document=document,
        )
    except (ValidationError, ConflictError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id}) with owner '{owner.username}'")


@shops_group.command('list')
@with_appcontext
def list_shops():
    shops = db.session.query(Shop).order_by(Shop.id.asc()).all()
    if not shops:
        click.echo("No shops found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<40} {'Timezone':<22} {'Active'}")
    click.echo("="*80)
    for shop in shops:
        active_str = "Yes" if shop.is_active else "No"
        click.echo(f"{shop.id:<5} {shop.name:<40} {shop.timezone:<22} {active_str}")
    click.echo("="*80 + "\n")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(DEFAULT_ROLES)), default='seller', show_default=True, help='Role')
@with_appcontext
def create_user_cli(shop_id, username, email, password, role):
    try:
        user = create_user(shop_id=shop_id, username=username, email=email, password=password, role=role)
    except (ShopNotFoundError, ValidationError, ConflictError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{role}'")


@users_group.command('list')
@click.option('--shop-id', type=int, help='Filter by shop ID')
@with_appcontext
def list_users(shop_id):
    """List all users with their roles."""
    query = db.session.query(User)
    if shop_id:
        query = query.filter_by(shop_id=shop_id)

    users = query.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Shop':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("="*100)

    for user in users:
        role_names = permission_service.get_user_role_names(user.id)
        roles_str = ", ".join(role_names) if role_names else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.shop_id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {roles_str}")

    click.echo("="*100 + "\n")


@click.group('recurring')
def recurring_group():
    """Recurring revenues and expenses."""


@recurring_group.command('process')
@click.option('--shop-id', type=int, help='Only this shop')
@with_appcontext
def process_recurring_cli(shop_id):
    for shop in _target_shops(shop_id):
        result = revenue_service.process_recurring(shop_id=shop.id)
        click.echo(
            f"Shop {shop.id}: {result['revenues_created']} revenues, "
            f"{result['expenses_created']} expenses created"
        )


@click.group('alerts')
def alerts_group():
    """Goal and stock alerts."""


@alerts_group.command('check')
@click.option('--shop-id', type=int, help='Only this shop')
@with_appcontext
def check_alerts_cli(shop_id):
    for shop in _target_shops(shop_id):
        result = goal_service.check_alerts(shop_id=shop.id)
        click.echo(
            f"Shop {shop.id}: {result['goal_deadline']} deadline, "
            f"{result['goals_not_achieved']} not achieved, {result['low_stock']} low stock"
        )


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(users_group)
    app.cli.add_command(recurring_group)
    app.cli.add_command(alerts_group)
    app.cli.add_command(maintenance_group)
