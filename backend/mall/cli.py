# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/mall/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to mall (PowerShell: $env:FLASK_APP="mall").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default role grants, default users and a category.
# - python -m flask system init-policies
#   Add the default role grants only.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username alice --email alice@mall.local --password "Password123!" --role merchant
#
# Permission policy:
# - python -m flask perms list [--role merchant]
# - python -m flask perms grant merchant report read
# - python -m flask perms revoke merchant report read
# - python -m flask perms check user:1 product write
#
# Role assignments (a role may be assigned to another role to inherit it):
# - python -m flask roles list user:1
# - python -m flask roles assign user:1 merchant
# - python -m flask roles assign super_admin admin
# - python -m flask roles remove user:1 merchant

import click
from flask.cli import with_appcontext

from .errors import MallError
from .extensions import db
from .models import Category, User
from .permissions import ROLES, ROLE_ADMIN, ROLE_MERCHANT, ROLE_USER, format_user_subject
from .services.auth_service import create_user
from .services.authorization_service import get_authorization_engine


def _engine():
    """The app's AuthorizationEngine, loaded from the database if needed."""
    engine = get_authorization_engine()
    if not engine.is_loaded:
        engine.load_policy()
    return engine


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--skip-users', is_flag=True, help='Do not create the default users')
@with_appcontext
def init_system(skip_users):
    """
    Initialize the mall backend: schema, default grants, default users.

    Creates:
    - All tables (no-op for existing ones)
    - Default grants for roles: user, merchant, admin
    - Users: admin/admin@mall.local, merchant/merchant@mall.local, customer/customer@mall.local
    - All passwords default to: "Password123!"
    - A "General" category

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing mall backend...")

    db.create_all()
    click.echo("PASS Schema ready")

    engine = _engine()
    added = engine.init_default_policies()
    click.echo(f"PASS Default grants: {added} added, {len(engine.get_policy())} total")

    if not db.session.query(Category).filter_by(name="General").first():
        db.session.add(Category(name="General", description="Default category"))
        db.session.commit()
        click.echo("PASS Created category: General")

    if skip_users:
        click.echo("DONE Initialized (users skipped)")
        return

    default_password = "Password123!"
    default_users = [
        ("admin", "admin@mall.local", ROLE_ADMIN),
        ("merchant", "merchant@mall.local", ROLE_MERCHANT),
        ("customer", "customer@mall.local", ROLE_USER),
    ]

    for username, email, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username, email, default_password, role, engine=engine)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except MallError as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE Mall backend initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin    -> admin@mall.local    / Password123!")
    click.echo("   merchant -> merchant@mall.local / Password123!")
    click.echo("   customer -> customer@mall.local / Password123!")


@system_group.command('init-policies')
@with_appcontext
def init_policies():
    """Add the default role grants and save."""
    added = _engine().init_default_policies()
    click.echo(f"PASS Added {added} default grants")


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

    # In-memory policy would otherwise outlive the dropped table
    get_authorization_engine().load_policy()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new user and assign their role in the policy.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username, email, password, role, engine=_engine())
    except MallError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    click.echo(f"     Subject: {format_user_subject(user.id)}")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List users with their assigned roles."""
    engine = _engine()
    users = db.session.query(User).order_by(User.id).all()

    click.echo(f"\n{'ID':<6} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("-"*80)
    for user in users:
        roles = ", ".join(engine.get_roles_for_subject(format_user_subject(user.id))) or "-"
        click.echo(f"{user.id:<6} {user.username:<20} {user.email:<30} {str(user.is_active):<8} {roles}")
    click.echo(f"\n Total: {len(users)} users\n")


# =============================================================================
# PERMISSION POLICY
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission policy inspection and editing."""


@perms_group.command('list')
@click.option('--role', help='Filter by role name')
@with_appcontext
def list_permissions_cli(role):
    """List grants, optionally for a single role (direct grants only)."""
    rules = _engine().get_policy()
    if role:
        rules = [r for r in rules if r[0] == role]

    click.echo(f"\n{'Role':<20} {'Resource':<15} {'Action'}")
    click.echo("-"*50)
    for rule_role, resource, action in rules:
        click.echo(f"{rule_role:<20} {resource:<15} {action}")
    click.echo(f"\n Total: {len(rules)} grants\n")


@perms_group.command('grant')
@click.argument('role_name')
@click.argument('resource')
@click.argument('action')
@with_appcontext
def grant_permission_cli(role_name, resource, action):
    """Grant (resource, action) to a role and save."""
    engine = _engine()
    try:
        added = engine.add_policy(role_name, resource, action)
        engine.save_policy()
    except MallError as e:
        click.echo(f"FAIL Error: {str(e)}")
        return
    if added:
        click.echo(f"PASS Granted '{resource}:{action}' to role '{role_name}'")
    else:
        click.echo(f"WARN  Role '{role_name}' already has '{resource}:{action}'")


@perms_group.command('revoke')
@click.argument('role_name')
@click.argument('resource')
@click.argument('action')
@with_appcontext
def revoke_permission_cli(role_name, resource, action):
    """Revoke (resource, action) from a role and save."""
    engine = _engine()
    try:
        removed = engine.remove_policy(role_name, resource, action)
        engine.save_policy()
    except MallError as e:
        click.echo(f"FAIL Error: {str(e)}")
        return
    if removed:
        click.echo(f"PASS Revoked '{resource}:{action}' from role '{role_name}'")
    else:
        click.echo(f"WARN  '{resource}:{action}' was not granted to '{role_name}'")


@perms_group.command('check')
@click.argument('subject')
@click.argument('resource')
@click.argument('action')
@with_appcontext
def check_permission_cli(subject, resource, action):
    """Check a subject ("user:1" or a role name) against (resource, action)."""
    engine = _engine()
    try:
        allowed = engine.check_permission(subject, resource, action)
    except MallError as e:
        click.echo(f"FAIL Error: {str(e)}")
        return

    if allowed:
        click.echo(f"PASS '{subject}' HAS '{resource}:{action}'")
    else:
        click.echo(f"FAIL '{subject}' DOES NOT HAVE '{resource}:{action}'")

    click.echo(f"\nRoles (incl. inherited): {', '.join(engine.get_implicit_roles_for_subject(subject)) or '-'}")
    click.echo(f"Total grants: {len(engine.get_permissions_for_subject(subject))}")


# =============================================================================
# ROLE ASSIGNMENTS
# =============================================================================

@click.group('roles')
def roles_group():
    """Role assignment commands."""


@roles_group.command('list')
@click.argument('subject')
@with_appcontext
def list_roles_cli(subject):
    engine = _engine()
    click.echo(f"Direct roles:    {', '.join(engine.get_roles_for_subject(subject)) or '-'}")
    click.echo(f"Inherited roles: {', '.join(engine.get_implicit_roles_for_subject(subject)) or '-'}")


@roles_group.command('assign')
@click.argument('subject')
@click.argument('role_name')
@with_appcontext
def assign_role_cli(subject, role_name):
    """Assign a role to a subject and save."""
    engine = _engine()
    try:
        added = engine.add_role_for_subject(subject, role_name)
        engine.save_policy()
    except MallError as e:
        click.echo(f"FAIL Error: {str(e)}")
        return
    if added:
        click.echo(f"PASS Assigned '{role_name}' to '{subject}'")
    else:
        click.echo(f"WARN  '{subject}' already has '{role_name}'")


@roles_group.command('remove')
@click.argument('subject')
@click.argument('role_name')
@with_appcontext
def remove_role_cli(subject, role_name):
    """Remove a role from a subject and save."""
    engine = _engine()
    try:
        removed = engine.delete_role_for_subject(subject, role_name)
        engine.save_policy()
    except MallError as e:
        click.echo(f"FAIL Error: {str(e)}")
        return
    if removed:
        click.echo(f"PASS Removed '{role_name}' from '{subject}'")
    else:
        click.echo(f"WARN  '{subject}' did not have '{role_name}'")


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(roles_group)
