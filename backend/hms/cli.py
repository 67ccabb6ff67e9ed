# Overview: Flask CLI command groups for bootstrap, permission inspection, billing and maintenance.

# backend/hms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "hms:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@hms.local --admin-name "Admin"]
#   Idempotent: seeds permissions, roles, dependency edges, role permissions,
#   and optionally a Super Admin user.
#
# Permission inspection/administration:
# - python -m flask perms list [--role hospital-admin] [--module billing]
# - python -m flask perms roles [--actor admin@hms.local] [--role hospital-admin]
#   List roles, the roles an actor may assign, or one role's hierarchy.
# - python -m flask perms check user@hms.local edit-patients
# - python -m flask perms grant --actor admin@hms.local staff view-bills
#   Grant a permission to a role (escalation- and dependency-checked).
# - python -m flask perms revoke --actor admin@hms.local staff view-bills
# - python -m flask perms sweep-temporary
#   Deactivate expired temporary permissions.
#
# Billing:
# - python -m flask billing recalc 42
#   Recalculate totals for a bill.
#
# Maintenance:
# - python -m flask maintenance cleanup-audit-events --retention-days 365

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role, Permission, RolePermission
from .permissions import (
    SUPER_ADMIN_SLUG,
    get_all_permission_names,
    get_permissions_by_module,
    get_permission_definition,
)
from .services import permission_service
from .services import security_policy_service
from .services.audit_service import cleanup_audit_events
from .services.authorization_service import AuthorizationError, CacheInvalidationError, get_authorization_engine
from .services.billing_service import get_billing_engine
from .services.permission_admin_service import PermissionAdministrator


def _user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=email).first()


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-email', help='Create a Super Admin user with this email')
@click.option('--admin-name', default='Administrator', show_default=True, help='Name for the Super Admin user')
@with_appcontext
def init_system(admin_email, admin_name):
    """
    Initialize authorization data.

    Creates:
    - Every permission in the catalogue
    - Default roles (Super Admin down to Viewer) with hierarchy
    - Permission dependency edges
    - Default role permissions
    """
    click.echo("START Initializing HMS authorization data...")

    counts = permission_service.initialize_authorization_data()
    click.echo(f"PASS Permissions created: {counts['permissions']} (catalogue: {len(get_all_permission_names())})")
    click.echo(f"PASS Roles created: {counts['roles']}")
    click.echo(f"PASS Dependency edges created: {counts['dependencies']}")
    click.echo(f"PASS Role permissions assigned: {counts['role_permissions']}")

    if admin_email:
        user = _user_by_email(admin_email)
        role = permission_service.get_role_by_slug(SUPER_ADMIN_SLUG)
        if user:
            click.echo(f"PASS Using existing user: {user.email}")
        else:
            user = User(name=admin_name, email=admin_email, role=role.name, role_id=role.id, is_active=True)
            db.session.add(user)
            db.session.commit()
            click.echo(f"PASS Created Super Admin user: {user.email} (ID: {user.id})")


@click.group('perms')
def perms_group():
    """Permission inspection and administration commands."""


@perms_group.command('list')
@click.option('--role', 'role_slug', help='Filter by role slug')
@click.option('--module', help='Filter by module')
@with_appcontext
def list_permissions_cli(role_slug, module):
    """List permissions, optionally filtered by role or module."""
    if role_slug:
        role = permission_service.get_role_by_slug(role_slug)
        if not role:
            click.echo(f"FAIL Role '{role_slug}' not found")
            return

        chain = " > ".join(r.slug for r in permission_service.get_role_hierarchy_chain(role))
        rows = (
            db.session.query(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .filter(RolePermission.role_id == role.id)
            .order_by(Permission.module, Permission.name)
            .all()
        )

        click.echo(f"\n{'='*80}")
        click.echo(f"Permissions for role: {role.name} (priority {role.priority})")
        click.echo(f"Hierarchy: {chain}")
        click.echo(f"{'='*80}\n")

        for perm in rows:
            click.echo(f"  {perm.name:<28} {perm.module}")

        if role.is_super_admin:
            click.echo("  (super admin: every permission granted implicitly)")
        click.echo(f"\n Total: {len(rows)} permissions\n")

    elif module:
        definitions = get_permissions_by_module(module)

        click.echo(f"\n{'='*80}")
        click.echo(f"Permissions in module: {module}")
        click.echo(f"{'='*80}\n")

        for name, description, _module, _action, is_critical in definitions:
            flag = " [critical]" if is_critical else ""
            click.echo(f"  {name:<28} {description}{flag}")

        click.echo(f"\n Total: {len(definitions)} permissions\n")

    else:
        perms = db.session.query(Permission).order_by(Permission.module, Permission.name).all()

        current_module = None
        for perm in perms:
            if perm.module != current_module:
                if current_module:
                    click.echo("")
                click.echo(f"MODULE {perm.module}")
                click.echo("-"*80)
                current_module = perm.module

            click.echo(f"  {perm.name:<28} {perm.description or ''}")

        click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('roles')
@click.option('--actor', 'actor_email', help='Only roles this user may assign')
@click.option('--role', 'role_slug', help='Show the hierarchy around one role')
@with_appcontext
def list_roles_cli(actor_email, role_slug):
    """List roles with their hierarchy."""
    if role_slug:
        role = permission_service.get_role_by_slug(role_slug)
        if not role:
            click.echo(f"FAIL Role '{role_slug}' not found")
            return

        chain = " > ".join(r.slug for r in permission_service.get_role_hierarchy_chain(role))
        descendants = permission_service.get_descendant_roles(role)
        click.echo(f"Role: {role.name} (priority {role.priority})")
        click.echo(f"Hierarchy: {chain}")
        click.echo(f"Descendants: {', '.join(r.slug for r in descendants) or '(none)'}")
        return

    if actor_email:
        actor = _user_by_email(actor_email)
        if not actor:
            click.echo(f"FAIL User '{actor_email}' not found")
            return
        roles = permission_service.get_allowed_role_assignments(actor)
        click.echo(f"Roles assignable by {actor.email}:")
    else:
        roles = db.session.query(Role).order_by(Role.priority.desc(), Role.name).all()

    for role in roles:
        click.echo(f"  {role.slug:<22} {role.priority:>4}  {role.name}")
    click.echo(f"\n Total: {len(roles)} roles\n")


@perms_group.command('check')
@click.argument('email')
@click.argument('permission_name')
@with_appcontext
def check_permission_cli(email, permission_name):
    """Check if a user has a specific permission."""
    user = _user_by_email(email)

    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    engine = get_authorization_engine()
    if engine.has_permission(user.id, permission_name):
        click.echo(f"PASS User '{email}' HAS permission '{permission_name}'")
    else:
        click.echo(f"FAIL User '{email}' DOES NOT HAVE permission '{permission_name}'")

    definition = get_permission_definition(permission_name)
    if definition is None:
        click.echo(f"WARN  '{permission_name}' is not in the permission catalogue")
    elif security_policy_service.requires_mfa_for_operation(permission_name):
        click.echo("WARN  High-risk operation: requires a fresh MFA challenge")

    policy = security_policy_service.get_security_policy(user.role_model)
    click.echo(f"\nUser role: {user.role_model.name if user.role_model else user.role}")
    click.echo(f"Total permissions: {len(engine.get_effective_permissions(user.id))}")
    click.echo(f"Session timeout: {policy['session_timeout_minutes']} minutes, MFA required: {policy['mfa_required']}")


@perms_group.command('grant')
@click.option('--actor', 'actor_email', required=True, help='Email of the administrator making the change')
@click.argument('role_slug')
@click.argument('permission_name')
@with_appcontext
def grant_permission_cli(actor_email, role_slug, permission_name):
    """Grant a permission to a role."""
    actor = _user_by_email(actor_email)
    if not actor:
        click.echo(f"FAIL User '{actor_email}' not found")
        return

    try:
        PermissionAdministrator(get_authorization_engine()).grant_role_permission(actor.id, role_slug, permission_name)
        click.echo(f"PASS Granted '{permission_name}' to role '{role_slug}'")
    except AuthorizationError as e:
        click.echo(f"FAIL Error: {str(e)}")
    except CacheInvalidationError as e:
        click.echo(f"WARN  Change saved but cached permissions may be stale: {str(e)}")


@perms_group.command('revoke')
@click.option('--actor', 'actor_email', required=True, help='Email of the administrator making the change')
@click.argument('role_slug')
@click.argument('permission_name')
@with_appcontext
def revoke_permission_cli(actor_email, role_slug, permission_name):
    """Revoke a permission from a role."""
    actor = _user_by_email(actor_email)
    if not actor:
        click.echo(f"FAIL User '{actor_email}' not found")
        return

    try:
        administrator = PermissionAdministrator(get_authorization_engine())
        revoked = administrator.revoke_role_permission(actor.id, role_slug, permission_name)
        if revoked:
            click.echo(f"PASS Revoked '{permission_name}' from role '{role_slug}'")
        else:
            click.echo(f"WARN  Permission '{permission_name}' was not granted to '{role_slug}'")
    except AuthorizationError as e:
        click.echo(f"FAIL Error: {str(e)}")
    except CacheInvalidationError as e:
        click.echo(f"WARN  Change saved but cached permissions may be stale: {str(e)}")


@perms_group.command('sweep-temporary')
@with_appcontext
def sweep_temporary_cli():
    """Deactivate expired temporary permissions."""
    count = PermissionAdministrator(get_authorization_engine()).sweep_expired_temporary_permissions()
    click.echo(f"Deactivated {count} expired temporary permissions.")


@click.group('billing')
def billing_group():
    """Billing commands."""


@billing_group.command('recalc')
@click.argument('bill_id', type=int)
@with_appcontext
def recalc_bill_cli(bill_id):
    """Recalculate a bill's totals."""
    result = get_billing_engine().calculate_totals(bill_id)
    if not result.success:
        click.echo(f"FAIL {result.message}")
        return

    click.echo(f"PASS {result.message}")
    for key, value in result.data.items():
        click.echo(f"  {key:<14} {value}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-audit-events')
@click.option('--retention-days', type=int, default=365, show_default=True)
@with_appcontext
def cleanup_audit_events_cli(retention_days):
    """
    Delete audit events older than the retention window.
    """
    deleted = cleanup_audit_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} audit events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(billing_group)
    app.cli.add_command(maintenance_group)
