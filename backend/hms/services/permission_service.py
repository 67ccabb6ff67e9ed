# Overview: Service-layer operations for the permission catalogue and role hierarchy.

"""
Permission Catalogue and Role Hierarchy

WHY: Permissions, roles and dependency edges must exist in the database
before they can be granted. The seeders below load the static catalogue
from hms.permissions and are idempotent: safe to run on every deploy.

HIERARCHY: Roles form a single-parent tree (parent_role_id). The tree is
used for escalation and inheritance-safety checks; permissions are not
inherited from the parent role.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Role, Permission, RolePermission, PermissionDependency
from ..permissions import (
    PERMISSION_DEFINITIONS,
    DEFAULT_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    DEFAULT_PERMISSION_DEPENDENCIES,
)
from .authorization_service import get_authorization_engine, is_super_admin

logger = logging.getLogger(__name__)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_permission_by_name(name: str) -> Permission | None:
    return db.session.query(Permission).filter_by(name=name).first()


def get_role_by_slug(slug: str) -> Role | None:
    return db.session.query(Role).filter_by(slug=slug).first()


def get_critical_permission_names() -> frozenset[str]:
    rows = db.session.query(Permission.name).filter(Permission.is_critical.is_(True)).all()
    return frozenset(name for (name,) in rows)


# =============================================================================
# SEEDERS
# =============================================================================

def initialize_permissions() -> int:
    """
    Initialize all permission definitions in database.

    Creates Permission records for every entry in PERMISSION_DEFINITIONS.
    Idempotent: existing names are left untouched.
    """
    created_count = 0

    for name, description, module, action, is_critical in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(name=name).first()

        if not existing:
            permission = Permission(
                name=name,
                description=description,
                module=str(module),
                action=action,
                is_critical=is_critical,
            )
            db.session.add(permission)
            created_count += 1

    db.session.commit()
    return created_count


def create_default_roles() -> int:
    """
    Create the default hospital roles.

    DEFAULT_ROLES lists parents before children, so parent_slug always
    resolves to a row created earlier in the same pass.
    """
    created_count = 0

    for definition in DEFAULT_ROLES:
        if db.session.query(Role).filter_by(slug=definition["slug"]).first():
            continue

        parent = None
        if definition.get("parent_slug"):
            parent = db.session.query(Role).filter_by(slug=definition["parent_slug"]).first()

        role = Role(
            name=definition["name"],
            slug=definition["slug"],
            description=definition.get("description"),
            priority=definition["priority"],
            is_super_admin=definition.get("is_super_admin", False),
            is_system=True,
            parent_role_id=parent.id if parent else None,
            module_access=[str(module) for module in definition.get("module_access", [])],
            data_visibility_scope=definition.get("data_visibility_scope"),
            mfa_required=definition.get("mfa_required", False),
            mfa_grace_period_days=definition.get("mfa_grace_period_days"),
            session_timeout_minutes=definition.get("session_timeout_minutes", 120),
            concurrent_session_limit=definition.get("concurrent_session_limit"),
        )
        db.session.add(role)
        db.session.flush()
        created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions(engine=None) -> int:
    """
    Assign default permissions to roles based on DEFAULT_ROLE_PERMISSIONS.

    Creates RolePermission records linking roles to their default permissions.
    Idempotent: Safe to run multiple times (skips existing).
    Members of every role that gained a permission have their cache cleared
    after the commit; `engine` defaults to the app's AuthorizationEngine.
    """
    created_count = 0
    changed_roles = []

    for role_slug, permission_names in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(slug=role_slug).first()

        if not role:
            continue  # Role doesn't exist, skip

        role_created = 0
        for permission_name in permission_names:
            permission = db.session.query(Permission).filter_by(name=permission_name).first()

            if not permission:
                continue  # Permission doesn't exist, skip

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id,
                permission_id=permission.id
            ).first()

            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                role_created += 1

        if role_created:
            changed_roles.append(role)
            created_count += role_created

    db.session.commit()

    if changed_roles:
        engine = engine or get_authorization_engine()
        for role in changed_roles:
            engine.clear_role_permission_cache(role)
    return created_count


def initialize_permission_dependencies() -> int:
    """Load DEFAULT_PERMISSION_DEPENDENCIES as PermissionDependency edges."""
    names = dict(db.session.query(Permission.name, Permission.id).all())
    created_count = 0

    for dependent, prerequisite in DEFAULT_PERMISSION_DEPENDENCIES:
        dependent_id = names.get(dependent)
        prerequisite_id = names.get(prerequisite)
        if dependent_id is None or prerequisite_id is None:
            logger.warning("Skipping dependency %s -> %s: permission not seeded", dependent, prerequisite)
            continue

        existing = db.session.query(PermissionDependency).filter_by(
            permission_id=dependent_id,
            depends_on_permission_id=prerequisite_id,
        ).first()
        if not existing:
            db.session.add(PermissionDependency(
                permission_id=dependent_id,
                depends_on_permission_id=prerequisite_id,
            ))
            created_count += 1

    db.session.commit()
    return created_count


def initialize_authorization_data(engine=None) -> dict[str, int]:
    """Run every seeder in dependency order."""
    counts = {
        "permissions": initialize_permissions(),
        "roles": create_default_roles(),
        "dependencies": initialize_permission_dependencies(),
        "role_permissions": assign_default_role_permissions(engine),
    }
    logger.info("Authorization data initialized: %s", counts)
    return counts


# =============================================================================
# HIERARCHY
# =============================================================================

def get_role_hierarchy_chain(role: Role) -> list[Role]:
    """Ancestors of role followed by role itself, root first."""
    chain = []
    seen = set()
    current = role
    while current is not None and current.id not in seen:
        seen.add(current.id)
        chain.append(current)
        current = current.parent_role
    chain.reverse()
    return chain


def get_descendant_roles(role: Role) -> list[Role]:
    """Every role below `role` in the tree, breadth first."""
    descendants = []
    seen = {role.id}
    frontier = list(role.child_roles)
    while frontier:
        child = frontier.pop(0)
        if child.id in seen:
            continue
        seen.add(child.id)
        descendants.append(child)
        frontier.extend(child.child_roles)
    return descendants


def get_allowed_role_assignments(actor) -> list[Role]:
    """
    Roles the actor may hand out.

    Super admins may assign any role; everyone else only roles strictly
    below their own priority. Users without a role may assign nothing.
    """
    query = db.session.query(Role).order_by(Role.priority.desc(), Role.name)
    if is_super_admin(actor):
        return query.all()
    if actor.role_model is None:
        return []
    return query.filter(Role.priority < actor.role_model.priority).all()
