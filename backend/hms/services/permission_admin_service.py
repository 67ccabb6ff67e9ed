# Overview: Service-layer operations for administering roles, overrides and temporary grants.

"""
Permission Administration

WHY: Every change to who-may-do-what goes through one place, so each
change is escalation-checked, dependency-checked, audited and followed by
cache invalidation.

TRANSACTION ORDER (every mutation):
1. Load and validate inputs (ValidationError)
2. Escalation check (EscalationDenied)
3. Dependency check on the resulting permission set (DependencyMissing)
4. Mutate, add the success audit event, commit
5. Invalidate caches for every affected principal before returning
   (CacheInvalidationError after the commit if the cache cannot be cleared)

Rejections roll back, record a denied/failed audit event and re-raise.
Gating the caller itself (e.g. "manage-roles") is done at the boundary
with AuthorizationEngine.authorize().
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import User, Role, Permission, RolePermission, UserPermission, TemporaryPermission
from hms.time_utils import utcnow, coerce_datetime
from .audit_service import AuditLogger, AuditRecord, OUTCOME_DENIED, OUTCOME_FAILED
from .authorization_service import (
    AuthorizationEngine,
    AuthorizationError,
    DependencyMissing,
    EscalationDenied,
    ValidationError,
    is_super_admin,
)
from .dependency_service import validate_permission_additions, validate_permission_dependencies
from .escalation_service import (
    check_permission_grant,
    check_role_assignment,
    check_role_permission_change,
)
from .permission_service import get_critical_permission_names

logger = logging.getLogger(__name__)


# =============================================================================
# AUDIT ACTIONS (CONSTANTS)
# =============================================================================

ACTION_PERMISSION_GRANTED = "PERMISSION_GRANTED"
ACTION_PERMISSION_REVOKED = "PERMISSION_REVOKED"
ACTION_OVERRIDE_SET = "PERMISSION_OVERRIDE_SET"
ACTION_OVERRIDE_REMOVED = "PERMISSION_OVERRIDE_REMOVED"
ACTION_TEMPORARY_GRANTED = "TEMPORARY_PERMISSION_GRANTED"
ACTION_TEMPORARY_REVOKED = "TEMPORARY_PERMISSION_REVOKED"
ACTION_TEMPORARY_EXTENDED = "TEMPORARY_PERMISSION_EXTENDED"
ACTION_TEMPORARY_SWEPT = "TEMPORARY_PERMISSIONS_SWEPT"
ACTION_ROLE_ASSIGNED = "ROLE_ASSIGNED"
ACTION_ROLE_REMOVED = "ROLE_REMOVED"
ACTION_ROLE_PERMISSION_GRANTED = "ROLE_PERMISSION_GRANTED"
ACTION_ROLE_PERMISSION_REVOKED = "ROLE_PERMISSION_REVOKED"
ACTION_ROLE_PERMISSIONS_SYNCED = "ROLE_PERMISSIONS_SYNCED"


def _priority(user: User) -> int | None:
    if not user.is_active or user.role_model is None:
        return None
    return user.role_model.priority


class PermissionAdministrator:
    """Administrative mutations over the authorization tables."""

    def __init__(self, engine: AuthorizationEngine, audit_logger: AuditLogger | None = None):
        self.engine = engine
        self.audit = audit_logger or AuditLogger()

    # -------------------------------------------------------------------------
    # lookups
    # -------------------------------------------------------------------------

    def _get_user(self, user_id: int, field: str = "user_id") -> User:
        user = db.session.get(User, user_id)
        if user is None:
            raise ValidationError(f"User {user_id} not found", field=field)
        return user

    def _get_permission(self, name: str) -> Permission:
        permission = db.session.query(Permission).filter_by(name=name).first()
        if permission is None:
            raise ValidationError(f"Permission '{name}' not found", field="permission")
        return permission

    def _get_role(self, slug: str) -> Role:
        role = db.session.query(Role).filter_by(slug=slug).first()
        if role is None:
            raise ValidationError(f"Role '{slug}' not found", field="role")
        return role

    def _effective_ids(self, user_id: int) -> set[int]:
        names = self.engine.get_effective_permissions(user_id)
        if not names:
            return set()
        rows = db.session.query(Permission.id).filter(Permission.name.in_(names)).all()
        return {permission_id for (permission_id,) in rows}

    @staticmethod
    def _role_permission_ids(role: Role) -> set[int]:
        rows = db.session.query(RolePermission.permission_id).filter_by(role_id=role.id).all()
        return {permission_id for (permission_id,) in rows}

    # -------------------------------------------------------------------------
    # checks
    # -------------------------------------------------------------------------

    def _check_user_grant(self, actor: User, target: User, names) -> None:
        decision = check_permission_grant(
            _priority(actor),
            self.engine.get_effective_permissions(actor.id),
            names,
            critical_permissions=get_critical_permission_names(),
            actor_is_super_admin=actor.is_active and is_super_admin(actor),
            target_priority=target.role_model.priority if target.role_model else None,
            is_self=actor.id == target.id,
        )
        if not decision.allowed:
            raise EscalationDenied(decision.violations)

    def _check_outranks(self, actor: User, target: User) -> None:
        # Restrictions (deny, revoke) need no held permission, only rank
        decision = check_permission_grant(
            _priority(actor),
            (),
            (),
            actor_is_super_admin=actor.is_active and is_super_admin(actor),
            target_priority=target.role_model.priority if target.role_model else None,
        )
        if not decision.allowed:
            raise EscalationDenied(decision.violations)

    def _check_dependencies(self, target: User, permission: Permission) -> None:
        errors = validate_permission_additions(self._effective_ids(target.id), [permission.id])
        if errors:
            raise DependencyMissing(errors)

    def _check_role_change(self, actor: User, role: Role, added_names) -> None:
        decision = check_role_permission_change(
            _priority(actor),
            role.priority,
            self.engine.get_effective_permissions(actor.id),
            added_names,
            critical_permissions=get_critical_permission_names(),
            actor_is_super_admin=actor.is_active and is_super_admin(actor),
        )
        if not decision.allowed:
            raise EscalationDenied(decision.violations)

    # -------------------------------------------------------------------------
    # audit
    # -------------------------------------------------------------------------

    def _reject(self, exc: AuthorizationError, action: str, actor_id, target_type, target_id, details=None):
        db.session.rollback()
        outcome = OUTCOME_DENIED if isinstance(exc, EscalationDenied) else OUTCOME_FAILED
        logger.warning("%s rejected for actor=%s target=%s:%s: %s", action, actor_id, target_type, target_id, exc)
        self.audit.record(
            AuditRecord(
                action=action,
                actor_user_id=actor_id,
                target_type=target_type,
                target_id=target_id,
                outcome=outcome,
                reason=str(exc),
                details=details or {},
            ),
            commit=True,
        )
        raise exc

    def _success(self, action: str, actor_id, target_type, target_id, details=None, reason=None) -> None:
        self.audit.record(AuditRecord(
            action=action,
            actor_user_id=actor_id,
            target_type=target_type,
            target_id=target_id,
            reason=reason,
            details=details or {},
        ))

    # =========================================================================
    # PER-USER GRANTS
    # =========================================================================

    def grant(self, actor_id: int, user_id: int, permission_name: str, reason: str | None = None) -> UserPermission:
        """Grant a permission to one user (an allow override)."""
        return self.set_override(actor_id, user_id, permission_name, True, reason=reason)

    def set_override(
        self,
        actor_id: int,
        user_id: int,
        permission_name: str,
        allowed: bool,
        reason: str | None = None,
    ) -> UserPermission:
        """
        Create or replace the override for (user, permission).

        Last write wins. allowed=True is escalation- and dependency-checked;
        allowed=False only requires the actor to outrank the user.
        """
        action = ACTION_PERMISSION_GRANTED if allowed else ACTION_OVERRIDE_SET
        details = {"permission": permission_name, "allowed": bool(allowed)}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            target = self._get_user(user_id)
            permission = self._get_permission(permission_name)
            if allowed:
                self._check_user_grant(actor, target, [permission.name])
                self._check_dependencies(target, permission)
            else:
                self._check_outranks(actor, target)
        except AuthorizationError as exc:
            self._reject(exc, action, actor_id, "User", user_id, details)

        override = db.session.query(UserPermission).filter_by(
            user_id=target.id,
            permission_id=permission.id,
        ).first()
        if override is None:
            override = UserPermission(user_id=target.id, permission_id=permission.id)
            db.session.add(override)

        override.allowed = bool(allowed)
        override.granted_by_user_id = actor.id
        override.granted_at = utcnow()
        override.reason = reason

        self._success(action, actor.id, "User", target.id, details, reason=reason)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return override

    def revoke(self, actor_id: int, user_id: int, permission_name: str, reason: str | None = None) -> bool:
        """
        Withdraw a user-level grant of a permission.

        Deletes the allow override and deactivates active temporary grants
        for the permission. Role grants are untouched; use
        set_override(..., allowed=False) to block a role-granted permission.
        Returns True if anything changed.
        """
        details = {"permission": permission_name}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            target = self._get_user(user_id)
            permission = self._get_permission(permission_name)
            if actor.id != target.id:
                self._check_outranks(actor, target)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_PERMISSION_REVOKED, actor_id, "User", user_id, details)

        changed = 0
        override = db.session.query(UserPermission).filter_by(
            user_id=target.id,
            permission_id=permission.id,
            allowed=True,
        ).first()
        if override is not None:
            db.session.delete(override)
            changed += 1

        changed += db.session.query(TemporaryPermission).filter(
            TemporaryPermission.user_id == target.id,
            TemporaryPermission.permission_id == permission.id,
            TemporaryPermission.is_active.is_(True),
        ).update({"is_active": False}, synchronize_session="fetch")

        details["rows_changed"] = changed
        self._success(ACTION_PERMISSION_REVOKED, actor.id, "User", target.id, details, reason=reason)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return changed > 0

    def remove_override(self, actor_id: int, user_id: int, permission_name: str) -> bool:
        """Delete the override (allow or deny) so role grants apply again."""
        details = {"permission": permission_name}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            target = self._get_user(user_id)
            permission = self._get_permission(permission_name)
            self._check_outranks(actor, target)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_OVERRIDE_REMOVED, actor_id, "User", user_id, details)

        override = db.session.query(UserPermission).filter_by(
            user_id=target.id,
            permission_id=permission.id,
        ).first()
        if override is None:
            return False

        details["allowed"] = override.allowed
        db.session.delete(override)
        self._success(ACTION_OVERRIDE_REMOVED, actor.id, "User", target.id, details)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return True

    # =========================================================================
    # TEMPORARY GRANTS
    # =========================================================================

    def grant_temporary(
        self,
        actor_id: int,
        user_id: int,
        permission_name: str,
        expires_at,
        reason: str | None = None,
    ) -> TemporaryPermission:
        """Grant a permission until expires_at (datetime or ISO-8601 string, UTC)."""
        details = {"permission": permission_name, "expires_at": str(expires_at)}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            target = self._get_user(user_id)
            permission = self._get_permission(permission_name)
            try:
                expiry = coerce_datetime(expires_at)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid expiry: {expires_at!r}", field="expires_at")
            if expiry is None or expiry <= utcnow():
                raise ValidationError("Expiry must be in the future", field="expires_at")
            self._check_user_grant(actor, target, [permission.name])
            self._check_dependencies(target, permission)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_TEMPORARY_GRANTED, actor_id, "User", user_id, details)

        temporary = TemporaryPermission(
            user_id=target.id,
            permission_id=permission.id,
            granted_by_user_id=actor.id,
            granted_at=utcnow(),
            expires_at=expiry,
            reason=reason,
            is_active=True,
        )
        db.session.add(temporary)
        self._success(ACTION_TEMPORARY_GRANTED, actor.id, "User", target.id, details, reason=reason)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return temporary

    def _get_temporary(self, temporary_permission_id: int) -> TemporaryPermission:
        temporary = db.session.get(TemporaryPermission, temporary_permission_id)
        if temporary is None:
            raise ValidationError(
                f"Temporary permission {temporary_permission_id} not found",
                field="temporary_permission_id",
            )
        return temporary

    def revoke_temporary(self, actor_id: int, temporary_permission_id: int) -> TemporaryPermission:
        details = {"temporary_permission_id": temporary_permission_id}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            temporary = self._get_temporary(temporary_permission_id)
            target = self._get_user(temporary.user_id)
            if actor.id != target.id:
                self._check_outranks(actor, target)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_TEMPORARY_REVOKED, actor_id, "TemporaryPermission", temporary_permission_id, details)

        temporary.is_active = False
        self._success(ACTION_TEMPORARY_REVOKED, actor.id, "TemporaryPermission", temporary.id, details)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return temporary

    def extend_temporary(self, actor_id: int, temporary_permission_id: int, expires_at) -> TemporaryPermission:
        """Move the expiry of an active grant later. Re-runs the grant checks."""
        details = {"temporary_permission_id": temporary_permission_id, "expires_at": str(expires_at)}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            temporary = self._get_temporary(temporary_permission_id)
            target = self._get_user(temporary.user_id)
            try:
                expiry = coerce_datetime(expires_at)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid expiry: {expires_at!r}", field="expires_at")
            if not temporary.is_valid(utcnow()):
                raise ValidationError("Temporary permission is no longer active", field="temporary_permission_id")
            if expiry is None or expiry <= temporary.expires_at:
                raise ValidationError("New expiry must be later than the current one", field="expires_at")
            self._check_user_grant(actor, target, [temporary.permission.name])
        except AuthorizationError as exc:
            self._reject(exc, ACTION_TEMPORARY_EXTENDED, actor_id, "TemporaryPermission", temporary_permission_id, details)

        details["previous_expires_at"] = str(temporary.expires_at)
        temporary.expires_at = expiry
        self._success(ACTION_TEMPORARY_EXTENDED, actor.id, "TemporaryPermission", temporary.id, details)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return temporary

    def sweep_expired_temporary_permissions(self, now=None) -> int:
        """
        Deactivate temporary grants past their expiry.

        Expired grants already resolve to False; the sweep keeps the table
        honest and drops any cached effective-permission lists.
        """
        now = now or utcnow()
        stale = db.session.query(TemporaryPermission).filter(
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at <= now,
        ).all()
        if not stale:
            return 0

        user_ids = sorted({temporary.user_id for temporary in stale})
        for temporary in stale:
            temporary.is_active = False

        self._success(ACTION_TEMPORARY_SWEPT, None, "TemporaryPermission", None, {
            "count": len(stale),
            "user_ids": user_ids,
        })
        db.session.commit()

        logger.info("Deactivated %s expired temporary permissions", len(stale))
        self.engine.clear_permission_caches(user_ids)
        return len(stale)

    # =========================================================================
    # ROLE ASSIGNMENT
    # =========================================================================

    def assign_role(self, actor_id: int, user_id: int, role_slug: str) -> User:
        """Give a user a role. Also sets the legacy role name."""
        details = {"role": role_slug}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            target = self._get_user(user_id)
            role = self._get_role(role_slug)
            decision = check_role_assignment(
                _priority(actor),
                role.priority,
                actor_is_super_admin=actor.is_active and is_super_admin(actor),
                is_self=actor.id == target.id,
                target_current_priority=target.role_model.priority if target.role_model else None,
            )
            if not decision.allowed:
                raise EscalationDenied(decision.violations)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_ROLE_ASSIGNED, actor_id, "User", user_id, details)

        details["previous_role_id"] = target.role_id
        target.role_id = role.id
        target.role = role.name
        self._success(ACTION_ROLE_ASSIGNED, actor.id, "User", target.id, details)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return target

    def remove_role(self, actor_id: int, user_id: int) -> User:
        """Strip a user's role (normalized and legacy)."""
        try:
            actor = self._get_user(actor_id, field="actor_id")
            target = self._get_user(user_id)
            current = target.role_model.priority if target.role_model else 0
            decision = check_role_assignment(
                _priority(actor),
                current,
                actor_is_super_admin=actor.is_active and is_super_admin(actor),
                is_self=actor.id == target.id,
                target_current_priority=current,
            )
            if not decision.allowed:
                raise EscalationDenied(decision.violations)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_ROLE_REMOVED, actor_id, "User", user_id)

        details = {"previous_role_id": target.role_id, "previous_role": target.role}
        target.role_id = None
        target.role = None
        self._success(ACTION_ROLE_REMOVED, actor.id, "User", target.id, details)
        db.session.commit()

        self.engine.clear_permission_cache(target.id)
        return target

    # =========================================================================
    # ROLE PERMISSIONS
    # =========================================================================

    def grant_role_permission(self, actor_id: int, role_slug: str, permission_name: str) -> RolePermission:
        details = {"permission": permission_name}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            role = self._get_role(role_slug)
            permission = self._get_permission(permission_name)
            self._check_role_change(actor, role, [permission.name])
            errors = validate_permission_additions(self._role_permission_ids(role), [permission.id])
            if errors:
                raise DependencyMissing(errors)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_ROLE_PERMISSION_GRANTED, actor_id, "Role", None, details)

        existing = db.session.query(RolePermission).filter_by(
            role_id=role.id,
            permission_id=permission.id,
        ).first()
        if existing:
            return existing  # Already granted

        role_permission = RolePermission(role_id=role.id, permission_id=permission.id)
        db.session.add(role_permission)
        self._success(ACTION_ROLE_PERMISSION_GRANTED, actor.id, "Role", role.id, details)
        db.session.commit()

        self.engine.clear_role_permission_cache(role)
        return role_permission

    def revoke_role_permission(self, actor_id: int, role_slug: str, permission_name: str) -> bool:
        """Remove a permission from a role; refused if others in the role still need it."""
        details = {"permission": permission_name}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            role = self._get_role(role_slug)
            permission = self._get_permission(permission_name)
            self._check_role_change(actor, role, [])
            remaining = self._role_permission_ids(role) - {permission.id}
            errors = [
                error for error in validate_permission_dependencies(remaining)
                if error.missing_id == permission.id
            ]
            if errors:
                raise DependencyMissing(errors)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_ROLE_PERMISSION_REVOKED, actor_id, "Role", None, details)

        role_permission = db.session.query(RolePermission).filter_by(
            role_id=role.id,
            permission_id=permission.id,
        ).first()
        if role_permission is None:
            return False  # Wasn't granted in the first place

        db.session.delete(role_permission)
        self._success(ACTION_ROLE_PERMISSION_REVOKED, actor.id, "Role", role.id, details)
        db.session.commit()

        self.engine.clear_role_permission_cache(role)
        return True

    def sync_role_permissions(self, actor_id: int, role_slug: str, permission_names) -> set[str]:
        """Replace a role's permission set. The new set must be dependency-closed."""
        names = set(permission_names)
        details = {"permissions": sorted(names)}
        try:
            actor = self._get_user(actor_id, field="actor_id")
            role = self._get_role(role_slug)
            permissions = [self._get_permission(name) for name in sorted(names)]
            current = self._role_permission_ids(role)
            wanted = {permission.id for permission in permissions}
            added = [permission.name for permission in permissions if permission.id not in current]
            self._check_role_change(actor, role, added)
            errors = validate_permission_dependencies(wanted)
            if errors:
                raise DependencyMissing(errors)
        except AuthorizationError as exc:
            self._reject(exc, ACTION_ROLE_PERMISSIONS_SYNCED, actor_id, "Role", None, details)

        removed_ids = current - wanted
        if removed_ids:
            db.session.query(RolePermission).filter(
                RolePermission.role_id == role.id,
                RolePermission.permission_id.in_(removed_ids),
            ).delete(synchronize_session="fetch")
        for permission_id in sorted(wanted - current):
            db.session.add(RolePermission(role_id=role.id, permission_id=permission_id))

        details["added"] = sorted(added)
        details["removed_count"] = len(removed_ids)
        self._success(ACTION_ROLE_PERMISSIONS_SYNCED, actor.id, "Role", role.id, details)
        db.session.commit()

        cleared = self.engine.clear_role_permission_cache(role)
        logger.info("Synced %s permissions on role %s, cleared %s members", len(wanted), role.slug, cleared)
        return names
