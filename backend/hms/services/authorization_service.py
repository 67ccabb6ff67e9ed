# Overview: Service-layer permission resolution; answers "may user U do A".

"""
Authorization Engine

WHY: One component answers every permission question, so controllers,
jobs and the CLI all resolve grants the same way.

RESOLUTION ORDER (first match wins):
1. Super-admin role -> allowed
2. Per-user override (UserPermission) -> its allowed flag, deny included
3. Role grant: normalized Role->Permission first, legacy role-name table second
4. Active temporary grant
5. Deny

CACHING:
- Per-check key "user_permission:{user_id}:{permission}" and
  "user_effective_permissions:{user_id}", TTL 15 minutes
- clear_permission_cache() runs synchronously inside every grant mutation
- Reads fall back to recomputation when the cache backend is down (fail
  open on the cache, never on the decision); a clear that cannot reach the
  backend raises CacheInvalidationError
- Each clear writes a fresh "user_permission_generation:{user_id}" token.
  A reader that computed its answer under an older token drops the entry
  it just wrote, so a check racing a mutation cannot re-cache the old answer
"""

from __future__ import annotations

import logging
import uuid

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    User,
    Permission,
    RolePermission,
    LegacyRolePermission,
    UserPermission,
    TemporaryPermission,
)
from ..permissions import SUPER_ADMIN_SLUG, WILDCARD_MODULE
from .permission_cache import CacheUnavailableError, PermissionCache
from hms.time_utils import utcnow

logger = logging.getLogger(__name__)

PERMISSION_CACHE_TTL_SECONDS = 900

# Legacy User.role value that predates Role.is_super_admin
LEGACY_SUPER_ADMIN_ROLE = "Super Admin"


class AuthorizationError(Exception):
    """Base for authorization and permission administration failures."""
    pass


class Forbidden(AuthorizationError):
    """Raised by authorize() when the principal lacks the permission."""

    def __init__(self, permission: str, message: str | None = None):
        self.permission = permission
        super().__init__(message or f"Unauthorized: missing permission '{permission}'")


class ValidationError(AuthorizationError):
    """Malformed administrative request (unknown user/permission, bad expiry)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class EscalationDenied(AuthorizationError):
    """The actor lacks the priority or permissions for the requested change."""

    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__("; ".join(v.description for v in self.violations) or "Escalation denied")


class DependencyMissing(AuthorizationError):
    """The resulting permission set lacks transitive prerequisites."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(str(error) for error in self.errors))


class CacheInvalidationError(Exception):
    """
    Cached entries for some principals could not be cleared.

    The underlying change is already committed; readers may see the old
    answer until the entries expire.
    """

    def __init__(self, user_ids, cause):
        self.user_ids = sorted(set(user_ids))
        self.cause = cause
        super().__init__(f"Permission cache invalidation failed for users {self.user_ids}: {cause}")


def permission_cache_key(user_id: int, permission_name: str) -> str:
    return f"user_permission:{user_id}:{permission_name}"


def effective_permissions_cache_key(user_id: int) -> str:
    return f"user_effective_permissions:{user_id}"


def permission_generation_cache_key(user_id: int) -> str:
    return f"user_permission_generation:{user_id}"


def is_super_admin(user: User) -> bool:
    if user.role == LEGACY_SUPER_ADMIN_ROLE:
        return True
    role = user.role_model
    return bool(role and (role.is_super_admin or role.slug == SUPER_ADMIN_SLUG))


# =============================================================================
# ROLE GRANT LOOKUP
# =============================================================================

def _normalized_role_permission_ids(user: User) -> set[int]:
    if not user.role_id:
        return set()
    rows = db.session.query(RolePermission.permission_id).filter_by(role_id=user.role_id).all()
    return {permission_id for (permission_id,) in rows}


def _legacy_role_permission_ids(user: User) -> set[int]:
    # Backward-compatibility shim for users still keyed by role name
    if not user.role:
        return set()
    rows = db.session.query(LegacyRolePermission.permission_id).filter_by(role=user.role).all()
    return {permission_id for (permission_id,) in rows}


ROLE_GRANT_STRATEGIES = (
    _normalized_role_permission_ids,
    _legacy_role_permission_ids,
)


def role_grants_permission(user: User, permission_id: int) -> bool:
    """True if any strategy, tried in order, grants permission_id."""
    return any(permission_id in strategy(user) for strategy in ROLE_GRANT_STRATEGIES)


def role_permission_ids(user: User) -> set[int]:
    """Union of the permission ids every strategy grants."""
    granted: set[int] = set()
    for strategy in ROLE_GRANT_STRATEGIES:
        granted |= strategy(user)
    return granted


# =============================================================================
# ENGINE
# =============================================================================

class AuthorizationEngine:
    """
    Permission resolution for principals identified by user id.

    The cache is injected; pass None to disable caching entirely.
    """

    def __init__(
        self,
        cache: PermissionCache | None = None,
        *,
        ttl: int = PERMISSION_CACHE_TTL_SECONDS,
        clock=utcnow,
    ):
        self.cache = cache
        self.ttl = ttl
        self.clock = clock

    # -- cache plumbing (fail open) --

    def _cache_get(self, key: str):
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except CacheUnavailableError as exc:
            logger.warning("Permission cache read failed for %s, recomputing: %s", key, exc)
            return None

    def _cache_set(self, key: str, value) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(key, value, self.ttl)
        except CacheUnavailableError as exc:
            logger.warning("Permission cache write failed for %s: %s", key, exc)

    def _generation(self, user_id: int):
        return self._cache_get(permission_generation_cache_key(user_id))

    def _cache_store(self, user_id: int, key: str, value, generation) -> None:
        """Write a computed answer unless the principal was cleared since `generation` was read."""
        self._cache_set(key, value)
        if self.cache is None or self._generation(user_id) == generation:
            return
        try:
            self.cache.invalidate(key)
        except CacheUnavailableError as exc:
            logger.warning("Could not drop superseded cache entry %s: %s", key, exc)

    # -- checks --

    def has_permission(self, user_id: int, permission_name: str) -> bool:
        """
        Check if a user has a permission.

        Never raises: unknown users, unknown permissions and store errors
        all resolve to False.
        """
        try:
            # Read before any row the answer depends on
            generation = self._generation(user_id)

            user = db.session.get(User, user_id)
            if user is None or not user.is_active:
                return False
            if is_super_admin(user):
                return True

            key = permission_cache_key(user_id, permission_name)
            cached = self._cache_get(key)
            if cached is not None:
                return bool(cached)

            result = self._resolve(user, permission_name)
            self._cache_store(user_id, key, result, generation)
            return result
        except SQLAlchemyError:
            logger.exception("Permission check failed for user %s on %s", user_id, permission_name)
            return False

    def _resolve(self, user: User, permission_name: str) -> bool:
        permission = db.session.query(Permission).filter_by(name=permission_name).first()
        if permission is None:
            return False

        override = db.session.query(UserPermission).filter_by(
            user_id=user.id,
            permission_id=permission.id,
        ).first()
        if override is not None:
            return bool(override.allowed)

        if role_grants_permission(user, permission.id):
            return True

        temporary = db.session.query(TemporaryPermission.id).filter(
            TemporaryPermission.user_id == user.id,
            TemporaryPermission.permission_id == permission.id,
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at > self.clock(),
        ).first()
        return temporary is not None

    def has_any_permission(self, user_id: int, permission_names) -> bool:
        return any(self.has_permission(user_id, name) for name in permission_names)

    def has_all_permissions(self, user_id: int, permission_names) -> bool:
        return all(self.has_permission(user_id, name) for name in permission_names)

    def authorize(self, user_id: int, permission_name: str, message: str | None = None) -> None:
        """Raise Forbidden unless the user has the permission."""
        if not self.has_permission(user_id, permission_name):
            logger.warning("Authorization denied: user=%s permission=%s", user_id, permission_name)
            raise Forbidden(permission_name, message)

    def authorize_any(self, user_id: int, permission_names, message: str | None = None) -> None:
        names = list(permission_names)
        if not self.has_any_permission(user_id, names):
            logger.warning("Authorization denied: user=%s any_of=%s", user_id, ",".join(names))
            raise Forbidden(",".join(names), message or "Unauthorized: missing required permissions")

    def get_effective_permissions(self, user_id: int) -> frozenset[str]:
        """
        All permission names the user currently holds.

        (role grants | allowed overrides | active temporary grants) - denied overrides
        """
        generation = self._generation(user_id)
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return frozenset()

        if is_super_admin(user):
            return frozenset(name for (name,) in db.session.query(Permission.name).all())

        key = effective_permissions_cache_key(user_id)
        cached = self._cache_get(key)
        if cached is not None:
            return frozenset(cached)

        granted = role_permission_ids(user)
        denied: set[int] = set()
        for override in db.session.query(UserPermission).filter_by(user_id=user_id).all():
            if override.allowed:
                granted.add(override.permission_id)
            else:
                denied.add(override.permission_id)

        temporary = db.session.query(TemporaryPermission.permission_id).filter(
            TemporaryPermission.user_id == user_id,
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at > self.clock(),
        ).all()
        granted |= {permission_id for (permission_id,) in temporary}
        granted -= denied

        names: list[str] = []
        if granted:
            names = sorted(
                name for (name,) in db.session.query(Permission.name).filter(Permission.id.in_(granted)).all()
            )
        self._cache_store(user_id, key, names, generation)
        return frozenset(names)

    def has_module_access(self, user_id: int, module: str) -> bool:
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return False
        if is_super_admin(user):
            return True
        modules = (user.role_model.module_access if user.role_model else None) or []
        return WILDCARD_MODULE in modules or module in modules

    # -- invalidation --

    def clear_permission_cache(self, user_id: int) -> None:
        """
        Drop every cached entry for one principal.

        Every key is attempted; if any could not be reached the error is
        logged and CacheInvalidationError is raised afterwards.
        """
        if self.cache is None:
            return

        failure = None
        try:
            self.cache.set(permission_generation_cache_key(user_id), uuid.uuid4().hex, self.ttl)
        except CacheUnavailableError as exc:
            failure = exc

        keys = [effective_permissions_cache_key(user_id)]
        keys.extend(permission_cache_key(user_id, name) for (name,) in db.session.query(Permission.name).all())
        for key in keys:
            try:
                self.cache.invalidate(key)
            except CacheUnavailableError as exc:
                failure = exc

        if failure is not None:
            logger.error("Permission cache invalidation failed for user %s: %s", user_id, failure)
            raise CacheInvalidationError([user_id], failure)

    def clear_permission_caches(self, user_ids) -> int:
        """Clear several principals, attempting all before raising. Returns principals cleared."""
        user_ids = list(user_ids)
        failed: list[int] = []
        cause = None
        for user_id in user_ids:
            try:
                self.clear_permission_cache(user_id)
            except CacheInvalidationError as exc:
                failed.extend(exc.user_ids)
                cause = exc.cause
        if failed:
            raise CacheInvalidationError(failed, cause)
        return len(user_ids)

    def clear_role_permission_cache(self, role) -> int:
        """Drop cached entries for every member of a role. Returns members cleared."""
        members = db.session.query(User.id).filter(
            (User.role_id == role.id) | (User.role == role.name)
        ).all()
        return self.clear_permission_caches(member_id for (member_id,) in members)


def get_authorization_engine() -> AuthorizationEngine:
    """Engine configured for the current Flask app."""
    return current_app.extensions["hms.authorization"]
