from __future__ import annotations

from ..extensions import db
from hms.time_utils import to_utc_z


class User(db.Model):
    """
    Principal being authorized.

    WHY: Carries both the legacy role string (`role`) and the normalized
    `role_id`. Resolution consults the normalized role first and falls back
    to the legacy string-keyed table (see LegacyRolePermission).
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)

    # Legacy role name (e.g. "Doctor", "Super Admin")
    role = db.Column(db.String(64), nullable=True, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    role_model = db.relationship("Role", backref=db.backref("users", lazy=True))
    permission_overrides = db.relationship(
        "UserPermission",
        foreign_keys="UserPermission.user_id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    temporary_permissions = db.relationship(
        "TemporaryPermission",
        foreign_keys="TemporaryPermission.user_id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "role_id": self.role_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Role(db.Model):
    """
    Named bundle of permissions with a priority (higher = more privileged).

    HIERARCHY: single parent via parent_role_id. A role flagged
    is_super_admin is granted every permission without enumeration.

    SECURITY POLICY: MFA and session columns feed security_policy_service.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)

    priority = db.Column(db.Integer, nullable=False, default=0, index=True)
    is_super_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    parent_role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True)

    # List of module names, or ["*"] for every module
    module_access = db.Column(db.JSON, nullable=True)
    data_visibility_scope = db.Column(db.JSON, nullable=True)

    mfa_required = db.Column(db.Boolean, nullable=False, default=False)
    mfa_grace_period_days = db.Column(db.Integer, nullable=True)
    session_timeout_minutes = db.Column(db.Integer, nullable=False, default=120)
    concurrent_session_limit = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent_role = db.relationship("Role", remote_side=[id], backref=db.backref("child_roles", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "priority": self.priority,
            "is_super_admin": self.is_super_admin,
            "is_system": self.is_system,
            "parent_role_id": self.parent_role_id,
            "module_access": self.module_access or [],
            "data_visibility_scope": self.data_visibility_scope,
            "mfa_required": self.mfa_required,
            "session_timeout_minutes": self.session_timeout_minutes,
            "concurrent_session_limit": self.concurrent_session_limit,
        }


class Permission(db.Model):
    """
    Named capability, e.g. "edit-patients".

    DESIGN: Identified by unique name. module/action group it for display
    and module-access checks. is_critical marks permissions whose grant
    needs a high-priority actor.
    """
    __tablename__ = "permissions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    module = db.Column(db.String(64), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=True)
    is_critical = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "module": self.module,
            "action": self.action,
            "is_critical": self.is_critical,
        }


class RolePermission(db.Model):
    """Normalized Role-Permission association."""
    __tablename__ = "role_permission_mappings"
    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission_mappings"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)

    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    role = db.relationship("Role", backref=db.backref("role_permissions", lazy=True, cascade="all, delete-orphan"))
    permission = db.relationship("Permission")


class LegacyRolePermission(db.Model):
    """
    Legacy grant keyed by the role *name* string (User.role).

    Kept for backward compatibility: users not yet migrated to role_id
    still resolve through this table.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role", "permission_id", name="uq_legacy_role_permissions"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(64), nullable=False, index=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)

    permission = db.relationship("Permission")


class PermissionDependency(db.Model):
    """Edge: permission_id requires depends_on_permission_id."""
    __tablename__ = "permission_dependencies"
    __table_args__ = (
        db.UniqueConstraint("permission_id", "depends_on_permission_id", name="uq_permission_dependencies"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    depends_on_permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)

    permission = db.relationship("Permission", foreign_keys=[permission_id])
    depends_on_permission = db.relationship("Permission", foreign_keys=[depends_on_permission_id])


class UserPermission(db.Model):
    """
    Per-user override (allow or deny).

    DESIGN:
    - At most one row per (user, permission); updates overwrite
    - allowed=False wins over any role grant
    - allowed=True wins over a missing role grant
    """
    __tablename__ = "user_permissions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "permission_id", name="uq_user_permissions"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    allowed = db.Column(db.Boolean, nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reason = db.Column(db.Text, nullable=True)

    permission = db.relationship("Permission")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "permission": self.permission.name if self.permission else None,
            "allowed": self.allowed,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "reason": self.reason,
        }


class TemporaryPermission(db.Model):
    """
    Time-bounded grant.

    Valid only while is_active and now < expires_at. Expiry needs no
    revocation; the sweep deactivates stale rows.
    """
    __tablename__ = "temporary_permissions"
    __table_args__ = (
        db.Index("ix_temporary_permissions_user_active", "user_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    permission = db.relationship("Permission")

    def is_valid(self, now) -> bool:
        return bool(self.is_active) and now < self.expires_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "permission": self.permission.name if self.permission else None,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "expires_at": to_utc_z(self.expires_at),
            "reason": self.reason,
            "is_active": self.is_active,
        }
