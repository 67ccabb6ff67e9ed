# Overview: Per-role session and MFA policy lookups.

"""
Security Policy

Stateless lookups keyed by role. The Role row carries the policy columns;
MANDATORY_MFA_ROLES forces MFA for the top administrative roles even if
the row says otherwise. Principals without a normalized role get the
defaults from hms.permissions.policies.
"""

from __future__ import annotations

from ..models import Role
from ..permissions.policies import (
    DEFAULT_SESSION_TIMEOUT_MINUTES,
    HIGH_RISK_OPERATIONS,
    MANDATORY_MFA_ROLES,
)


def is_mfa_required_for_role(role: Role | None) -> bool:
    if role is None:
        return False
    return role.slug in MANDATORY_MFA_ROLES or bool(role.mfa_required)


def get_mfa_grace_period_days(role: Role | None) -> int | None:
    """Days a new user may defer MFA enrolment. None means no grace period."""
    if role is None or role.slug in MANDATORY_MFA_ROLES:
        return None
    return role.mfa_grace_period_days


def get_session_timeout_minutes(role: Role | None) -> int:
    if role is None or not role.session_timeout_minutes:
        return DEFAULT_SESSION_TIMEOUT_MINUTES
    return role.session_timeout_minutes


def get_concurrent_session_limit(role: Role | None) -> int | None:
    """None means unlimited."""
    if role is None:
        return None
    return role.concurrent_session_limit


def requires_mfa_for_operation(permission_name: str) -> bool:
    return permission_name in HIGH_RISK_OPERATIONS


def get_security_policy(role: Role | None) -> dict:
    return {
        "mfa_required": is_mfa_required_for_role(role),
        "mfa_grace_period_days": get_mfa_grace_period_days(role),
        "session_timeout_minutes": get_session_timeout_minutes(role),
        "concurrent_session_limit": get_concurrent_session_limit(role),
    }
