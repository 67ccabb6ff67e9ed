# Overview: Privilege escalation checks for role and permission changes.

"""
Escalation Control

WHY: An administrator must never hand out more authority than they hold.
A Hospital Admin (priority 80) cannot assign Super Admin (100) to anyone,
themselves included.

PURE: Every function here takes priorities and permission sets and
returns a decision. Nothing is read from or written to the store; the
permission administration service loads the inputs and acts on the result.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..permissions import WILDCARD_MODULE
from ..permissions.policies import (
    CRITICAL_PERMISSION_MIN_PRIORITY,
    EXCESSIVE_PERMISSION_COUNT,
    EXCESSIVE_PERMISSION_PRIORITY_CEILING,
    SENSITIVE_PERMISSIONS,
    SENSITIVE_PERMISSION_THRESHOLD,
)


@dataclass(frozen=True)
class Violation:
    type: str
    description: str


@dataclass(frozen=True)
class EscalationDecision:
    violations: tuple[Violation, ...] = ()

    @property
    def allowed(self) -> bool:
        return not self.violations

    @property
    def reasons(self) -> list[str]:
        return [violation.description for violation in self.violations]


def _decision(violations: list[Violation]) -> EscalationDecision:
    return EscalationDecision(tuple(violations))


def check_role_assignment(
    actor_priority: int | None,
    target_role_priority: int,
    *,
    actor_is_super_admin: bool = False,
    is_self: bool = False,
    target_current_priority: int | None = None,
) -> EscalationDecision:
    """
    May an actor at actor_priority give someone a role at target_role_priority?

    The target role must sit strictly below the actor. The principal being
    changed must also sit strictly below the actor, unless it is the actor
    stepping down.
    """
    if actor_is_super_admin:
        return _decision([])
    if actor_priority is None:
        return _decision([Violation("actor_has_no_role", "Actor does not have a role assigned")])

    violations = []
    if target_role_priority >= actor_priority:
        if is_self:
            violations.append(Violation(
                "self_privilege_escalation",
                f"Cannot raise your own role to priority {target_role_priority} (yours is {actor_priority})",
            ))
        else:
            violations.append(Violation(
                "privilege_escalation",
                f"Cannot assign a role with priority {target_role_priority} at or above your own ({actor_priority})",
            ))

    if not is_self and target_current_priority is not None and target_current_priority >= actor_priority:
        violations.append(Violation(
            "target_outranks_actor",
            f"Cannot change the role of a user at priority {target_current_priority}",
        ))

    return _decision(violations)


def check_permission_grant(
    actor_priority: int | None,
    actor_permissions,
    requested_permissions,
    *,
    critical_permissions=frozenset(),
    actor_is_super_admin: bool = False,
    target_priority: int | None = None,
    is_self: bool = False,
) -> EscalationDecision:
    """
    May an actor grant requested_permissions (override or temporary) to a user?

    - The actor cannot grant to themselves
    - The grantee must sit strictly below the actor
    - The actor must hold every permission they grant
    - Critical permissions need an actor at CRITICAL_PERMISSION_MIN_PRIORITY
    """
    if actor_is_super_admin:
        return _decision([])
    if actor_priority is None:
        return _decision([Violation("actor_has_no_role", "Actor does not have a role assigned")])

    violations = []
    if is_self:
        violations.append(Violation("self_privilege_escalation", "Cannot grant permissions to yourself"))
    elif target_priority is not None and target_priority >= actor_priority:
        violations.append(Violation(
            "target_outranks_actor",
            f"Cannot grant permissions to a user at priority {target_priority}",
        ))

    held = set(actor_permissions)
    for name in sorted(set(requested_permissions)):
        if name not in held:
            violations.append(Violation(
                "grantor_lacks_target_permission",
                f"Cannot grant '{name}' without holding it",
            ))
        if name in critical_permissions and actor_priority < CRITICAL_PERMISSION_MIN_PRIORITY:
            violations.append(Violation(
                "critical_permission",
                f"Granting critical permission '{name}' requires priority {CRITICAL_PERMISSION_MIN_PRIORITY}",
            ))

    return _decision(violations)


def check_role_permission_change(
    actor_priority: int | None,
    role_priority: int,
    actor_permissions,
    added_permissions,
    *,
    critical_permissions=frozenset(),
    actor_is_super_admin: bool = False,
) -> EscalationDecision:
    """May an actor edit the permission set of a role at role_priority?"""
    if actor_is_super_admin:
        return _decision([])
    if actor_priority is None:
        return _decision([Violation("actor_has_no_role", "Actor does not have a role assigned")])

    violations = []
    if role_priority >= actor_priority:
        violations.append(Violation(
            "role_outranks_actor",
            f"Cannot modify a role at priority {role_priority} (yours is {actor_priority})",
        ))
    grant = check_permission_grant(
        actor_priority,
        actor_permissions,
        added_permissions,
        critical_permissions=critical_permissions,
    )
    violations.extend(grant.violations)
    return _decision(violations)


def check_inheritance_safety(parent, child, child_ancestor_ids=()) -> list[str]:
    """
    Issues with making `parent` the parent role of `child`.

    parent/child need .id, .priority, .module_access and .is_system.
    child_ancestor_ids are the ids above child in the current hierarchy.
    """
    issues = []

    if parent.id == child.id or parent.id in set(child_ancestor_ids):
        issues.append("circular_inheritance")

    if parent.priority <= child.priority:
        issues.append("parent_priority_not_higher")

    parent_modules = parent.module_access or []
    child_modules = child.module_access or []
    if parent_modules and WILDCARD_MODULE not in parent_modules:
        if child_modules and WILDCARD_MODULE not in child_modules:
            if set(child_modules) - set(parent_modules):
                issues.append("incompatible_module_access")

    if not parent.is_system and child.is_system:
        issues.append("system_role_inheriting_from_custom_role")

    return issues


def detect_privilege_escalation(
    current_priority: int | None,
    requested_priority: int,
    effective_permissions,
) -> list[Violation]:
    """Report suspicious patterns for a user asking for a new role."""
    if current_priority is None:
        return []

    findings = []
    if requested_priority > current_priority:
        findings.append(Violation(
            "priority_escalation",
            f"Requested role priority {requested_priority} is above current {current_priority}",
        ))

    permissions = set(effective_permissions)
    if len(permissions) > EXCESSIVE_PERMISSION_COUNT and current_priority < EXCESSIVE_PERMISSION_PRIORITY_CEILING:
        findings.append(Violation(
            "excessive_permissions",
            f"{len(permissions)} permissions held at role priority {current_priority}",
        ))

    sensitive = permissions & SENSITIVE_PERMISSIONS
    if len(sensitive) > SENSITIVE_PERMISSION_THRESHOLD:
        findings.append(Violation(
            "sensitive_permission_accumulation",
            f"{len(sensitive)} sensitive permissions held",
        ))

    return findings
