# Overview: Static security policy tables consulted by security_policy_service
# and escalation_service.

# Fallbacks for principals without a normalized role
DEFAULT_SESSION_TIMEOUT_MINUTES = 120

# Role slugs that always require MFA, regardless of the role row
MANDATORY_MFA_ROLES = frozenset({
    "super-admin",
    "sub-super-admin",
    "hospital-admin",
})

# Operations that need a fresh MFA challenge even for non-MFA roles
HIGH_RISK_OPERATIONS = frozenset({
    "manage-roles",
    "manage-permissions",
    "delete-users",
    "update-system-settings",
    "void-bills",
    "refund-payments",
    "delete-patients",
})

# Watched by the privilege escalation report
SENSITIVE_PERMISSIONS = frozenset({
    "delete-users",
    "manage-roles",
    "manage-permissions",
    "update-system-settings",
    "view-audit-logs",
    "void-bills",
    "refund-payments",
    "delete-patients",
})

# Minimum actor priority to grant a permission flagged is_critical
CRITICAL_PERMISSION_MIN_PRIORITY = 90

# Escalation report thresholds
EXCESSIVE_PERMISSION_COUNT = 100
EXCESSIVE_PERMISSION_PRIORITY_CEILING = 80
SENSITIVE_PERMISSION_THRESHOLD = 10
