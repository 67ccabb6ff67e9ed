# Overview: Default hospital roles and their permission sets.
# Roles are listed parents first so parent_slug always resolves.

from .categories import PermissionModule as M, WILDCARD_MODULE
from .definitions import PERMISSION_DEFINITIONS


SUPER_ADMIN_SLUG = "super-admin"

DEFAULT_ROLES = [
    {
        "name": "Super Admin",
        "slug": SUPER_ADMIN_SLUG,
        "description": "Unrestricted access to every module, user and setting",
        "priority": 100,
        "parent_slug": None,
        "is_super_admin": True,
        "module_access": [WILDCARD_MODULE],
        "data_visibility_scope": [WILDCARD_MODULE],
        "mfa_required": True,
        "mfa_grace_period_days": None,
        "session_timeout_minutes": 15,
        "concurrent_session_limit": 1,
    },
    {
        "name": "Sub Super Admin",
        "slug": "sub-super-admin",
        "description": "Administrative access to all modules except Super Admin management",
        "priority": 90,
        "parent_slug": SUPER_ADMIN_SLUG,
        "module_access": [WILDCARD_MODULE],
        "data_visibility_scope": [WILDCARD_MODULE],
        "mfa_required": True,
        "mfa_grace_period_days": None,
        "session_timeout_minutes": 20,
        "concurrent_session_limit": 1,
    },
    {
        "name": "Hospital Admin",
        "slug": "hospital-admin",
        "description": "Full access to hospital operations within the assigned hospital",
        "priority": 80,
        "parent_slug": "sub-super-admin",
        "module_access": [M.PATIENTS, M.APPOINTMENTS, M.BILLING, M.PHARMACY, M.LABORATORY, M.DOCTORS, M.USERS, M.REPORTS],
        "data_visibility_scope": {"hospital_id": "current"},
        "mfa_required": True,
        "mfa_grace_period_days": None,
        "session_timeout_minutes": 30,
        "concurrent_session_limit": 2,
    },
    {
        "name": "Department Admin",
        "slug": "department-admin",
        "description": "Full access to assigned departments with staff management",
        "priority": 70,
        "parent_slug": "hospital-admin",
        "module_access": [M.PATIENTS, M.APPOINTMENTS, M.DOCTORS, M.BILLING, M.LABORATORY, M.PHARMACY, M.REPORTS, M.USERS],
        "data_visibility_scope": {"department_id": "assigned"},
        "mfa_required": False,
        "mfa_grace_period_days": 7,
        "session_timeout_minutes": 45,
        "concurrent_session_limit": 2,
    },
    {
        "name": "Pharmacy Admin",
        "slug": "pharmacy-admin",
        "description": "Pharmacy module including stock and counter sales",
        "priority": 60,
        "parent_slug": "department-admin",
        "module_access": [M.PHARMACY, M.BILLING, M.PATIENTS, M.REPORTS],
        "data_visibility_scope": {"pharmacy": True},
        "mfa_required": False,
        "mfa_grace_period_days": 7,
        "session_timeout_minutes": 60,
        "concurrent_session_limit": 3,
    },
    {
        "name": "Laboratory Admin",
        "slug": "laboratory-admin",
        "description": "Laboratory module including tests and results",
        "priority": 60,
        "parent_slug": "department-admin",
        "module_access": [M.LABORATORY, M.PATIENTS, M.REPORTS],
        "data_visibility_scope": {"laboratory": True},
        "mfa_required": False,
        "mfa_grace_period_days": 7,
        "session_timeout_minutes": 60,
        "concurrent_session_limit": 3,
    },
    {
        "name": "Reception Admin",
        "slug": "reception-admin",
        "description": "Patient registration, appointments and queue management",
        "priority": 60,
        "parent_slug": "department-admin",
        "module_access": [M.PATIENTS, M.APPOINTMENTS, M.DOCTORS],
        "data_visibility_scope": {"reception": True},
        "mfa_required": False,
        "mfa_grace_period_days": 7,
        "session_timeout_minutes": 60,
        "concurrent_session_limit": 3,
    },
    {
        "name": "Staff",
        "slug": "staff",
        "description": "Limited access for daily operations",
        "priority": 30,
        "parent_slug": "pharmacy-admin",
        "module_access": [M.PATIENTS, M.APPOINTMENTS, M.DOCTORS],
        "data_visibility_scope": ["assigned_patients", "assigned_tasks"],
        "mfa_required": False,
        "mfa_grace_period_days": None,
        "session_timeout_minutes": 120,
        "concurrent_session_limit": 3,
    },
    {
        "name": "Viewer",
        "slug": "viewer",
        "description": "Read-only access to public information and assigned reports",
        "priority": 10,
        "parent_slug": "staff",
        "module_access": [M.REPORTS],
        "data_visibility_scope": {"public": True},
        "mfa_required": False,
        "mfa_grace_period_days": None,
        "session_timeout_minutes": 240,
        "concurrent_session_limit": None,
    },
]


_ALL_PERMISSIONS = [definition[0] for definition in PERMISSION_DEFINITIONS]

DEFAULT_ROLE_PERMISSIONS = {
    # Super admins bypass enumeration; no rows needed
    SUPER_ADMIN_SLUG: [],
    "sub-super-admin": list(_ALL_PERMISSIONS),
    "hospital-admin": [name for name in _ALL_PERMISSIONS if name != "update-system-settings"],
    "department-admin": [
        "view-users",
        "view-patients", "create-patients", "edit-patients",
        "view-doctors", "edit-doctors",
        "view-appointments", "create-appointments", "edit-appointments",
        "view-bills",
        "view-lab-tests",
        "view-medicines",
        "view-reports", "export-reports",
    ],
    "pharmacy-admin": [
        "view-medicines", "manage-medicines", "dispense-medicines",
        "view-patients",
        "view-bills", "create-bills", "record-payments",
        "view-reports",
    ],
    "laboratory-admin": [
        "view-lab-tests", "create-lab-tests", "enter-lab-results", "verify-lab-results",
        "view-patients",
        "view-reports",
    ],
    "reception-admin": [
        "view-patients", "create-patients", "edit-patients",
        "view-appointments", "create-appointments", "edit-appointments",
        "view-doctors",
    ],
    "staff": ["view-patients", "view-appointments", "view-doctors"],
    "viewer": ["view-reports"],
}
