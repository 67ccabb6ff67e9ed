# Overview: All permission definitions organized by module.
# Each permission is defined as: (name, description, module, action, is_critical)

from .categories import PermissionModule


# -- USERS & ACCESS CONTROL --

USER_PERMISSIONS = [
    ("view-users", "View user list", PermissionModule.USERS, "view", False),
    ("create-users", "Create new users", PermissionModule.USERS, "create", False),
    ("edit-users", "Edit existing users", PermissionModule.USERS, "edit", False),
    ("delete-users", "Delete users", PermissionModule.USERS, "delete", True),
    ("manage-roles", "Assign roles and edit role permissions", PermissionModule.USERS, "manage_roles", True),
    ("manage-permissions", "Grant per-user and temporary permissions", PermissionModule.USERS, "manage_permissions", True),
]


# -- PATIENTS --

PATIENT_PERMISSIONS = [
    ("view-patients", "View patient list", PermissionModule.PATIENTS, "view", False),
    ("create-patients", "Register new patients", PermissionModule.PATIENTS, "create", False),
    ("edit-patients", "Edit patient records", PermissionModule.PATIENTS, "edit", False),
    ("delete-patients", "Delete patient records", PermissionModule.PATIENTS, "delete", True),
]


# -- DOCTORS & APPOINTMENTS --

DOCTOR_PERMISSIONS = [
    ("view-doctors", "View doctor list", PermissionModule.DOCTORS, "view", False),
    ("edit-doctors", "Edit doctor profiles and schedules", PermissionModule.DOCTORS, "edit", False),
]

APPOINTMENT_PERMISSIONS = [
    ("view-appointments", "View appointments", PermissionModule.APPOINTMENTS, "view", False),
    ("create-appointments", "Book appointments", PermissionModule.APPOINTMENTS, "create", False),
    ("edit-appointments", "Reschedule or cancel appointments", PermissionModule.APPOINTMENTS, "edit", False),
]


# -- BILLING --

BILLING_PERMISSIONS = [
    ("view-bills", "View bills and payments", PermissionModule.BILLING, "view", False),
    ("create-bills", "Create bills and add items", PermissionModule.BILLING, "create", False),
    ("edit-bills", "Edit bill items", PermissionModule.BILLING, "edit", False),
    ("apply-discounts", "Apply bill discounts", PermissionModule.BILLING, "discount", False),
    ("record-payments", "Record payments against bills", PermissionModule.BILLING, "payment", False),
    ("process-insurance", "Calculate insurance coverage", PermissionModule.BILLING, "insurance", False),
    ("void-bills", "Void bills", PermissionModule.BILLING, "void", True),
    ("refund-payments", "Void or refund payments", PermissionModule.BILLING, "refund", True),
]


# -- PHARMACY --

PHARMACY_PERMISSIONS = [
    ("view-medicines", "View medicine catalogue and stock", PermissionModule.PHARMACY, "view", False),
    ("manage-medicines", "Edit medicines and adjust stock", PermissionModule.PHARMACY, "manage", False),
    ("dispense-medicines", "Dispense medicines against prescriptions", PermissionModule.PHARMACY, "dispense", False),
]


# -- LABORATORY --

LABORATORY_PERMISSIONS = [
    ("view-lab-tests", "View lab test requests", PermissionModule.LABORATORY, "view", False),
    ("create-lab-tests", "Request lab tests", PermissionModule.LABORATORY, "create", False),
    ("enter-lab-results", "Enter lab results", PermissionModule.LABORATORY, "results", False),
    ("verify-lab-results", "Verify and release lab results", PermissionModule.LABORATORY, "verify", False),
]


# -- REPORTS & SYSTEM --

REPORT_PERMISSIONS = [
    ("view-reports", "View operational reports", PermissionModule.REPORTS, "view", False),
    ("export-reports", "Export reports", PermissionModule.REPORTS, "export", False),
]

SYSTEM_PERMISSIONS = [
    ("view-audit-logs", "View audit trail", PermissionModule.SYSTEM, "audit", False),
    ("update-system-settings", "Change system and billing settings", PermissionModule.SYSTEM, "settings", True),
]


PERMISSION_DEFINITIONS = (
    USER_PERMISSIONS
    + PATIENT_PERMISSIONS
    + DOCTOR_PERMISSIONS
    + APPOINTMENT_PERMISSIONS
    + BILLING_PERMISSIONS
    + PHARMACY_PERMISSIONS
    + LABORATORY_PERMISSIONS
    + REPORT_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
