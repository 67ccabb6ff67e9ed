# Overview: Default permission dependency edges (dependent, prerequisite).

DEFAULT_PERMISSION_DEPENDENCIES = [
    ("create-users", "view-users"),
    ("edit-users", "view-users"),
    ("delete-users", "edit-users"),
    ("manage-roles", "edit-users"),
    ("manage-permissions", "manage-roles"),

    ("create-patients", "view-patients"),
    ("edit-patients", "view-patients"),
    ("delete-patients", "edit-patients"),

    ("edit-doctors", "view-doctors"),
    ("create-appointments", "view-appointments"),
    ("edit-appointments", "view-appointments"),

    ("create-bills", "view-bills"),
    ("edit-bills", "create-bills"),
    ("apply-discounts", "edit-bills"),
    ("record-payments", "view-bills"),
    ("process-insurance", "view-bills"),
    ("void-bills", "edit-bills"),
    ("refund-payments", "record-payments"),

    ("manage-medicines", "view-medicines"),
    ("dispense-medicines", "view-medicines"),

    ("create-lab-tests", "view-lab-tests"),
    ("enter-lab-results", "view-lab-tests"),
    ("verify-lab-results", "enter-lab-results"),

    ("export-reports", "view-reports"),
]
