# Overview: Module names used to group permissions and gate module access.


class PermissionModule:
    """Hospital modules. Role.module_access lists these (or "*")."""
    USERS = "users"
    PATIENTS = "patients"
    DOCTORS = "doctors"
    APPOINTMENTS = "appointments"
    BILLING = "billing"
    PHARMACY = "pharmacy"
    LABORATORY = "laboratory"
    REPORTS = "reports"
    SYSTEM = "system"


WILDCARD_MODULE = "*"
