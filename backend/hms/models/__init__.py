from .auth import (
    User,
    Role,
    Permission,
    RolePermission,
    LegacyRolePermission,
    PermissionDependency,
    UserPermission,
    TemporaryPermission,
)
from .billing import Bill, BillItem, Payment, InsuranceProvider, PatientInsurance, BillingSetting
from .audit import AuditEvent

__all__ = [
    'User', 'Role', 'Permission', 'RolePermission', 'LegacyRolePermission',
    'PermissionDependency', 'UserPermission', 'TemporaryPermission',
    'Bill', 'BillItem', 'Payment', 'InsuranceProvider', 'PatientInsurance', 'BillingSetting',
    'AuditEvent',
]
