"""initial schema: authorization, billing, audit

Revision ID: hms001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the HMS core schema from scratch:
- roles / users: hierarchical roles with priority, MFA and session policy
- permissions, permission_dependencies: catalogue and prerequisite edges
- role_permission_mappings: normalized Role -> Permission grants
- role_permissions: legacy grants keyed by role name
- user_permissions / temporary_permissions: per-user overrides and time-bounded grants
- bills, bill_items, payments: billing aggregate (version_id for optimistic locking)
- insurance_providers, patient_insurances, billing_settings
- audit_events: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'hms001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _money(name, nullable=False):
    if nullable:
        return sa.Column(name, sa.Numeric(12, 2), nullable=True)
    return sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default='0')


def upgrade():
    """
    Create all tables.

    WHY: Role rows must exist before users reference them, and permissions
    before any grant table. Bills reference both users and patient policies.
    """

    # ============================================================================
    # roles: priority-ordered hierarchy (single parent)
    # ============================================================================
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('slug', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('parent_role_id', sa.Integer(), nullable=True),
        sa.Column('module_access', sa.JSON(), nullable=True),
        sa.Column('data_visibility_scope', sa.JSON(), nullable=True),
        sa.Column('mfa_required', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('mfa_grace_period_days', sa.Integer(), nullable=True),
        sa.Column('session_timeout_minutes', sa.Integer(), nullable=False, server_default='120'),
        sa.Column('concurrent_session_limit', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['parent_role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_roles_slug', 'roles', ['slug'], unique=True)
    op.create_index('ix_roles_priority', 'roles', ['priority'])

    # ============================================================================
    # users: legacy role name plus normalized role_id
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=64), nullable=True),
        sa.Column('role_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])

    # ============================================================================
    # permissions + dependency edges
    # ============================================================================
    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('module', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('is_critical', sa.Boolean(), nullable=False, server_default='0'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_permissions_name', 'permissions', ['name'], unique=True)
    op.create_index('ix_permissions_module', 'permissions', ['module'])

    op.create_table(
        'permission_dependencies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('depends_on_permission_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['depends_on_permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('permission_id', 'depends_on_permission_id', name='uq_permission_dependencies'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_permission_dependencies_permission_id', 'permission_dependencies', ['permission_id'])

    # ============================================================================
    # grants: normalized, legacy, per-user override, temporary
    # ============================================================================
    op.create_table(
        'role_permission_mappings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        _timestamp('granted_at'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission_mappings'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_permission_mappings_role_id', 'role_permission_mappings', ['role_id'])
    op.create_index('ix_role_permission_mappings_permission_id', 'role_permission_mappings', ['permission_id'])

    # Legacy table keyed by role name; users without role_id resolve here
    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=64), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role', 'permission_id', name='uq_legacy_role_permissions'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_permissions_role', 'role_permissions', ['role'])
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])

    op.create_table(
        'user_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('allowed', sa.Boolean(), nullable=False),
        sa.Column('granted_by_user_id', sa.Integer(), nullable=True),
        _timestamp('granted_at'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['granted_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'permission_id', name='uq_user_permissions'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_permissions_user_id', 'user_permissions', ['user_id'])
    op.create_index('ix_user_permissions_permission_id', 'user_permissions', ['permission_id'])

    op.create_table(
        'temporary_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('granted_by_user_id', sa.Integer(), nullable=True),
        _timestamp('granted_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['granted_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_temporary_permissions_user_id', 'temporary_permissions', ['user_id'])
    op.create_index('ix_temporary_permissions_permission_id', 'temporary_permissions', ['permission_id'])
    op.create_index('ix_temporary_permissions_expires_at', 'temporary_permissions', ['expires_at'])
    op.create_index('ix_temporary_permissions_user_active', 'temporary_permissions', ['user_id', 'is_active'])

    # ============================================================================
    # insurance
    # ============================================================================
    op.create_table(
        'insurance_providers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'patient_insurances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=True),
        sa.Column('insurance_provider_id', sa.Integer(), nullable=False),
        sa.Column('policy_number', sa.String(length=64), nullable=True),
        _money('deductible_amount'),
        _money('deductible_met'),
        _money('co_pay_amount'),
        sa.Column('co_pay_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('annual_max_coverage'),
        _money('annual_used_amount'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('coverage_start_date', sa.Date(), nullable=True),
        sa.Column('coverage_end_date', sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(['insurance_provider_id'], ['insurance_providers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_patient_insurances_patient_id', 'patient_insurances', ['patient_id'])

    # ============================================================================
    # bills: derived totals kept consistent by billing_service
    # ============================================================================
    # WHY version_id: optimistic locking on top of SELECT ... FOR UPDATE, so
    # a concurrent writer on databases without row locks still conflicts.
    op.create_table(
        'bills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_number', sa.String(length=32), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=True),
        _money('sub_total'),
        _money('discount'),
        _money('total_discount'),
        _money('tax'),
        _money('total_tax'),
        _money('total_amount'),
        _money('amount_paid'),
        _money('amount_due'),
        _money('balance_due'),
        sa.Column('bill_discount_type', sa.String(length=16), nullable=True),
        _money('bill_discount_value', nullable=True),
        _money('bill_discount_amount'),
        sa.Column('tax_rate', sa.Numeric(6, 2), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('primary_insurance_id', sa.Integer(), nullable=True),
        _money('insurance_claim_amount', nullable=True),
        _money('patient_responsibility', nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['primary_insurance_id'], ['patient_insurances.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bills_bill_number', 'bills', ['bill_number'], unique=True)
    op.create_index('ix_bills_patient_id', 'bills', ['patient_id'])
    op.create_index('ix_bills_payment_status', 'bills', ['payment_status'])
    op.create_index('ix_bills_patient_status', 'bills', ['patient_id', 'payment_status'])

    op.create_table(
        'bill_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('item_type', sa.String(length=32), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        _money('discount_amount'),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bill_items_bill_id', 'bill_items', ['bill_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='cash'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('received_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.ForeignKeyConstraint(['received_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_bill_id', 'payments', ['bill_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'billing_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=True),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # audit_events: append-only
    # ============================================================================
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('target_type', sa.String(length=32), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('outcome', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_events_actor_user_id', 'audit_events', ['actor_user_id'])
    op.create_index('ix_audit_events_action', 'audit_events', ['action'])
    op.create_index('ix_audit_events_outcome', 'audit_events', ['outcome'])
    op.create_index('ix_audit_events_occurred_at', 'audit_events', ['occurred_at'])
    op.create_index('ix_audit_events_actor_action', 'audit_events', ['actor_user_id', 'action'])
    op.create_index('ix_audit_events_target', 'audit_events', ['target_type', 'target_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('audit_events')
    op.drop_table('billing_settings')
    op.drop_table('payments')
    op.drop_table('bill_items')
    op.drop_table('bills')
    op.drop_table('patient_insurances')
    op.drop_table('insurance_providers')
    op.drop_table('temporary_permissions')
    op.drop_table('user_permissions')
    op.drop_table('role_permissions')
    op.drop_table('role_permission_mappings')
    op.drop_table('permission_dependencies')
    op.drop_table('permissions')
    op.drop_table('users')
    op.drop_table('roles')
