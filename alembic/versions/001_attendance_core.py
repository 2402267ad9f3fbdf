"""Attendance core schema: tenants, employees, shifts, holidays, machines,
logs, daily roll-ups and regularization requests

Revision ID: 001_attendance_core
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_attendance_core'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_REQUEST_PREDICATE = "status IN ('draft', 'pending', 'under_review')"


def _created_at():
    # CURRENT_TIMESTAMP works on SQLite and Postgres
    return sa.Column(
        'created_at',
        sa.DateTime(timezone=True),
        server_default=sa.text('CURRENT_TIMESTAMP'),
        nullable=False,
    )


def _updated_at():
    return sa.Column(
        'updated_at',
        sa.DateTime(timezone=True),
        server_default=sa.text('CURRENT_TIMESTAMP'),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_organizations_id'), 'organizations', ['id'], unique=False)
    op.create_index(op.f('ix_organizations_name'), 'organizations', ['name'], unique=True)

    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'name', name='uq_branch_org_name'),
    )
    op.create_index(op.f('ix_branches_id'), 'branches', ['id'], unique=False)
    op.create_index(op.f('ix_branches_organization_id'), 'branches', ['organization_id'], unique=False)

    op.create_table(
        'shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('grace_period_mins', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('full_day_hours', sa.Numeric(4, 2), nullable=False, server_default='8'),
        sa.Column('half_day_threshold_hours', sa.Numeric(4, 2), nullable=False, server_default='4'),
        sa.Column('is_night_shift', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('weekly_offs', sa.JSON(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_shifts_id'), 'shifts', ['id'], unique=False)
    op.create_index(op.f('ix_shifts_organization_id'), 'shifts', ['organization_id'], unique=False)

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('emp_code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='EMPLOYEE'),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('reporting_manager_id', sa.Integer(), nullable=True),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('machine_user_id', sa.String(), nullable=True),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('join_date', sa.Date(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['reporting_manager_id'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'machine_user_id', name='uq_employee_org_machine_user'),
    )
    op.create_index(op.f('ix_employees_id'), 'employees', ['id'], unique=False)
    op.create_index(op.f('ix_employees_emp_code'), 'employees', ['emp_code'], unique=True)
    op.create_index(op.f('ix_employees_organization_id'), 'employees', ['organization_id'], unique=False)
    op.create_index(op.f('ix_employees_branch_id'), 'employees', ['branch_id'], unique=False)

    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'branch_id', 'date', name='uq_holiday_org_branch_date'),
    )
    op.create_index(op.f('ix_holidays_id'), 'holidays', ['id'], unique=False)
    op.create_index(op.f('ix_holidays_organization_id'), 'holidays', ['organization_id'], unique=False)
    op.create_index(op.f('ix_holidays_date'), 'holidays', ['date'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('meta_json', sa.JSON(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['actor_id'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)

    op.create_table(
        'attendance_machines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('serial_number', sa.String(), nullable=False),
        sa.Column('provider_type', sa.String(length=20), nullable=False, server_default='generic'),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('api_key', sa.String(length=80), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('timezone', sa.String(), nullable=False, server_default='Asia/Kolkata'),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_logs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('api_key'),
    )
    op.create_index(op.f('ix_attendance_machines_id'), 'attendance_machines', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_machines_serial_number'), 'attendance_machines', ['serial_number'], unique=True)
    op.create_index(op.f('ix_attendance_machines_organization_id'), 'attendance_machines', ['organization_id'], unique=False)

    op.create_table(
        'attendance_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('target_date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('new_first_in', sa.DateTime(timezone=True), nullable=True),
        sa.Column('new_last_out', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('old_first_in', sa.DateTime(timezone=True), nullable=True),
        sa.Column('old_last_out', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_required', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_approver_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approved_by_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('linked_log_ids', sa.JSON(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['user_id'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['approved_by_id'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by_id'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_attendance_requests_id'), 'attendance_requests', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_requests_user_id'), 'attendance_requests', ['user_id'], unique=False)
    op.create_index(op.f('ix_attendance_requests_organization_id'), 'attendance_requests', ['organization_id'], unique=False)
    op.create_index('ix_attendance_requests_org_status', 'attendance_requests', ['organization_id', 'status'], unique=False)
    # At most one open request per employee and day
    op.create_index(
        'uq_attendance_requests_open_user_date',
        'attendance_requests',
        ['user_id', 'target_date'],
        unique=True,
        sqlite_where=sa.text(OPEN_REQUEST_PREDICATE),
        postgresql_where=sa.text(OPEN_REQUEST_PREDICATE),
    )

    op.create_table(
        'attendance_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('machine_id', sa.Integer(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('server_timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('processing_status', sa.String(length=20), nullable=False, server_default='processed'),
        sa.Column('processing_notes', sa.Text(), nullable=True),
        sa.Column('raw_user_id', sa.String(), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('device_event_key', sa.String(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verification_method', sa.String(), nullable=True),
        sa.Column('verified_by_id', sa.Integer(), nullable=True),
        sa.Column('corrected_by_log_id', sa.Integer(), nullable=True),
        sa.Column('attendance_request_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['machine_id'], ['attendance_machines.id'], ),
        sa.ForeignKeyConstraint(['verified_by_id'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['corrected_by_log_id'], ['attendance_logs.id'], ),
        sa.ForeignKeyConstraint(['attendance_request_id'], ['attendance_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_event_key'),
    )
    op.create_index(op.f('ix_attendance_logs_id'), 'attendance_logs', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_logs_user_id'), 'attendance_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_attendance_logs_organization_id'), 'attendance_logs', ['organization_id'], unique=False)
    op.create_index(op.f('ix_attendance_logs_machine_id'), 'attendance_logs', ['machine_id'], unique=False)
    op.create_index(op.f('ix_attendance_logs_attendance_request_id'), 'attendance_logs', ['attendance_request_id'], unique=False)
    op.create_index('ix_attendance_logs_user_timestamp', 'attendance_logs', ['user_id', 'timestamp'], unique=False)
    op.create_index('ix_attendance_logs_org_status', 'attendance_logs', ['organization_id', 'processing_status'], unique=False)

    op.create_table(
        'attendance_daily',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('first_in', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_out', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_work_hours', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('late_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='present'),
        sa.Column('is_late', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_early_departure', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_overtime', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_half_day', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payout_multiplier', sa.Numeric(3, 1), nullable=False, server_default='1'),
        sa.Column('logs', sa.JSON(), nullable=False),
        sa.Column('attendance_request_id', sa.Integer(), nullable=True),
        sa.Column('verified_by_id', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['user_id'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.ForeignKeyConstraint(['attendance_request_id'], ['attendance_requests.id'], ),
        sa.ForeignKeyConstraint(['verified_by_id'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'date', name='uq_attendance_daily_user_date'),
        sa.CheckConstraint('total_work_hours >= 0', name='ck_attendance_daily_hours_non_negative'),
    )
    op.create_index(op.f('ix_attendance_daily_id'), 'attendance_daily', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_daily_user_id'), 'attendance_daily', ['user_id'], unique=False)
    op.create_index(op.f('ix_attendance_daily_organization_id'), 'attendance_daily', ['organization_id'], unique=False)
    op.create_index(op.f('ix_attendance_daily_date'), 'attendance_daily', ['date'], unique=False)

    op.create_table(
        'attendance_request_approvers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('acted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_admin_override', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['request_id'], ['attendance_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id', 'user_id', name='uq_request_approver_user'),
    )
    op.create_index(op.f('ix_attendance_request_approvers_id'), 'attendance_request_approvers', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_request_approvers_request_id'), 'attendance_request_approvers', ['request_id'], unique=False)
    op.create_index(op.f('ix_attendance_request_approvers_user_id'), 'attendance_request_approvers', ['user_id'], unique=False)

    op.create_table(
        'attendance_request_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('old_status', sa.String(), nullable=True),
        sa.Column('new_status', sa.String(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['request_id'], ['attendance_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['actor_id'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_attendance_request_history_id'), 'attendance_request_history', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_request_history_request_id'), 'attendance_request_history', ['request_id'], unique=False)


def downgrade() -> None:
    op.drop_table('attendance_request_history')
    op.drop_table('attendance_request_approvers')
    op.drop_table('attendance_daily')
    op.drop_table('attendance_logs')
    op.drop_index('uq_attendance_requests_open_user_date', table_name='attendance_requests')
    op.drop_table('attendance_requests')
    op.drop_table('attendance_machines')
    op.drop_table('audit_logs')
    op.drop_table('holidays')
    op.drop_table('employees')
    op.drop_table('shifts')
    op.drop_table('branches')
    op.drop_table('organizations')
