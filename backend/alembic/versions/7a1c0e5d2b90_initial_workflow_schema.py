"""initial_workflow_schema

Revision ID: 7a1c0e5d2b90
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7a1c0e5d2b90'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'departments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('head_user_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_departments_head_user_id', 'departments', ['head_user_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('department_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_department_id', 'users', ['department_id'])

    op.create_table(
        'approval_routes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('department_id', sa.Uuid(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_routes_department_id', 'approval_routes', ['department_id'])

    op.create_table(
        'approval_steps',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('approval_route_id', sa.Uuid(), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('approver_type', sa.String(30), nullable=False),
        sa.Column('approver_id', sa.Uuid(), nullable=True),
        sa.Column('role_name', sa.String(50), nullable=True),
        sa.Column('department_id', sa.Uuid(), nullable=True),
        sa.Column('min_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('max_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('can_delegate', sa.Boolean(), nullable=False),
        sa.Column('auto_approve_if_same_user', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['approval_route_id'], ['approval_routes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('approval_route_id', 'step_number', name='uq_approval_steps_route_step'),
    )
    op.create_index('ix_approval_steps_approval_route_id', 'approval_steps', ['approval_route_id'])

    op.create_table(
        'applications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('department_id', sa.Uuid(), nullable=False),
        sa.Column('applicant_id', sa.Uuid(), nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('priority', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('current_approver_id', sa.Uuid(), nullable=True),
        sa.Column('approval_route_id', sa.Uuid(), nullable=True),
        sa.Column('current_step_number', sa.Integer(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['applicant_id'], ['users.id']),
        sa.ForeignKeyConstraint(['current_approver_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approval_route_id'], ['approval_routes.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_applications_department_id', 'applications', ['department_id'])
    op.create_index('ix_applications_applicant_id', 'applications', ['applicant_id'])
    op.create_index('ix_applications_status', 'applications', ['status'])
    op.create_index('ix_applications_current_approver_id', 'applications', ['current_approver_id'])

    op.create_table(
        'approval_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('application_id', sa.Uuid(), nullable=False),
        sa.Column('approver_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('status_before', sa.String(20), nullable=True),
        sa.Column('status_after', sa.String(20), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        sa.Column('idempotency_key', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'sequence', name='uq_approval_logs_application_sequence'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index('ix_approval_logs_application_id', 'approval_logs', ['application_id'])
    op.create_index('ix_approval_logs_approver_id', 'approval_logs', ['approver_id'])
    op.create_index('ix_approval_logs_created_at', 'approval_logs', ['created_at'])

    op.create_table(
        'workflow_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('application_id', sa.Uuid(), nullable=False),
        sa.Column('recipient_id', sa.Uuid(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_workflow_events_event_type', 'workflow_events', ['event_type'])
    op.create_index('ix_workflow_events_application_id', 'workflow_events', ['application_id'])
    op.create_index('ix_workflow_events_recipient_id', 'workflow_events', ['recipient_id'])


def downgrade() -> None:
    op.drop_table('workflow_events')
    op.drop_table('approval_logs')
    op.drop_table('applications')
    op.drop_table('approval_steps')
    op.drop_table('approval_routes')
    op.drop_table('users')
    op.drop_table('departments')
