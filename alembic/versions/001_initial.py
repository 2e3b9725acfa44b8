"""Initial migration - leads, activities and sequence automation tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_ENROLLMENT_PREDICATE = sa.text("status IN ('active', 'paused')")


def upgrade() -> None:
    # Enums are stored as their string values (native_enum=False on the models)
    op.create_table(
        'leads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='new'),
        sa.Column('intent', sa.String(length=32), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('budget_min', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('budget_max', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('preferences', sa.JSON(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('last_interaction_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leads_email'), 'leads', ['email'], unique=False)
    op.create_index(op.f('ix_leads_phone'), 'leads', ['phone'], unique=False)
    op.create_index('ix_leads_status_score', 'leads', ['status', 'score'], unique=False)
    op.create_index('ix_leads_last_interaction', 'leads', ['last_interaction_at'], unique=False)

    op.create_table(
        'lead_activities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_lead_activities_lead_id'), 'lead_activities', ['lead_id'], unique=False)
    op.create_index('ix_lead_activities_lead_created', 'lead_activities', ['lead_id', 'created_at'], unique=False)
    op.create_index('ix_lead_activities_type_created', 'lead_activities', ['type', 'created_at'], unique=False)

    op.create_table(
        'sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(length=32), nullable=False),
        sa.Column('trigger_conditions', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sequences_trigger_active', 'sequences', ['trigger_type', 'is_active'], unique=False)

    op.create_table(
        'sequence_steps',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sequence_id', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('action_type', sa.String(length=32), nullable=False),
        sa.Column('action_config', sa.JSON(), nullable=False),
        sa.Column('delay_hours', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['sequence_id'], ['sequences.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sequence_steps_sequence_id'), 'sequence_steps', ['sequence_id'], unique=False)
    op.create_index('ix_sequence_steps_sequence_order', 'sequence_steps', ['sequence_id', 'order'], unique=False)

    op.create_table(
        'lead_sequence_enrollments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('sequence_id', sa.Integer(), nullable=False),
        sa.Column('current_step_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('next_action_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sequence_id'], ['sequences.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['current_step_id'], ['sequence_steps.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_lead_sequence_enrollments_lead_id'), 'lead_sequence_enrollments', ['lead_id'], unique=False)
    op.create_index(op.f('ix_lead_sequence_enrollments_sequence_id'), 'lead_sequence_enrollments', ['sequence_id'], unique=False)
    op.create_index(
        'ix_enrollments_status_next_action',
        'lead_sequence_enrollments',
        ['status', 'next_action_at'],
        unique=False,
    )
    # At most one active/paused enrollment per (lead, sequence)
    op.create_index(
        'uq_enrollments_open_lead_sequence',
        'lead_sequence_enrollments',
        ['lead_id', 'sequence_id'],
        unique=True,
        postgresql_where=OPEN_ENROLLMENT_PREDICATE,
        sqlite_where=OPEN_ENROLLMENT_PREDICATE,
    )

    op.create_table(
        'sequence_execution_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('enrollment_id', sa.Integer(), nullable=False),
        sa.Column('step_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('action_type', sa.String(length=32), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['enrollment_id'], ['lead_sequence_enrollments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['step_id'], ['sequence_steps.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sequence_execution_logs_enrollment_id'), 'sequence_execution_logs', ['enrollment_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_sequence_execution_logs_enrollment_id'), table_name='sequence_execution_logs')
    op.drop_table('sequence_execution_logs')

    op.drop_index('uq_enrollments_open_lead_sequence', table_name='lead_sequence_enrollments')
    op.drop_index('ix_enrollments_status_next_action', table_name='lead_sequence_enrollments')
    op.drop_index(op.f('ix_lead_sequence_enrollments_sequence_id'), table_name='lead_sequence_enrollments')
    op.drop_index(op.f('ix_lead_sequence_enrollments_lead_id'), table_name='lead_sequence_enrollments')
    op.drop_table('lead_sequence_enrollments')

    op.drop_index('ix_sequence_steps_sequence_order', table_name='sequence_steps')
    op.drop_index(op.f('ix_sequence_steps_sequence_id'), table_name='sequence_steps')
    op.drop_table('sequence_steps')

    op.drop_index('ix_sequences_trigger_active', table_name='sequences')
    op.drop_table('sequences')

    op.drop_index('ix_lead_activities_type_created', table_name='lead_activities')
    op.drop_index('ix_lead_activities_lead_created', table_name='lead_activities')
    op.drop_index(op.f('ix_lead_activities_lead_id'), table_name='lead_activities')
    op.drop_table('lead_activities')

    op.drop_index('ix_leads_last_interaction', table_name='leads')
    op.drop_index('ix_leads_status_score', table_name='leads')
    op.drop_index(op.f('ix_leads_phone'), table_name='leads')
    op.drop_index(op.f('ix_leads_email'), table_name='leads')
    op.drop_table('leads')
