"""Initial scheduling schema

Revision ID: 001_initial_scheduling_schema
Revises:
Create Date: 2025-06-02 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_scheduling_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Providers and payers
    op.create_table('providers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_bookable', sa.Boolean(), nullable=False),
        sa.Column('accepts_new_patients', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_providers_flags', 'providers', ['is_active', 'is_bookable'], unique=False)

    op.create_table('payers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('status_code', sa.String(length=40), nullable=True),
        sa.Column('effective_date', sa.Date(), nullable=True),
        sa.Column('projected_effective_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payers_status_code', 'payers', ['status_code'], unique=False)

    # Contracts and supervision
    op.create_table('contracts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=True),
        sa.Column('termination_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_contracts_provider_id', 'contracts', ['provider_id'], unique=False)
    op.create_index('ix_contracts_payer_id', 'contracts', ['payer_id'], unique=False)
    op.create_index('idx_contracts_payer_status', 'contracts', ['payer_id', 'status'], unique=False)
    op.create_index('idx_contracts_pair', 'contracts', ['provider_id', 'payer_id'], unique=False)

    op.create_table('supervision_relationships',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('supervisee_id', sa.Uuid(), nullable=False),
        sa.Column('supervisor_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('designation', sa.String(length=20), nullable=False),
        sa.Column('supervision_level', sa.String(length=40), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('expiration_date', sa.Date(), nullable=True),
        sa.Column('concurrency_cap', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('supervisee_id <> supervisor_id', name='ck_supervision_not_self'),
        sa.ForeignKeyConstraint(['supervisee_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['supervisor_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_supervision_relationships_supervisee_id', 'supervision_relationships', ['supervisee_id'], unique=False)
    op.create_index('ix_supervision_relationships_supervisor_id', 'supervision_relationships', ['supervisor_id'], unique=False)
    op.create_index('ix_supervision_relationships_payer_id', 'supervision_relationships', ['payer_id'], unique=False)
    op.create_index('idx_supervision_payer', 'supervision_relationships', ['payer_id', 'supervisee_id'], unique=False)

    # Service catalog
    op.create_table('services',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('service_instances',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('service_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=True),
        sa.Column('location', sa.String(length=50), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_service_instances_service_id', 'service_instances', ['service_id'], unique=False)
    op.create_index('ix_service_instances_payer_id', 'service_instances', ['payer_id'], unique=False)

    op.create_table('service_instance_integrations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('service_instance_id', sa.Uuid(), nullable=False),
        sa.Column('system', sa.String(length=40), nullable=False),
        sa.Column('external_id', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['service_instance_id'], ['service_instances.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('service_instance_id', 'system', name='uq_service_instance_system')
    )
    op.create_index('idx_service_integrations_instance', 'service_instance_integrations', ['service_instance_id'], unique=False)

    # Availability
    op.create_table('availability_rules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_recurring', sa.Boolean(), nullable=False),
        sa.Column('specific_date', sa.Date(), nullable=True),
        sa.Column('effective_date', sa.Date(), nullable=True),
        sa.Column('expiration_date', sa.Date(), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_availability_rules_provider', 'availability_rules', ['provider_id', 'day_of_week'], unique=False)
    op.create_index('idx_availability_rules_window', 'availability_rules', ['provider_id', 'effective_date', 'expiration_date'], unique=False)

    op.create_table('availability_exceptions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('exception_date', sa.Date(), nullable=False),
        sa.Column('exception_type', sa.String(length=20), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_availability_exceptions_provider_date', 'availability_exceptions', ['provider_id', 'exception_date'], unique=False)

    # Appointments; blocks enforce per-provider time exclusivity
    op.create_table('appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('billing_provider_id', sa.Uuid(), nullable=True),
        sa.Column('payer_id', sa.Uuid(), nullable=True),
        sa.Column('patient_id', sa.Uuid(), nullable=True),
        sa.Column('service_instance_id', sa.Uuid(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('requires_co_visit', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['billing_provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.ForeignKeyConstraint(['service_instance_id'], ['service_instances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_appointments_provider_start', 'appointments', ['provider_id', 'start_time'], unique=False)

    op.create_table('appointment_blocks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('block_start', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_id', 'block_start', name='uq_appointment_blocks_provider_start')
    )
    op.create_index('ix_appointment_blocks_appointment_id', 'appointment_blocks', ['appointment_id'], unique=False)

    # Materialized bookability
    op.create_table('bookability_snapshots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('as_of_date', sa.Date(), nullable=False),
        sa.Column('digest', sa.String(length=64), nullable=False),
        sa.Column('entry_count', sa.Integer(), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.Column('is_stale', sa.Boolean(), nullable=False),
        sa.Column('stale_reason', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payer_id', 'version', name='uq_bookability_snapshots_payer_version')
    )
    op.create_index('idx_bookability_snapshots_current', 'bookability_snapshots', ['payer_id', 'is_current'], unique=False)
    op.create_index('uq_bookability_snapshots_one_current', 'bookability_snapshots', ['payer_id'], unique=True,
                    postgresql_where=sa.text('is_current'), sqlite_where=sa.text('is_current'))

    op.create_table('bookable_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('snapshot_id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('via', sa.String(length=20), nullable=False),
        sa.Column('billing_provider_id', sa.Uuid(), nullable=False),
        sa.Column('rendering_provider_id', sa.Uuid(), nullable=True),
        sa.Column('requires_co_visit', sa.Boolean(), nullable=False),
        sa.Column('bookable_from_date', sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(['snapshot_id'], ['bookability_snapshots.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('snapshot_id', 'provider_id', name='uq_bookable_entries_snapshot_provider')
    )
    op.create_index('idx_bookable_entries_payer_provider', 'bookable_entries', ['payer_id', 'provider_id'], unique=False)

    # Credentialing
    op.create_table('payer_credentialing_workflows',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('workflow_type', sa.String(length=50), nullable=False),
        sa.Column('task_templates', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payer_id')
    )

    op.create_table('provider_payer_applications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('application_status', sa.String(length=30), nullable=False),
        sa.Column('workflow_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_applications_pair', 'provider_payer_applications', ['provider_id', 'payer_id'], unique=False)

    op.create_table('credentialing_tasks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('application_id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=False),
        sa.Column('task_type', sa.String(length=50), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('task_status', sa.String(length=20), nullable=False),
        sa.Column('task_order', sa.Integer(), nullable=False),
        sa.Column('estimated_days', sa.Integer(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('completed_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['provider_payer_applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['payer_id'], ['payers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_credentialing_tasks_pair_order', 'credentialing_tasks', ['provider_id', 'payer_id', 'task_order'], unique=False)


def downgrade() -> None:
    op.drop_table('credentialing_tasks')
    op.drop_table('provider_payer_applications')
    op.drop_table('payer_credentialing_workflows')
    op.drop_table('bookable_entries')
    op.drop_table('bookability_snapshots')
    op.drop_table('appointment_blocks')
    op.drop_table('appointments')
    op.drop_table('availability_exceptions')
    op.drop_table('availability_rules')
    op.drop_table('service_instance_integrations')
    op.drop_table('service_instances')
    op.drop_table('services')
    op.drop_table('supervision_relationships')
    op.drop_table('contracts')
    op.drop_table('payers')
    op.drop_table('providers')
