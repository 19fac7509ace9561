"""Create billing and maintenance reminder tables

Revision ID: 20261018_000001
Revises: None
Create Date: 2026-10-18

Users with their billing settings, tenant profiles, electricity bills,
invoices (unique per tenant and month), maintenance tickets and the
append-only ticket event log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TICKET_ACTIONS = (
    'CREATED', 'REMINDER_SENT', 'ACKNOWLEDGED', 'ESCALATED_TO_DAILY',
    'UNRESOLVED_ALERT', 'STATUS_CHANGED', 'REMINDERS_CANCELLED',
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'OWNER', 'TENANT', name='user_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('phone_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('fcm_token', sa.String(512), nullable=True),
        sa.Column('auto_generate_invoices', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('late_fee_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'billing_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('due_day', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('late_fee_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='2'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_billing_settings_owner_id', ondelete='CASCADE'),
    )

    op.create_table(
        'tenant_profiles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('monthly_rent', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='tenant_status'), nullable=False,
                  server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        # NO ACTION: SQL Server rejects two cascading paths from users
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_tenant_profiles_user_id', ondelete='NO ACTION'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_tenant_profiles_owner_id', ondelete='CASCADE'),
    )
    op.create_index('ix_tenant_profiles_user_id', 'tenant_profiles', ['user_id'])
    op.create_index('ix_tenant_profiles_owner_id', 'tenant_profiles', ['owner_id'])
    op.create_index('ix_tenant_profiles_status', 'tenant_profiles', ['status'])

    op.create_table(
        'electricity_bills',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('units_consumed', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='utility_charge_status'),
                  nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_electricity_bills_owner_id', ondelete='NO ACTION'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant_profiles.id'], name='fk_electricity_bills_tenant_id',
                                ondelete='CASCADE'),
    )
    op.create_index('ix_electricity_bills_owner_id', 'electricity_bills', ['owner_id'])
    op.create_index('ix_electricity_bills_tenant_id', 'electricity_bills', ['tenant_id'])
    op.create_index('ix_electricity_bills_month', 'electricity_bills', ['month'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('base_rent', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('electricity_charges', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('other_charges', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('late_fees', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum('DUE', 'PARTIAL', 'PAID', 'OVERDUE', name='invoice_status'),
                  nullable=False, server_default='DUE'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'month', name='uq_invoices_tenant_month'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_invoices_owner_id', ondelete='NO ACTION'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant_profiles.id'], name='fk_invoices_tenant_id',
                                ondelete='CASCADE'),
    )
    op.create_index('ix_invoices_owner_id', 'invoices', ['owner_id'])
    op.create_index('ix_invoices_tenant_id', 'invoices', ['tenant_id'])
    op.create_index('ix_invoices_month', 'invoices', ['month'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'maintenance_tickets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('priority', sa.Enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='ticket_priority'),
                  nullable=False, server_default='MEDIUM'),
        sa.Column('status', sa.Enum('OPEN', 'IN_PROGRESS', 'RESOLVED', 'CLOSED', name='ticket_status'),
                  nullable=False, server_default='OPEN'),
        sa.Column('got_it_by_owner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('got_it_at', sa.DateTime(), nullable=True),
        sa.Column('last_reminder_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_maintenance_tickets_owner_id',
                                ondelete='NO ACTION'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant_profiles.id'], name='fk_maintenance_tickets_tenant_id',
                                ondelete='CASCADE'),
    )
    op.create_index('ix_maintenance_tickets_owner_id', 'maintenance_tickets', ['owner_id'])
    op.create_index('ix_maintenance_tickets_tenant_id', 'maintenance_tickets', ['tenant_id'])
    op.create_index('ix_maintenance_tickets_status', 'maintenance_tickets', ['status'])

    op.create_table(
        'ticket_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ticket_id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.Enum('TENANT', 'OWNER', 'SYSTEM', name='ticket_actor'), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.Enum(*TICKET_ACTIONS, name='ticket_action'), nullable=False),
        sa.Column('text', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['ticket_id'], ['maintenance_tickets.id'], name='fk_ticket_events_ticket_id',
                                ondelete='CASCADE'),
    )
    op.create_index('ix_ticket_events_ticket_id', 'ticket_events', ['ticket_id'])


def downgrade() -> None:
    for table in (
        'ticket_events',
        'maintenance_tickets',
        'invoices',
        'electricity_bills',
        'tenant_profiles',
        'billing_settings',
        'users',
    ):
        op.drop_table(table)
