"""initial booking schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'services',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('base_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('services', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_services_tenant_id'), ['tenant_id'], unique=False)

    op.create_table(
        'customers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'phone', name='uq_customer_tenant_phone')
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_tenant_id'), ['tenant_id'], unique=False)

    op.create_table(
        'slots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('total_capacity', sa.Integer(), nullable=False),
        sa.Column('remaining_capacity', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('total_capacity >= 0', name='ck_slot_total_capacity'),
        sa.CheckConstraint(
            'remaining_capacity >= 0 AND remaining_capacity <= total_capacity',
            name='ck_slot_remaining_capacity'
        ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('service_id', 'start_time', 'end_time', name='uq_service_timeslot')
    )
    with op.batch_alter_table('slots', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_slots_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_slots_service_id'), ['service_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_slots_start_time'), ['start_time'], unique=False)

    op.create_table(
        'booking_locks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.String(length=120), nullable=False),
        sa.Column('reserved_capacity', sa.Integer(), nullable=False),
        sa.Column('lock_expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('reserved_capacity >= 1', name='ck_lock_reserved_capacity'),
        sa.ForeignKeyConstraint(['slot_id'], ['slots.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('booking_locks', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_booking_locks_slot_id'), ['slot_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_locks_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_locks_lock_expires_at'), ['lock_expires_at'], unique=False)
        batch_op.create_index('ix_booking_locks_slot_expires', ['slot_id', 'lock_expires_at'], unique=False)

    op.create_table(
        'service_packages',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('service_packages', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_service_packages_tenant_id'), ['tenant_id'], unique=False)

    op.create_table(
        'package_services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('package_id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('capacity_total', sa.Integer(), nullable=False),
        sa.CheckConstraint('capacity_total >= 1', name='ck_package_service_capacity'),
        sa.ForeignKeyConstraint(['package_id'], ['service_packages.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('package_id', 'service_id', name='uq_package_service')
    )
    with op.batch_alter_table('package_services', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_package_services_package_id'), ['package_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_package_services_service_id'), ['service_id'], unique=False)

    op.create_table(
        'package_subscriptions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=36), nullable=False),
        sa.Column('package_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('subscribed_at', sa.DateTime(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('invoice_id', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['package_id'], ['service_packages.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('package_subscriptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_package_subscriptions_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_package_subscriptions_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_package_subscriptions_package_id'), ['package_id'], unique=False)
        batch_op.create_index(
            'ix_package_subscriptions_customer_active', ['customer_id', 'status', 'is_active'], unique=False
        )

    op.create_table(
        'package_subscription_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('original_quantity', sa.Integer(), nullable=False),
        sa.Column('used_quantity', sa.Integer(), nullable=False),
        sa.Column('remaining_quantity', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            'remaining_quantity = original_quantity - used_quantity', name='ck_usage_ledger_balance'
        ),
        sa.CheckConstraint(
            'remaining_quantity >= 0 AND remaining_quantity <= original_quantity',
            name='ck_usage_remaining_bounds'
        ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['subscription_id'], ['package_subscriptions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subscription_id', 'service_id', name='uq_usage_subscription_service')
    )
    with op.batch_alter_table('package_subscription_usage', schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f('ix_package_subscription_usage_subscription_id'), ['subscription_id'], unique=False
        )
        batch_op.create_index(batch_op.f('ix_package_subscription_usage_service_id'), ['service_id'], unique=False)

    op.create_table(
        'package_exhaustion_notifications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('subscription_id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('notified_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['subscription_id'], ['package_subscriptions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subscription_id', 'service_id', name='uq_exhaustion_subscription_service')
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=36), nullable=True),
        sa.Column('customer_name', sa.String(length=160), nullable=False),
        sa.Column('customer_phone', sa.String(length=30), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('visitor_count', sa.Integer(), nullable=False),
        sa.Column('adult_count', sa.Integer(), nullable=False),
        sa.Column('child_count', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('package_covered_quantity', sa.Integer(), nullable=False),
        sa.Column('paid_quantity', sa.Integer(), nullable=False),
        sa.Column('package_subscription_id', sa.String(length=36), nullable=True),
        sa.Column('offer_id', sa.String(length=36), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('language', sa.String(length=5), nullable=False),
        sa.Column('created_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('invoice_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('visitor_count = adult_count + child_count', name='ck_booking_visitor_split'),
        sa.CheckConstraint(
            'visitor_count = package_covered_quantity + paid_quantity', name='ck_booking_coverage_split'
        ),
        sa.CheckConstraint(
            'package_covered_quantity >= 0 AND paid_quantity >= 0', name='ck_booking_coverage_non_negative'
        ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['package_subscription_id'], ['package_subscriptions.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['slot_id'], ['slots.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bookings_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_service_id'), ['service_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_slot_id'), ['slot_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(
            batch_op.f('ix_bookings_package_subscription_id'), ['package_subscription_id'], unique=False
        )

    op.create_table(
        'booking_package_allocations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=False),
        sa.Column('subscription_id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_allocation_quantity'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['subscription_id'], ['package_subscriptions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'subscription_id', name='uq_allocation_booking_subscription')
    )
    with op.batch_alter_table('booking_package_allocations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_booking_package_allocations_booking_id'), ['booking_id'], unique=False)
        batch_op.create_index(
            batch_op.f('ix_booking_package_allocations_subscription_id'), ['subscription_id'], unique=False
        )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=80), nullable=False),
        sa.Column('entity', sa.String(length=80), nullable=True),
        sa.Column('entity_id', sa.String(length=80), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_tenant_id'), ['tenant_id'], unique=False)


def downgrade():
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_audit_logs_tenant_id'))
    op.drop_table('audit_logs')

    op.drop_table('booking_package_allocations')
    op.drop_table('bookings')
    op.drop_table('package_exhaustion_notifications')
    op.drop_table('package_subscription_usage')
    op.drop_table('package_subscriptions')
    op.drop_table('package_services')
    op.drop_table('service_packages')
    op.drop_table('booking_locks')
    op.drop_table('slots')
    op.drop_table('customers')
    op.drop_table('services')
    op.drop_table('tenants')
