"""Initial reservation schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create departures table
    op.create_table('departures',
        sa.Column('departure_id', sa.String(length=32), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('product_entity_code', sa.String(length=128), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('booking_cutoff_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('hold_ttl_ms', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(label) > 0', name='ck_departure_label_not_empty'),
        sa.CheckConstraint('hold_ttl_ms > 0', name='ck_departure_hold_ttl_positive'),
        sa.CheckConstraint("status IN ('draft', 'active', 'closed')", name='ck_departure_status_valid'),
        sa.PrimaryKeyConstraint('departure_id')
    )
    op.create_index(op.f('ix_departures_tenant_id'), 'departures', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_departures_product_entity_code'), 'departures', ['product_entity_code'], unique=False)
    op.create_index(op.f('ix_departures_status'), 'departures', ['status'], unique=False)
    op.create_index(op.f('ix_departures_starts_at'), 'departures', ['starts_at'], unique=False)

    # Create departure_resources table
    op.create_table('departure_resources',
        sa.Column('departure_id', sa.String(length=32), nullable=False),
        sa.Column('resource_id', sa.String(length=32), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('resource_type', sa.String(length=32), nullable=False),
        sa.Column('child_entity_code', sa.String(length=128), nullable=False),
        sa.Column('price_override', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('total_capacity', sa.Integer(), nullable=False),
        sa.Column('available', sa.Integer(), nullable=False),
        sa.Column('held', sa.Integer(), nullable=False),
        sa.Column('booked', sa.Integer(), nullable=False),
        sa.CheckConstraint('total_capacity >= 0', name='ck_resource_total_capacity_non_negative'),
        sa.CheckConstraint('available >= 0', name='ck_resource_available_non_negative'),
        sa.CheckConstraint('held >= 0', name='ck_resource_held_non_negative'),
        sa.CheckConstraint('booked >= 0', name='ck_resource_booked_non_negative'),
        sa.CheckConstraint('available + held + booked = total_capacity', name='ck_resource_ledger_balanced'),
        sa.CheckConstraint('price_override IS NULL OR price_override >= 0', name='ck_resource_price_override_non_negative'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.departure_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('departure_id', 'resource_id')
    )

    # Create bookings table
    op.create_table('bookings',
        sa.Column('booking_id', sa.String(length=32), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('departure_id', sa.String(length=32), nullable=False),
        sa.Column('resource_id', sa.String(length=32), nullable=False),
        sa.Column('child_entity_code', sa.String(length=128), nullable=False),
        sa.Column('customer_id', sa.String(length=128), nullable=False),
        sa.Column('order_id', sa.String(length=128), nullable=True),
        sa.Column('departure_label', sa.String(length=255), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('hold_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(length=128), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('hold_job_id', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_booking_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_booking_unit_price_non_negative'),
        sa.CheckConstraint('total_price >= 0', name='ck_booking_total_price_non_negative'),
        sa.CheckConstraint('length(customer_id) > 0', name='ck_booking_customer_id_not_empty'),
        sa.CheckConstraint(
            "status IN ('held', 'confirmed', 'cancelled', 'expired')",
            name='ck_booking_status_valid'
        ),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.departure_id']),
        sa.PrimaryKeyConstraint('booking_id')
    )
    op.create_index(op.f('ix_bookings_tenant_id'), 'bookings', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_bookings_departure_id'), 'bookings', ['departure_id'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'), 'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_starts_at'), 'bookings', ['starts_at'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index('ix_bookings_status_hold_expires_at', 'bookings', ['status', 'hold_expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('bookings')
    op.drop_table('departure_resources')
    op.drop_table('departures')
