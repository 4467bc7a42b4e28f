"""
Alembic migration: Create upfit order tables.

Creates the upfit_orders table, the upfit_order_events audit trail, the
upfit_order_notes annotations and the sequence_counters table backing
stock-number and VIN serial generation.

Revision ID: 001
Revises:
Create Date: 2025-01-06 09:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = (
    'CONFIG_RECEIVED',
    'OEM_ALLOCATED',
    'OEM_PRODUCTION',
    'OEM_IN_TRANSIT',
    'AT_UPFITTER',
    'UPFIT_IN_PROGRESS',
    'READY_FOR_DELIVERY',
    'DELIVERED',
    'CANCELED',
)


def upgrade() -> None:
    """
    Create the order tables with their indexes and constraints.
    """
    op.create_table(
        'upfit_orders',
        sa.Column('id', sa.String(32), primary_key=True, comment='Order identifier'),
        sa.Column('dealer_code', sa.String(50), nullable=False, comment='Ordering dealer code'),
        sa.Column('upfitter_id', sa.String(50), nullable=True, comment='Upfitter identifier'),
        sa.Column(
            'status',
            sa.Enum(*ORDER_STATUSES, name='upfit_order_status', create_constraint=True),
            nullable=False,
            comment='Current fulfillment status',
        ),
        sa.Column('oem_eta', sa.DateTime(timezone=True), nullable=True),
        sa.Column('upfitter_eta', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivery_eta', sa.DateTime(timezone=True), nullable=True),
        sa.Column('original_delivery_eta', sa.DateTime(timezone=True), nullable=True),
        sa.Column('build', postgresql.JSONB(), nullable=False, comment='Build configuration snapshot'),
        sa.Column('pricing', postgresql.JSONB(), nullable=True, comment='Pricing snapshot'),
        sa.Column(
            'inventory_status',
            sa.Enum('STOCK', 'SOLD', name='upfit_inventory_status', create_constraint=True),
            nullable=False,
            comment='STOCK or SOLD',
        ),
        sa.Column('buyer_name', sa.String(255), nullable=False, server_default=''),
        sa.Column(
            'dealer_website_status',
            sa.Enum(
                'DRAFT',
                'PUBLISHED',
                'UNPUBLISHED',
                name='upfit_dealer_website_status',
                create_constraint=True,
            ),
            nullable=False,
            comment='Listing state on the dealer website',
        ),
        sa.Column('listing_status', sa.String(20), nullable=True, comment='Legacy listing mirror'),
        sa.Column('stock_number', sa.String(9), nullable=False, comment='9-digit stock number, repeats after 1000 orders per prefix'),
        sa.Column('vin', sa.String(17), nullable=False, server_default=''),
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "buyer_name = '' OR inventory_status = 'SOLD'",
            name='ck_upfit_orders_buyer_requires_sold',
        ),
        comment='Upfit orders moving through the fulfillment pipeline',
    )

    op.create_index('ix_upfit_orders_dealer_code', 'upfit_orders', ['dealer_code'])
    op.create_index('ix_upfit_orders_upfitter_id', 'upfit_orders', ['upfitter_id'])
    op.create_index('ix_upfit_orders_status', 'upfit_orders', ['status'])
    op.create_index('ix_upfit_orders_delivery_eta', 'upfit_orders', ['delivery_eta'])
    op.create_index('ix_upfit_orders_vin', 'upfit_orders', ['vin'])
    op.create_index('ix_upfit_orders_stock_number', 'upfit_orders', ['stock_number'])
    op.create_index('ix_upfit_orders_created_at_id', 'upfit_orders', ['created_at', 'id'])
    op.create_index('ix_upfit_orders_dealer_status', 'upfit_orders', ['dealer_code', 'status'])

    op.create_table(
        'upfit_order_events',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column(
            'order_id',
            sa.String(32),
            sa.ForeignKey('upfit_orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('from_status', sa.String(30), nullable=False, server_default=''),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_upfit_order_events_order_id', 'upfit_order_events', ['order_id'])
    op.create_index('ix_upfit_order_events_order_at', 'upfit_order_events', ['order_id', 'at'])

    op.create_table(
        'upfit_order_notes',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column(
            'order_id',
            sa.String(32),
            sa.ForeignKey('upfit_orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('user', sa.String(255), nullable=False, server_default='system'),
        sa.Column('at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_upfit_order_notes_order_id', 'upfit_order_notes', ['order_id'])

    op.create_table(
        'sequence_counters',
        sa.Column('name', sa.String(50), primary_key=True),
        sa.Column('value', sa.BigInteger(), nullable=False),
    )


def downgrade() -> None:
    """
    Drop the order tables and their enum types.
    """
    op.drop_table('sequence_counters')

    op.drop_index('ix_upfit_order_notes_order_id', table_name='upfit_order_notes')
    op.drop_table('upfit_order_notes')

    op.drop_index('ix_upfit_order_events_order_at', table_name='upfit_order_events')
    op.drop_index('ix_upfit_order_events_order_id', table_name='upfit_order_events')
    op.drop_table('upfit_order_events')

    for index_name in (
        'ix_upfit_orders_dealer_status',
        'ix_upfit_orders_created_at_id',
        'ix_upfit_orders_stock_number',
        'ix_upfit_orders_vin',
        'ix_upfit_orders_delivery_eta',
        'ix_upfit_orders_status',
        'ix_upfit_orders_upfitter_id',
        'ix_upfit_orders_dealer_code',
    ):
        op.drop_index(index_name, table_name='upfit_orders')
    op.drop_table('upfit_orders')

    op.execute('DROP TYPE IF EXISTS upfit_dealer_website_status')
    op.execute('DROP TYPE IF EXISTS upfit_inventory_status')
    op.execute('DROP TYPE IF EXISTS upfit_order_status')
