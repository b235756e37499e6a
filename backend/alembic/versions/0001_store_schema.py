"""Store schema: profiles, catalog, orders, subscriptions, webhook bookkeeping

Revision ID: 0001_store_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_store_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


OWNED_TABLES = ('orders', 'unified_subscriptions')
SERVICE_ONLY_TABLES = ('order_items', 'subscription_payments', 'webhook_logs', 'processed_webhook_events')


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), index=True),
        sa.Column('full_name', sa.String(200)),
        sa.Column('phone', sa.String(30)),
        sa.Column('role', sa.String(20), server_default='user', nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(200), nullable=False, unique=True, index=True),
        sa.Column('description', sa.Text),
        sa.Column('price', sa.Float, nullable=False),
        sa.Column('image', sa.String(500)),
        sa.Column('category', sa.String(100), index=True),
        sa.Column('stock', sa.Integer, server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('subscription_available', sa.Boolean, server_default='false', nullable=False),

        # Per-period subscription discounts (percent)
        sa.Column('weekly_discount', sa.Float),
        sa.Column('biweekly_discount', sa.Float),
        sa.Column('monthly_discount', sa.Float),
        sa.Column('quarterly_discount', sa.Float),
        sa.Column('annual_discount', sa.Float),
        *_timestamps(),
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('order_number', sa.String(40), index=True),
        sa.Column('external_reference', sa.String(64), unique=True, index=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False, index=True),
        sa.Column('payment_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('subtotal', sa.Float, server_default='0', nullable=False),
        sa.Column('shipping_cost', sa.Float, server_default='0', nullable=False),
        sa.Column('total', sa.Float, server_default='0', nullable=False),
        sa.Column('currency', sa.String(3), server_default='MXN', nullable=False),
        sa.Column('customer_email', sa.String(255)),
        sa.Column('customer_name', sa.String(200)),
        sa.Column('customer_phone', sa.String(30)),
        sa.Column('shipping_address', sa.JSON),

        # Gateway identifiers
        sa.Column('mercadopago_preference_id', sa.String(100)),
        sa.Column('mercadopago_payment_id', sa.String(100), index=True),
        sa.Column('stripe_session_id', sa.String(255), index=True),
        sa.Column('stripe_payment_intent_id', sa.String(255)),

        sa.Column('confirmed_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
            index=True,
        ),
        sa.Column('product_id', sa.Integer),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('product_image', sa.String(500)),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('price', sa.Float, server_default='0', nullable=False),
        sa.Column('size', sa.String(50)),
    )

    op.create_table(
        'unified_subscriptions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('product_id', sa.Integer, index=True),
        sa.Column('product_name', sa.String(200)),
        sa.Column('customer_email', sa.String(255)),
        sa.Column('size', sa.String(50)),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False, index=True),
        sa.Column('subscription_type', sa.String(20), server_default='monthly', nullable=False),
        sa.Column('frequency', sa.Integer, server_default='1', nullable=False),
        sa.Column('frequency_type', sa.String(10), server_default='months', nullable=False),

        # Pricing
        sa.Column('base_price', sa.Float, server_default='0', nullable=False),
        sa.Column('discount_percentage', sa.Float, server_default='0', nullable=False),
        sa.Column('discounted_price', sa.Float, server_default='0', nullable=False),
        sa.Column('transaction_amount', sa.Float, server_default='0', nullable=False),
        sa.Column('currency', sa.String(3), server_default='MXN', nullable=False),

        # Gateway correlation
        sa.Column('external_reference', sa.String(64), nullable=False, unique=True, index=True),
        sa.Column('mercadopago_subscription_id', sa.String(100), index=True),
        sa.Column('mercadopago_payment_id', sa.String(100)),
        sa.Column('stripe_subscription_id', sa.String(255), index=True),
        sa.Column('stripe_customer_id', sa.String(255)),

        # Billing schedule
        sa.Column('next_billing_date', sa.DateTime(timezone=True), index=True),
        sa.Column('last_billing_date', sa.DateTime(timezone=True)),
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default='false', nullable=False),
        sa.Column('charges_made', sa.Integer, server_default='0', nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True)),
        sa.Column('last_sync_at', sa.DateTime(timezone=True)),
        sa.Column('metadata', sa.JSON),
        *_timestamps(),
    )

    # Billing loop query: active and due
    op.create_index(
        'ix_unified_subscriptions_status_next_billing',
        'unified_subscriptions',
        ['status', 'next_billing_date'],
    )

    op.create_table(
        'subscription_payments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'subscription_id',
            sa.Integer,
            sa.ForeignKey('unified_subscriptions.id'),
            nullable=False,
            index=True,
        ),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('amount', sa.Float, server_default='0', nullable=False),
        sa.Column('currency', sa.String(3), server_default='MXN', nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True)),
        sa.Column('external_reference', sa.String(100)),
        sa.Column('error', sa.Text),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('gateway', sa.String(20), nullable=False, index=True),
        sa.Column('event_id', sa.String(255)),
        sa.Column('event_type', sa.String(100)),
        sa.Column('action', sa.String(100)),
        sa.Column('data_id', sa.String(255)),
        sa.Column('payload', sa.JSON),
        sa.Column('status', sa.String(20), server_default='received', nullable=False, index=True),
        sa.Column('error', sa.Text),
        sa.Column('processing_time_ms', sa.Integer),
        *_timestamps(),
    )

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )

    # Enable RLS; the backend connects as the table owner and bypasses it
    for table in ('profiles', 'products', *OWNED_TABLES, *SERVICE_ONLY_TABLES):
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')

    op.execute("""
        CREATE POLICY "Anyone can view active products"
        ON products FOR SELECT
        TO anon, authenticated
        USING (is_active)
    """)
    op.execute("""
        CREATE POLICY "Users can view own profile"
        ON profiles FOR SELECT
        TO authenticated
        USING (id = auth.uid())
    """)
    for table in OWNED_TABLES:
        op.execute(f"""
            CREATE POLICY "Users can view own {table}"
            ON {table} FOR SELECT
            TO authenticated
            USING (user_id = auth.uid())
        """)


def downgrade() -> None:
    for table in OWNED_TABLES:
        op.execute(f'DROP POLICY IF EXISTS "Users can view own {table}" ON {table}')
    op.execute('DROP POLICY IF EXISTS "Users can view own profile" ON profiles')
    op.execute('DROP POLICY IF EXISTS "Anyone can view active products" ON products')

    op.drop_index('ix_processed_webhook_events_processed_at')
    op.drop_table('processed_webhook_events')
    op.drop_table('webhook_logs')
    op.drop_table('subscription_payments')
    op.drop_index('ix_unified_subscriptions_status_next_billing')
    op.drop_table('unified_subscriptions')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('profiles')
