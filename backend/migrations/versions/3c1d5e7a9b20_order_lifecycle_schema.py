"""order lifecycle schema

Revision ID: 3c1d5e7a9b20
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c1d5e7a9b20'
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(insp, name):
    return name in set(insp.get_table_names())


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not _table_exists(insp, 'users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('full_name', sa.String(length=120), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('phone', sa.String(length=32), nullable=True),
            sa.Column('avatar', sa.String(length=1024), nullable=True),
            sa.Column('role', sa.String(length=32), nullable=False, server_default='customer'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    if not _table_exists(insp, 'addresses'):
        op.create_table(
            'addresses',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('phone', sa.String(length=32), nullable=False),
            sa.Column('address', sa.String(length=500), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('name', 'phone', 'address', name='uq_addresses_name_phone_address'),
        )

    if not _table_exists(insp, 'user_addresses'):
        op.create_table(
            'user_addresses',
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), primary_key=True),
            sa.Column('address_id', sa.Integer(), sa.ForeignKey('addresses.id'), primary_key=True),
        )

    if not _table_exists(insp, 'books'):
        op.create_table(
            'books',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('price', sa.Float(), nullable=False, server_default='0'),
            sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('sold_quantity', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )

    if not _table_exists(insp, 'cart_items'):
        op.create_table(
            'cart_items',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_cart_items_user_id', 'cart_items', ['user_id'])
        op.create_index('ix_cart_items_book_id', 'cart_items', ['book_id'])

    if not _table_exists(insp, 'orders'):
        op.create_table(
            'orders',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('address_id', sa.Integer(), sa.ForeignKey('addresses.id'), nullable=True),
            sa.Column('status', sa.String(length=24), nullable=False, server_default='PENDING'),
            sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='COD'),
            sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='NOT_PAID'),
            sa.Column('order_date', sa.DateTime(), nullable=False),
            sa.Column('payment_date', sa.DateTime(), nullable=True),
            sa.Column('total_price', sa.Float(), nullable=False, server_default='0'),
            sa.Column('note', sa.String(length=500), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        for col in ('user_id', 'status', 'payment_method', 'payment_status', 'order_date'):
            op.create_index(f'ix_orders_{col}', 'orders', [col])

    if not _table_exists(insp, 'order_items'):
        op.create_table(
            'order_items',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
            sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('unit_price', sa.Float(), nullable=False, server_default='0'),
            sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
            sa.UniqueConstraint('order_id', 'position', name='uq_order_items_order_position'),
        )
        op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
        op.create_index('ix_order_items_book_id', 'order_items', ['book_id'])

    if not _table_exists(insp, 'order_transitions'):
        op.create_table(
            'order_transitions',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
            sa.Column('field', sa.String(length=24), nullable=False, server_default='status'),
            sa.Column('from_status', sa.String(length=24), nullable=False, server_default=''),
            sa.Column('to_status', sa.String(length=24), nullable=False),
            sa.Column('actor_type', sa.String(length=32), nullable=False, server_default='system'),
            sa.Column('actor_id', sa.Integer(), nullable=True),
            sa.Column('reason', sa.String(length=240), nullable=True),
            sa.Column('metadata_json', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_order_transitions_order_id', 'order_transitions', ['order_id'])
        op.create_index('ix_order_transitions_created_at', 'order_transitions', ['created_at'])

    if not _table_exists(insp, 'notifications'):
        op.create_table(
            'notifications',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('title', sa.String(length=160), nullable=True),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('link', sa.String(length=1024), nullable=True),
            sa.Column('status', sa.String(length=24), nullable=False, server_default='queued'),
            sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('meta', sa.Text(), nullable=True),
        )
        op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    if not _table_exists(insp, 'payment_callbacks'):
        op.create_table(
            'payment_callbacks',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('event_id', sa.String(length=128), nullable=False, unique=True),
            sa.Column('order_id', sa.Integer(), nullable=False),
            sa.Column('response_code', sa.String(length=16), nullable=False, server_default=''),
            sa.Column('status', sa.String(length=32), nullable=False, server_default='received'),
            sa.Column('request_id', sa.String(length=80), nullable=True),
            sa.Column('payload_json', sa.Text(), nullable=True),
            sa.Column('error', sa.Text(), nullable=True),
            sa.Column('processed_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_payment_callbacks_order_id', 'payment_callbacks', ['order_id'])

    if not _table_exists(insp, 'audit_events'):
        op.create_table(
            'audit_events',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('event_type', sa.String(length=80), nullable=False),
            sa.Column('actor_user_id', sa.Integer(), nullable=True),
            sa.Column('subject_type', sa.String(length=40), nullable=True),
            sa.Column('subject_id', sa.String(length=64), nullable=True),
            sa.Column('request_id', sa.String(length=80), nullable=True),
            sa.Column('idempotency_key', sa.String(length=180), nullable=True, unique=True),
            sa.Column('severity', sa.String(length=16), nullable=False, server_default='INFO'),
            sa.Column('metadata_json', sa.Text(), nullable=True),
        )
        for col in ('created_at', 'event_type', 'actor_user_id', 'subject_type', 'subject_id', 'severity'):
            op.create_index(f'ix_audit_events_{col}', 'audit_events', [col])

    if not _table_exists(insp, 'job_runs'):
        op.create_table(
            'job_runs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('job_name', sa.String(length=64), nullable=False),
            sa.Column('ran_at', sa.DateTime(), nullable=False),
            sa.Column('ok', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('duration_ms', sa.Integer(), nullable=True),
            sa.Column('summary_json', sa.Text(), nullable=True),
            sa.Column('error', sa.Text(), nullable=True),
        )
        op.create_index('ix_job_runs_job_name', 'job_runs', ['job_name'])
        op.create_index('ix_job_runs_ran_at', 'job_runs', ['ran_at'])
        op.create_index('ix_job_runs_ok', 'job_runs', ['ok'])


def downgrade():
    for table in (
        'job_runs',
        'audit_events',
        'payment_callbacks',
        'notifications',
        'order_transitions',
        'order_items',
        'orders',
        'cart_items',
        'books',
        'user_addresses',
        'addresses',
        'users',
    ):
        op.drop_table(table)
