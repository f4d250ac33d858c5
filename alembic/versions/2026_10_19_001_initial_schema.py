"""Initial schema: tables, guest sessions, comandas, service requests, waiter ratings

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_initial_schema'
down_revision = None

table_status = sa.Enum('AVAILABLE', 'OCCUPIED', 'OUT_OF_SERVICE', name='tablestatus')
client_status = sa.Enum('ACTIVE', 'BILL_REQUESTED', 'CLOSED', name='clientstatus')
comanda_status = sa.Enum('PENDING', 'COOKING', 'DELIVERED', 'CANCELLED', name='comandastatus')
request_type = sa.Enum('CALL_WAITER', 'COMPLAINT', 'OTHER', name='servicerequesttype')
request_status = sa.Enum('PENDING', 'ATTENDED', 'CANCELLED', name='servicerequeststatus')
waiter_action = sa.Enum('ASSIGN', 'SERVE', name='waiteraction')


def upgrade():
    op.create_table(
        'tables',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('table_number', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('qr_uuid', sa.String(64), nullable=False),
        sa.Column('current_status', table_status, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tables_table_number', 'tables', ['table_number'], unique=True)
    op.create_index('ix_tables_qr_uuid', 'tables', ['qr_uuid'], unique=True)
    op.create_index('ix_tables_current_status', 'tables', ['current_status'])
    op.create_index('ix_tables_is_active', 'tables', ['is_active'])

    op.create_table(
        'temporary_clients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('table_id', sa.Integer(), sa.ForeignKey('tables.id'), nullable=False),
        sa.Column('session_token', sa.String(), nullable=False),
        sa.Column('customer_name', sa.String(100), nullable=False),
        sa.Column('customer_dni', sa.String(20), nullable=False),
        sa.Column('status', client_status, nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('last_waiter_id', sa.String(64), nullable=True),
        sa.Column('closed_by_waiter_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_temporary_clients_table_id', 'temporary_clients', ['table_id'])
    op.create_index('ix_temporary_clients_session_token', 'temporary_clients', ['session_token'], unique=True)
    op.create_index('ix_temporary_clients_status', 'temporary_clients', ['status'])
    op.create_index('ix_temporary_clients_created_at', 'temporary_clients', ['created_at'])
    op.create_index('ix_temporary_clients_closed_at', 'temporary_clients', ['closed_at'])

    op.create_table(
        'comandas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cliente_id', sa.Integer(), sa.ForeignKey('temporary_clients.id'), nullable=False),
        sa.Column('status', comanda_status, nullable=False),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_comandas_cliente_id', 'comandas', ['cliente_id'])
    op.create_index('ix_comandas_status', 'comandas', ['status'])
    op.create_index('ix_comandas_sent_at', 'comandas', ['sent_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('comanda_id', sa.Integer(), sa.ForeignKey('comandas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('special_instructions', sa.String(500), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('unit_price > 0', name='ck_order_items_unit_price_positive'),
    )
    op.create_index('ix_order_items_comanda_id', 'order_items', ['comanda_id'])

    op.create_table(
        'service_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cliente_id', sa.Integer(), sa.ForeignKey('temporary_clients.id'), nullable=False),
        sa.Column('type', request_type, nullable=False),
        sa.Column('message', sa.String(500), nullable=False),
        sa.Column('status', request_status, nullable=False),
        sa.Column('attended_by_waiter_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('attended_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_service_requests_cliente_id', 'service_requests', ['cliente_id'])
    op.create_index('ix_service_requests_type', 'service_requests', ['type'])
    op.create_index('ix_service_requests_status', 'service_requests', ['status'])
    op.create_index('ix_service_requests_created_at', 'service_requests', ['created_at'])

    op.create_table(
        'waiter_interactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cliente_id', sa.Integer(), sa.ForeignKey('temporary_clients.id'), nullable=False),
        sa.Column('waiter_id', sa.String(64), nullable=False),
        sa.Column('role', sa.String(50), nullable=True),
        sa.Column('action', waiter_action, nullable=False),
        sa.Column('external_order_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_waiter_interactions_cliente_id', 'waiter_interactions', ['cliente_id'])
    op.create_index('ix_waiter_interactions_waiter_id', 'waiter_interactions', ['waiter_id'])
    op.create_index('ix_waiter_interactions_external_order_id', 'waiter_interactions', ['external_order_id'])

    op.create_table(
        'waiter_ratings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cliente_id', sa.Integer(), sa.ForeignKey('temporary_clients.id'), nullable=False),
        sa.Column('waiter_id', sa.String(64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('comment', sa.String(300), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('cliente_id', 'waiter_id', name='uq_waiter_rating_cliente_waiter'),
        sa.CheckConstraint('score BETWEEN 0 AND 5', name='ck_waiter_ratings_score_range'),
    )
    op.create_index('ix_waiter_ratings_cliente_id', 'waiter_ratings', ['cliente_id'])
    op.create_index('ix_waiter_ratings_waiter_id', 'waiter_ratings', ['waiter_id'])
    op.create_index('ix_waiter_ratings_created_at', 'waiter_ratings', ['created_at'])


def downgrade():
    op.drop_table('waiter_ratings')
    op.drop_table('waiter_interactions')
    op.drop_table('service_requests')
    op.drop_table('order_items')
    op.drop_table('comandas')
    op.drop_table('temporary_clients')
    op.drop_table('tables')

    bind = op.get_bind()
    for enum in (waiter_action, request_status, request_type, comanda_status, client_status, table_status):
        enum.drop(bind, checkfirst=True)
