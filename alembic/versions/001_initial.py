"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Market prices table
    op.create_table(
        'market_prices',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('crop_type', sa.String(length=128), nullable=False),
        sa.Column('price_per_unit', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('quality', sa.String(length=16), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=False),
        sa.Column('source', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('effective_date', sa.DateTime(), nullable=False),
        sa.Column('expiry_date', sa.DateTime(), nullable=True),
        sa.Column('submitted_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_market_prices_lookup',
        'market_prices',
        ['status', 'is_verified', 'effective_date'],
    )

    # Price alert subscriptions
    op.create_table(
        'price_alerts',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('crop_type', sa.String(length=128), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=False),
        sa.Column('quality', sa.String(length=16), nullable=True),
        sa.Column('alert_type', sa.String(length=32), nullable=False),
        sa.Column('frequency', sa.String(length=16), nullable=False),
        sa.Column('threshold', sa.Float(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_triggered', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('threshold > 0', name='ck_price_alert_threshold'),
    )
    op.create_index('ix_price_alerts_user_id', 'price_alerts', ['user_id'])

    # Alert notifications
    op.create_table(
        'alert_notifications',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('alert_id', sa.String(length=32), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=256), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('alert_type', sa.String(length=32), nullable=False),
        sa.Column('crop_type', sa.String(length=128), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=False),
        sa.Column('old_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('new_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('price_change', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('dismissed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['alert_id'], ['price_alerts.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_alert_notifications_user_id', 'alert_notifications', ['user_id'])
    op.create_index(
        'ix_alert_notifications_status_created',
        'alert_notifications',
        ['status', 'created_at'],
    )

    # Job run history
    op.create_table(
        'job_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('job_type', sa.String(length=32), nullable=False),
        sa.Column('trigger', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('subscriptions_checked', sa.Integer(), nullable=False),
        sa.Column('groups_processed', sa.Integer(), nullable=False),
        sa.Column('groups_failed', sa.Integer(), nullable=False),
        sa.Column('notifications_created', sa.Integer(), nullable=False),
        sa.Column('notifications_purged', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('job_runs')
    op.drop_index('ix_alert_notifications_status_created', table_name='alert_notifications')
    op.drop_index('ix_alert_notifications_user_id', table_name='alert_notifications')
    op.drop_table('alert_notifications')
    op.drop_index('ix_price_alerts_user_id', table_name='price_alerts')
    op.drop_table('price_alerts')
    op.drop_index('ix_market_prices_lookup', table_name='market_prices')
    op.drop_table('market_prices')
