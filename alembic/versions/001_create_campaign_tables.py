"""Create campaign and campaign log tables

Revision ID: 001_create_campaign_tables
Revises: 000_create_audience_tables
Create Date: 2026-09-14
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_campaign_tables'
down_revision = '000_create_audience_tables'
branch_labels = None
depends_on = None


def upgrade():
    """Create campaigns and campaign_logs."""
    inspector = sa.inspect(op.get_bind())

    if not inspector.has_table('campaigns'):
        op.create_table(
            'campaigns',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('status', sa.String(20), default='draft'),
            sa.Column('channel', sa.String(20), default='Email'),
            sa.Column('flow_definition', sa.JSON()),
            sa.Column('reach', sa.Integer(), default=0),
            sa.Column('conversion_rate', sa.Float(), default=0),
            sa.Column('stats', sa.JSON()),
            sa.Column('created_at', sa.DateTime()),
            sa.Column('updated_at', sa.DateTime()),
        )

    if not inspector.has_table('campaign_logs'):
        op.create_table(
            'campaign_logs',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('campaign_id', sa.String(36), nullable=False, index=True),
            sa.Column('user_id', sa.String(36), index=True),
            sa.Column('action_type', sa.String(30), nullable=False),
            sa.Column('status', sa.String(20), default='Success'),
            sa.Column('metadata', sa.JSON()),
            sa.Column('created_at', sa.DateTime(), index=True),
        )
        op.create_index(
            'ix_campaign_logs_campaign_user_action',
            'campaign_logs',
            ['campaign_id', 'user_id', 'action_type'],
        )


def downgrade():
    """Drop campaign tables."""
    op.drop_index('ix_campaign_logs_campaign_user_action', table_name='campaign_logs')
    op.drop_table('campaign_logs')
    op.drop_table('campaigns')
