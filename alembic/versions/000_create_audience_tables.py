"""Create audience tables (profiles, tags, billing, usage)

Revision ID: 000_create_audience_tables
Revises:
Create Date: 2026-09-14

Note: Using IF NOT EXISTS pattern so databases bootstrapped by init_db()
can be stamped forward.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '000_create_audience_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(conn, table_name):
    """Check if a table exists in the database."""
    return sa.inspect(conn).has_table(table_name)


def upgrade():
    """Create audience tables."""
    conn = op.get_bind()

    if not table_exists(conn, 'profiles'):
        op.create_table(
            'profiles',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('msisdn', sa.String(20), index=True),
            sa.Column('name', sa.String(255)),
            sa.Column('email', sa.String(255), index=True),
            sa.Column('age', sa.Integer(), index=True),
            sa.Column('gender', sa.String(20)),
            sa.Column('location_city', sa.String(100), index=True),
            sa.Column('tier', sa.String(20), index=True),
            sa.Column('sim_type', sa.String(20)),
            sa.Column('device_type', sa.String(100)),
            sa.Column('status', sa.String(20), index=True),
            sa.Column('arpu_30d', sa.Float(), default=0),
            sa.Column('churn_score', sa.Float()),
            sa.Column('balance', sa.Float(), default=0),
            sa.Column('registration_date', sa.DateTime(), index=True),
            sa.Column('updated_at', sa.DateTime()),
        )

    if not table_exists(conn, 'user_tags'):
        op.create_table(
            'user_tags',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('name', sa.String(100), nullable=False, unique=True, index=True),
            sa.Column('category', sa.String(50), default='Custom'),
            sa.Column('color', sa.String(7), default='#6366f1'),
            sa.Column('description', sa.String(500)),
            sa.Column('created_at', sa.DateTime()),
        )

    if not table_exists(conn, 'user_tag_assignments'):
        op.create_table(
            'user_tag_assignments',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('tag_id', sa.String(36), sa.ForeignKey('user_tags.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('assigned_at', sa.DateTime()),
            sa.UniqueConstraint('user_id', 'tag_id', name='uq_user_tag_assignment'),
        )

    if not table_exists(conn, 'billing_transactions'):
        op.create_table(
            'billing_transactions',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('type', sa.String(30), default='Topup'),
            sa.Column('amount', sa.Float(), default=0),
            sa.Column('timestamp', sa.DateTime(), index=True),
        )

    if not table_exists(conn, 'telecom_usage'):
        op.create_table(
            'telecom_usage',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('type', sa.String(20), default='Data'),
            sa.Column('volume_mb', sa.Float()),
            sa.Column('duration_sec', sa.Float()),
            sa.Column('timestamp', sa.DateTime(), index=True),
        )


def downgrade():
    """Drop audience tables."""
    op.drop_table('telecom_usage')
    op.drop_table('billing_transactions')
    op.drop_table('user_tag_assignments')
    op.drop_table('user_tags')
    op.drop_table('profiles')
