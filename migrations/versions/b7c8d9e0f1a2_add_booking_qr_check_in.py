"""add booking qr check-in

Revision ID: b7c8d9e0f1a2
Revises: a1b2c3d4e5f6
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c8d9e0f1a2'
down_revision = 'a1b2c3d4e5f6'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.add_column(sa.Column('qr_scanned', sa.Boolean(), server_default=sa.false(), nullable=False))
        batch_op.add_column(sa.Column('qr_scanned_at', sa.DateTime(), nullable=True))
        batch_op.add_column(sa.Column('qr_scanned_by_user_id', sa.String(length=36), nullable=True))


def downgrade():
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.drop_column('qr_scanned_by_user_id')
        batch_op.drop_column('qr_scanned_at')
        batch_op.drop_column('qr_scanned')
