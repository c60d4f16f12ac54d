"""Production photo path

Revision ID: 20261017_photo_path
Revises: 20261016_initial
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_photo_path"
down_revision = "20261016_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("productions", schema=None) as batch_op:
        batch_op.add_column(sa.Column("photo_path", sa.String(500), nullable=True))


def downgrade():
    with op.batch_alter_table("productions", schema=None) as batch_op:
        batch_op.drop_column("photo_path")
