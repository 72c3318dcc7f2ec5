"""Initial schema with queue_jobs table

Revision ID: 001
Revises: 
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "queue_jobs"


def upgrade() -> None:
    op.create_table(
        TABLE_NAME,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("queue", sa.String(64), nullable=False),
        # 1 = pending, 2 = running, 3 = deleted, 4 = buried
        sa.Column("status", sa.SmallInteger, nullable=False, server_default="1"),
        sa.Column("created", sa.DateTime, nullable=False),
        sa.Column("scheduled", sa.DateTime, nullable=False),
        sa.Column("executed", sa.DateTime, nullable=True),
        sa.Column("finished", sa.DateTime, nullable=True),
        sa.Column("data", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("trace", sa.Text, nullable=True),
    )

    # Index for efficient queue polling
    op.create_index(
        f"ix_{TABLE_NAME}_poll",
        TABLE_NAME,
        ["queue", "status", "scheduled"],
    )


def downgrade() -> None:
    op.drop_index(f"ix_{TABLE_NAME}_poll", table_name=TABLE_NAME)
    op.drop_table(TABLE_NAME)
