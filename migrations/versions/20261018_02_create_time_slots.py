"""create time slots with the default daily schedule

Revision ID: 20261018_02
Revises: 20261018_01
Create Date: 2026-10-18 09:10:00
"""

from datetime import time
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_02"
down_revision: Union[str, None] = "20261018_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DEFAULT_SLOTS = [(9, 10), (10, 11), (11, 12), (13, 14), (14, 15), (15, 16)]


def upgrade() -> None:
    time_slots = op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("starts_at", sa.Time(), nullable=False),
        sa.Column("ends_at", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("reservation_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("starts_at", "ends_at", name="uq_time_slots_starts_ends"),
    )
    op.create_index("ix_time_slots_id", "time_slots", ["id"], unique=False)
    op.bulk_insert(
        time_slots,
        [{"starts_at": time(start), "ends_at": time(end), "capacity": 5} for start, end in DEFAULT_SLOTS],
    )


def downgrade() -> None:
    op.drop_index("ix_time_slots_id", table_name="time_slots")
    op.drop_table("time_slots")
