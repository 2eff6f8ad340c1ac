"""create bookings

Revision ID: 20261018_03
Revises: 20261018_02
Create Date: 2026-10-18 09:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_03"
down_revision: Union[str, None] = "20261018_02"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

HOLDING_PREDICATE = "status NOT IN ('cancelled', 'payment_failed', 'refunded', 'slot_expired')"


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot_id", sa.Integer(), nullable=False),
        sa.Column("time_slot", sa.String(length=50), nullable=False),
        sa.Column("group_size", sa.Integer(), nullable=False),
        sa.Column("deposit", sa.Numeric(10, 2), nullable=False, server_default="50"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="slot_reserved"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["time_slot_id"], ["time_slots.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("group_size >= 1 AND group_size <= 50", name="ck_bookings_group_size_range"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_date_time_slot", "bookings", ["date", "time_slot_id"], unique=False)
    op.create_index(
        "uq_bookings_active_user_slot",
        "bookings",
        ["user_id", "date", "time_slot_id"],
        unique=True,
        postgresql_where=sa.text(HOLDING_PREDICATE),
    )


def downgrade() -> None:
    op.drop_index("uq_bookings_active_user_slot", table_name="bookings")
    op.drop_index("ix_bookings_date_time_slot", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_table("bookings")
