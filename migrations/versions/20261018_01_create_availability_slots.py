"""create availability slots

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18 10:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "availability_slots",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("site_id", sa.String(length=64), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("recurrence", sa.String(length=10), nullable=False),
        sa.Column("specific_date", sa.Date(), nullable=True),
        sa.Column("recurrence_end_date", sa.Date(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("booked_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("buffer", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("notes_for_clients", sa.String(length=2000), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("capacity >= 1", name="ck_availability_slots_capacity_positive"),
        sa.CheckConstraint(
            "booked_count >= 0 AND booked_count <= capacity",
            name="ck_availability_slots_booked_count_within_capacity",
        ),
    )
    op.create_index("ix_availability_slots_org_id", "availability_slots", ["org_id"], unique=False)
    op.create_index("ix_availability_slots_site_id", "availability_slots", ["site_id"], unique=False)
    op.create_index("ix_availability_slots_status", "availability_slots", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_availability_slots_status", table_name="availability_slots")
    op.drop_index("ix_availability_slots_site_id", table_name="availability_slots")
    op.drop_index("ix_availability_slots_org_id", table_name="availability_slots")
    op.drop_table("availability_slots")
