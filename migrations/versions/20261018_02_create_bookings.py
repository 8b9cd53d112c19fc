"""create bookings

Revision ID: 20261018_02
Revises: 20261018_01
Create Date: 2026-10-18 10:05:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_02"
down_revision: Union[str, None] = "20261018_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("site_id", sa.String(length=64), nullable=False),
        sa.Column("slot_id", sa.String(length=64), nullable=False),
        sa.Column("client_id", sa.String(length=64), nullable=True),
        sa.Column("client_name", sa.String(length=200), nullable=False),
        sa.Column("client_email", sa.String(length=255), nullable=False),
        sa.Column("client_phone", sa.String(length=40), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("staff_notes", sa.String(length=2000), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["slot_id"], ["availability_slots.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_bookings_org_id", "bookings", ["org_id"], unique=False)
    op.create_index("ix_bookings_client_email", "bookings", ["client_email"], unique=False)
    op.create_index("ix_bookings_slot_id_status", "bookings", ["slot_id", "status"], unique=False)
    op.create_index("ix_bookings_site_id_status", "bookings", ["site_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_bookings_site_id_status", table_name="bookings")
    op.drop_index("ix_bookings_slot_id_status", table_name="bookings")
    op.drop_index("ix_bookings_client_email", table_name="bookings")
    op.drop_index("ix_bookings_org_id", table_name="bookings")
    op.drop_table("bookings")
