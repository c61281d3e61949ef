"""initial lottery schema

Revision ID: 0001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "lotteries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("pool_balance", sa.BigInteger(), nullable=False),
        sa.Column("last_draw_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("recent_winner", sa.String(length=255), nullable=True),
        sa.Column("pending_request_id", sa.String(length=78), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "state IN ('open','calculating')", name="lotteries_state_enum"
        ),
        sa.CheckConstraint(
            "pool_balance >= 0", name="lotteries_pool_balance_non_negative"
        ),
        sa.PrimaryKeyConstraint("id", name="lotteries_pkey"),
    )
    op.create_table(
        "lottery_entries",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.Column("participant", sa.String(length=255), nullable=False),
        sa.Column("amount_paid", sa.BigInteger(), nullable=False),
        sa.Column("entered_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("slot >= 0", name="lottery_entries_slot_non_negative"),
        sa.PrimaryKeyConstraint("id", name="lottery_entries_pkey"),
        sa.UniqueConstraint(
            "round_number", "slot", name="lottery_entries_round_slot_key"
        ),
    )
    op.create_index(
        "ix_lottery_entries_participant", "lottery_entries", ["participant"]
    )
    op.create_table(
        "draw_requests",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("request_id", sa.String(length=78), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("random_word", sa.Text(), nullable=True),
        sa.Column("winner_index", sa.Integer(), nullable=True),
        sa.Column("winner", sa.String(length=255), nullable=True),
        sa.Column("prize", sa.BigInteger(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending','fulfilled')", name="draw_requests_status_enum"
        ),
        sa.PrimaryKeyConstraint("id", name="draw_requests_pkey"),
        sa.UniqueConstraint("request_id", name="draw_requests_request_id_key"),
    )
    op.create_index(
        "ix_draw_requests_round_number", "draw_requests", ["round_number"]
    )
    op.create_table(
        "lottery_events",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "name IN ('EntryRecorded','DrawRequested','WinnerPicked')",
            name="lottery_events_name_enum",
        ),
        sa.PrimaryKeyConstraint("id", name="lottery_events_pkey"),
    )
    op.create_index("ix_lottery_events_name", "lottery_events", ["name"])


def downgrade() -> None:
    op.drop_index("ix_lottery_events_name", table_name="lottery_events")
    op.drop_table("lottery_events")
    op.drop_index("ix_draw_requests_round_number", table_name="draw_requests")
    op.drop_table("draw_requests")
    op.drop_index("ix_lottery_entries_participant", table_name="lottery_entries")
    op.drop_table("lottery_entries")
    op.drop_table("lotteries")
