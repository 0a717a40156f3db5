"""users, credit ledger and usage events

Revision ID: 0001_billing
Revises:
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_billing"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "credit_txn",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount_credits", sa.Numeric(18, 6), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("meta", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_credit_txn_user_time", "credit_txn", ["user_id", "created_at"])

    op.create_table(
        "usage_event",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("route", sa.Text(), nullable=False),
        sa.Column("tokens_in", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tokens_out", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("r2_class_a", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("r2_class_b", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("r2_gb_retrieved", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("cost_credits", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("request_id", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_usage_event_user_time", "usage_event", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_usage_event_user_time", table_name="usage_event")
    op.drop_table("usage_event")
    op.drop_index("idx_credit_txn_user_time", table_name="credit_txn")
    op.drop_table("credit_txn")
    op.drop_table("users")
