"""Create middleman_requests, confirmation_codes, withdraw_requests and escrow_events.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

STATUSES = "'pending', 'accepted', 'confirmed', 'completed', 'incompleted', 'withdrawn'"
ROLES = "'buyer', 'seller'"


def upgrade() -> None:
    op.create_table(
        "withdraw_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("crypto_currency", sa.String(20), nullable=False),
        sa.Column("wallet_address", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_withdraw_positive_amount"),
    )
    op.create_index("idx_withdraw_email", "withdraw_requests", ["email"])

    op.create_table(
        "middleman_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("role", sa.String(10), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("counterparty_email", sa.String(320), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("buyer_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("seller_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("withdrawn", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "withdraw_request_id",
            sa.Uuid(),
            sa.ForeignKey("withdraw_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(f"status IN ({STATUSES})", name="ck_request_valid_status"),
        sa.CheckConstraint(f"role IN ({ROLES})", name="ck_request_valid_role"),
        sa.CheckConstraint("price > 0", name="ck_request_positive_price"),
    )
    op.create_index("idx_request_email", "middleman_requests", ["email"])
    op.create_index("idx_request_counterparty", "middleman_requests", ["counterparty_email"])
    op.create_index("idx_request_status", "middleman_requests", ["status"])
    op.create_index("idx_request_created_at", "middleman_requests", ["created_at"])

    op.create_table(
        "confirmation_codes",
        sa.Column(
            "request_id",
            sa.Uuid(),
            sa.ForeignKey("middleman_requests.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(320), primary_key=True),
        sa.Column("role", sa.String(10), primary_key=True),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(f"role IN ({ROLES})", name="ck_code_valid_role"),
    )

    op.create_table(
        "escrow_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "request_id",
            sa.Uuid(),
            sa.ForeignKey("middleman_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("old_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=False),
        sa.Column("actor", sa.String(320), nullable=False, server_default="SYSTEM"),
        sa.Column("metadata", sa.JSON().with_variant(JSONB(), "postgresql"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_event_request", "escrow_events", ["request_id"])
    op.create_index("idx_event_type", "escrow_events", ["event_type"])
    op.create_index("idx_event_created_at", "escrow_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("escrow_events")
    op.drop_table("confirmation_codes")
    op.drop_table("middleman_requests")
    op.drop_table("withdraw_requests")
