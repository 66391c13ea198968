"""Add referral code tables

Revision ID: 002_referral_codes
Revises: 001_initial
Create Date: 2026-10-19

Adds tables for:
- referral_codes: discount codes with usage caps and expiry
- referral_code_usage: one row per (code, user) redemption
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002_referral_codes"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create referral code tables."""

    # Referral codes table
    op.create_table(
        "referral_codes",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_referral_codes_uses_within_cap",
        ),
    )
    op.create_index("ix_referral_codes_code", "referral_codes", ["code"], unique=True)

    # Usage ledger
    op.create_table(
        "referral_code_usage",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("referral_code_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("subscription_id", sa.String(255), nullable=True),
        sa.Column("used_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["referral_code_id"], ["referral_codes.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("referral_code_id", "user_id", name="uq_referral_code_usage_code_user"),
    )
    op.create_index("ix_referral_code_usage_referral_code_id", "referral_code_usage", ["referral_code_id"])
    op.create_index("ix_referral_code_usage_user_id", "referral_code_usage", ["user_id"])


def downgrade() -> None:
    """Drop referral code tables."""
    op.drop_index("ix_referral_code_usage_user_id", table_name="referral_code_usage")
    op.drop_index("ix_referral_code_usage_referral_code_id", table_name="referral_code_usage")
    op.drop_table("referral_code_usage")

    op.drop_index("ix_referral_codes_code", table_name="referral_codes")
    op.drop_table("referral_codes")
