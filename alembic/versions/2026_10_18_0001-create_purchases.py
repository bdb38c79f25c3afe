"""create purchases

Revision ID: 2026_10_18_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates purchase storage:
- purchases: one-time purchases, unique per (store, transaction_id)
- subscription_purchases: subscriptions with renewal state
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_18_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _purchase_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("store", sa.String(length=32), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("transaction_id", sa.String(length=4096), nullable=False),
        sa.Column("raw_request", sa.Text(), nullable=False),
        sa.Column("raw_response", sa.Text(), nullable=False),
        sa.Column("purchase_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("environment", sa.String(length=16), nullable=False),
    ]


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "create_time",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "update_time",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "purchases",
        *_purchase_columns(),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store", "transaction_id", name="uq_purchases_store_transaction"),
    )
    op.create_index("ix_purchases_user_id", "purchases", ["user_id"])
    op.create_index("idx_purchases_product_id", "purchases", ["product_id"])

    op.create_table(
        "subscription_purchases",
        *_purchase_columns(),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("expires_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "store", "transaction_id", name="uq_subscription_purchases_store_transaction"
        ),
    )
    op.create_index("ix_subscription_purchases_user_id", "subscription_purchases", ["user_id"])
    op.create_index(
        "idx_subscription_purchases_expires_time", "subscription_purchases", ["expires_time"]
    )


def downgrade() -> None:
    op.drop_index("idx_subscription_purchases_expires_time", table_name="subscription_purchases")
    op.drop_index("ix_subscription_purchases_user_id", table_name="subscription_purchases")
    op.drop_table("subscription_purchases")

    op.drop_index("idx_purchases_product_id", table_name="purchases")
    op.drop_index("ix_purchases_user_id", table_name="purchases")
    op.drop_table("purchases")
