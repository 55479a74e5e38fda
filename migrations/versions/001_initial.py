"""Initial migration - users, plans, subscriptions, product keys, credential pool, usage ledger.

Revision ID: 001_initial
Revises:
Create Date: 2025-11-16

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Create users table; the current subscription FK is added once
    # subscriptions exists
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(100), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column(
            "account_status",
            sa.Enum(
                "pending_verification",
                "active",
                "suspended",
                name="accountstatus",
            ),
            nullable=False,
        ),
        sa.Column("customer_id", sa.String(255), nullable=True),
        sa.Column("current_subscription_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("current_subscription_id", name="uq_users_current_subscription_id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # Create subscription_plans table
    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("plan_provider_id", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column(
            "billing_cycle",
            sa.Enum("monthly", "yearly", "one_time", name="billingcycle"),
            nullable=False,
        ),
        sa.Column("request_limit_monthly", sa.Integer(), nullable=False),
        sa.Column("rate_limit_per_minute", sa.Integer(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_subscription_plans"),
    )
    op.create_index(
        "ix_subscription_plans_plan_provider_id",
        "subscription_plans",
        ["plan_provider_id"],
        unique=True,
    )

    # Create subscriptions table
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("plan_id", sa.Uuid(), nullable=False),
        sa.Column("provider_subscription_id", sa.String(255), nullable=True),
        sa.Column(
            "status",
            sa.Enum("trialing", "active", "past_due", "canceled", name="subscriptionstatus"),
            nullable=False,
        ),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_subscriptions"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_subscriptions_user_id_users",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["plan_id"],
            ["subscription_plans.id"],
            name="fk_subscriptions_plan_id_subscription_plans",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint(
            "provider_subscription_id",
            name="uq_subscriptions_provider_subscription_id",
        ),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index("ix_subscriptions_plan_id", "subscriptions", ["plan_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])

    op.create_foreign_key(
        "fk_users_current_subscription_id_subscriptions",
        "users",
        "subscriptions",
        ["current_subscription_id"],
        ["id"],
        ondelete="SET NULL",
    )

    # Create api_keys table
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("key_prefix", sa.String(32), nullable=False),
        sa.Column("key_hash", sa.String(64), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "revoked", name="apikeystatus"),
            nullable=False,
        ),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_api_keys"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_api_keys_user_id_users",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)
    op.create_index("ix_api_keys_status", "api_keys", ["status"])

    # Create provider_credentials table
    op.create_table(
        "provider_credentials",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_rate_limited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "last_used_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_provider_credentials"),
        sa.UniqueConstraint("key", name="uq_provider_credentials_key"),
    )
    op.create_index(
        "ix_provider_credentials_eligibility",
        "provider_credentials",
        ["is_rate_limited", "last_used_at"],
    )

    # Create api_usage_logs table
    op.create_table(
        "api_usage_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column(
            "request_timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("api_key_id", sa.Uuid(), nullable=False),
        sa.Column("http_method", sa.String(10), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("http_status_code", sa.Integer(), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=False),
        sa.Column("credits_consumed", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id", name="pk_api_usage_logs"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_api_usage_logs_user_id_users",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["api_key_id"],
            ["api_keys.id"],
            name="fk_api_usage_logs_api_key_id_api_keys",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_api_usage_logs_user_timestamp",
        "api_usage_logs",
        ["user_id", "request_timestamp"],
    )
    op.create_index("ix_api_usage_logs_api_key_id", "api_usage_logs", ["api_key_id"])


def downgrade() -> None:
    op.drop_table("api_usage_logs")
    op.drop_table("provider_credentials")
    op.drop_table("api_keys")
    op.drop_constraint(
        "fk_users_current_subscription_id_subscriptions",
        "users",
        type_="foreignkey",
    )
    op.drop_table("subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("users")

    for enum_name in ("apikeystatus", "subscriptionstatus", "billingcycle", "accountstatus"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
