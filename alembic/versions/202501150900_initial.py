"""initial schema

Revision ID: 202501150900
Revises:
Create Date: 2025-01-15 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202501150900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("emoji", sa.String(length=16)),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("person_label", sa.String(length=40), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "recurring_interval",
            sa.Enum("daily", "weekly", "monthly", "yearly", name="recurringinterval"),
        ),
        sa.Column("recurring_end_date", sa.Date()),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "NOT is_recurring OR recurring_interval IS NOT NULL",
            name="ck_transactions_recurring_interval",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_recurring", "transactions", ["is_recurring"])

    op.create_table(
        "month_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("month_key", sa.String(length=7), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "skipped", "hidden", name="monthstatus"),
            nullable=False,
        ),
        sa.Column("paid_override", sa.Boolean()),
        *_timestamps(),
        sa.UniqueConstraint(
            "transaction_id", "month_key", name="uq_month_override_txn_month"
        ),
    )
    op.create_index("ix_month_override_month", "month_overrides", ["month_key"])

    op.create_table(
        "savings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("person_label", sa.String(length=40), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_savings_amount_positive"),
    )
    op.create_index("ix_savings_date", "savings", ["date"])


def downgrade():
    op.drop_index("ix_savings_date", table_name="savings")
    op.drop_table("savings")
    op.drop_index("ix_month_override_month", table_name="month_overrides")
    op.drop_table("month_overrides")
    op.drop_index("ix_transactions_recurring", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
