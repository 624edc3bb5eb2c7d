"""ledger profiles and transactions

Revision ID: 202610181200
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610181200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "ledger_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("initial_balance", sa.Numeric(14, 2)),
        sa.Column(
            "current_balance", sa.Numeric(14, 2), nullable=False, server_default="0"
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column(
            "kind", sa.Enum("credit", "debit", name="transactionkind"), nullable=False
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("occurred_on", sa.Date()),
        sa.Column("occurred_at", sa.Time()),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_transactions_user_recorded", "transactions", ["user_id", "recorded_at"]
    )
    op.create_index(
        "ix_transactions_user_occurred", "transactions", ["user_id", "occurred_on"]
    )


def downgrade():
    op.drop_index("ix_transactions_user_occurred", table_name="transactions")
    op.drop_index("ix_transactions_user_recorded", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("ledger_profiles")
