"""Create ledger and envelope tables

Revision ID: 3a7d5c1e9b20
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3a7d5c1e9b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_updated_at", "transactions", ["updated_at"])

    op.create_table(
        "transaction_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("exchange_rate", sa.Float(), nullable=False),
        sa.Column("base_amount", sa.Float(), nullable=False),
        sa.Column("direction", sa.String(length=20), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_transaction_lines_transaction_id", "transaction_lines", ["transaction_id"])
    op.create_index("ix_transaction_lines_account_id", "transaction_lines", ["account_id"])
    op.create_index("ix_transaction_lines_category_id", "transaction_lines", ["category_id"])

    op.create_table(
        "allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("allocated_amount", sa.Float(), nullable=False),
        sa.Column("available_amount", sa.Float(), nullable=False),
        sa.Column("spent_amount", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("budget_updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("category_id", "month", name="uq_allocation_category_month"),
    )
    op.create_index("ix_allocations_category_id", "allocations", ["category_id"])
    op.create_index("ix_allocations_month", "allocations", ["month"])
    op.create_index("ix_allocations_updated_at", "allocations", ["updated_at"])
    op.create_index("ix_allocations_budget_updated_at", "allocations", ["budget_updated_at"])

    op.create_table(
        "transaction_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_line_id", sa.Integer(), sa.ForeignKey("transaction_lines.id"), nullable=False),
        sa.Column("allocation_id", sa.Integer(), sa.ForeignKey("allocations.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("transaction_line_id", "allocation_id", name="uq_line_allocation"),
    )
    op.create_index("ix_transaction_allocations_transaction_line_id", "transaction_allocations", ["transaction_line_id"])
    op.create_index("ix_transaction_allocations_allocation_id", "transaction_allocations", ["allocation_id"])

    op.create_table(
        "allocation_deltas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("allocation_id", sa.Integer(), nullable=False),
        sa.Column("transaction_line_id", sa.Integer(), sa.ForeignKey("transaction_lines.id"), nullable=True),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("applied", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_allocation_deltas_allocation_id", "allocation_deltas", ["allocation_id"])


def downgrade():
    op.drop_index("ix_allocation_deltas_allocation_id", table_name="allocation_deltas")
    op.drop_table("allocation_deltas")
    op.drop_index("ix_transaction_allocations_allocation_id", table_name="transaction_allocations")
    op.drop_index("ix_transaction_allocations_transaction_line_id", table_name="transaction_allocations")
    op.drop_table("transaction_allocations")
    op.drop_index("ix_allocations_budget_updated_at", table_name="allocations")
    op.drop_index("ix_allocations_updated_at", table_name="allocations")
    op.drop_index("ix_allocations_month", table_name="allocations")
    op.drop_index("ix_allocations_category_id", table_name="allocations")
    op.drop_table("allocations")
    op.drop_index("ix_transaction_lines_category_id", table_name="transaction_lines")
    op.drop_index("ix_transaction_lines_account_id", table_name="transaction_lines")
    op.drop_index("ix_transaction_lines_transaction_id", table_name="transaction_lines")
    op.drop_table("transaction_lines")
    op.drop_index("ix_transactions_updated_at", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_table("accounts")
