from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect


revision = "0003_payments"
down_revision = "0002_open_order_per_table"
branch_labels = None
depends_on = None


def _has_table(inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _has_column(inspector, table_name: str, column_name: str) -> bool:
    return any(column["name"] == column_name for column in inspector.get_columns(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)

    if _has_table(inspector, "orders") and not _has_column(inspector, "orders", "payment_method"):
        op.add_column("orders", sa.Column("payment_method", sa.String(length=32), nullable=True))

    if not _has_table(inspector, "payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("method", sa.String(length=32), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_payments_order_id", "payments", ["order_id"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)

    if _has_table(inspector, "payments"):
        op.drop_index("ix_payments_order_id", table_name="payments")
        op.drop_table("payments")
    if _has_table(inspector, "orders") and _has_column(inspector, "orders", "payment_method"):
        with op.batch_alter_table("orders") as batch_op:
            batch_op.drop_column("payment_method")
