from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect


revision = "0002_open_order_per_table"
down_revision = "0001_create_schema"
branch_labels = None
depends_on = None

INDEX_NAME = "uq_orders_open_table"
OPEN_PREDICATE = sa.text("status = 'open'")


def _has_table(inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(index["name"] == index_name for index in inspector.get_indexes(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)

    if not _has_table(inspector, "orders"):
        return
    if _has_index(inspector, "orders", INDEX_NAME):
        return

    # databases created before the index existed may hold duplicates; keep the newest open order
    op.execute(
        """
        UPDATE orders SET status = 'cancelled'
        WHERE status = 'open'
          AND id NOT IN (
            SELECT MAX(id) FROM orders WHERE status = 'open' GROUP BY table_id
          )
        """
    )
    op.create_index(
        INDEX_NAME,
        "orders",
        ["table_id"],
        unique=True,
        sqlite_where=OPEN_PREDICATE,
        postgresql_where=OPEN_PREDICATE,
    )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    if _has_table(inspector, "orders") and _has_index(inspector, "orders", INDEX_NAME):
        op.drop_index(INDEX_NAME, table_name="orders")
