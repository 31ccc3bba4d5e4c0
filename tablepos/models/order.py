from sqlalchemy import Column, DateTime, Index, Integer, Numeric, String, func, text
from sqlalchemy.orm import relationship

from tablepos.core.database import Base

OPEN_ORDER_PREDICATE = text("status = 'open'")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        # at most one open order per table
        Index(
            "uq_orders_open_table",
            "table_id",
            unique=True,
            sqlite_where=OPEN_ORDER_PREDICATE,
            postgresql_where=OPEN_ORDER_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True)
    order_number = Column(String(32), unique=True, nullable=False)
    table_id = Column(String(64), index=True, nullable=False)

    status = Column(String(16), default="open", nullable=False)  # open / completed / cancelled
    channel = Column(String(16), default="pos", nullable=False)  # pos / web
    payment_method = Column(String(32), nullable=True)

    subtotal = Column(Numeric(12, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(12, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(12, 2), default=0, nullable=False)
    total_amount = Column(Numeric(12, 2), default=0, nullable=False)
    paid_amount = Column(Numeric(12, 2), default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )
