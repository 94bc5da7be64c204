import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base


class OrderStatus(str, PyEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


# Entering one of these puts the ordered units back on the shelf
RESTOCKING_STATUSES = (OrderStatus.CANCELLED, OrderStatus.RETURNED)


class PaymentMethod(str, PyEnum):
    COD = "cod"
    ONLINE = "online"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    order_code: Mapped[str] = mapped_column(String, unique=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Customer snapshot at checkout time
    customer_full_name: Mapped[str] = mapped_column(String, default="")
    customer_email: Mapped[str] = mapped_column(String, default="", index=True)
    customer_phone: Mapped[str] = mapped_column(String, default="")
    customer_address: Mapped[str] = mapped_column(String, default="")
    customer_city: Mapped[str] = mapped_column(String, default="")
    customer_postal_code: Mapped[str] = mapped_column(String, default="")
    customer_country: Mapped[str] = mapped_column(String, default="")

    payment_method: Mapped[str] = mapped_column(
        Enum(PaymentMethod, values_callable=lambda x: [e.value for e in x]),
        default=PaymentMethod.COD,
    )
    payment_reference: Mapped[str] = mapped_column(String, default="")  # e.g. Stripe checkout session id

    status: Mapped[str] = mapped_column(
        Enum(OrderStatus, values_callable=lambda x: [e.value for e in x]),
        default=OrderStatus.PENDING,
        index=True,
    )
    status_history: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of {status, timestamp, note}
    stock_restored_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    shipping_fee: Mapped[float] = mapped_column(Float, default=0.0)
    tax: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.position"
    )

    # One order per payment session; cash orders carry an empty reference
    __table_args__ = (
        Index(
            "uq_orders_payment_reference",
            "payment_reference",
            unique=True,
            sqlite_where=text("payment_reference != ''"),
            postgresql_where=text("payment_reference != ''"),
        ),
    )


class OrderItem(Base):
    """Line item snapshot taken at purchase time; not linked to the live product row."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(String, ForeignKey("orders.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String, default="", index=True)
    title: Mapped[str] = mapped_column(String, default="")
    image: Mapped[str] = mapped_column(String, default="")
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    variant_name: Mapped[str] = mapped_column(String, default="")
    position: Mapped[int] = mapped_column(Integer, default=0)

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)
