import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class InventoryReason(str, PyEnum):
    ORDER_PLACED = "order-placed"
    ORDER_DELIVERED = "order-delivered"
    ORDER_RETURNED = "order-returned"
    ORDER_CANCELLED = "order-cancelled"
    ADMIN_ADJUSTMENT = "admin-adjustment"
    PRODUCT_EDIT = "product-edit"
    OTHER = "other"


class InventoryLog(Base):
    """Tracks every stock change for audit trail. Rows are never updated."""

    __tablename__ = "inventory_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String, default="")
    variant_name: Mapped[str | None] = mapped_column(String, nullable=True)
    change: Mapped[int] = mapped_column(Integer, nullable=False)  # positive=in, negative=out
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(
        Enum(InventoryReason, values_callable=lambda x: [e.value for e in x]),
        default=InventoryReason.OTHER,
        index=True,
    )
    reference_id: Mapped[str] = mapped_column(String, default="", index=True)  # order id when order-driven
    meta: Mapped[str] = mapped_column(Text, default="{}")  # JSON
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
