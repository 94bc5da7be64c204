import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class Sale(Base):
    """Reporting record written once, when an order is first delivered."""

    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    order_code: Mapped[str] = mapped_column(String, default="")
    products: Mapped[str] = mapped_column(Text, default="[]")  # JSON snapshot of the order's line items
    customer: Mapped[str] = mapped_column(Text, default="{}")  # JSON snapshot of the customer fields
    payment_method: Mapped[str] = mapped_column(String, default="")
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    sale_date: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
