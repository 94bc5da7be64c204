import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base

# Media slots in display order. Each slot has a URL column and a CDN file id column.
MEDIA_SLOTS = ("image", "hover_image", "image3", "image4", "video", "video2", "video3")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("in_stock >= 0", name="ck_products_in_stock_non_negative"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    price: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str] = mapped_column(String, default="Uncategorized")  # legacy free-text label
    category_id: Mapped[str | None] = mapped_column(String, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    in_stock: Mapped[int] = mapped_column(Integer, default=0)
    min_stock: Mapped[int] = mapped_column(Integer, default=5)  # "few left" display threshold
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    assured: Mapped[bool] = mapped_column(Boolean, default=False)

    image: Mapped[str] = mapped_column(String, default="")
    image_id: Mapped[str] = mapped_column(String, default="")
    thumbnail_url: Mapped[str] = mapped_column(String, default="")
    hover_image: Mapped[str] = mapped_column(String, default="")
    hover_image_id: Mapped[str] = mapped_column(String, default="")
    image3: Mapped[str] = mapped_column(String, default="")
    image3_id: Mapped[str] = mapped_column(String, default="")
    image4: Mapped[str] = mapped_column(String, default="")
    image4_id: Mapped[str] = mapped_column(String, default="")
    video: Mapped[str] = mapped_column(String, default="")
    video_id: Mapped[str] = mapped_column(String, default="")
    video2: Mapped[str] = mapped_column(String, default="")
    video2_id: Mapped[str] = mapped_column(String, default="")
    video3: Mapped[str] = mapped_column(String, default="")
    video3_id: Mapped[str] = mapped_column(String, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    variants: Mapped[list["Variant"]] = relationship(
        "Variant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="Variant.position",
    )
    category_ref: Mapped["Category | None"] = relationship("Category", back_populates="products")

    def variant_named(self, name: str) -> "Variant | None":
        for v in self.variants:
            if v.name == name:
                return v
        return None

    @property
    def is_low_stock(self) -> bool:
        if self.in_stock <= self.min_stock:
            return True
        return any(v.in_stock <= v.min_stock for v in self.variants)


class Variant(Base):
    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint("product_id", "name", name="uq_variants_product_name"),
        CheckConstraint("in_stock >= 0", name="ck_variants_in_stock_non_negative"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    price: Mapped[float] = mapped_column(Float, default=0.0)  # 0 = use parent price
    in_stock: Mapped[int] = mapped_column(Integer, default=0)
    min_stock: Mapped[int] = mapped_column(Integer, default=5)
    position: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    @property
    def effective_price(self) -> float:
        return self.price if self.price > 0 else self.product.price


from storefront.models.category import Category  # noqa: E402, F401
