import json
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from storefront.models.inventory_log import InventoryReason
from storefront.schemas.common import CamelModel


# --- Variant schemas ---

class VariantIn(CamelModel):
    name: str
    price: float = 0.0
    in_stock: int | None = Field(default=None, ge=0)
    min_stock: int | None = Field(default=None, ge=0)


class VariantOut(BaseModel):
    id: str
    name: str
    price: float
    in_stock: int
    min_stock: int

    model_config = {"from_attributes": True}


# --- Product schemas ---

class ProductForm(BaseModel):
    """Scalar fields of the multipart product form; media slots are handled separately."""

    name: str
    price: float = Field(ge=0)
    description: str = ""
    category: str = "Uncategorized"
    category_id: str | None = None
    in_stock: int | None = Field(default=None, ge=0)  # None leaves stock untouched on edit
    min_stock: int | None = Field(default=None, ge=0)
    featured: bool = False
    assured: bool = False
    variants: list[VariantIn] | None = None

    @field_validator("variants", mode="before")
    @classmethod
    def parse_variants(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v.strip() else None
        return v

    @field_validator("category_id", mode="before")
    @classmethod
    def empty_category_is_none(cls, v):
        return v or None


class CategoryRef(BaseModel):
    id: str
    name: str
    slug: str

    model_config = {"from_attributes": True}


class ProductOut(BaseModel):
    id: str
    name: str
    description: str
    price: float
    category: str
    category_id: str | None = None
    category_ref: CategoryRef | None = None
    in_stock: int
    min_stock: int
    featured: bool
    assured: bool
    is_low_stock: bool
    image: str
    thumbnail_url: str
    hover_image: str
    image3: str
    image4: str
    video: str
    video2: str
    video3: str
    variants: list[VariantOut] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductBulkUpdate(BaseModel):
    ids: list[str] = Field(min_length=1)
    update: dict


class StockAdjust(BaseModel):
    quantity: int  # positive to add, negative to remove
    variant_name: str | None = None
    note: str = ""


class InventoryLogOut(BaseModel):
    id: str
    product_id: str
    product_name: str
    variant_name: str | None = None
    change: int
    previous_stock: int
    new_stock: int
    reason: InventoryReason
    reference_id: str
    meta: dict = {}
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("meta", mode="before")
    @classmethod
    def parse_meta(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else {}
        return v
