import json
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from storefront.models.order import OrderStatus, PaymentMethod
from storefront.schemas.common import CamelModel


class CartItem(CamelModel):
    product_id: str = ""
    title: str
    unit_price: int = Field(ge=0)  # cents
    quantity: int = Field(ge=1)
    variant_name: str = ""


class CustomerInfo(CamelModel):
    full_name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""


class CheckoutRequest(CamelModel):
    cart: list[CartItem] = Field(min_length=1)
    customer: CustomerInfo
    shipping_fee: int = Field(default=0, ge=0)  # cents


class StripeSessionRequest(CheckoutRequest):
    success_url: str
    cancel_url: str


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class OrderBulkDelete(BaseModel):
    order_ids: list[str] = Field(min_length=1)


class OrderItemOut(BaseModel):
    id: str
    product_id: str
    title: str
    image: str = ""
    unit_price: float
    quantity: int
    variant_name: str = ""

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: str
    order_code: str
    status: OrderStatus
    payment_method: PaymentMethod
    customer_full_name: str
    customer_email: str
    customer_phone: str
    customer_address: str
    customer_city: str
    customer_postal_code: str
    customer_country: str
    items: list[OrderItemOut]
    subtotal: float
    shipping_fee: float
    tax: float
    total_amount: float
    status_history: list[dict] = []
    stock_restored_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("status_history", mode="before")
    @classmethod
    def parse_status_history(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v


class StockChangeOut(BaseModel):
    product_id: str
    title: str
    variant_name: str | None = None
    status: str
    change: int = 0
    previous_stock: int | None = None
    new_stock: int | None = None

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


class OrderStatusOut(BaseModel):
    order: OrderOut
    previous_status: str
    sale_created: bool = False
    stock_changes: list[StockChangeOut] = []
    stock_error: str = ""
