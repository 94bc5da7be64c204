import json
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from storefront.api.auth import require_admin
from storefront.database import get_db
from storefront.dependencies import client_ip, get_media_client
from storefront.models.inventory_log import InventoryReason
from storefront.models.order import OrderStatus
from storefront.models.product import MEDIA_SLOTS
from storefront.models.user import User
from storefront.schemas.order import OrderBulkDelete, OrderOut, OrderStatusOut, OrderStatusUpdate, StockChangeOut
from storefront.schemas.product import InventoryLogOut, ProductBulkUpdate, ProductForm, ProductOut, StockAdjust
from storefront.services import auth_service, inventory_service, order_service, product_service, report_service
from storefront.services.media_service import MediaClient, MediaUploadError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class AdminUserOut(BaseModel):
    id: str
    email: str
    full_name: str
    role: str
    phone: str
    address: str
    city: str
    postal_code: str
    country: str
    active: bool
    created_at: datetime
    orders: list[OrderOut] = []

    model_config = {"from_attributes": True}


class UserBulkDelete(BaseModel):
    user_ids: list[str]


class ActivityLogOut(BaseModel):
    id: str
    user_id: str
    email: str
    action: str
    detail: str
    ip_address: str
    created_at: datetime

    model_config = {"from_attributes": True}


def _log(db: Session, admin: User, action: str, detail: str = "", request: Request | None = None) -> None:
    auth_service.log_activity(db, admin.id, admin.email, action, detail, ip=client_ip(request) if request else "")


# --- Dashboard & reports ---

@router.get("/dashboard")
def dashboard(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return report_service.dashboard(db)


@router.get("/reports/sales")
def sales_report(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return report_service.sales_report(db, start_date, end_date)


@router.get("/inventory/movement")
def inventory_movement(
    product_id: str | None = None, limit: int = 50, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    return report_service.inventory_movement(db, product_id, limit)


@router.get("/inventory/logs", response_model=list[InventoryLogOut])
def inventory_logs(
    product_id: str | None = None,
    reason: InventoryReason | None = None,
    reference_id: str | None = None,
    limit: int = 100,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return inventory_service.list_logs(db, product_id, reason, reference_id, limit)


@router.get("/activity", response_model=list[ActivityLogOut])
def activity_logs(
    limit: int = 100, user_id: str | None = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    return auth_service.get_activity_logs(db, limit=limit, user_id=user_id)


# --- Products ---

async def _read_product_form(request: Request) -> tuple[ProductForm, dict]:
    """Split a multipart product form into scalar fields and media slot values.

    Field names are accepted in camelCase or snake_case. A slot value is either
    an uploaded file or a string URL; an empty string clears the slot.
    """
    form = await request.form()

    def pick(name: str):
        value = form.get(to_camel(name))
        return form.get(name) if value is None else value

    fields = {f: pick(f) for f in ProductForm.model_fields}
    try:
        data = ProductForm(**{k: v for k, v in fields.items() if v is not None})
    except ValidationError as e:
        raise HTTPException(422, json.loads(e.json()))

    uploads = {}
    for slot in MEDIA_SLOTS:
        value = pick(slot)
        if value is not None and not isinstance(value, str) and not value.filename:
            value = None
        uploads[slot] = value
    return data, uploads


@router.get("/products", response_model=list[ProductOut])
def list_products(
    skip: int = 0, limit: int = 500, category: str | None = None,
    admin: User = Depends(require_admin), db: Session = Depends(get_db),
):
    return product_service.list_products(db, skip=skip, limit=limit, category=category)


@router.get("/products/low-stock", response_model=list[ProductOut])
def low_stock(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return product_service.get_low_stock(db)


@router.post("/products", response_model=ProductOut, status_code=201)
async def create_product(
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
):
    data, uploads = await _read_product_form(request)
    try:
        product = product_service.create_product(db, data, uploads, media)
    except MediaUploadError as e:
        db.rollback()
        raise HTTPException(502, str(e))
    _log(db, admin, "product_create", product.name, request)
    return product


@router.put("/products/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
):
    data, uploads = await _read_product_form(request)
    try:
        product = product_service.update_product(db, product_id, data, uploads, media)
    except MediaUploadError as e:
        db.rollback()
        raise HTTPException(502, str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(400, str(e))
    if not product:
        raise HTTPException(404, "Product not found")
    _log(db, admin, "product_update", product.name, request)
    return product


@router.post("/products/bulk-update")
def bulk_update_products(data: ProductBulkUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    update = dict(data.update)
    # Storefront admin sends camelCase keys
    for camel, snake in (("categoryId", "category_id"), ("inStock", "in_stock")):
        if camel in update:
            update[snake] = update.pop(camel)
    try:
        count = product_service.bulk_update(db, data.ids, update)
    except ValueError as e:
        db.rollback()
        raise HTTPException(400, str(e))
    _log(db, admin, "product_bulk_update", f"{count} products: {', '.join(sorted(update))}")
    return {"updated": count}


@router.delete("/products/{product_id}", status_code=204)
def delete_product(
    product_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
):
    if not product_service.delete_product(db, product_id, media):
        raise HTTPException(404, "Product not found")
    _log(db, admin, "product_delete", product_id)


@router.post("/products/{product_id}/adjust-stock", response_model=StockChangeOut)
def adjust_stock(product_id: str, data: StockAdjust, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        change = inventory_service.adjust_stock(
            db, product_id, data.quantity, data.variant_name, note=data.note, actor=admin.email
        )
    except ValueError as e:
        db.rollback()
        raise HTTPException(400, str(e))
    if change is None:
        raise HTTPException(404, "Product not found")
    db.commit()
    return change


@router.get("/products/{product_id}/inventory-logs", response_model=list[InventoryLogOut])
def product_inventory_logs(
    product_id: str, limit: int = 100, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    return inventory_service.list_logs(db, product_id=product_id, limit=limit)


# --- Orders ---

@router.get("/orders", response_model=list[OrderOut])
def list_orders(
    skip: int = 0,
    limit: int = 100,
    status: OrderStatus | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return order_service.list_orders(db, skip=skip, limit=limit, status=status)


@router.get("/orders/{order_ref}", response_model=OrderOut)
def get_order(order_ref: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_ref)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@router.put("/orders/{order_id}", response_model=OrderStatusOut)
def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = order_service.update_status(db, order_id, data.status, data.note, actor=admin.email)
    if not result:
        raise HTTPException(404, "Order not found")
    _log(db, admin, "order_status", f"{result.order.order_code}: {result.previous_status} -> {data.status.value}", request)
    return OrderStatusOut(
        order=OrderOut.model_validate(result.order),
        previous_status=result.previous_status,
        sale_created=result.sale_created,
        stock_changes=[StockChangeOut.model_validate(c) for c in result.stock_changes],
        stock_error=result.stock_error,
    )


@router.post("/orders/bulk-delete")
def bulk_delete_orders(data: OrderBulkDelete, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    count = order_service.delete_orders(db, data.order_ids)
    _log(db, admin, "order_purge", f"{count} orders")
    return {"deleted": count}


@router.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not order_service.delete_order(db, order_id):
        raise HTTPException(404, "Order not found")
    _log(db, admin, "order_purge", order_id)


# --- Users ---

@router.get("/users", response_model=list[AdminUserOut])
def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return auth_service.list_customers(db)


@router.get("/users/{user_ref}", response_model=AdminUserOut)
def get_user(user_ref: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = auth_service.get_user_by_id(db, user_ref) or auth_service.get_user_by_email(db, user_ref)
    if not user:
        raise HTTPException(404, "User not found")
    return user


@router.post("/users/bulk-delete")
def bulk_delete_users(data: UserBulkDelete, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    count = auth_service.delete_users(db, data.user_ids)
    _log(db, admin, "user_delete", f"{count} users")
    return {"deleted": count}


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = auth_service.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    try:
        auth_service.delete_user(db, user)
    except ValueError as e:
        raise HTTPException(400, str(e))
    _log(db, admin, "user_delete", user_id)
