import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.models.inventory_log import InventoryReason
from storefront.models.order import RESTOCKING_STATUSES, Order, OrderItem, OrderStatus, PaymentMethod
from storefront.models.sale import Sale
from storefront.models.user import User
from storefront.schemas.order import CartItem, CheckoutRequest, CustomerInfo
from storefront.services import inventory_service
from storefront.services.inventory_service import StockChange

logger = logging.getLogger(__name__)

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_CDN_TRANSFORM = re.compile(r"/tr:[^/]+")


class InsufficientStockError(ValueError):
    pass


@dataclass
class StatusChangeResult:
    order: Order
    previous_status: str
    sale_created: bool = False
    stock_changes: list[StockChange] = field(default_factory=list)
    stock_error: str = ""


def order_code_for(order_id: str) -> str:
    return f"{settings.ORDER_CODE_PREFIX}-{order_id.upper()}"


def _status_value(status) -> str:
    return status.value if isinstance(status, OrderStatus) else str(status or "").lower()


def _add_status_history(order: Order, status: str, note: str = "") -> None:
    history = json.loads(order.status_history) if order.status_history else []
    history.append({
        "status": _status_value(status),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "note": note,
    })
    order.status_history = json.dumps(history)


def _email_image_url(product) -> str:
    # Only absolute URLs survive in email clients; strip CDN transforms which may be signed
    url = (product.image or product.thumbnail_url or "") if product else ""
    if not _ABSOLUTE_URL.match(url):
        return ""
    return _CDN_TRANSFORM.sub("", url)


def validate_stock(db: Session, cart: list[CartItem], lock: bool = False) -> dict[int, object]:
    """Check every line against current stock. Returns resolved products by line index.

    Lines naming the same product and variant are summed before the comparison.
    Raises InsufficientStockError for the first line that cannot be served.
    """
    resolved = {}
    requested: dict[tuple[str, str], int] = {}
    for idx, item in enumerate(cart):
        resolution = inventory_service.resolve_product(db, item.product_id, item.title, lock=lock)
        if not resolution.found:
            raise InsufficientStockError(f"Product not found: {item.title}")
        product = resolution.product
        key = (product.id, item.variant_name or "")
        requested[key] = requested.get(key, 0) + item.quantity
        if item.variant_name:
            variant = product.variant_named(item.variant_name)
            if not variant:
                raise InsufficientStockError(f"Variant not found for {product.name}: {item.variant_name}")
            if (variant.in_stock or 0) < requested[key]:
                raise InsufficientStockError(
                    f"{product.name} ({variant.name}) is out of stock or insufficient quantity"
                )
        elif (product.in_stock or 0) < requested[key]:
            raise InsufficientStockError(f"{product.name} is out of stock or insufficient quantity")
        resolved[idx] = product
    return resolved


def _upsert_customer(db: Session, customer: CustomerInfo, order: Order) -> User | None:
    """Attach the order to the account with this email, creating a guest profile if needed."""
    email = (customer.email or "").strip().lower()
    if not email:
        return None
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, role="user")
        db.add(user)
    if not user.is_admin:
        user.full_name = customer.full_name
        user.phone = customer.phone
        user.address = customer.address
        user.city = customer.city
        user.postal_code = customer.postal_code
        user.country = customer.country
    db.flush()
    order.user_id = user.id
    return user


def create_order(
    db: Session,
    data: CheckoutRequest,
    payment_method: PaymentMethod = PaymentMethod.COD,
    enforce_stock: bool = True,
    total_override: float | None = None,
    payment_reference: str = "",
) -> Order:
    """Validate, persist the order, take stock and link the customer in one transaction."""
    if enforce_stock:
        products = validate_stock(db, data.cart, lock=True)
    else:
        products = {
            idx: inventory_service.resolve_product(db, item.product_id, item.title).product
            for idx, item in enumerate(data.cart)
        }

    order_id = str(uuid.uuid4())
    initial = OrderStatus.PENDING if payment_method == PaymentMethod.COD else OrderStatus.PROCESSING
    c = data.customer
    order = Order(
        id=order_id,
        order_code=order_code_for(order_id),
        customer_full_name=c.full_name,
        customer_email=(c.email or "").strip().lower(),
        customer_phone=c.phone,
        customer_address=c.address,
        customer_city=c.city,
        customer_postal_code=c.postal_code,
        customer_country=c.country,
        payment_method=payment_method,
        payment_reference=payment_reference,
        status=initial,
    )
    for idx, item in enumerate(data.cart):
        order.items.append(OrderItem(
            product_id=item.product_id,
            title=item.title,
            image=_email_image_url(products.get(idx)),
            unit_price=item.unit_price / 100,
            quantity=item.quantity,
            variant_name=item.variant_name,
            position=idx,
        ))

    order.subtotal = round(sum(i.unit_price * i.quantity for i in order.items), 2)
    order.shipping_fee = round(data.shipping_fee / 100, 2)
    order.total_amount = total_override if total_override is not None else round(order.subtotal + order.shipping_fee, 2)
    _add_status_history(order, initial, f"Order placed ({_status_value(payment_method)})")

    db.add(order)
    db.flush()

    changes = inventory_service.decrement_stock(db, inventory_service.items_from_order(order), order.id)
    for change in changes:
        if not change.applied:
            logger.error("Order %s: stock not taken for %s (%s)", order.order_code, change.title, change.status.value)

    _upsert_customer(db, c, order)
    db.commit()
    db.refresh(order)
    logger.info("Order %s created (%s, %d items)", order.order_code, _status_value(payment_method), len(order.items))
    return order


def get_order(db: Session, order_ref: str) -> Order | None:
    """Look up by internal id or by the customer-facing order code."""
    return (
        db.query(Order)
        .filter(or_(Order.id == order_ref, Order.order_code == order_ref.strip().upper()))
        .first()
    )


def get_order_by_payment_reference(db: Session, reference: str) -> Order | None:
    if not reference:
        return None
    return db.query(Order).filter(Order.payment_reference == reference).first()


def list_orders(db: Session, skip: int = 0, limit: int = 100, status: OrderStatus | None = None) -> list[Order]:
    q = db.query(Order)
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc()).offset(skip).limit(limit).all()


def list_orders_for_user(db: Session, user: User) -> list[Order]:
    return (
        db.query(Order)
        .filter(or_(Order.user_id == user.id, Order.customer_email == user.email))
        .order_by(Order.created_at.desc())
        .all()
    )


def _ensure_sale(db: Session, order: Order) -> bool:
    if db.query(Sale).filter(Sale.order_id == order.id).first():
        return False
    sale = Sale(
        order_id=order.id,
        order_code=order.order_code,
        products=json.dumps([
            {
                "product_id": i.product_id,
                "title": i.title,
                "price": i.unit_price,
                "quantity": i.quantity,
                "variant_name": i.variant_name,
            }
            for i in order.items
        ]),
        customer=json.dumps({
            "full_name": order.customer_full_name,
            "email": order.customer_email,
            "phone": order.customer_phone,
            "address": order.customer_address,
            "city": order.customer_city,
            "postal_code": order.customer_postal_code,
            "country": order.customer_country,
        }),
        payment_method=_status_value(order.payment_method),
        total_amount=order.total_amount,
    )
    db.add(sale)
    return True


def update_status(
    db: Session, order_id: str, status: OrderStatus, note: str = "", actor: str = "", _retry: bool = True
) -> StatusChangeResult | None:
    """Move an order to ``status`` and fire that transition's side effects at most once.

    The status change is committed before stock is restored; a ledger failure
    is logged and reported on the result but does not undo the new status.
    """
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if not order:
        return None

    old = _status_value(order.status)
    new = _status_value(status)
    result = StatusChangeResult(order=order, previous_status=old)

    if new == OrderStatus.DELIVERED.value and old != new:
        result.sale_created = _ensure_sale(db, order)
        # Stock was already taken when the order was placed

    restock = new in {s.value for s in RESTOCKING_STATUSES} and old != new and order.stock_restored_at is None
    if restock:
        order.stock_restored_at = datetime.now(timezone.utc).replace(tzinfo=None)

    if old != new or note:
        order.status = status
        _add_status_history(order, status, note)
    try:
        db.commit()
    except IntegrityError:
        # Another request recorded the sale first; keep the status change only
        db.rollback()
        if not _retry:
            raise
        logger.info("Sale for order %s already recorded", order_id)
        return update_status(db, order_id, status, note, actor, _retry=False)
    if old != new:
        logger.info("Order %s: %s -> %s by %s", order.order_code, old, new, actor or "system")

    if restock:
        reason = InventoryReason.ORDER_RETURNED if new == OrderStatus.RETURNED.value else InventoryReason.ORDER_CANCELLED
        try:
            result.stock_changes = inventory_service.increment_stock(
                db, inventory_service.items_from_order(order), order.id, reason
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Order %s: stock restore failed after status %s: %s", order.order_code, new, e)
            result.stock_error = str(e)

    db.refresh(order)
    return result


def delete_order(db: Session, order_id: str) -> bool:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        return False
    db.query(Sale).filter(Sale.order_id == order.id).delete(synchronize_session=False)
    db.delete(order)
    db.commit()
    return True


def delete_orders(db: Session, order_ids: list[str]) -> int:
    orders = db.query(Order).filter(Order.id.in_(order_ids)).all()
    db.query(Sale).filter(Sale.order_id.in_(order_ids)).delete(synchronize_session=False)
    for order in orders:
        db.delete(order)
    db.commit()
    return len(orders)
