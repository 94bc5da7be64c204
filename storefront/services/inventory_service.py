"""Stock ledger: the only code that writes product and variant stock counters.

Every change reads the counter under a row lock in the caller's transaction,
writes the new value and appends an ``InventoryLog`` row. Nothing here
commits; the caller decides the transaction boundary so a checkout can
validate, persist the order and decrement stock atomically.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from storefront.models.inventory_log import InventoryLog, InventoryReason
from storefront.models.product import Product, Variant

logger = logging.getLogger(__name__)

RESTOCK_REASONS = (
    InventoryReason.ORDER_RETURNED,
    InventoryReason.ORDER_CANCELLED,
    InventoryReason.ADMIN_ADJUSTMENT,
    InventoryReason.PRODUCT_EDIT,
)


@dataclass
class StockItem:
    """A line to apply against the ledger. ``title`` is only used for name fallback."""

    product_id: str
    quantity: int
    title: str = ""
    variant_name: str | None = None


@dataclass
class ProductResolution:
    product: Product | None
    matched_by: str | None = None  # "id" or "name"

    @property
    def found(self) -> bool:
        return self.product is not None


class StockChangeStatus(str, Enum):
    APPLIED = "applied"
    PRODUCT_NOT_FOUND = "product_not_found"
    VARIANT_NOT_FOUND = "variant_not_found"


@dataclass
class StockChange:
    product_id: str
    title: str
    status: StockChangeStatus
    variant_name: str | None = None
    change: int = 0
    previous_stock: int | None = None
    new_stock: int | None = None
    clamped: bool = False

    @property
    def applied(self) -> bool:
        return self.status == StockChangeStatus.APPLIED


def resolve_product(db: Session, product_id: str, title: str = "", lock: bool = False) -> ProductResolution:
    """Find a product by id, falling back to an exact name match.

    Payment-provider line items do not always carry our product id, so the
    display name captured at checkout is tried second.
    """
    q = db.query(Product)
    if lock:
        q = q.with_for_update()
    if product_id:
        product = q.filter(Product.id == product_id).first()
        if product:
            return ProductResolution(product, "id")
    if title:
        product = q.filter(Product.name == title).first()
        if product:
            return ProductResolution(product, "name")
    return ProductResolution(None)


def _lock_variant(db: Session, product: Product, variant_name: str) -> Variant | None:
    return (
        db.query(Variant)
        .filter(Variant.product_id == product.id, Variant.name == variant_name)
        .with_for_update()
        .first()
    )


def _write_log(
    db: Session,
    product: Product,
    variant_name: str | None,
    previous: int,
    new: int,
    reason: InventoryReason,
    reference_id: str = "",
    meta: dict | None = None,
) -> InventoryLog:
    log = InventoryLog(
        product_id=product.id,
        product_name=product.name,
        variant_name=variant_name or None,
        change=new - previous,
        previous_stock=previous,
        new_stock=new,
        reason=reason,
        reference_id=reference_id,
        meta=json.dumps(meta or {}),
    )
    db.add(log)
    return log


def _apply(db: Session, item: StockItem, delta: int, reason: InventoryReason, order_ref: str) -> StockChange:
    resolution = resolve_product(db, item.product_id, item.title, lock=True)
    if not resolution.found:
        logger.error(
            "Inventory: product not found for %s (%s), order=%s", item.title, item.product_id, order_ref
        )
        return StockChange(item.product_id, item.title, StockChangeStatus.PRODUCT_NOT_FOUND, item.variant_name)

    product = resolution.product
    target: Product | Variant = product
    if item.variant_name:
        variant = _lock_variant(db, product, item.variant_name)
        if not variant:
            logger.error(
                "Inventory: variant %r not found for %s, order=%s", item.variant_name, product.name, order_ref
            )
            return StockChange(product.id, item.title, StockChangeStatus.VARIANT_NOT_FOUND, item.variant_name)
        target = variant

    previous = target.in_stock or 0
    new = previous + delta
    clamped = new < 0
    if clamped:
        logger.warning(
            "Inventory: clamping %s%s at 0 (had %d, requested %d), order=%s",
            product.name,
            f" ({item.variant_name})" if item.variant_name else "",
            previous,
            -delta,
            order_ref,
        )
        new = 0
    target.in_stock = new

    meta = {"order_id": order_ref} if order_ref else {}
    if resolution.matched_by == "name":
        meta["matched_by"] = "name"
    _write_log(db, product, item.variant_name, previous, new, reason, reference_id=order_ref, meta=meta)
    db.flush()

    return StockChange(
        product_id=product.id,
        title=item.title or product.name,
        status=StockChangeStatus.APPLIED,
        variant_name=item.variant_name,
        change=new - previous,
        previous_stock=previous,
        new_stock=new,
        clamped=clamped,
    )


def decrement_stock(db: Session, items: list[StockItem], order_ref: str) -> list[StockChange]:
    """Take ordered units off the shelf. Counters never go below zero.

    Unresolvable lines are logged and skipped; the rest of the batch still applies.
    """
    changes = []
    for item in items:
        qty = max(int(item.quantity or 0), 0)
        changes.append(_apply(db, item, -qty, InventoryReason.ORDER_PLACED, order_ref))
    return changes


def increment_stock(
    db: Session,
    items: list[StockItem],
    order_ref: str,
    reason: InventoryReason = InventoryReason.ORDER_RETURNED,
) -> list[StockChange]:
    if reason not in RESTOCK_REASONS:
        raise ValueError(f"Invalid restock reason: {reason}")
    changes = []
    for item in items:
        qty = max(int(item.quantity or 0), 0)
        changes.append(_apply(db, item, qty, reason, order_ref))
    return changes


def adjust_stock(
    db: Session,
    product_id: str,
    delta: int,
    variant_name: str | None = None,
    note: str = "",
    actor: str = "",
) -> StockChange | None:
    """Signed manual correction. Returns None when the product does not exist."""
    product = db.query(Product).filter(Product.id == product_id).with_for_update().first()
    if not product:
        return None
    target: Product | Variant = product
    if variant_name:
        target = _lock_variant(db, product, variant_name)
        if not target:
            raise ValueError(f"Variant {variant_name} not found for {product.name}")

    previous = target.in_stock or 0
    new = previous + delta
    if new < 0:
        raise ValueError(f"Insufficient stock. Current: {previous}, requested change: {delta}")
    target.in_stock = new
    meta = {k: v for k, v in (("note", note), ("by", actor)) if v}
    _write_log(db, product, variant_name, previous, new, InventoryReason.ADMIN_ADJUSTMENT, meta=meta)
    db.flush()
    return StockChange(product.id, product.name, StockChangeStatus.APPLIED, variant_name, delta, previous, new)


def set_stock(db: Session, product: Product, new_count: int, variant_name: str | None = None) -> StockChange | None:
    """Record an absolute stock value entered on the product edit form."""
    if new_count < 0:
        raise ValueError("Stock cannot be negative")
    target: Product | Variant | None = product
    if variant_name:
        target = _lock_variant(db, product, variant_name)
        if not target:
            raise ValueError(f"Variant {variant_name} not found for {product.name}")

    previous = target.in_stock or 0
    if previous == new_count:
        return None
    target.in_stock = new_count
    _write_log(db, product, variant_name, previous, new_count, InventoryReason.PRODUCT_EDIT)
    db.flush()
    return StockChange(
        product.id, product.name, StockChangeStatus.APPLIED, variant_name, new_count - previous, previous, new_count
    )


def items_from_order(order) -> list[StockItem]:
    return [
        StockItem(
            product_id=i.product_id,
            quantity=i.quantity,
            title=i.title,
            variant_name=i.variant_name or None,
        )
        for i in order.items
    ]


def list_logs(
    db: Session,
    product_id: str | None = None,
    reason: InventoryReason | None = None,
    reference_id: str | None = None,
    limit: int = 100,
) -> list[InventoryLog]:
    q = db.query(InventoryLog)
    if product_id:
        q = q.filter(InventoryLog.product_id == product_id)
    if reason:
        q = q.filter(InventoryLog.reason == reason)
    if reference_id:
        q = q.filter(InventoryLog.reference_id == reference_id)
    return q.order_by(InventoryLog.created_at.desc(), InventoryLog.id).limit(limit).all()
