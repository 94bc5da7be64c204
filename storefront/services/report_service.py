import json
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.models.inventory_log import InventoryLog
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.sale import Sale
from storefront.models.user import User
from storefront.services import product_service


def _month_keys(now: datetime, months: int) -> list[str]:
    keys = []
    year, month = now.year, now.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def monthly_order_totals(db: Session, months: int = 6, now: datetime | None = None) -> list[dict]:
    now = now or datetime.utcnow()
    keys = _month_keys(now, months)
    first_year, first_month = (int(p) for p in keys[0].split("-"))
    since = datetime(first_year, first_month, 1)
    buckets = {k: {"month": k, "orders": 0, "total": 0.0} for k in keys}
    for created_at, total in db.query(Order.created_at, Order.total_amount).filter(Order.created_at >= since):
        key = created_at.strftime("%Y-%m")
        if key in buckets:
            buckets[key]["orders"] += 1
            buckets[key]["total"] += total or 0.0
    for b in buckets.values():
        b["total"] = round(b["total"], 2)
    return list(buckets.values())


def top_products(db: Session, limit: int = 5) -> list[dict]:
    results = (
        db.query(
            OrderItem.product_id,
            OrderItem.title,
            func.sum(OrderItem.quantity).label("total_sold"),
            func.sum(OrderItem.quantity * OrderItem.unit_price).label("total_revenue"),
        )
        .group_by(OrderItem.product_id, OrderItem.title)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": r.product_id,
            "title": r.title,
            "total_sold": int(r.total_sold),
            "total_revenue": round(float(r.total_revenue), 2),
        }
        for r in results
    ]


def dashboard(db: Session) -> dict:
    recent = db.query(Order).order_by(Order.created_at.desc()).limit(5).all()
    return {
        "total_orders": db.query(func.count(Order.id)).scalar(),
        "total_customers": db.query(func.count(User.id)).filter(User.role != "admin").scalar(),
        "total_products": db.query(func.count(Product.id)).scalar(),
        "total_revenue": round(float(db.query(func.coalesce(func.sum(Order.total_amount), 0)).scalar()), 2),
        "low_stock_count": len(product_service.get_low_stock(db)),
        "recent_orders": [
            {
                "id": o.id,
                "order_code": o.order_code,
                "customer": o.customer_full_name,
                "total_amount": o.total_amount,
                "status": o.status.value if hasattr(o.status, "value") else o.status,
                "created_at": o.created_at.isoformat() if o.created_at else None,
            }
            for o in recent
        ],
        "top_products": top_products(db),
        "monthly_orders": monthly_order_totals(db),
    }


def sales_report(db: Session, start_date: datetime | None = None, end_date: datetime | None = None) -> dict:
    q = db.query(Sale)
    if start_date:
        q = q.filter(Sale.sale_date >= start_date)
    if end_date:
        q = q.filter(Sale.sale_date <= end_date)
    sales = q.order_by(Sale.sale_date.desc()).all()
    return {
        "sale_count": len(sales),
        "revenue": round(sum(s.total_amount for s in sales), 2),
        "sales": [
            {
                "id": s.id,
                "order_id": s.order_id,
                "order_code": s.order_code,
                "total_amount": s.total_amount,
                "payment_method": s.payment_method,
                "products": json.loads(s.products) if s.products else [],
                "sale_date": s.sale_date.isoformat() if s.sale_date else None,
            }
            for s in sales
        ],
        "date_range": {
            "start": start_date.isoformat() if start_date else None,
            "end": end_date.isoformat() if end_date else None,
        },
    }


def inventory_movement(db: Session, product_id: str | None = None, limit: int = 50) -> list[dict]:
    q = db.query(InventoryLog)
    if product_id:
        q = q.filter(InventoryLog.product_id == product_id)
    logs = q.order_by(InventoryLog.created_at.desc()).limit(limit).all()

    return [
        {
            "id": log.id,
            "product_id": log.product_id,
            "product_name": log.product_name,
            "variant_name": log.variant_name,
            "change": log.change,
            "previous_stock": log.previous_stock,
            "new_stock": log.new_stock,
            "reason": log.reason.value if hasattr(log.reason, "value") else log.reason,
            "reference_id": log.reference_id,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }
        for log in logs
    ]
