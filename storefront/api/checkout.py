import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.api.auth import get_current_user
from storefront.database import get_db
from storefront.dependencies import get_email_client, get_payment_client
from storefront.models.order import PaymentMethod
from storefront.models.user import User
from storefront.schemas.order import CheckoutRequest, OrderOut, StripeSessionRequest
from storefront.services import email_service, order_service
from storefront.services.email_service import EmailClient
from storefront.services.order_service import InsufficientStockError
from storefront.services.payment_service import PaymentClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/cod", status_code=201)
def checkout_cod(
    data: CheckoutRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    email: EmailClient = Depends(get_email_client),
):
    try:
        order = order_service.create_order(db, data, PaymentMethod.COD)
    except InsufficientStockError as e:
        db.rollback()
        raise HTTPException(400, str(e))
    background_tasks.add_task(email.send_order_confirmation, email_service.order_snapshot(order))
    return {"orderId": order.id, "orderCode": order.order_code}


@router.post("/stripe-session")
def create_stripe_session(
    data: StripeSessionRequest,
    db: Session = Depends(get_db),
    payments: PaymentClient = Depends(get_payment_client),
):
    try:
        order_service.validate_stock(db, data.cart)
    except InsufficientStockError as e:
        raise HTTPException(400, str(e))
    finally:
        db.rollback()

    metadata = {
        "customerData": data.customer.model_dump(),
        "cartData": [
            {"p": i.product_id, "t": i.title, "u": i.unit_price, "q": i.quantity, "v": i.variant_name}
            for i in data.cart
        ],
        "shippingFee": str(data.shipping_fee),
    }
    try:
        url = payments.create_checkout_session(
            line_items=[i.model_dump() for i in data.cart],
            customer_email=data.customer.email,
            success_url=data.success_url,
            cancel_url=data.cancel_url,
            metadata=metadata,
            shipping_fee=data.shipping_fee,
        )
    except RuntimeError as e:
        raise HTTPException(503, str(e))
    except Exception as e:
        logger.error("Checkout session creation failed: %s", e)
        raise HTTPException(502, "Payment provider error")
    return {"url": url}


def _checkout_from_session(session: dict) -> CheckoutRequest:
    metadata = session.get("metadata") or {}
    cart = json.loads(metadata.get("cartData") or "[]")
    return CheckoutRequest(
        cart=[
            {"product_id": c.get("p", ""), "title": c["t"], "unit_price": c["u"], "quantity": c["q"], "variant_name": c.get("v", "")}
            for c in cart
        ],
        customer=json.loads(metadata.get("customerData") or "{}"),
        shipping_fee=int(metadata.get("shippingFee") or 0),
    )


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str = Header(default="", alias="stripe-signature"),
    db: Session = Depends(get_db),
    payments: PaymentClient = Depends(get_payment_client),
    email: EmailClient = Depends(get_email_client),
):
    payload = await request.body()
    try:
        event = payments.parse_event(payload, stripe_signature)
    except RuntimeError as e:
        raise HTTPException(503, str(e))
    except ValueError as e:
        logger.warning("Rejected payment webhook: %s", e)
        raise HTTPException(400, str(e))

    if event["type"] != "checkout.session.completed":
        return {"received": True}

    session = event["data"]["object"]
    if order_service.get_order_by_payment_reference(db, session["id"]):
        logger.info("Payment session %s already processed", session["id"])
        return {"received": True}

    data = _checkout_from_session(session)
    total = session.get("amount_total")
    try:
        order = order_service.create_order(
            db,
            data,
            PaymentMethod.ONLINE,
            enforce_stock=False,
            total_override=round(total / 100, 2) if total is not None else None,
            payment_reference=session["id"],
        )
    except IntegrityError:
        db.rollback()
        if not order_service.get_order_by_payment_reference(db, session["id"]):
            raise
        # A concurrent delivery of the same event committed first
        logger.info("Payment session %s already processed", session["id"])
        return {"received": True}
    background_tasks.add_task(email.send_order_confirmation, email_service.order_snapshot(order))
    return {"received": True, "orderId": order.id}


@router.get("/order/{order_ref}", response_model=OrderOut)
def get_order(order_ref: str, db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_ref)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@router.get("/orders", response_model=list[OrderOut])
def my_orders(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.list_orders_for_user(db, user)
