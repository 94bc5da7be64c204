import html
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass
class EmailResult:
    status: str  # sent, skipped, failed
    recipient: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return self.status == "sent"


def order_snapshot(order) -> dict:
    """Plain-data copy of an order, safe to hand to a background task after the session closes."""
    return {
        "order_code": order.order_code,
        "customer": {
            "full_name": order.customer_full_name,
            "email": order.customer_email,
            "phone": order.customer_phone,
            "address": order.customer_address,
            "city": order.customer_city,
            "postal_code": order.customer_postal_code,
            "country": order.customer_country,
        },
        "payment_method": order.payment_method.value if hasattr(order.payment_method, "value") else order.payment_method,
        "items": [
            {
                "title": i.title,
                "variant_name": i.variant_name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "image": i.image,
            }
            for i in order.items
        ],
        "subtotal": order.subtotal,
        "shipping_fee": order.shipping_fee,
        "total_amount": order.total_amount,
    }


def render_order_confirmation(snapshot: dict) -> str:
    esc = html.escape
    rows = []
    for item in snapshot["items"]:
        title = esc(item["title"])
        if item.get("variant_name"):
            title += f" <small>({esc(item['variant_name'])})</small>"
        img = f'<img src="{esc(item["image"])}" width="60" alt="">' if item.get("image") else ""
        rows.append(
            f"<tr><td>{img}</td><td>{title}</td><td>{item['quantity']}</td>"
            f"<td>{item['unit_price'] * item['quantity']:.2f}</td></tr>"
        )
    c = snapshot["customer"]
    address = ", ".join(esc(p) for p in (c["address"], c["city"], c["postal_code"], c["country"]) if p)
    return (
        f"<h2>Thank you for your order, {esc(c['full_name'])}!</h2>"
        f"<p>Order <strong>{esc(snapshot['order_code'])}</strong> "
        f"({esc(str(snapshot['payment_method']).upper())})</p>"
        "<table><tr><th></th><th>Item</th><th>Qty</th><th>Total</th></tr>"
        + "".join(rows)
        + "</table>"
        f"<p>Subtotal: {snapshot['subtotal']:.2f}<br>"
        f"Shipping: {snapshot['shipping_fee']:.2f}<br>"
        f"<strong>Total: {snapshot['total_amount']:.2f}</strong></p>"
        f"<p>Shipping to: {address}<br>Phone: {esc(c['phone'])}</p>"
    )


class EmailClient:
    def __init__(self, api_key: str, sender: str, admin_email: str = "", reply_to: str = "", timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.admin_email = admin_email
        self.reply_to = reply_to
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.sender)

    def send(self, to: str, subject: str, html_body: str, bcc: str = "") -> EmailResult:
        if not self.enabled or not to:
            logger.info("Email to %s skipped (not configured)", to or "<none>")
            return EmailResult("skipped", to)
        personalization = {"to": [{"email": to}]}
        if bcc and bcc.lower() != to.lower():
            personalization["bcc"] = [{"email": bcc}]
        payload = {
            "personalizations": [personalization],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }
        if self.reply_to:
            payload["reply_to"] = {"email": self.reply_to}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(SENDGRID_URL, json=payload, headers={"Authorization": f"Bearer {self.api_key}"})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Email to %s failed: %s", to, e)
            return EmailResult("failed", to, str(e))
        return EmailResult("sent", to)

    def send_order_confirmation(self, snapshot: dict) -> EmailResult:
        result = self.send(
            to=snapshot["customer"]["email"],
            subject=f"Order confirmation {snapshot['order_code']}",
            html_body=render_order_confirmation(snapshot),
            bcc=self.admin_email,
        )
        if not result.success and result.status != "skipped":
            logger.warning("Order %s: confirmation email not sent", snapshot["order_code"])
        return result
