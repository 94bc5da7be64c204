import json
import logging

import stripe

logger = logging.getLogger(__name__)


class PaymentClient:
    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def _require_key(self) -> None:
        if not self.secret_key:
            raise RuntimeError("Payments are not configured")

    def create_checkout_session(
        self,
        line_items: list[dict],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        shipping_fee: int = 0,
    ) -> str:
        """Create a hosted checkout session and return its URL.

        ``line_items`` carry ``title``, ``unit_price`` (cents) and ``quantity``.
        """
        self._require_key()
        items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": item["title"]},
                    "unit_amount": int(item["unit_price"]),
                },
                "quantity": int(item["quantity"]),
            }
            for item in line_items
        ]
        if shipping_fee:
            items.append({
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": "Shipping"},
                    "unit_amount": int(shipping_fee),
                },
                "quantity": 1,
            })
        session = stripe.checkout.Session.create(
            api_key=self.secret_key,
            mode="payment",
            payment_method_types=["card"],
            line_items=items,
            customer_email=customer_email or None,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={k: v if isinstance(v, str) else json.dumps(v) for k, v in metadata.items()},
        )
        logger.info("Created checkout session %s", session.id)
        return session.url

    def parse_event(self, payload: bytes, signature: str) -> dict:
        """Verify the webhook signature and return the event as plain data. Raises ValueError when invalid."""
        if not self.webhook_secret:
            raise RuntimeError("Payment webhook secret is not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ValueError(f"Webhook signature verification failed: {e}") from e
        return json.loads(payload)
