"""
Stripe gateway wrapper.

Two operations are needed from the payment processor:

* Verifying the ``stripe-signature`` header of an incoming webhook before the
  payload is trusted
* Fetching a customer's most recent subscription when a checkout completes

Everything returned from here is a plain ``dict`` so the webhook handlers and
their tests never depend on Stripe object types.
"""

import json
import logging
from typing import Any, Dict, Optional

import stripe

from ..clock import from_unix
from ..errors import DependencyError, RequestError, SignatureError

logger = logging.getLogger(__name__)

# Seconds of clock skew accepted between Stripe's timestamp and ours
DEFAULT_TOLERANCE = 300


def _field(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


class StripeGateway:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        tolerance: int = DEFAULT_TOLERANCE,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the webhook signature and decode the event.

        Parameters
        ----------
        payload : bytes
            Raw request body, exactly as received.
        signature : str, optional
            Value of the ``stripe-signature`` header.

        Returns
        -------
        dict
            The decoded event (``id``, ``type``, ``data.object`` ...).

        Raises
        ------
        SignatureError
            Header missing or signature mismatch.
        RequestError
            The signed body is not valid JSON.
        """
        if not signature:
            raise SignatureError("No signature found")
        if not self.webhook_secret:
            raise DependencyError("Webhook signing secret is not configured")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RequestError("Invalid webhook payload") from e

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.error("Webhook signature verification failed: %s", e)
            raise SignatureError(f"Webhook signature verification failed: {e}") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise RequestError("Invalid webhook payload") from e

        if not isinstance(event, dict):
            raise RequestError("Invalid webhook payload")
        return event

    def latest_subscription(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """
        Return the customer's most recent subscription (any status), or
        ``None`` when the customer has never subscribed.
        """
        if not self.api_key:
            raise DependencyError("Stripe secret key is not configured")

        try:
            subscriptions = stripe.Subscription.list(
                customer=customer_id,
                limit=1,
                status="all",
                expand=["data.default_payment_method"],
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Failed to list subscriptions for %s: %s", customer_id, e)
            raise DependencyError("Payment gateway request failed") from e

        if not subscriptions.data:
            return None

        subscription = subscriptions.data[0]
        item = _field(_field(subscription, "items"), "data")
        item = item[0] if item else None

        # Newer API versions carry the billing period on the item
        period_start = _field(subscription, "current_period_start") or _field(item, "current_period_start")
        period_end = _field(subscription, "current_period_end") or _field(item, "current_period_end")

        result: Dict[str, Any] = {
            "subscription_id": _field(subscription, "id"),
            "price_id": _field(_field(item, "price"), "id"),
            "current_period_start": from_unix(period_start),
            "current_period_end": from_unix(period_end),
            "cancel_at_period_end": bool(_field(subscription, "cancel_at_period_end")),
            "status": _field(subscription, "status"),
        }

        payment_method = _field(subscription, "default_payment_method")
        if payment_method is not None and not isinstance(payment_method, str):
            card = _field(payment_method, "card")
            result["payment_method_brand"] = _field(card, "brand")
            result["payment_method_last4"] = _field(card, "last4")

        return result
