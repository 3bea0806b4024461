"""
Payment lifecycle webhook.

The signature is verified first; only then is the event dispatched on its
type. Lifecycle handlers log and swallow their own failures so Stripe always
receives an acknowledgement and does not redeliver the event because of a
non-critical downstream error (e.g. a profile plan update).
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..clock import Clock, from_unix, utcnow
from ..database import Database
from .gateway import StripeGateway

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("active", "trialing")


def _first_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


class PaymentWebhookService:
    def __init__(
        self,
        db: Database,
        gateway: StripeGateway,
        family_price_id: str,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.gateway = gateway
        self.family_price_id = family_price_id
        self.clock = clock
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "invoice.payment_failed": self.handle_payment_failed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "checkout.session.completed": self.handle_checkout_completed,
        }

    def process(self, payload: bytes, signature: Optional[str]) -> Dict[str, bool]:
        """Verify, then dispatch. Signature failures raise before any dispatch."""
        event = self.gateway.construct_event(payload, signature)
        self.dispatch(event)
        return {"received": True}

    def dispatch(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        logger.info("Processing webhook event: %s", event_type)

        handler = self._handlers.get(event_type or "")
        if handler is None:
            return

        data_object = (event.get("data") or {}).get("object") or {}
        try:
            handler(data_object)
        except Exception:  # noqa: BLE001
            logger.exception("Error handling webhook event %s", event_type)

    # ============================================================
    # Lifecycle handlers
    # ============================================================

    def handle_payment_failed(self, invoice: Dict[str, Any]) -> None:
        customer_id = invoice.get("customer")
        user_id = self._user_for_customer(customer_id)
        if not user_id:
            return

        self.db.stripe_subscriptions.update_by_customer(
            customer_id, {"status": "past_due", "updated_at": self.clock()}
        )
        logger.info("Payment failed for user %s. Subscription marked as past_due.", user_id)

    def handle_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        customer_id = subscription.get("customer")
        user_id = self._user_for_customer(customer_id)
        if not user_id:
            return

        status = subscription.get("status")
        price_id = _first_price_id(subscription)
        self.db.stripe_subscriptions.update_by_customer(
            customer_id,
            {
                "subscription_id": subscription.get("id"),
                "price_id": price_id,
                "current_period_start": from_unix(subscription.get("current_period_start")),
                "current_period_end": from_unix(subscription.get("current_period_end")),
                "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
                "status": status,
                "updated_at": self.clock(),
            },
        )
        plan = self._apply_plan(user_id, status, price_id)
        logger.info("Subscription updated for user %s. New status: %s, Plan: %s", user_id, status, plan)

    def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        customer_id = subscription.get("customer")
        user_id = self._user_for_customer(customer_id)
        if not user_id:
            return

        now = self.clock()
        self.db.stripe_subscriptions.update_by_customer(
            customer_id, {"status": "canceled", "updated_at": now}
        )
        self.db.profiles.update_by_user_id(
            user_id, {"plan": "starter", "is_in_trial": False, "updated_at": now}
        )
        logger.info("Subscription canceled for user %s. Downgraded to starter plan.", user_id)

    def handle_checkout_completed(self, session: Dict[str, Any]) -> None:
        customer_id = session.get("customer")
        user_id = self._user_for_customer(customer_id)
        if not user_id:
            return

        mode = session.get("mode")
        if mode == "subscription":
            self.sync_subscription(customer_id, user_id)
            logger.info("Subscription checkout completed for user %s", user_id)
        elif mode == "payment":
            self.db.stripe_orders.create(
                {
                    "checkout_session_id": session.get("id"),
                    "payment_intent_id": session.get("payment_intent"),
                    "customer_id": customer_id,
                    "amount_subtotal": session.get("amount_subtotal") or 0,
                    "amount_total": session.get("amount_total") or 0,
                    "currency": session.get("currency") or "brl",
                    "payment_status": session.get("payment_status") or "unpaid",
                    "status": "completed",
                }
            )
            logger.info("One-time payment completed for user %s", user_id)

    # ============================================================
    # Helpers
    # ============================================================

    def sync_subscription(self, customer_id: str, user_id: str) -> None:
        """Mirror the customer's latest Stripe subscription and refresh the plan."""
        subscription = self.gateway.latest_subscription(customer_id)
        if subscription is None:
            logger.info("No subscriptions found for customer: %s", customer_id)
            self.db.stripe_subscriptions.upsert({"customer_id": customer_id, "status": "not_started"})
            return

        self.db.stripe_subscriptions.upsert({"customer_id": customer_id, **subscription})
        self._apply_plan(user_id, subscription.get("status"), subscription.get("price_id"))

    def _apply_plan(self, user_id: str, status: Optional[str], price_id: Optional[str]) -> Optional[str]:
        if status not in ACTIVE_STATUSES:
            logger.info("Subscription not active for user %s, status: %s", user_id, status)
            return None

        plan = "family" if price_id and price_id == self.family_price_id else "starter"
        self.db.profiles.update_by_user_id(
            user_id,
            {"plan": plan, "is_in_trial": status == "trialing", "updated_at": self.clock()},
        )
        return plan

    def _user_for_customer(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            logger.error("Webhook object carries no customer id")
            return None

        user_id = self.db.stripe_customers.find_user_id(customer_id)
        if not user_id:
            logger.error("No user mapped to Stripe customer %s", customer_id)
        return user_id
