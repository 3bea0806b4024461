"""
Shared fixtures: an in-memory record store, recording delivery channels and a
FastAPI test client wired to them. Nothing here touches the network.
"""

from __future__ import annotations

import hashlib
import hmac
import time
import uuid
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from prospera.api.main import Services, create_app
from prospera.config import Settings
from prospera.errors import DependencyError
from prospera.payments import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"
CRON_KEY = "cron-test-key"
APP_BASE_URL = "https://app.prospera.test"
FAMILY_PRICE_ID = "price_family_test"

# Wednesday, 9am UTC
NOW = datetime(2025, 1, 1, 9, 0, 0)


# ============================================================
# In-memory record store
# ============================================================


class FakeTable:
    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self.rows: List[Dict[str, Any]] = [dict(r) for r in rows or []]

    def add(self, **row: Any) -> Dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        self.rows.append(row)
        return row

    def where(self, **match: Any) -> List[Dict[str, Any]]:
        return [r for r in self.rows if all(r.get(k) == v for k, v in match.items())]

    def find_by_id(self, id: Any) -> Optional[Dict[str, Any]]:
        found = self.where(id=str(id))
        return dict(found[0]) if found else None

    def create(self, data: Dict[str, Any], returning: str = "id") -> Any:
        row = self.add(**data)
        return row.get(returning)

    def update(self, id: Any, data: Dict[str, Any]) -> int:
        rows = self.where(id=str(id))
        for row in rows:
            row.update(data)
        return len(rows)


class FakeUserScoped(FakeTable):
    def find_by_user_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        found = self.where(user_id=user_id)
        return dict(found[0]) if found else None

    def update_by_user_id(self, user_id: str, data: Dict[str, Any]) -> int:
        rows = self.where(user_id=user_id)
        for row in rows:
            row.update(data)
        return len(rows)


class FakeBills(FakeTable):
    def find_due_by_user(self, user_id, horizon):
        rows = [
            r for r in self.where(user_id=user_id, is_active=True)
            if r["next_due"] <= horizon
        ]
        return sorted(rows, key=lambda r: r["next_due"])


class FakeEmployees(FakeTable):
    def find_active_by_user(self, user_id):
        return self.where(user_id=user_id, status="active")


class FakeAlerts(FakeTable):
    def find_for_user(self, alert_id, user_id):
        rows = sorted(self.where(id=alert_id), key=lambda r: r.get("user_id") != user_id)
        return dict(rows[0]) if rows else None

    def mark_email_sent(self, user_id, alert_id, sent_at):
        return self.mark_many_email_sent(user_id, [alert_id], sent_at)

    def mark_many_email_sent(self, user_id, alert_ids, sent_at):
        rows = [r for r in self.where(user_id=user_id) if r["id"] in alert_ids]
        for row in rows:
            row.update(email_sent=True, email_sent_at=sent_at)
        return len(rows)

    def find_unsent_since(self, user_id, since):
        return [
            dict(r) for r in self.where(user_id=user_id, email_sent=False)
            if r["created_at"] >= since
        ]


class FakeNotificationSettings(FakeUserScoped):
    def find_digest_candidates(self, frequency, sent_before):
        return [
            dict(r) for r in self.where(email_notifications_enabled=True, notification_frequency=frequency)
            if r.get("last_notification_sent") is None or r["last_notification_sent"] < sent_before
        ]


class FakeScheduledEmails(FakeTable):
    def find_pending(self, limit=100):
        return [dict(r) for r in self.where(status="pending")][:limit]

    def mark_sent(self, notification_id, sent_at):
        return self.update(notification_id, {"status": "sent", "sent_at": sent_at})

    def mark_failed(self, notification_id, error_message):
        return self.update(notification_id, {"status": "failed", "error_message": error_message})


class FakeStripeCustomers(FakeTable):
    def find_user_id(self, customer_id):
        found = self.where(customer_id=customer_id)
        return found[0]["user_id"] if found else None


class FakeStripeSubscriptions(FakeTable):
    def update_by_customer(self, customer_id, data):
        rows = self.where(customer_id=customer_id)
        for row in rows:
            row.update(data)
        return len(rows)

    def upsert(self, data):
        rows = self.where(customer_id=data["customer_id"])
        if rows:
            rows[0].update(data)
        else:
            self.add(**data)
        return 1


class FakeInvites(FakeTable):
    def find_by_token(self, token):
        found = self.where(token=token)
        return dict(found[0]) if found else None


class FakeDatabase:
    """Same attribute surface as `prospera.database.Database`, backed by lists."""

    def __init__(self) -> None:
        self.profiles = FakeUserScoped()
        self.bills = FakeBills()
        self.employees = FakeEmployees()
        self.alerts = FakeAlerts()
        self.notification_settings = FakeNotificationSettings()
        self.scheduled_emails = FakeScheduledEmails()
        self.stripe_customers = FakeStripeCustomers()
        self.stripe_subscriptions = FakeStripeSubscriptions()
        self.stripe_orders = FakeTable()
        self.invites = FakeInvites()
        self.shared_access = FakeTable()


# ============================================================
# Delivery channels & auth
# ============================================================


class FakeEmailSender:
    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []
        self.fail_for: set[str] = set()

    def send(self, to: str, subject: str, body: str) -> str:
        if to in self.fail_for:
            raise DependencyError("Failed to send e-mail")
        self.sent.append({"to": to, "subject": subject, "body": body})
        return f"msg-{len(self.sent)}"


class FakeSmsSender:
    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []

    def send(self, phone: str, message: str) -> str:
        self.sent.append({"phone": phone, "message": message})
        return f"sms-{len(self.sent)}"


class FakeClerkGuard:
    """Treats ``Authorization: Bearer <user_id>`` as a valid token for that user."""

    async def __call__(self, request):
        header = request.headers.get("authorization", "")
        if not header.startswith("Bearer ") or header == "Bearer invalid":
            return None
        return SimpleNamespace(decoded={"sub": header[len("Bearer "):]})


def auth(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``stripe-signature`` header for `payload`."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(api_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_family_price_id=FAMILY_PRICE_ID,
        cron_job_key=CRON_KEY,
        app_base_url=APP_BASE_URL,
    )


@pytest.fixture
def app(settings, db, email_sender, sms_sender, gateway, clock):
    services = Services(db=db, email=email_sender, sms=sms_sender, payments=gateway, clock=clock)
    application = create_app(settings, services=services)
    application.state.clerk_guard = FakeClerkGuard()
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def add_profile(db):
    def _add(user_id: str = "user_1", **fields: Any) -> Dict[str, Any]:
        fields.setdefault("email", f"{user_id}@example.com")
        fields.setdefault("plan", "starter")
        return db.profiles.add(user_id=user_id, **fields)

    return _add