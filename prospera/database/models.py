"""
Database models and query builders for the Prospera backend.

This module defines table-specific model classes built on top of the
`DataAPIClient`. Each class keeps the SQL for one table in a single place:

* Profiles (plan, contact details, phone verification state)
* Bills and employees (inputs to alert generation)
* Alerts, notification settings and the scheduled email queue
* Stripe customers, subscriptions and one-time orders
* Invites and the shared-access grants they produce

The main entry point is the :class:`Database` façade:

    db = Database(client)
    profile = db.profiles.find_by_user_id("user_123")
    bills = db.bills.find_due_by_user("user_123", horizon)
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .client import DataAPIClient


def _string_param(name: str, value: str) -> Dict[str, Any]:
    return {"name": name, "value": {"stringValue": value}}


# =========================
# Base Model Abstraction
# =========================

class BaseModel:
    """
    Base class for all table-backed models.

    Provides generic `find_by_id`, `create`, `update` and `delete`.
    Subclasses must define `table_name`; `id_cast` is appended to id
    parameters (``"::uuid"`` for uuid keys, empty for text keys).
    """

    #: Name of the underlying database table. Must be overridden by subclasses.
    table_name: Optional[str] = None
    id_cast: str = "::uuid"

    def __init__(self, db: DataAPIClient) -> None:
        self.db: DataAPIClient = db

        if not self.table_name:
            raise ValueError("table_name must be defined in subclasses")

    def find_by_id(self, id: Any) -> Optional[Dict[str, Any]]:
        """Retrieve a single record by primary key."""
        sql = f"SELECT * FROM {self.table_name} WHERE id = :id{self.id_cast}"
        return self.db.query_one(sql, [_string_param("id", str(id))])

    def create(self, data: Dict[str, Any], returning: str = "id") -> Any:
        """Insert a new record and return the requested column."""
        return self.db.insert(self.table_name, data, returning=returning)

    def update(self, id: Any, data: Dict[str, Any]) -> int:
        """Update an existing record by primary key."""
        return self.db.update(
            self.table_name,
            data,
            f"id = :id{self.id_cast}",
            {"id": str(id)},
        )

    def delete(self, id: Any) -> int:
        """Delete a record by primary key."""
        return self.db.delete(
            self.table_name,
            f"id = :id{self.id_cast}",
            {"id": str(id)},
        )


class UserScopedModel(BaseModel):
    """Tables with exactly one row per user, keyed by `user_id`."""

    def find_by_user_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        sql = f"SELECT * FROM {self.table_name} WHERE user_id = :user_id"
        return self.db.query_one(sql, [_string_param("user_id", user_id)])

    def update_by_user_id(self, user_id: str, data: Dict[str, Any]) -> int:
        return self.db.update(
            self.table_name,
            data,
            "user_id = :user_id",
            {"user_id": user_id},
        )


# =========================
# Profiles
# =========================

class Profiles(UserScopedModel):
    """
    Table abstraction for `profiles`.

    One row per Clerk user carrying plan, trial flag, e-mail, display name and
    the phone verification columns (`phone_verification_code`,
    `phone_verification_expires`, `phone_verification_attempts`,
    `phone_verification_status`, `phone_verified`).
    """

    table_name = "profiles"


# =========================
# Financial records
# =========================

class Bills(BaseModel):
    """Table abstraction for `bills`."""

    table_name = "bills"

    def find_due_by_user(self, user_id: str, horizon: date) -> List[Dict[str, Any]]:
        """
        Retrieve active bills due on or before `horizon`, soonest first.

        Parameters
        ----------
        user_id : str
            Owner of the bills.
        horizon : date
            Last due date to include.
        """
        sql = f"""
            SELECT * FROM {self.table_name}
            WHERE user_id = :user_id
              AND is_active = true
              AND next_due <= :horizon::date
            ORDER BY next_due ASC
        """
        params = [
            _string_param("user_id", user_id),
            _string_param("horizon", horizon.isoformat()),
        ]
        return self.db.query(sql, params)


class Employees(BaseModel):
    """Table abstraction for `employees`."""

    table_name = "employees"

    def find_active_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        sql = f"""
            SELECT * FROM {self.table_name}
            WHERE user_id = :user_id AND status = 'active'
            ORDER BY name
        """
        return self.db.query(sql, [_string_param("user_id", user_id)])


# =========================
# Alerts & notifications
# =========================

class Alerts(BaseModel):
    """
    Table abstraction for persisted `alerts`.

    Alert ids are deterministic text ids (``bill-<id>``), not uuids, and are
    only unique per user (``tax-filing-<year>`` exists once for every user),
    so the primary key is ``(user_id, id)``.
    """

    table_name = "alerts"
    id_cast = ""

    def find_for_user(self, alert_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Look up `alert_id`, preferring the row owned by `user_id`.

        A row owned by someone else is still returned so callers can tell
        "not yours" from "does not exist".
        """
        sql = f"""
            SELECT * FROM {self.table_name}
            WHERE id = :id
            ORDER BY (user_id = :user_id) DESC
            LIMIT 1
        """
        params = [_string_param("id", alert_id), _string_param("user_id", user_id)]
        return self.db.query_one(sql, params)

    def mark_email_sent(self, user_id: str, alert_id: str, sent_at: datetime) -> int:
        return self.mark_many_email_sent(user_id, [alert_id], sent_at)

    def mark_many_email_sent(self, user_id: str, alert_ids: List[str], sent_at: datetime) -> int:
        if not alert_ids:
            return 0
        placeholders, params = self.db.in_clause("alert_id", alert_ids)
        return self.db.update(
            self.table_name,
            {"email_sent": True, "email_sent_at": sent_at},
            f"user_id = :owner_id AND id IN ({placeholders})",
            {"owner_id": user_id, **params},
        )

    def find_unsent_since(self, user_id: str, since: datetime) -> List[Dict[str, Any]]:
        """Alerts created after `since` that have not been e-mailed yet."""
        sql = f"""
            SELECT * FROM {self.table_name}
            WHERE user_id = :user_id
              AND email_sent = false
              AND created_at >= :since::timestamp
            ORDER BY date ASC
        """
        params = [
            _string_param("user_id", user_id),
            _string_param("since", since.isoformat()),
        ]
        return self.db.query(sql, params)


class NotificationSettings(UserScopedModel):
    """Table abstraction for `alert_notification_settings`."""

    table_name = "alert_notification_settings"

    def find_digest_candidates(self, frequency: str, sent_before: datetime) -> List[Dict[str, Any]]:
        """
        Users with e-mail enabled for `frequency` whose last notification is
        older than `sent_before` (or who were never notified).
        """
        sql = f"""
            SELECT user_id, notification_email, notification_time, last_notification_sent
            FROM {self.table_name}
            WHERE email_notifications_enabled = true
              AND notification_frequency = :frequency
              AND (last_notification_sent IS NULL
                   OR last_notification_sent < :sent_before::timestamp)
        """
        params = [
            _string_param("frequency", frequency),
            _string_param("sent_before", sent_before.isoformat()),
        ]
        return self.db.query(sql, params)


class ScheduledEmails(BaseModel):
    """Table abstraction for `scheduled_email_notifications`."""

    table_name = "scheduled_email_notifications"

    def find_pending(self, limit: int = 100) -> List[Dict[str, Any]]:
        sql = f"""
            SELECT * FROM {self.table_name}
            WHERE status = 'pending'
            ORDER BY created_at ASC
            LIMIT :limit
        """
        return self.db.query(sql, [{"name": "limit", "value": {"longValue": limit}}])

    def mark_sent(self, notification_id: str, sent_at: datetime) -> int:
        return self.update(notification_id, {"status": "sent", "sent_at": sent_at})

    def mark_failed(self, notification_id: str, error_message: str) -> int:
        return self.update(notification_id, {"status": "failed", "error_message": error_message})


# =========================
# Stripe mirror tables
# =========================

class StripeCustomers(BaseModel):
    """Table abstraction for `stripe_customers` (customer id → user id)."""

    table_name = "stripe_customers"

    def find_user_id(self, customer_id: str) -> Optional[str]:
        sql = f"SELECT user_id FROM {self.table_name} WHERE customer_id = :customer_id"
        row = self.db.query_one(sql, [_string_param("customer_id", customer_id)])
        return row.get("user_id") if row else None


class StripeSubscriptions(BaseModel):
    """Table abstraction for `stripe_subscriptions`, one row per customer."""

    table_name = "stripe_subscriptions"

    def update_by_customer(self, customer_id: str, data: Dict[str, Any]) -> int:
        return self.db.update(
            self.table_name,
            data,
            "customer_id = :customer_id",
            {"customer_id": customer_id},
        )

    def upsert(self, data: Dict[str, Any]) -> int:
        return self.db.upsert(self.table_name, data, conflict_column="customer_id")


class StripeOrders(BaseModel):
    """Table abstraction for `stripe_orders` (one-time payments)."""

    table_name = "stripe_orders"


# =========================
# Sharing
# =========================

class Invites(BaseModel):
    """Table abstraction for `invites` sent by family-plan owners."""

    table_name = "invites"

    def find_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        sql = f"SELECT * FROM {self.table_name} WHERE token = :token"
        return self.db.query_one(sql, [_string_param("token", token)])


class SharedAccess(BaseModel):
    """Table abstraction for `shared_access` grants."""

    table_name = "shared_access"


# =========================
# Database Facade
# =========================

class Database:
    """
    High-level façade providing access to all table models.

    Every model shares the same :class:`DataAPIClient`.
    """

    def __init__(self, client: DataAPIClient) -> None:
        self.client: DataAPIClient = client

        self.profiles: Profiles = Profiles(client)
        self.bills: Bills = Bills(client)
        self.employees: Employees = Employees(client)
        self.alerts: Alerts = Alerts(client)
        self.notification_settings: NotificationSettings = NotificationSettings(client)
        self.scheduled_emails: ScheduledEmails = ScheduledEmails(client)
        self.stripe_customers: StripeCustomers = StripeCustomers(client)
        self.stripe_subscriptions: StripeSubscriptions = StripeSubscriptions(client)
        self.stripe_orders: StripeOrders = StripeOrders(client)
        self.invites: Invites = Invites(client)
        self.shared_access: SharedAccess = SharedAccess(client)

    def query_raw(
        self,
        sql: str,
        parameters: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """Execute an arbitrary SELECT query and return rows as dictionaries."""
        return self.client.query(sql, parameters)
