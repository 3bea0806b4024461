"""
Hourly e-mail queue processing.

Three passes run in order on every invocation:

* **Immediate** – send up to 100 pending rows of
  `scheduled_email_notifications`, marking each row and its alerts as sent
  (or the row as failed).
* **Daily digests** – for users on the daily frequency whose notification
  hour is now and who have not been notified today, queue a digest of the
  unsent alerts from the last 24 hours.
* **Weekly digests** – Mondays only; same as daily over the last 7 days for
  users last notified more than 6 days ago.

Queued digests go out on the next immediate pass. A failure for one row or
one user is counted and logged; it does not stop the pass.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..clock import Clock, utcnow
from ..database import Database
from ..errors import AppError
from .delivery import EmailSender
from .rendering import render_digest, sort_alert_rows

logger = logging.getLogger(__name__)

IMMEDIATE_BATCH_SIZE = 100
DEFAULT_NOTIFICATION_HOUR = 8


@dataclass
class ImmediateResult:
    processed: int = 0
    success: int = 0
    failed: int = 0


@dataclass
class DigestResult:
    usersProcessed: int = 0
    digestsSent: int = 0
    errors: int = 0


@dataclass(frozen=True)
class _DigestKind:
    frequency: str
    subject: str
    intro: str
    lookback: timedelta


DAILY = _DigestKind(
    frequency="daily",
    subject="PROSPERA.AI - Resumo Diário de Alertas",
    intro="Segue o resumo diário dos seus alertas na PROSPERA.AI:",
    lookback=timedelta(hours=24),
)

WEEKLY = _DigestKind(
    frequency="weekly",
    subject="PROSPERA.AI - Resumo Semanal de Alertas",
    intro="Segue o resumo semanal dos seus alertas na PROSPERA.AI:",
    lookback=timedelta(days=7),
)


def notification_hour(value: Any) -> int:
    """Hour component of a ``HH:MM[:SS]`` preference (08 when unset or invalid)."""
    if not value:
        return DEFAULT_NOTIFICATION_HOUR
    try:
        return int(str(value).split(":")[0])
    except ValueError:
        return DEFAULT_NOTIFICATION_HOUR


class EmailQueueProcessor:
    def __init__(self, db: Database, email: EmailSender, app_base_url: str, clock: Clock = utcnow) -> None:
        self.db = db
        self.email = email
        self.app_base_url = app_base_url
        self.clock = clock

    def run(self) -> Dict[str, Dict[str, int]]:
        return {
            "immediate": asdict(self.process_immediate()),
            "daily": asdict(self.process_daily_digests()),
            "weekly": asdict(self.process_weekly_digests()),
        }

    def process_immediate(self) -> ImmediateResult:
        result = ImmediateResult()
        notifications = self.db.scheduled_emails.find_pending(limit=IMMEDIATE_BATCH_SIZE)
        result.processed = len(notifications)

        for notification in notifications:
            try:
                self.email.send(
                    notification["email_to"],
                    notification["email_subject"],
                    notification["email_body"],
                )
            except AppError as e:
                logger.error("Failed to send notification %s: %s", notification["id"], e)
                result.failed += 1
                self._mark_failed(notification["id"], e.message or "Unknown error")
                continue

            # Delivered; a bookkeeping failure from here on must not count as a failed send
            result.success += 1
            self._mark_delivered(notification)

        return result

    def _mark_delivered(self, notification: Dict[str, Any]) -> None:
        sent_at = self.clock()
        try:
            self.db.scheduled_emails.mark_sent(notification["id"], sent_at)
            alert_ids = notification.get("alert_ids") or []
            if alert_ids:
                self.db.alerts.mark_many_email_sent(notification["user_id"], list(alert_ids), sent_at)
        except AppError as e:
            logger.error("Notification %s was sent but could not be marked: %s", notification["id"], e)

    def _mark_failed(self, notification_id: str, message: str) -> None:
        try:
            self.db.scheduled_emails.mark_failed(notification_id, message)
        except AppError as e:
            logger.error("Could not mark notification %s as failed: %s", notification_id, e)

    def process_daily_digests(self) -> DigestResult:
        now = self.clock()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return self._process_digests(DAILY, now, sent_before=start_of_day)

    def process_weekly_digests(self) -> DigestResult:
        now = self.clock()
        if now.weekday() != 0:
            return DigestResult()
        return self._process_digests(WEEKLY, now, sent_before=now - timedelta(days=6))

    def _process_digests(self, kind: _DigestKind, now: datetime, sent_before: datetime) -> DigestResult:
        result = DigestResult()
        candidates = self.db.notification_settings.find_digest_candidates(kind.frequency, sent_before)
        result.usersProcessed = len(candidates)

        for settings in candidates:
            if notification_hour(settings.get("notification_time")) != now.hour:
                continue
            try:
                if self._queue_digest(kind, settings, now):
                    result.digestsSent += 1
            except AppError as e:
                logger.error(
                    "Error processing %s digest for user %s: %s",
                    kind.frequency,
                    settings.get("user_id"),
                    e,
                )
                result.errors += 1

        return result

    def _queue_digest(self, kind: _DigestKind, settings: Dict[str, Any], now: datetime) -> bool:
        user_id = settings["user_id"]
        recipient = settings.get("notification_email") or self._profile_email(user_id)
        if not recipient:
            raise AppError(f"No e-mail address for user {user_id}")

        alerts = self.db.alerts.find_unsent_since(user_id, now - kind.lookback)
        if not alerts:
            return False

        alerts = sort_alert_rows(alerts)
        self.db.scheduled_emails.create(
            {
                "user_id": user_id,
                "alert_ids": [alert["id"] for alert in alerts],
                "email_to": recipient,
                "email_subject": kind.subject,
                "email_body": render_digest(kind.intro, alerts, self.app_base_url),
                "status": "pending",
            }
        )
        self.db.notification_settings.update_by_user_id(user_id, {"last_notification_sent": now})
        return True

    def _profile_email(self, user_id: str) -> Optional[str]:
        profile = self.db.profiles.find_by_user_id(user_id) or {}
        return profile.get("email")
