"""
Single-alert e-mail notification.

Checks ownership and the user's notification settings before sending, then
stamps `email_sent` / `email_sent_at` on the persisted alert.
"""

import logging
from typing import Any, Dict, Optional

from ..clock import Clock, utcnow
from ..database import Database
from ..errors import AuthError, NotFoundError, RequestError
from .delivery import EmailSender
from .rendering import render_alert

logger = logging.getLogger(__name__)

TEST_SUBJECT = "PROSPERA.AI - Teste de Alerta por Email"


class AlertEmailService:
    def __init__(self, db: Database, email: EmailSender, app_base_url: str, clock: Clock = utcnow) -> None:
        self.db = db
        self.email = email
        self.app_base_url = app_base_url
        self.clock = clock

    def send(
        self,
        user_id: str,
        user_email: Optional[str],
        alert_id: Optional[str] = None,
        test_mode: bool = False,
    ) -> Dict[str, Any]:
        """
        Send the e-mail for `alert_id` on behalf of `user_id`.

        In test mode nothing is sent; the would-be e-mail is described.
        Disabled notifications are not errors: they answer ``success: False``.
        """
        if test_mode:
            return {
                "success": True,
                "message": "Test email would be sent (test mode)",
                "emailDetails": self._details(user_email, TEST_SUBJECT),
            }

        alert: Optional[Dict[str, Any]] = None
        if alert_id:
            alert = self.db.alerts.find_for_user(alert_id, user_id)
            if not alert:
                raise NotFoundError("Alert not found")
            if alert.get("user_id") != user_id:
                raise AuthError("Unauthorized access to alert", status_code=403)

        settings = self.db.notification_settings.find_by_user_id(user_id)
        if not settings:
            raise NotFoundError("Notification settings not found")

        if not settings.get("email_notifications_enabled"):
            return {"success": False, "message": "Email notifications are disabled for this user"}

        if alert and not settings.get(f"{alert.get('type')}_alerts_enabled"):
            return {
                "success": False,
                "message": f"Email notifications for {alert.get('type')} alerts are disabled",
            }

        recipient = settings.get("notification_email") or user_email
        if not recipient:
            raise RequestError("No e-mail address available for notifications")

        subject = f"PROSPERA.AI - Alerta: {alert['title']}" if alert else "PROSPERA.AI - Alerta"
        body = "Olá,\n\n"
        if alert:
            body += render_alert(alert) + "\n\n"
        body += f"Acesse a plataforma para mais detalhes: {self.app_base_url}/smart-alerts\n"

        self.email.send(recipient, subject, body)

        if alert:
            self.db.alerts.mark_email_sent(user_id, alert_id, self.clock())
        logger.info("Alert e-mail sent to user %s", user_id)

        return {
            "success": True,
            "message": "Email notification sent successfully",
            "emailDetails": self._details(recipient, subject),
        }

    def _details(self, to: Optional[str], subject: str) -> Dict[str, Any]:
        return {"to": to, "subject": subject, "sentAt": self.clock().isoformat() + "Z"}
