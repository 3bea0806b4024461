from .alert_email import AlertEmailService
from .delivery import EmailSender, SmsSender
from .email_queue import EmailQueueProcessor

__all__ = ["AlertEmailService", "EmailQueueProcessor", "EmailSender", "SmsSender"]
