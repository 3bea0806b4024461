from .gateway import StripeGateway
from .webhook import ACTIVE_STATUSES, PaymentWebhookService

__all__ = ["ACTIVE_STATUSES", "PaymentWebhookService", "StripeGateway"]
