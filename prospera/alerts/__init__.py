from .rules import PRIORITY_RANK, format_brl, format_date_br, generate_alerts, sort_alerts
from .service import AlertService

__all__ = [
    "AlertService",
    "PRIORITY_RANK",
    "format_brl",
    "format_date_br",
    "generate_alerts",
    "sort_alerts",
]
