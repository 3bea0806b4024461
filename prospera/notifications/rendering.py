"""Plain-text rendering of persisted alerts for e-mail bodies."""

from datetime import date
from typing import Any, Dict, Iterable, List

from ..alerts.rules import PRIORITY_RANK, format_date_br

PRIORITY_LABELS = {"high": "Alta", "medium": "Média", "low": "Baixa"}


def _as_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def render_alert(alert: Dict[str, Any]) -> str:
    alert_date = _as_date(alert.get("date"))
    lines = [
        f"- {alert.get('title', '')}",
        f"  {alert.get('description', '')}",
    ]
    if alert_date:
        lines.append(f"  Data: {format_date_br(alert_date)}")
    lines.append(f"  Prioridade: {PRIORITY_LABELS.get(alert.get('priority'), 'Baixa')}")
    return "\n".join(lines)


def sort_alert_rows(alerts: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Same ordering as generated alerts: priority, then earliest date."""
    return sorted(
        alerts,
        key=lambda a: (
            PRIORITY_RANK.get(a.get("priority"), len(PRIORITY_RANK)),
            _as_date(a.get("date")) or date.max,
        ),
    )


def render_digest(intro: str, alerts: Iterable[Dict[str, Any]], app_base_url: str) -> str:
    blocks = "\n\n".join(render_alert(alert) for alert in alerts)
    return (
        f"Olá,\n\n{intro}\n\n{blocks}\n\n"
        f"Acesse a plataforma para mais detalhes: {app_base_url}/smart-alerts\n"
    )
