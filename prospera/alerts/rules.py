from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List

from ..database.schemas import Alert, AlertPriority, BillRecord, EmployeeRecord

BILL_WINDOW_DAYS = 7
VACATION_WINDOW_DAYS = 30
FGTS_DUE_DAY = 7
TAX_FILING_WINDOW_DAYS = 30

PRIORITY_RANK: Dict[str, int] = {"high": 0, "medium": 1, "low": 2}


def format_brl(amount: Decimal) -> str:
    """Format an amount the pt-BR way: ``R$ 1.234,56``."""
    quantized = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{quantized:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_date_br(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def _days(count: int) -> str:
    return f"{count} {'dia' if count == 1 else 'dias'}"


def _bill_priority(days_until_due: int) -> AlertPriority:
    if days_until_due <= 2:
        return "high"
    if days_until_due <= 5:
        return "medium"
    # Only the last two days of the window land here.
    return "low"


def bill_alerts(today: date, bills: Iterable[BillRecord]) -> List[Alert]:
    horizon = today + timedelta(days=BILL_WINDOW_DAYS)
    alerts: List[Alert] = []
    for bill in bills:
        if not bill.is_active or not today <= bill.next_due <= horizon:
            continue
        days_until_due = (bill.next_due - today).days
        alerts.append(
            Alert(
                id=f"bill-{bill.id}",
                type="bill",
                title=f"Conta a vencer: {bill.name}",
                description=(
                    f"{bill.company} - {format_brl(bill.amount)} - "
                    f"Vence em {_days(days_until_due)}"
                ),
                date=bill.next_due,
                priority=_bill_priority(days_until_due),
                related_id=bill.id,
                related_entity="bills",
                action_path="/bills",
                action_label="Ver Contas",
            )
        )
    return alerts


def vacation_alerts(today: date, employees: Iterable[EmployeeRecord]) -> List[Alert]:
    alerts: List[Alert] = []
    for employee in employees:
        if employee.status != "active" or employee.next_vacation is None:
            continue
        vacation = employee.next_vacation
        days_until = (vacation - today).days

        if 0 < days_until <= VACATION_WINDOW_DAYS:
            alerts.append(
                Alert(
                    id=f"vacation-{employee.id}",
                    type="employee",
                    title=f"Férias do funcionário {employee.name}",
                    description=(
                        f"Férias programadas para {format_date_br(vacation)} "
                        f"(em {_days(days_until)})"
                    ),
                    date=vacation,
                    priority="high" if days_until <= 7 else "medium",
                    related_id=employee.id,
                    related_entity="employees",
                    action_path="/employees",
                    action_label="Ver Funcionários",
                )
            )
        elif days_until <= 0:
            alerts.append(
                Alert(
                    id=f"vacation-overdue-{employee.id}",
                    type="employee",
                    title=f"Férias vencidas: {employee.name}",
                    description=(
                        f"As férias deste funcionário venceram em {format_date_br(vacation)}"
                    ),
                    date=vacation,
                    priority="high",
                    related_id=employee.id,
                    related_entity="employees",
                    action_path="/employees",
                    action_label="Ver Funcionários",
                )
            )
    return alerts


def fgts_alerts(today: date, employees: Iterable[EmployeeRecord]) -> List[Alert]:
    """FGTS is due on the 7th; alerts run from the 1st through the due day."""
    if today.day > FGTS_DUE_DAY:
        return []

    due_date = today.replace(day=FGTS_DUE_DAY)
    days_until = FGTS_DUE_DAY - today.day
    alerts: List[Alert] = []
    for employee in employees:
        if employee.status != "active":
            continue
        amount = employee.salary * employee.fgts_percentage / Decimal(100)
        alerts.append(
            Alert(
                id=f"fgts-{employee.id}",
                type="tax",
                title=f"Pagamento FGTS {employee.name}",
                description=(
                    f"O FGTS vence em {_days(days_until)} (dia {FGTS_DUE_DAY}). "
                    f"Valor: {format_brl(amount)}"
                ),
                date=due_date,
                priority="high" if days_until <= 2 else "medium",
                related_id=employee.id,
                related_entity="employees",
                action_path="/employees",
                action_label="Ver Funcionários",
            )
        )
    return alerts


def tax_filing_alerts(today: date) -> List[Alert]:
    """Income-tax return deadline, April 30th, announced during March and April."""
    deadline = date(today.year, 4, 30)
    if today > deadline or today.month not in (3, 4):
        return []

    days_until = (deadline - today).days
    if days_until > TAX_FILING_WINDOW_DAYS:
        return []

    return [
        Alert(
            id=f"tax-filing-{today.year}",
            type="tax",
            title="Prazo para declaração de IR",
            description=(
                f"Faltam {days_until} dias para o prazo final de entrega "
                "da declaração de Imposto de Renda."
            ),
            date=deadline,
            priority="high" if days_until <= 7 else "medium",
            action_path="/documents",
            action_label="Ver Documentos",
        )
    ]


def sort_alerts(alerts: Iterable[Alert]) -> List[Alert]:
    """Stable sort: priority first (high, medium, low), then earliest date."""
    return sorted(alerts, key=lambda a: (PRIORITY_RANK[a.priority], a.date))


def generate_alerts(
    today: date,
    bills: Iterable[BillRecord],
    employees: Iterable[EmployeeRecord],
) -> List[Alert]:
    """
    Evaluate every alert rule against a snapshot of the user's records.

    The result depends only on the arguments, so the same snapshot and the
    same `today` always give the same ordered list.
    """
    employees = list(employees)
    alerts: List[Alert] = []
    alerts.extend(bill_alerts(today, bills))
    alerts.extend(vacation_alerts(today, employees))
    alerts.extend(fgts_alerts(today, employees))
    alerts.extend(tax_filing_alerts(today))
    return sort_alerts(alerts)
