"""
Alert generation for a single user.

Loads the user's bills and active employees from the record store and runs
them through the rule evaluator in :mod:`prospera.alerts.rules`. A failed
fetch raises before any rule runs, so callers never see a partial list.
"""

from datetime import date, timedelta
from typing import List

from ..database import Alert, BillRecord, Database, EmployeeRecord
from .rules import BILL_WINDOW_DAYS, generate_alerts


class AlertService:
    def __init__(self, db: Database) -> None:
        self.db = db

    def generate_for_user(self, user_id: str, today: date) -> List[Alert]:
        horizon = today + timedelta(days=BILL_WINDOW_DAYS)
        bill_rows = self.db.bills.find_due_by_user(user_id, horizon)
        employee_rows = self.db.employees.find_active_by_user(user_id)

        bills = [BillRecord.model_validate(row) for row in bill_rows]
        employees = [EmployeeRecord.model_validate(row) for row in employee_rows]
        return generate_alerts(today, bills, employees)
