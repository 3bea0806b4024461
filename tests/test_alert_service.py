from datetime import date, timedelta

import pytest

from prospera.alerts import AlertService
from prospera.errors import DependencyError

TODAY = date(2025, 1, 1)


def test_generates_alerts_from_store_rows(db):
    db.bills.add(user_id="user_1", name="Água", company="Sabesp", amount="89.90",
                 next_due=TODAY + timedelta(days=3), is_active=True)
    db.bills.add(user_id="user_2", name="Outro", company="X", amount="10.00",
                 next_due=TODAY + timedelta(days=1), is_active=True)
    db.employees.add(id="emp-1", user_id="user_1", name="Joana", salary="1800.00",
                     fgts_percentage="8", next_vacation=None, status="active")

    alerts = AlertService(db).generate_for_user("user_1", TODAY)

    assert [a.type for a in alerts] == ["bill", "tax"]
    assert alerts[0].description == "Sabesp - R$ 89,90 - Vence em 3 dias"
    assert alerts[1].id == "fgts-emp-1"


def test_fetch_failure_aborts_generation(db, monkeypatch):
    db.bills.add(user_id="user_1", name="Água", company="", amount="1.00",
                 next_due=TODAY, is_active=True)

    def broken(user_id):
        raise DependencyError("Database request failed")

    monkeypatch.setattr(db.employees, "find_active_by_user", broken)

    with pytest.raises(DependencyError):
        AlertService(db).generate_for_user("user_1", TODAY)


def test_bill_without_company_still_alerts(db):
    db.bills.add(user_id="user_1", name="Internet", company=None, amount="99.00",
                 next_due=TODAY + timedelta(days=2), is_active=True)

    alerts = AlertService(db).generate_for_user("user_1", TODAY)

    bill = next(a for a in alerts if a.type == "bill")
    assert bill.description == " - R$ 99,00 - Vence em 2 dias"


def test_employee_without_fgts_rate_uses_eight_percent(db):
    db.employees.add(id="emp-2", user_id="user_1", name="Carlos", salary="1000.00",
                     fgts_percentage=None, next_vacation=None, status="active")

    alerts = AlertService(db).generate_for_user("user_1", TODAY)

    fgts = next(a for a in alerts if a.id == "fgts-emp-2")
    assert "R$ 80,00" in fgts.description
