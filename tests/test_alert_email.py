from datetime import date

import pytest

from prospera.errors import AuthError, NotFoundError
from prospera.notifications import AlertEmailService
from prospera.notifications.alert_email import TEST_SUBJECT

from conftest import APP_BASE_URL, NOW


@pytest.fixture
def mailer(db, email_sender, clock):
    return AlertEmailService(db, email_sender, APP_BASE_URL, clock=clock)


@pytest.fixture
def alert(db):
    return db.alerts.add(
        id="bill-b1",
        user_id="user_1",
        type="bill",
        title="Conta a vencer: Energia",
        description="Enel - R$ 150,00 - Vence em 1 dia",
        date=date(2025, 1, 2),
        priority="high",
        email_sent=False,
    )


@pytest.fixture
def notification_settings(db):
    return db.notification_settings.add(
        user_id="user_1",
        email_notifications_enabled=True,
        notification_email=None,
        bill_alerts_enabled=True,
        tax_alerts_enabled=False,
    )


def test_test_mode_sends_nothing(mailer, email_sender):
    result = mailer.send("user_1", "user_1@example.com", test_mode=True)

    assert result["success"] is True
    assert result["emailDetails"]["subject"] == TEST_SUBJECT
    assert result["emailDetails"]["to"] == "user_1@example.com"
    assert email_sender.sent == []


def test_sends_and_stamps_alert(mailer, db, email_sender, alert, notification_settings):
    result = mailer.send("user_1", "user_1@example.com", alert_id="bill-b1")

    assert result["success"] is True
    assert result["emailDetails"] == {
        "to": "user_1@example.com",
        "subject": "PROSPERA.AI - Alerta: Conta a vencer: Energia",
        "sentAt": NOW.isoformat() + "Z",
    }
    body = email_sender.sent[0]["body"]
    assert "Data: 02/01/2025" in body
    assert "Prioridade: Alta" in body
    assert f"{APP_BASE_URL}/smart-alerts" in body

    row = db.alerts.where(id="bill-b1", user_id="user_1")[0]
    assert row["email_sent"] is True
    assert row["email_sent_at"] == NOW


def test_notification_email_overrides_account_email(mailer, db, email_sender, alert, notification_settings):
    db.notification_settings.update_by_user_id("user_1", {"notification_email": "alerts@example.com"})

    mailer.send("user_1", "user_1@example.com", alert_id="bill-b1")

    assert email_sender.sent[0]["to"] == "alerts@example.com"


def test_unknown_alert(mailer, notification_settings):
    with pytest.raises(NotFoundError, match="Alert not found"):
        mailer.send("user_1", "user_1@example.com", alert_id="bill-missing")


def test_alert_of_another_user_is_forbidden(mailer, alert, notification_settings):
    with pytest.raises(AuthError) as exc_info:
        mailer.send("user_2", "user_2@example.com", alert_id="bill-b1")

    assert exc_info.value.status_code == 403


def test_shared_alert_id_resolves_to_callers_row(mailer, db, email_sender, alert, notification_settings):
    db.alerts.add(id="tax-filing-2025", user_id="user_2", type="tax", title="IR", description="",
                  date=date(2025, 4, 30), priority="medium", email_sent=False)
    db.alerts.add(id="tax-filing-2025", user_id="user_1", type="bill", title="IR", description="",
                  date=date(2025, 4, 30), priority="medium", email_sent=False)

    result = mailer.send("user_1", "user_1@example.com", alert_id="tax-filing-2025")

    assert result["success"] is True
    assert db.alerts.where(id="tax-filing-2025", user_id="user_2")[0]["email_sent"] is False


def test_missing_settings(mailer, alert):
    with pytest.raises(NotFoundError, match="Notification settings not found"):
        mailer.send("user_1", "user_1@example.com", alert_id="bill-b1")


def test_disabled_notifications_are_not_errors(mailer, db, email_sender, alert, notification_settings):
    db.notification_settings.update_by_user_id("user_1", {"email_notifications_enabled": False})

    result = mailer.send("user_1", "user_1@example.com", alert_id="bill-b1")

    assert result == {"success": False, "message": "Email notifications are disabled for this user"}
    assert email_sender.sent == []


def test_disabled_alert_type(mailer, db, email_sender, notification_settings):
    db.alerts.add(id="fgts-e1", user_id="user_1", type="tax", title="FGTS", description="",
                  date=date(2025, 1, 7), priority="medium", email_sent=False)

    result = mailer.send("user_1", "user_1@example.com", alert_id="fgts-e1")

    assert result["success"] is False
    assert "tax alerts are disabled" in result["message"]
    assert email_sender.sent == []
