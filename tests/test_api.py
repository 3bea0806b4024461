import json
from datetime import date, timedelta

from fastapi.testclient import TestClient

from conftest import CRON_KEY, NOW, auth, sign_payload

CORS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "POST, OPTIONS",
    "access-control-allow-headers": "*",
}


def assert_cors(response):
    for header, value in CORS.items():
        assert response.headers[header] == value


# ============================================================
# Shared behaviour
# ============================================================


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_preflight_is_204_without_body(client):
    for path in ("/generate-alerts", "/payment-webhook", "/send-invite", "/anything"):
        response = client.options(path)

        assert response.status_code == 204
        assert response.content == b""
        assert_cors(response)


def test_errors_carry_cors_and_error_body(client):
    response = client.post("/generate-alerts", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameter: userId"}
    assert_cors(response)


def test_malformed_body_is_400(client):
    response = client.post(
        "/generate-alerts", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_method_not_allowed(client):
    response = client.get("/generate-alerts")

    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"x-request-id": "req-123"})

    assert response.headers["x-request-id"] == "req-123"


def test_unexpected_error_is_generic_500(app, db, monkeypatch):
    def broken(user_id, horizon):
        raise RuntimeError("boom")

    monkeypatch.setattr(db.bills, "find_due_by_user", broken)
    client = TestClient(app, raise_server_exceptions=False)

    response = client.post("/generate-alerts", json={"userId": "user_1"})

    assert response.status_code == 500
    assert response.json() == {"error": "An unexpected error occurred"}


# ============================================================
# /generate-alerts
# ============================================================


def test_generate_alerts(client, db):
    db.bills.add(id="b1", user_id="user_1", name="Energia", company="Enel", amount="150.00",
                 next_due=NOW.date() + timedelta(days=1), is_active=True)

    response = client.post("/generate-alerts", json={"userId": "user_1"})

    assert response.status_code == 200
    alerts = response.json()
    assert alerts[0] == {
        "id": "bill-b1",
        "type": "bill",
        "title": "Conta a vencer: Energia",
        "description": "Enel - R$ 150,00 - Vence em 1 dia",
        "date": "2025-01-02",
        "priority": "high",
        "isRead": False,
        "relatedId": "b1",
        "relatedEntity": "bills",
        "actionPath": "/bills",
        "actionLabel": "Ver Contas",
    }


# ============================================================
# /payment-webhook
# ============================================================


def test_webhook_signed_payment_checkout(client, db):
    db.stripe_customers.add(customer_id="cus_1", user_id="user_1")
    payload = json.dumps({
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_1", "mode": "payment", "customer": "cus_1",
                            "amount_total": 100, "payment_status": "paid"}},
    })

    response = client.post("/payment-webhook", content=payload,
                           headers={"stripe-signature": sign_payload(payload)})

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert len(db.stripe_orders.rows) == 1


def test_webhook_bad_signature_is_400(client, db):
    db.stripe_customers.add(customer_id="cus_1", user_id="user_1")
    payload = json.dumps({"type": "checkout.session.completed",
                          "data": {"object": {"mode": "payment", "customer": "cus_1"}}})

    response = client.post("/payment-webhook", content=payload,
                           headers={"stripe-signature": "t=1,v1=deadbeef"})

    assert response.status_code == 400
    assert "error" in response.json()
    assert db.stripe_orders.rows == []


def test_webhook_missing_signature_is_400(client):
    response = client.post("/payment-webhook", content="{}")

    assert response.status_code == 400
    assert response.json() == {"error": "No signature found"}


# ============================================================
# /phone-verification
# ============================================================


def test_phone_verification_requires_parameters(client):
    response = client.post("/phone-verification", json={"action": "send"}, headers=auth("user_1"))

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameters"}


def test_phone_verification_rejects_unknown_action(client):
    response = client.post("/phone-verification", json={"action": "reset", "userId": "user_1"},
                           headers=auth("user_1"))

    assert response.status_code == 400


def test_phone_verification_requires_token(client, add_profile):
    add_profile("user_1")

    response = client.post("/phone-verification", json={"action": "send", "userId": "user_1", "phone": "+55"})

    assert response.status_code == 401
    assert response.json() == {"error": "Failed to authenticate user"}


def test_phone_verification_identity_mismatch(client, add_profile):
    add_profile("user_1")

    response = client.post("/phone-verification", json={"action": "send", "userId": "user_2", "phone": "+55"},
                           headers=auth("user_1"))

    assert response.status_code == 403


def test_phone_verification_unknown_user(client):
    response = client.post("/phone-verification", json={"action": "send", "userId": "user_1", "phone": "+55"},
                           headers=auth("user_1"))

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_phone_verification_round_trip(client, add_profile, db, sms_sender):
    add_profile("user_1")
    body = {"action": "send", "userId": "user_1", "phone": "+5511988887777"}

    sent = client.post("/phone-verification", json=body, headers=auth("user_1"))
    code = db.profiles.find_by_user_id("user_1")["phone_verification_code"]
    verified = client.post("/phone-verification", json={"action": "verify", "userId": "user_1", "code": code},
                           headers=auth("user_1"))

    assert sent.json() == {"success": True, "message": "Verification code sent"}
    assert len(sms_sender.sent) == 1
    assert verified.status_code == 200
    assert db.profiles.find_by_user_id("user_1")["phone_verified"] is True


def test_phone_verification_send_requires_phone(client, add_profile):
    add_profile("user_1")

    response = client.post("/phone-verification", json={"action": "send", "userId": "user_1"},
                           headers=auth("user_1"))

    assert response.status_code == 400
    assert response.json() == {"error": "Phone number is required"}


# ============================================================
# /send-alert-email
# ============================================================


def test_send_alert_email_requires_alert_id(client):
    response = client.post("/send-alert-email", json={}, headers=auth("user_1"))

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameter: alertId"}


def test_send_alert_email_test_mode(client, add_profile, email_sender):
    add_profile("user_1")

    response = client.post("/send-alert-email", json={"testMode": True}, headers=auth("user_1"))

    assert response.status_code == 200
    assert response.json()["emailDetails"]["to"] == "user_1@example.com"
    assert email_sender.sent == []


def test_send_alert_email_requires_token(client):
    response = client.post("/send-alert-email", json={"alertId": "bill-1"}, headers=auth("invalid"))

    assert response.status_code == 401


def test_send_alert_email_for_foreign_alert(client, add_profile, db):
    add_profile("user_1")
    db.notification_settings.add(user_id="user_1", email_notifications_enabled=True)
    db.alerts.add(id="bill-1", user_id="user_2", type="bill", title="T", description="",
                  date=date(2025, 1, 2), priority="high", email_sent=False)

    response = client.post("/send-alert-email", json={"alertId": "bill-1"}, headers=auth("user_1"))

    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized access to alert"}


# ============================================================
# Invites
# ============================================================


def test_send_invite_requires_family_plan(client, add_profile):
    add_profile("owner_1", plan="starter")

    response = client.post("/send-invite", json={"email": "g@example.com", "role": "viewer"},
                           headers=auth("owner_1"))

    assert response.status_code == 403
    assert response.json() == {"error": "User must be on family plan to invite others"}


def test_invite_flow(client, add_profile, db):
    add_profile("owner_1", plan="family", full_name="Ana")
    add_profile("guest_1", email="g@example.com")

    created = client.post("/send-invite", json={"email": "g@example.com", "role": "viewer"},
                          headers=auth("owner_1"))
    invite_id = created.json()["inviteId"]
    token = db.invites.find_by_id(invite_id)["token"]

    verified = client.post("/verify-invite", json={"token": token})
    accepted = client.post("/accept-invite", json={"token": token, "userId": "guest_1"},
                           headers=auth("guest_1"))

    assert created.status_code == 200
    assert created.json()["success"] is True
    assert verified.json()["valid"] is True
    assert verified.json()["ownerName"] == "Ana"
    assert accepted.status_code == 200
    assert accepted.json()["accessGranted"]["ownerUserId"] == "owner_1"


def test_send_invite_requires_parameters(client):
    response = client.post("/send-invite", json={"email": "g@example.com"}, headers=auth("owner_1"))

    assert response.status_code == 400


def test_verify_unknown_invite_is_404(client):
    response = client.post("/verify-invite", json={"token": "nope"})

    assert response.status_code == 404


def test_accept_invite_identity_mismatch(client):
    response = client.post("/accept-invite", json={"token": "t", "userId": "guest_1"}, headers=auth("someone"))

    assert response.status_code == 403


# ============================================================
# /process-email-queue
# ============================================================


def test_process_email_queue_requires_admin_key(client):
    assert client.post("/process-email-queue").status_code == 401
    assert client.post("/process-email-queue", headers={"x-admin-key": "wrong"}).status_code == 401


def test_process_email_queue(client, db, email_sender):
    db.scheduled_emails.add(user_id="user_1", alert_ids=[], email_to="a@example.com",
                            email_subject="S", email_body="B", status="pending")

    response = client.post("/process-email-queue", headers={"x-admin-key": CRON_KEY})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["results"]["immediate"] == {"processed": 1, "success": 1, "failed": 0}
    assert len(email_sender.sent) == 1
