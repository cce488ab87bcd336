"""Dashboard API and payment webhook."""
import pytest
from fastapi.testclient import TestClient

from conftest import make_bot, sent_texts
from config.settings import Settings
from fakes.memory_storage import MemoryStorage
from main import build_container, create_app
from services.models import EscalationTicket, PaymentIntent, PaymentStatus, UserSession

TOKEN = "admin-token"
AUTH = {"X-Admin-Token": TOKEN}
SECRET = "hook-secret"


@pytest.fixture
def api_storage():
    return MemoryStorage()


@pytest.fixture
def api_bot():
    return make_bot()


@pytest.fixture
def settings(tmp_path):
    return Settings(admin_tokens=[TOKEN], upload_dir=str(tmp_path / "uploads"), broadcast_delay_sec=0)


@pytest.fixture
def client(settings, api_storage, api_bot):
    container = build_container(settings, api_storage, api_bot)
    with TestClient(create_app(container)) as test_client:
        yield test_client


def seed_payment(storage, status=PaymentStatus.PENDING, invoice=None):
    payment = PaymentIntent(external_id="111", player_ref="P-1", amount=500, status=status,
                            provider_invoice_ref=invoice)
    storage.payments[payment.id] = payment
    storage.sessions["111"] = UserSession(external_id="111", display_handle="alice")
    return payment


def test_requires_admin_token(client):
    assert client.get("/api/users").status_code == 403
    assert client.get("/api/users", headers={"X-Admin-Token": "wrong"}).status_code == 403
    assert client.get("/api/users", headers=AUTH).status_code == 200


def test_admin_cookie_accepted(client):
    client.cookies.set("admin_token", TOKEN)
    assert client.get("/api/payments").status_code == 200


def test_denied_when_no_tokens_configured(tmp_path, api_storage, api_bot):
    settings = Settings(admin_tokens=[], upload_dir=str(tmp_path / "u"))
    with TestClient(create_app(build_container(settings, api_storage, api_bot))) as c:
        assert c.get("/api/users", headers=AUTH).status_code == 403


def test_list_users(client, api_storage):
    api_storage.sessions["111"] = UserSession(external_id="111", display_handle="alice")

    users = client.get("/api/users", headers=AUTH).json()

    assert users[0]["externalId"] == "111"
    assert users[0]["funnelState"] == "HOME"


def test_update_payment_status(client, api_storage, api_bot):
    payment = seed_payment(api_storage)

    resp = client.patch(f"/api/payments/{payment.id}/status", json={"status": "paid"}, headers=AUTH)

    assert resp.status_code == 200
    assert resp.json()["status"] == "paid"
    assert len(sent_texts(api_bot, "111")) == 1


def test_terminal_payment_status_conflict(client, api_storage):
    payment = seed_payment(api_storage, status=PaymentStatus.PAID)

    resp = client.patch(f"/api/payments/{payment.id}/status", json={"status": "pending"}, headers=AUTH)

    assert resp.status_code == 409
    assert api_storage.payments[payment.id].status == PaymentStatus.PAID


def test_update_payment_status_validation(client, api_storage):
    payment = seed_payment(api_storage)
    assert client.patch(f"/api/payments/{payment.id}/status", json={"status": "refunded"},
                        headers=AUTH).status_code == 400
    assert client.patch("/api/payments/missing/status", json={"status": "paid"}, headers=AUTH).status_code == 404


def test_messages_reply_and_resolve(client, api_storage, api_bot):
    ticket = EscalationTicket(external_id="111", reason_text="Club not found")
    api_storage.tickets[ticket.id] = ticket

    resp = client.post(f"/api/messages/{ticket.id}/reply", json={"text": "hello"}, headers=AUTH)
    assert resp.status_code == 200
    assert resp.json()["source"] == "operator_dashboard"
    assert sent_texts(api_bot, "111") == ["hello"]

    messages = client.get("/api/messages", headers=AUTH).json()
    assert messages[0]["resolved"] is False
    assert [r["text"] for r in messages[0]["replies"]] == ["hello"]

    for _ in range(2):
        assert client.patch(f"/api/messages/{ticket.id}/resolve", headers=AUTH).status_code == 200
    assert api_storage.tickets[ticket.id].resolved is True


def test_reply_to_missing_ticket(client):
    resp = client.post("/api/messages/missing/reply", json={"text": "hello"}, headers=AUTH)
    assert resp.status_code == 404


def test_config_round_trip(client):
    assert client.post("/api/config", json={"key": "club_id", "value": "CLUB-1"}, headers=AUTH).json() == {
        "success": True
    }
    assert client.get("/api/config", headers=AUTH).json() == {"club_id": "CLUB-1"}
    assert client.post("/api/config", json={"key": " ", "value": "x"}, headers=AUTH).status_code == 400


def test_stats(client, api_storage):
    api_storage.sessions["1"] = UserSession(external_id="1", bonus_claimed=True)
    seed_payment(api_storage, status=PaymentStatus.PAID)
    seed_payment(api_storage, status=PaymentStatus.PENDING)
    ticket = EscalationTicket(external_id="1", reason_text="x")
    api_storage.tickets[ticket.id] = ticket

    stats = client.get("/api/stats", headers=AUTH).json()

    assert stats["totalUsers"] == 2
    assert stats["stepCounts"]["HOME"] == 2
    assert stats["bonusClaimed"] == 1
    assert stats["totalPayments"] == 2
    assert stats["paidCount"] == 1
    assert stats["totalRevenue"] == 500
    assert stats["pendingMessages"] == 1


def test_upload_and_serve(client):
    resp = client.post(
        "/api/upload",
        files={"file": ("my promo.png", b"\x89PNG fake", "image/png")},
        headers=AUTH,
    )
    assert resp.status_code == 200
    url = resp.json()["url"]
    assert url.startswith("/uploads/") and url.endswith("-my_promo.png")

    served = client.get(url)
    assert served.status_code == 200
    assert served.content == b"\x89PNG fake"


def test_upload_rejects_non_media(client):
    resp = client.post("/api/upload", files={"file": ("run.sh", b"rm -rf /", "text/x-sh")}, headers=AUTH)
    assert resp.status_code == 400


def test_broadcast_endpoint(client, api_storage, api_bot):
    for i in range(3):
        api_storage.sessions[str(i)] = UserSession(external_id=str(i))

    resp = client.post("/api/broadcast", json={"text": "news"}, headers=AUTH)

    assert resp.json() == {"sent": 3, "failed": 0}


@pytest.mark.parametrize("headers,params", [
    ({}, {}),
    ({"X-Webhook-Secret": "nope"}, {}),
    ({}, {"secret": "nope"}),
])
def test_webhook_rejects_bad_secret(client, api_storage, headers, params):
    api_storage.config["payment_secret"] = SECRET
    payment = seed_payment(api_storage)

    resp = client.post("/api/payment/webhook", params=params, headers=headers,
                       json={"order_id": payment.id, "status": "success"})

    assert resp.status_code == 401
    assert api_storage.payments[payment.id].status == PaymentStatus.PENDING


def test_webhook_rejects_when_secret_unconfigured(client, api_storage):
    payment = seed_payment(api_storage)

    resp = client.post("/api/payment/webhook", headers={"X-Webhook-Secret": ""},
                       json={"order_id": payment.id, "status": "success"})

    assert resp.status_code == 401
    assert api_storage.payments[payment.id].status == PaymentStatus.PENDING


def test_webhook_marks_paid(client, api_storage, api_bot):
    api_storage.config["payment_secret"] = SECRET
    payment = seed_payment(api_storage)

    resp = client.post("/api/payment/webhook", headers={"X-Webhook-Secret": SECRET},
                       json={"order_id": payment.id, "status": "SUCCEEDED"})

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "changed": True, "status": "paid"}
    assert api_storage.payments[payment.id].status == PaymentStatus.PAID


def test_webhook_get_with_query_secret_and_invoice(client, api_storage):
    api_storage.config["payment_secret"] = SECRET
    payment = seed_payment(api_storage, invoice="inv-77")

    resp = client.get("/api/payment/webhook",
                      params={"secret": SECRET, "invoiceId": "inv-77", "status": "in_progress"})

    assert resp.status_code == 200
    assert api_storage.payments[payment.id].status == PaymentStatus.PROCESSING


def test_webhook_does_not_override_terminal_status(client, api_storage):
    api_storage.config["payment_secret"] = SECRET
    payment = seed_payment(api_storage, status=PaymentStatus.PAID)

    resp = client.post("/api/payment/webhook", headers={"X-Signature": SECRET},
                       json={"payment_id": payment.id, "status": "declined"})

    assert resp.status_code == 200
    assert resp.json()["changed"] is False
    assert api_storage.payments[payment.id].status == PaymentStatus.PAID


def test_webhook_unknown_payment_and_status(client, api_storage):
    api_storage.config["payment_secret"] = SECRET
    hdr = {"X-Webhook-Secret": SECRET}

    assert client.post("/api/payment/webhook", headers=hdr,
                       json={"order_id": "missing", "status": "paid"}).status_code == 404
    assert client.post("/api/payment/webhook", headers=hdr,
                       json={"order_id": "x", "status": "weird"}).status_code == 400


def test_healthz(client):
    body = client.get("/healthz").json()
    assert body["status"] == "healthy"
    assert body["bot"] == "running"
