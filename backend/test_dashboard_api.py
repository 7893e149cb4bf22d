"""Dashboard API and webhook tests, run against a throwaway SQLite database."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.api.routes import telegram as telegram_routes
from app.core.config import settings
from app.core.time_utils import utcnow
from app.main import app
from app.models.order import Order, OrderStatus
from app.models.payment import PaymentStatus
from app.models.store import SubscriptionStatus
from app.services import order_lifecycle
from app.telegram import bot as telegram_bot
from app.telegram.events import InboundCallback, InboundMessage, parse_update
from app.telegram.utils import order_deep_link

from conftest import BUYER_ID, SELLER_ID, buttons


@pytest.fixture
def client(db_factory, gateway, sessions):
    def override_get_db():
        session = db_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_sessions] = lambda: sessions
    # No `with` block: the lifespan (real databases, bot startup) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(store):
    return {"Authorization": f"Bearer {store.owner_token}"}


def _order(db, store, product, qty=3):
    return order_lifecycle.create_order(db, store, product, BUYER_ID, "bola", qty)


def _awaiting_payment(db, store, product, qty=3):
    order = _order(db, store, product, qty)
    payment = order_lifecycle.submit_payment(db, order, BUYER_ID, "bola", "proof-1", "photo")
    return order, payment


def _expire(db, store):
    store.subscription_status = SubscriptionStatus.EXPIRED
    store.subscription_expires_at = utcnow() - timedelta(days=1)
    db.commit()


# ==============================================================================
# AUTH
# ==============================================================================

def test_missing_token_is_unauthorized(client, store):
    response = client.get("/api/store")
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "unauthorized"}


def test_unknown_token_is_unauthorized(client, store):
    response = client.get("/api/store", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_token_accepted_as_query_parameter(client, store):
    response = client.get("/api/store", params={"token": store.owner_token})
    assert response.status_code == 200
    assert response.json()["store"]["id"] == store.id


def test_health(client):
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["bot"] == "disabled"


# ==============================================================================
# STORE
# ==============================================================================

def test_store_profile_shape(client, store, auth):
    body = client.get("/api/store", headers=auth).json()

    assert body["ok"] is True
    assert body["store"]["name"] == "Ada's Kitchen"
    assert body["store"]["bank_name"] == "GTBank"
    assert "owner_token" not in body["store"]
    assert body["subscription"]["status"] == "trial"
    assert body["subscription"]["active"] is True
    assert body["support_link"] == "https://t.me/orderlyysupport"


def test_update_bank_details(client, db, store, auth):
    response = client.put(
        "/api/store/bank",
        headers=auth,
        json={"bank_name": " Access ", "account_number": "9876543210", "account_name": "Ada O."},
    )
    assert response.status_code == 200
    assert response.json()["store"]["bank_name"] == "Access"

    db.expire_all()
    assert store.account_number == "9876543210"


@pytest.mark.parametrize(
    "body, code",
    [
        ({"bank_name": "GTBank", "account_number": "", "account_name": "Ada"}, "all_fields_required"),
        ({"bank_name": "GTBank", "account_number": "12345", "account_name": "Ada"}, "account_number_invalid"),
        ({"bank_name": "GTBank", "account_number": "01234567ab", "account_name": "Ada"}, "account_number_invalid"),
    ],
)
def test_bank_details_validation(client, store, auth, body, code):
    response = client.patch("/api/store/bank", headers=auth, json=body)
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": code}


def test_malformed_body_is_invalid_input(client, store, auth):
    response = client.post("/api/products", headers=auth, json={"name": "Rice", "in_stock": {"nested": 1}})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "invalid_input"}


# ==============================================================================
# PRODUCTS
# ==============================================================================

def test_create_and_list_products(client, store, auth):
    created = client.post(
        "/api/products",
        headers=auth,
        json={"name": "Moi Moi", "price": "1200.50", "description": "Two wraps"},
    )
    assert created.status_code == 200
    product = created.json()["product"]
    assert product["price"] == 1200.5
    assert product["in_stock"] is True

    listed = client.get("/api/products", headers=auth).json()["products"]
    assert [p["name"] for p in listed] == ["Moi Moi"]


def test_product_requires_name(client, store, auth):
    response = client.post("/api/products", headers=auth, json={"name": "  ", "price": 100})
    assert response.status_code == 400
    assert response.json()["error"] == "name_required"


def test_negative_price_rejected(client, store, auth):
    response = client.post("/api/products", headers=auth, json={"name": "Rice", "price": -5})
    assert response.status_code == 400
    assert response.json()["error"] == "price_invalid"


def test_update_product_in_other_store_is_not_found(client, db, store, product, auth):
    from app.services import store_service

    other = store_service.create_store(db, owner_id=555, name="Other", currency="$", delivery_note="")
    response = client.put(
        f"/api/products/{product.id}",
        headers={"Authorization": f"Bearer {other.owner_token}"},
        json={"name": "Hijack", "price": 1},
    )
    assert response.status_code == 404


def test_price_update_changes_unpaid_order_total(client, db, store, product, auth):
    _order(db, store, product, qty=3)

    before = client.get("/api/orders", headers=auth).json()["orders"][0]
    assert before["total"] == 7500

    response = client.put(
        f"/api/products/{product.id}",
        headers=auth,
        json={"name": "Jollof Rice", "price": 3000, "description": "Party size", "in_stock": True},
    )
    assert response.status_code == 200

    after = client.get("/api/orders", headers=auth).json()["orders"][0]
    assert after["total"] == 9000
    assert after["product_name"] == "Jollof Rice"
    assert after["currency"] == "₦"


# ==============================================================================
# ORDERS
# ==============================================================================

def test_status_override_accepts_any_string(client, db, store, product, auth):
    order = _order(db, store, product)

    response = client.patch(f"/api/orders/{order.id}/status", headers=auth, json={"status": "on_hold"})
    assert response.status_code == 200
    assert response.json()["order"]["status"] == "on_hold"

    db.expire_all()
    assert db.query(Order).filter(Order.id == order.id).one().status == "on_hold"


def test_status_override_requires_status(client, db, store, product, auth):
    order = _order(db, store, product)
    response = client.put(f"/api/orders/{order.id}/status", headers=auth, json={"status": ""})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "status_required"}


def test_unknown_order_is_not_found(client, store, auth):
    response = client.put("/api/orders/missing/status", headers=auth, json={"status": "paid"})
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


# ==============================================================================
# SUBSCRIPTION GATE
# ==============================================================================

def test_expired_store_blocks_mutations_but_not_reads(client, db, store, product, auth):
    _expire(db, store)

    blocked = client.post("/api/products", headers=auth, json={"name": "Suya", "price": 500})
    assert blocked.status_code == 402
    assert blocked.json() == {
        "ok": False,
        "error": "subscription_required",
        "support_link": "https://t.me/orderlyysupport",
    }

    profile = client.get("/api/store", headers=auth)
    assert profile.status_code == 200
    assert profile.json()["subscription"]["active"] is False
    assert client.get("/api/products", headers=auth).status_code == 200
    assert client.get("/api/orders", headers=auth).status_code == 200


# ==============================================================================
# PAYMENTS
# ==============================================================================

def test_list_and_filter_payments(client, db, store, product, auth):
    _awaiting_payment(db, store, product)

    awaiting = client.get("/api/payments", headers=auth, params={"status": "AWAITING"}).json()["payments"]
    assert len(awaiting) == 1
    assert awaiting[0]["amount"] == 7500
    assert awaiting[0]["product_name"] == "Jollof Rice"
    assert awaiting[0]["order_status"] == OrderStatus.AWAITING_CONFIRMATION

    confirmed = client.get("/api/payments", headers=auth, params={"status": "confirmed"}).json()["payments"]
    assert confirmed == []


def test_get_missing_payment(client, store, auth):
    response = client.get("/api/payments/nope", headers=auth)
    assert response.status_code == 404


def test_approve_from_dashboard_prompts_buyer(client, db, store, product, auth, sessions, gateway):
    order, payment = _awaiting_payment(db, store, product)

    response = client.put(f"/api/payments/{payment.id}/approve", headers=auth)
    assert response.status_code == 200
    body = response.json()["payment"]
    assert body["status"] == PaymentStatus.CONFIRMED
    assert body["order_status"] == OrderStatus.PAID

    assert sessions.get(BUYER_ID) is not None
    assert "Payment confirmed" in gateway.last_to(BUYER_ID)["text"]

    again = client.put(f"/api/payments/{payment.id}/approve", headers=auth)
    assert again.status_code == 409
    assert again.json() == {"ok": False, "error": "already_resolved"}
    assert len(gateway.to(BUYER_ID)) == 1


def test_reject_from_dashboard_notifies_buyer(client, db, store, product, auth, gateway):
    order, payment = _awaiting_payment(db, store, product)

    response = client.put(f"/api/payments/{payment.id}/reject", headers=auth)
    assert response.status_code == 200
    assert response.json()["payment"]["status"] == PaymentStatus.REJECTED
    assert response.json()["payment"]["order_status"] == OrderStatus.PENDING

    notice = gateway.last_to(BUYER_ID)
    assert f"pay:paid:{order.id}" in buttons(notice)


def test_approve_succeeds_when_buyer_unreachable(client, db, store, product, auth, gateway):
    _, payment = _awaiting_payment(db, store, product)
    gateway.unreachable.add(str(BUYER_ID))

    response = client.put(f"/api/payments/{payment.id}/approve", headers=auth)
    assert response.status_code == 200


# ==============================================================================
# ANALYTICS
# ==============================================================================

def test_analytics_counts_current_window(client, db, store, product, auth):
    _, payment = _awaiting_payment(db, store, product)
    order_lifecycle.approve_payment(db, payment, SELLER_ID)
    _order(db, store, product, qty=1)

    data = client.get("/api/analytics", headers=auth, params={"period": "7d"}).json()["analytics"]

    assert data["period"] == "7d"
    assert data["days"] == 7
    assert data["orders_total"] == 2
    assert data["pending_total"] == 1
    assert data["revenue_total"] == 7500
    assert data["products_total"] == 1
    assert data["orders_change_pct"] == 100.0
    assert len(data["series"]["labels"]) == 7
    assert sum(data["series"]["values"]) == 2


def test_analytics_unknown_period_falls_back(client, store, auth):
    data = client.get("/api/analytics", headers=auth, params={"period": "1y"}).json()["analytics"]
    assert data["period"] == "30d"
    assert data["series"]["values"] == [0] * 30
    assert data["revenue_change_pct"] == 0.0


def test_pct_change():
    from app.services.analytics import pct_change

    assert pct_change(0, 0) == 0.0
    assert pct_change(5, 0) == 100.0
    assert pct_change(15, 10) == 50.0
    assert pct_change(5, 10) == -50.0


# ==============================================================================
# WEBHOOK
# ==============================================================================

START_UPDATE = {
    "update_id": 5001,
    "message": {
        "message_id": 1,
        "date": 1760000000,
        "chat": {"id": BUYER_ID, "type": "private"},
        "from": {"id": BUYER_ID, "is_bot": False, "first_name": "Bola", "username": "bola"},
        "text": "/start",
        "entities": [{"type": "bot_command", "offset": 0, "length": 6}],
    },
}


def test_webhook_secret_mismatch_still_acknowledged(client, monkeypatch):
    calls = []

    async def fake_process(payload):
        calls.append(payload)

    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", "s3cret")
    monkeypatch.setattr(telegram_routes, "process_update", fake_process)

    response = client.post("/telegram/webhook", json=START_UPDATE, headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"})
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert calls == []

    response = client.post("/telegram/webhook", json=START_UPDATE, headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"})
    assert response.json() == {"ok": True}
    assert calls == [START_UPDATE]


def test_webhook_non_json_body_acknowledged(client):
    response = client.post("/telegram/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_redelivered_update_is_processed_once(monkeypatch, db_factory, sessions, gateway):
    monkeypatch.setattr(telegram_bot, "SessionLocal", db_factory)
    monkeypatch.setattr(telegram_bot, "get_session_store", lambda: sessions)
    monkeypatch.setattr(telegram_bot, "get_gateway", lambda: gateway)

    await telegram_bot.process_update(START_UPDATE)
    await telegram_bot.process_update(START_UPDATE)

    assert len(gateway.to(BUYER_ID)) == 1
    assert "menu:create" in buttons(gateway.last_to(BUYER_ID))


# ==============================================================================
# UPDATE PARSING
# ==============================================================================

def _message_update(**fields):
    message = {
        "message_id": 7,
        "date": 1760000000,
        "chat": {"id": SELLER_ID, "type": "private"},
        "from": {"id": SELLER_ID, "is_bot": False, "first_name": "Ada", "username": "ada"},
    }
    message.update(fields)
    return {"update_id": 42, "message": message}


def test_parse_photo_keeps_largest_size():
    photos = [
        {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 90},
        {"file_id": "large", "file_unique_id": "l", "width": 1280, "height": 1280},
    ]
    event = parse_update(_message_update(photo=photos, caption="receipt"))
    assert isinstance(event, InboundMessage)
    assert event.photo_file_id == "large"
    assert event.text == ""


def test_parse_command_with_bot_mention_and_payload():
    text = "/start@OrderlyyBot order_abc-123"
    entities = [{"type": "bot_command", "offset": 0, "length": len("/start@OrderlyyBot")}]
    event = parse_update(_message_update(text=text, entities=entities))
    assert event.command == "start"
    assert event.command_args == "order_abc-123"
    assert event.text == text


def test_parse_plain_text_is_not_a_command():
    event = parse_update(_message_update(text="3"))
    assert event.command == ""
    assert event.command_args == ""


def test_order_deep_link(monkeypatch):
    monkeypatch.setattr(settings, "BOT_USERNAME", "OrderlyyBot")
    assert order_deep_link("p-1") == "https://t.me/OrderlyyBot?start=order_p-1"
    monkeypatch.setattr(settings, "BOT_USERNAME", "")
    assert order_deep_link("p-1") is None


def test_parse_document():
    document = {"file_id": "doc-1", "file_unique_id": "d1", "file_name": "receipt.pdf"}
    event = parse_update(_message_update(document=document))
    assert event.document_file_id == "doc-1"
    assert event.photo_file_id is None


def test_parse_forward_from_channel():
    origin = {
        "type": "channel",
        "date": 1760000000,
        "chat": {"id": -1002, "type": "channel", "title": "Mama's Spot", "username": "mamaspot"},
        "message_id": 11,
    }
    event = parse_update(_message_update(text="hi", forward_origin=origin))
    assert event.forward_chat_id == -1002
    assert event.username == "ada"


def test_parse_callback():
    payload = {
        "update_id": 43,
        "callback_query": {
            "id": "cbq-1",
            "chat_instance": "ci",
            "from": {"id": BUYER_ID, "is_bot": False, "first_name": "Bola"},
            "data": "pay:paid:abc",
        },
    }
    event = parse_update(payload)
    assert isinstance(event, InboundCallback)
    assert event.chat_id == BUYER_ID
    assert event.data == "pay:paid:abc"
    assert event.username == ""


def test_parse_ignores_unhandled_updates():
    assert parse_update({"update_id": 44, "edited_message": _message_update()["message"]}) is None
    assert parse_update("garbage") is None
