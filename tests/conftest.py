"""Pytest fixtures for cediman tests."""

import json
import os
import tempfile
from pathlib import Path

# Настройки читаются при импорте cediman.config, поэтому окружение задаётся до любых импортов пакета
_TMP = Path(tempfile.mkdtemp(prefix="cediman-tests-"))
_DB_PATH = _TMP / "orders.db"
os.environ.update({
    "DATABASE_URL": f"sqlite+aiosqlite:///{_DB_PATH}",
    "APP_URL": "https://shop.test/",
    "AUTH_SECRET_KEY": "test-secret",
    "AUTH_LOGIN": "admin@cediman.com",
    "AUTH_PASSWORD": "admin",
    "LOG_DIR": str(_TMP / "log"),
    "LOG_PRINT": "0",
})
for _key in ("PAYSTACK_SECRET_KEY", "SENDGRID_API_KEY", "FROGWIGAL_API_KEY"):
    os.environ.pop(_key, None)

import httpx
import pytest
from fastapi.testclient import TestClient

from cediman.errors import OrderNotFound, StatusConflict
from cediman.schemas.order import Order, OrderDraft, StatusHistoryEntry
from cediman.services.notifications import FrogWigalSms, SendGridEmail
from cediman.services.paystack import PaymentVerification, PaystackGateway
from cediman.services.status import OrderStatus, parse_status
from cediman.services.store import generate_order_id, history_entry


# ==========================================================
# ДАННЫЕ
# ==========================================================
def order_payload(**overrides) -> dict:
    """Тело POST /orders/create в формате витрины."""
    payload = {
        "items": [{"productId": "kente-1", "name": "Kente Shirt", "quantity": 2, "unitPrice": 50.0}],
        "shipping": {
            "firstName": "Ama",
            "lastName": "Mensah",
            "email": "ama@example.com",
            "phone": "0241234567",
            "address": "1 Ring Road",
            "city": "Accra",
        },
        "subtotal": 100.0,
        "shippingCost": 20.0,
        "total": 120.0,
        "guestEmail": "ama@example.com",
        "paymentReference": "PAY-1",
    }
    payload.update(overrides)
    return payload


def make_order(order_id="ORD-1", status="confirmed", **fields) -> Order:
    data = {
        "id": order_id,
        "status": status,
        "items": [{"productId": "kente-1", "name": "Kente Shirt", "quantity": 1, "unitPrice": 150.0}],
        "shipping": {"firstName": "Ama", "email": "ama@example.com"},
        "subtotal": 150.0,
        "total": 150.0,
        "payment_reference": "PAY-1",
        "guest_email": "ama@example.com",
    }
    data.update(fields)
    return Order.model_validate(data)


# ==========================================================
# ФЕЙКИ ДЛЯ КОНТРОЛЛЕРА
# ==========================================================
class RecordingLog:
    """Подмена Log: запоминает записи вместо записи в файлы."""

    def __init__(self):
        self.records = []

    async def log_info(self, target="", message="", data=None, is_console=None):
        self.records.append(("info", target, message, data))

    async def log_warning(self, target="", message="", data=None, is_console=None):
        self.records.append(("warning", target, message, data))

    async def log_error(self, target="", message="", data=None, is_console=None):
        self.records.append(("error", target, message, data))

    def log_info_sync(self, target="", message="", data=None, is_console=None):
        self.records.append(("info", target, message, data))

    def errors(self):
        return [r for r in self.records if r[0] == "error"]


class InMemoryOrderStore:
    def __init__(self, *orders: Order):
        self.orders = {order.id: order for order in orders}
        self.writes = []

    async def get(self, order_id):
        order = self.orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def create(self, draft: OrderDraft):
        order_id = draft.order_id or generate_order_id()
        self.orders[order_id] = Order.model_validate({
            **draft.model_dump(exclude={"order_id"}),
            "id": order_id,
            "status": "confirmed",
            "status_history": [history_entry(OrderStatus.CONFIRMED, "Order submitted successfully")],
        })
        return order_id

    async def update_status(self, order_id, status, *, expected_status=None, delivery_person=None, note=None):
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if expected_status is not None and order.status != parse_status(expected_status):
            raise StatusConflict(order_id, parse_status(expected_status).value)
        status = parse_status(status)
        update = {
            "status": status,
            "status_history": [*order.status_history, StatusHistoryEntry.model_validate(history_entry(status, note))],
        }
        if delivery_person is not None:
            update["delivery_person"] = delivery_person
        self.orders[order_id] = order.model_copy(update=update)
        self.writes.append((order_id, status))

    async def delete(self, order_id):
        if self.orders.pop(order_id, None) is None:
            raise OrderNotFound(order_id)

    async def list_by_user(self, user_id):
        return [o for o in self.orders.values() if o.user_id == user_id]

    async def list_recent(self, limit=100):
        return list(self.orders.values())[:limit]

    async def find_by_payment_reference(self, reference):
        for order in self.orders.values():
            if order.payment_reference == reference:
                return order
        return None

    async def list_unowned(self):
        return [o for o in self.orders.values() if o.user_id is None]

    async def assign_user(self, order_id, user_id):
        self.orders[order_id] = self.orders[order_id].model_copy(update={"user_id": user_id})


class FakeGateway:
    def __init__(self, status="success", amount=15000, paid_at="2024-01-01T00:00:00Z", error=None):
        self.status = status
        self.amount = amount
        self.paid_at = paid_at
        self.error = error
        self.calls = []

    async def verify(self, reference):
        self.calls.append(reference)
        if self.error is not None:
            raise self.error
        return PaymentVerification(
            reference=reference,
            amount_minor_units=self.amount,
            status=self.status,
            paid_at=self.paid_at,
        )


class RecordingNotifier:
    """Подмена NotificationDispatcher; с fail=True каждый вызов падает."""

    def __init__(self, fail=False):
        self.fail = fail
        self.emails = []
        self.sms = []

    async def send_email(self, to, subject, html_body, text_body=None, *, order_id=None, category=None):
        self.emails.append({"to": to, "subject": subject, "html": html_body, "order_id": order_id, "category": category})
        if self.fail:
            raise RuntimeError("email provider exploded")
        return "sent"

    async def send_sms(self, to, message, *, order_id=None):
        self.sms.append({"to": to, "message": message, "order_id": order_id})
        if self.fail:
            raise RuntimeError("sms provider exploded")
        return "sent"


@pytest.fixture
def log():
    return RecordingLog()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ==========================================================
# ЗАГЛУШКИ ВНЕШНИХ API (httpx.MockTransport)
# ==========================================================
class PaystackStub:
    """Минимальный Paystack: initialize и verify по заранее заданным транзакциям."""

    def __init__(self):
        self.transactions = {}
        self.requests = []

    def add(self, reference, status="success", amount=12000, paid_at="2024-01-01T00:00:00Z", **extra):
        self.transactions[reference] = {"status": status, "amount": amount, "paid_at": paid_at, **extra}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/transaction/initialize":
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": f"https://checkout.paystack.com/{body['reference']}",
                    "access_code": "ac_test",
                    "reference": body["reference"],
                },
            })
        if path.startswith("/transaction/verify/"):
            reference = path.rsplit("/", 1)[-1]
            tx = self.transactions.get(reference)
            if tx is None:
                return httpx.Response(404, json={"status": False, "message": "Transaction reference not found"})
            return httpx.Response(200, json={
                "status": True,
                "message": "Verification successful",
                "data": {"reference": reference, "channel": "mobile_money", **tx},
            })
        return httpx.Response(404, json={"status": False, "message": "Not found"})


class ProviderStub:
    """Заглушка SendGrid/FrogWigal: запоминает тела запросов, при fail отвечает 500."""

    def __init__(self):
        self.fail = False
        self.payloads = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        if self.fail:
            return httpx.Response(500, json={"errors": [{"message": "provider down"}], "message": "provider down"})
        return httpx.Response(202 if "personalizations" in self.payloads[-1] else 200, json={})


@pytest.fixture
def paystack_stub():
    return PaystackStub()


@pytest.fixture
def email_stub():
    return ProviderStub()


@pytest.fixture
def sms_stub():
    return ProviderStub()


# ==========================================================
# HTTP-КЛИЕНТ
# ==========================================================
@pytest.fixture
def client(paystack_stub, email_stub, sms_stub):
    """TestClient на чистой базе; внешние API подменены заглушками."""
    if _DB_PATH.exists():
        _DB_PATH.unlink()

    from cediman.main import app

    with TestClient(app) as test_client:
        state = test_client.app.state
        state.gateway = PaystackGateway(
            "sk_test",
            log=state.log,
            callback_url="https://shop.test/checkout/callback",
            transport=httpx.MockTransport(paystack_stub.handler),
        )
        state.email_provider = SendGridEmail("SG.test", transport=httpx.MockTransport(email_stub.handler))
        state.sms_provider = FrogWigalSms("frog-key", "frog-user", transport=httpx.MockTransport(sms_stub.handler))
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = client.post("/auth/token", data={"username": "admin@cediman.com", "password": "admin"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
