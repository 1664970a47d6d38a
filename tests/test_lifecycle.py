"""Tests for the order lifecycle controller and checkout."""

import pytest

from conftest import FakeGateway, InMemoryOrderStore, RecordingNotifier, make_order
from cediman.errors import (
    GatewayUnavailable,
    IllegalTransition,
    MissingReference,
    OrderNotFound,
    PaymentNotSuccessful,
    StatusConflict,
    StoreWriteFailure,
    Unauthorized,
)
from cediman.schemas.order import DeliveryPerson, OrderDraft
from cediman.services.checkout import Checkout
from cediman.services.lifecycle import OrderLifecycle
from cediman.services.status import OrderStatus


def make_lifecycle(store, gateway=None, notifier=None, log=None):
    return OrderLifecycle(
        store,
        gateway or FakeGateway(),
        notifier or RecordingNotifier(),
        log,
        app_url="https://shop.test",
    )


class TestVerifyAndConfirmPayment:
    async def test_success_moves_to_submitted_and_emails_guest(self, notifier, log):
        store = InMemoryOrderStore(make_order("ORD-1"))
        gateway = FakeGateway(amount=15000)
        lifecycle = make_lifecycle(store, gateway, notifier, log)

        verification = await lifecycle.verify_and_confirm_payment("ORD-1")

        assert verification.amount == 150.0
        assert verification.paid_at == "2024-01-01T00:00:00Z"
        assert gateway.calls == ["PAY-1"]
        order = await store.get("ORD-1")
        assert order.status is OrderStatus.SUBMITTED
        assert order.status_history[-1].note == "Payment verified with gateway"
        assert len(notifier.emails) == 1
        assert notifier.emails[0]["to"] == "ama@example.com"
        assert notifier.emails[0]["subject"] == "Order Confirmation - ORD-1"

    async def test_second_call_is_idempotent(self, notifier):
        store = InMemoryOrderStore(make_order("ORD-1"))
        lifecycle = make_lifecycle(store, notifier=notifier)

        await lifecycle.verify_and_confirm_payment("ORD-1")
        await lifecycle.verify_and_confirm_payment("ORD-1")

        order = await store.get("ORD-1")
        assert order.status is OrderStatus.SUBMITTED
        assert [status for _, status in store.writes] == [OrderStatus.SUBMITTED, OrderStatus.SUBMITTED]

    async def test_does_not_regress_advanced_order(self):
        store = InMemoryOrderStore(make_order("ORD-1", status="in_transit"))
        lifecycle = make_lifecycle(store)

        await lifecycle.verify_and_confirm_payment("ORD-1")

        assert (await store.get("ORD-1")).status is OrderStatus.IN_TRANSIT
        assert store.writes == []

    async def test_cancelled_order_rejected(self):
        store = InMemoryOrderStore(make_order("ORD-1", status="cancelled"))
        lifecycle = make_lifecycle(store)

        with pytest.raises(IllegalTransition):
            await lifecycle.verify_and_confirm_payment("ORD-1")

    async def test_missing_reference_skips_gateway(self):
        store = InMemoryOrderStore(make_order("ORD-1", payment_reference=None))
        gateway = FakeGateway()
        lifecycle = make_lifecycle(store, gateway)

        with pytest.raises(MissingReference) as exc:
            await lifecycle.verify_and_confirm_payment("ORD-1")

        assert exc.value.status_code == 400
        assert gateway.calls == []

    @pytest.mark.parametrize("gateway_status", ["abandoned", "failed", "unknown"])
    async def test_unsuccessful_payment_leaves_status(self, gateway_status, notifier):
        store = InMemoryOrderStore(make_order("ORD-1"))
        lifecycle = make_lifecycle(store, FakeGateway(status=gateway_status), notifier)

        with pytest.raises(PaymentNotSuccessful) as exc:
            await lifecycle.verify_and_confirm_payment("ORD-1")

        assert exc.value.gateway_status == gateway_status
        assert gateway_status in exc.value.message
        assert (await store.get("ORD-1")).status is OrderStatus.CONFIRMED
        assert notifier.emails == []

    async def test_gateway_timeout_propagates(self):
        store = InMemoryOrderStore(make_order("ORD-1"))
        lifecycle = make_lifecycle(store, FakeGateway(error=GatewayUnavailable("timeout", timeout=True)))

        with pytest.raises(GatewayUnavailable) as exc:
            await lifecycle.verify_and_confirm_payment("ORD-1")

        assert exc.value.status_code == 408
        assert (await store.get("ORD-1")).status is OrderStatus.CONFIRMED

    async def test_store_write_failure_sends_nothing(self, notifier):
        class FailingStore(InMemoryOrderStore):
            async def update_status(self, order_id, status, **kwargs):
                raise StoreWriteFailure("Failed to update order status", "disk full")

        store = FailingStore(make_order("ORD-1"))
        gateway = FakeGateway()
        lifecycle = make_lifecycle(store, gateway, notifier)

        with pytest.raises(StoreWriteFailure) as exc:
            await lifecycle.verify_and_confirm_payment("ORD-1")

        assert exc.value.status_code == 500
        assert gateway.calls == ["PAY-1"]
        assert notifier.emails == []
        assert (await store.get("ORD-1")).status is OrderStatus.CONFIRMED

    async def test_confirmation_email_category(self, notifier):
        lifecycle = make_lifecycle(InMemoryOrderStore(make_order("ORD-1")), notifier=notifier)

        await lifecycle.verify_and_confirm_payment("ORD-1")

        assert notifier.emails[0]["category"] == "order-confirmation"

    async def test_unknown_order(self):
        with pytest.raises(OrderNotFound):
            await make_lifecycle(InMemoryOrderStore()).verify_and_confirm_payment("NOPE")

    async def test_notification_failure_does_not_fail_verify(self, log):
        store = InMemoryOrderStore(make_order("ORD-1"))
        lifecycle = make_lifecycle(store, notifier=RecordingNotifier(fail=True), log=log)

        verification = await lifecycle.verify_and_confirm_payment("ORD-1")

        assert verification.is_success
        assert (await store.get("ORD-1")).status is OrderStatus.SUBMITTED
        assert any(target == "notify" for _, target, _, _ in log.errors())


class TestUpdateStatus:
    async def test_store_write_then_notifications(self, notifier):
        store = InMemoryOrderStore(make_order("ORD-2", status="submitted"))
        lifecycle = make_lifecycle(store, notifier=notifier)

        status = await lifecycle.update_status(
            "ORD-2", "in_transit",
            customer_email="a@b.com", customer_phone="0241234567", customer_name="Kofi",
        )

        assert status is OrderStatus.IN_TRANSIT
        assert (await store.get("ORD-2")).status is OrderStatus.IN_TRANSIT
        assert notifier.emails[0]["to"] == "a@b.com"
        assert notifier.emails[0]["subject"] == "Order Update - ORD-2"
        assert notifier.emails[0]["category"] == "order-status"
        assert "Kofi" in notifier.emails[0]["html"]
        assert "https://shop.test/track/ORD-2" in notifier.sms[0]["message"]

    async def test_no_contacts_no_notifications(self, notifier):
        store = InMemoryOrderStore(make_order("ORD-2"))
        lifecycle = make_lifecycle(store, notifier=notifier)

        await lifecycle.update_status("ORD-2", "processing")

        assert notifier.emails == []
        assert notifier.sms == []

    async def test_notifier_failure_still_succeeds(self, log):
        store = InMemoryOrderStore(make_order("ORD-2"))
        lifecycle = make_lifecycle(store, notifier=RecordingNotifier(fail=True), log=log)

        status = await lifecycle.update_status("ORD-2", "delivered", customer_email="a@b.com")

        assert status is OrderStatus.DELIVERED
        assert (await store.get("ORD-2")).status is OrderStatus.DELIVERED
        assert log.errors()

    async def test_delivery_person_recorded(self):
        store = InMemoryOrderStore(make_order("ORD-2", status="in_transit"))
        lifecycle = make_lifecycle(store)
        courier = DeliveryPerson(name="Yaw", phone="0201112222")

        await lifecycle.update_status("ORD-2", "out_for_delivery", delivery_person=courier, note="Rider assigned")

        order = await store.get("ORD-2")
        assert order.delivery_person.name == "Yaw"
        assert order.status_history[-1].note == "Rider assigned"

    async def test_backward_move_rejected(self):
        store = InMemoryOrderStore(make_order("ORD-2", status="delivered"))
        lifecycle = make_lifecycle(store)

        with pytest.raises(IllegalTransition):
            await lifecycle.update_status("ORD-2", "processing")
        assert store.writes == []

    async def test_concurrent_change_detected(self):
        store = InMemoryOrderStore(make_order("ORD-2", status="submitted"))
        lifecycle = make_lifecycle(store)
        stale_read = await store.get("ORD-2")
        await store.update_status("ORD-2", OrderStatus.CANCELLED)

        with pytest.raises(StatusConflict) as exc:
            await lifecycle._transition(stale_read, OrderStatus.PROCESSING)

        assert exc.value.status_code == 409
        assert (await store.get("ORD-2")).status is OrderStatus.CANCELLED


class TestConfirmDelivery:
    async def test_owner_confirms(self):
        store = InMemoryOrderStore(make_order("ORD-3", status="out_for_delivery", user_id="U1"))
        lifecycle = make_lifecycle(store)

        await lifecycle.confirm_delivery("ORD-3", "U1")

        order = await store.get("ORD-3")
        assert order.status is OrderStatus.DELIVERED
        assert order.status_history[-1].note == "Delivery confirmed by customer"

    async def test_other_user_rejected(self, log):
        store = InMemoryOrderStore(make_order("ORD-3", status="in_transit", user_id="U2"))
        lifecycle = make_lifecycle(store, log=log)

        with pytest.raises(Unauthorized) as exc:
            await lifecycle.confirm_delivery("ORD-3", "U1")

        assert exc.value.status_code == 403
        assert (await store.get("ORD-3")).status is OrderStatus.IN_TRANSIT
        assert store.writes == []

    async def test_guest_confirms_with_matching_email(self):
        store = InMemoryOrderStore(make_order("ORD-3", status="in_transit"))
        lifecycle = make_lifecycle(store)

        await lifecycle.confirm_delivery("ORD-3", email="AMA@example.com ")

        assert (await store.get("ORD-3")).status is OrderStatus.DELIVERED

    @pytest.mark.parametrize("user_id,email", [(None, None), (None, "other@example.com"), ("U1", None)])
    async def test_guest_order_needs_email(self, user_id, email):
        store = InMemoryOrderStore(make_order("ORD-3", status="in_transit"))
        lifecycle = make_lifecycle(store)

        with pytest.raises(Unauthorized):
            await lifecycle.confirm_delivery("ORD-3", user_id, email)


class TestCancel:
    async def test_cancel_notifies_contact(self, notifier):
        store = InMemoryOrderStore(make_order("ORD-4", status="processing"))
        lifecycle = make_lifecycle(store, notifier=notifier)

        status = await lifecycle.cancel("ORD-4", "Out of stock")

        assert status is OrderStatus.CANCELLED
        assert (await store.get("ORD-4")).status_history[-1].note == "Out of stock"
        assert notifier.emails[0]["to"] == "ama@example.com"

    async def test_cannot_cancel_shipped(self):
        store = InMemoryOrderStore(make_order("ORD-4", status="in_transit"))
        with pytest.raises(IllegalTransition):
            await make_lifecycle(store).cancel("ORD-4")


class TestCheckout:
    def draft(self, **overrides):
        data = {
            "items": [{"productId": "p1", "name": "Shirt", "quantity": 1, "unitPrice": 100.0}],
            "shipping": {"firstName": "Ama", "email": "ama@example.com", "phone": "0241234567"},
            "subtotal": 100.0,
            "shippingCost": 20.0,
            "total": 120.0,
            "paymentReference": "PAY-9",
        }
        data.update(overrides)
        return OrderDraft.model_validate(data)

    async def test_create_sends_email_and_sms(self, notifier):
        store = InMemoryOrderStore()
        checkout = Checkout(store, notifier, app_url="https://shop.test/")

        result = await checkout.create_order(self.draft())

        assert result["duplicate"] is False
        assert result["tracking_link"] == f"https://shop.test/track/{result['order_id']}"
        assert (await store.get(result["order_id"])).status is OrderStatus.CONFIRMED
        assert notifier.emails[0]["to"] == "ama@example.com"
        assert notifier.sms[0]["to"] == "0241234567"

    async def test_same_reference_returns_existing_order(self, notifier):
        store = InMemoryOrderStore()
        checkout = Checkout(store, notifier, app_url="https://shop.test")

        first = await checkout.create_order(self.draft())
        second = await checkout.create_order(self.draft())

        assert second["duplicate"] is True
        assert second["order_id"] == first["order_id"]
        assert len(store.orders) == 1
        assert len(notifier.emails) == 1

    async def test_notification_failure_does_not_fail_create(self, log):
        store = InMemoryOrderStore()
        checkout = Checkout(store, RecordingNotifier(fail=True), log, app_url="https://shop.test")

        result = await checkout.create_order(self.draft())

        assert result["order_id"] in store.orders
        assert len(log.errors()) == 2

    async def test_verify_guest(self):
        store = InMemoryOrderStore(make_order("ORD-5"))
        checkout = Checkout(store, RecordingNotifier(), app_url="https://shop.test")

        order = await checkout.verify_guest("ORD-5", "Ama@Example.com")
        assert order.id == "ORD-5"

        with pytest.raises(Unauthorized):
            await checkout.verify_guest("ORD-5", "someone@else.com")
        with pytest.raises(OrderNotFound):
            await checkout.verify_guest("NOPE", "ama@example.com")
