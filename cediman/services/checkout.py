# cediman/services/checkout.py

from typing import Optional

from cediman.errors import OrderNotFound, Unauthorized
from cediman.schemas.order import Order, OrderDraft
from cediman.services.messages import order_confirmation_email, order_confirmation_sms


class Checkout:
    """
    Оформление заказа после оплаты на витрине.
    Повторная отправка с той же ссылкой на платёж не создаёт второй заказ.
    """

    def __init__(self, store, notifier, log=None, *, app_url: str, currency: str = "GHS"):
        self.store = store
        self.notifier = notifier
        self.log = log
        self.app_url = app_url.rstrip("/")
        self.currency = currency

    async def check_reference(self, reference: str) -> Optional[str]:
        """ID заказа, уже привязанного к этой ссылке на платёж, или None."""
        order = await self.store.find_by_payment_reference(reference)
        return order.id if order else None

    async def create_order(self, draft: OrderDraft) -> dict:
        if draft.payment_reference:
            existing_id = await self.check_reference(draft.payment_reference)
            if existing_id:
                if self.log:
                    await self.log.log_warning("order", "Повторное оформление по той же ссылке на платёж", {
                        "reference": draft.payment_reference, "id": existing_id,
                    })
                return {
                    "order_id": existing_id,
                    "tracking_link": f"{self.app_url}/track/{existing_id}",
                    "duplicate": True,
                }

        order_id = await self.store.create(draft)
        if self.log:
            await self.log.log_info("order", "Заказ создан", {"id": order_id, "total": draft.total})

        tracking_link = f"{self.app_url}/track/{order_id}"
        order = await self.store.get(order_id)
        if order is not None:
            await self._send_confirmation(order, tracking_link)

        return {"order_id": order_id, "tracking_link": tracking_link, "duplicate": False}

    async def _send_confirmation(self, order: Order, tracking_link: str):
        email = order.contact_email
        if email:
            subject, html = order_confirmation_email(order, f"{self.app_url}/orders/{order.id}", self.currency)
            try:
                await self.notifier.send_email(email, subject, html, order_id=order.id,
                                               category="order-confirmation")
            except Exception as e:
                if self.log:
                    await self.log.log_error("notify", "Письмо о заказе не отправлено", {"id": order.id, "error": str(e)})

        phone = order.contact_phone
        if phone:
            try:
                await self.notifier.send_sms(phone, order_confirmation_sms(order.id, tracking_link), order_id=order.id)
            except Exception as e:
                if self.log:
                    await self.log.log_error("notify", "SMS о заказе не отправлено", {"id": order.id, "error": str(e)})

    async def verify_guest(self, order_id: str, email: str) -> Order:
        """Гостевой доступ к заказу: email должен совпасть без учёта регистра."""
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        contact = order.contact_email or ""
        if contact.strip().lower() != email.strip().lower():
            if self.log:
                await self.log.log_warning("order", "Email не совпал при проверке гостевого заказа", {"id": order_id})
            raise Unauthorized("Email does not match this order")
        return order
