# cediman/services/lifecycle.py

"""
Жизненный цикл заказа: подтверждение оплаты, смена статуса, подтверждение доставки.

Порядок в каждой операции один и тот же: сначала запись статуса в хранилище
(она и определяет успех операции), потом уведомления. Ошибка уведомления
логируется и не откатывает и не проваливает уже записанный статус.
"""

from typing import Optional

from cediman.errors import MissingReference, OrderNotFound, PaymentNotSuccessful, Unauthorized
from cediman.schemas.order import DeliveryPerson, Order
from cediman.services.messages import (
    order_confirmation_email,
    order_status_email,
    order_status_sms,
)
from cediman.services.paystack import PaymentVerification
from cediman.services.status import OrderStatus, check_transition, is_forward, parse_status


class OrderLifecycle:
    def __init__(self, store, gateway, notifier, log=None, *, app_url: str, currency: str = "GHS"):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.log = log
        self.app_url = app_url.rstrip("/")
        self.currency = currency

    def tracking_link(self, order_id: str) -> str:
        return f"{self.app_url}/track/{order_id}"

    def order_link(self, order_id: str) -> str:
        return f"{self.app_url}/orders/{order_id}"

    async def _info(self, message: str, data: dict):
        if self.log:
            await self.log.log_info("order", message, data)

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.get(order_id)
        if order is None:
            if self.log:
                await self.log.log_error("order", "Заказ не найден", {"id": order_id})
            raise OrderNotFound(order_id)
        return order

    async def _transition(self, order: Order, status: OrderStatus, *, note: Optional[str] = None,
                          delivery_person: Optional[DeliveryPerson] = None) -> OrderStatus:
        """Проверка перехода и запись с условием: статус в базе всё ещё order.status."""
        status = check_transition(order.status, status)
        await self.store.update_status(
            order.id,
            status,
            expected_status=order.status,
            delivery_person=delivery_person,
            note=note,
        )
        await self._info("Статус заказа изменён", {"id": order.id, "from": order.status.value, "to": status.value})
        return status

    async def _notify(self, what: str, order_id: str, send, /, *args, **kwargs):
        """Уведомление по принципу best-effort: любая ошибка только логируется."""
        try:
            await send(*args, **kwargs)
        except Exception as e:
            if self.log:
                await self.log.log_error("notify", f"Не удалось отправить {what}", {"id": order_id, "error": str(e)})

    # ==========================================================
    # ПОДТВЕРЖДЕНИЕ ОПЛАТЫ
    # ==========================================================
    async def verify_and_confirm_payment(self, order_id: str) -> PaymentVerification:
        """
        Проверяет платёж заказа в шлюзе и переводит заказ в submitted.

        Повторный вызов безопасен: шлюз опрашивается снова, тот же статус пишется повторно.
        Если заказ уже ушёл дальше submitted (processing и т.д.), статус не откатывается.
        """
        order = await self.get_order(order_id)

        reference = order.payment_reference
        if not reference:
            if self.log:
                await self.log.log_warning("payment", "У заказа нет ссылки на платёж", {"id": order_id})
            raise MissingReference(order_id)

        verification = await self.gateway.verify(reference)
        if not verification.is_success:
            if self.log:
                await self.log.log_warning("payment", "Платёж не подтверждён шлюзом", {
                    "id": order_id, "reference": reference, "status": verification.status,
                })
            raise PaymentNotSuccessful(verification.status, verification.to_json())

        if is_forward(OrderStatus.SUBMITTED, order.status):
            await self._info("Оплата подтверждена, заказ уже дальше submitted", {
                "id": order_id, "status": order.status.value,
            })
        else:
            await self._transition(order, OrderStatus.SUBMITTED, note="Payment verified with gateway")

        email = order.contact_email
        if email:
            subject, html = order_confirmation_email(order, self.order_link(order_id), self.currency)
            await self._notify("письмо о подтверждении", order_id,
                               self.notifier.send_email, email, subject, html, order_id=order_id,
                               category="order-confirmation")
        return verification

    # ==========================================================
    # СМЕНА СТАТУСА
    # ==========================================================
    async def update_status(
        self,
        order_id: str,
        status: str | OrderStatus,
        *,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_name: Optional[str] = None,
        note: Optional[str] = None,
        delivery_person: Optional[DeliveryPerson] = None,
    ) -> OrderStatus:
        """Контакты для уведомления передаёт вызывающий, из заказа они не берутся."""
        status = parse_status(status)
        order = await self.get_order(order_id)
        status = await self._transition(order, status, note=note, delivery_person=delivery_person)

        link = self.tracking_link(order_id)
        if customer_email:
            subject, html = order_status_email(customer_name or "Customer", order_id, status.value, link)
            await self._notify("письмо о смене статуса", order_id,
                               self.notifier.send_email, customer_email, subject, html, order_id=order_id,
                               category="order-status")
        if customer_phone:
            await self._notify("SMS о смене статуса", order_id,
                               self.notifier.send_sms, customer_phone,
                               order_status_sms(order_id, status.value, link), order_id=order_id)
        return status

    # ==========================================================
    # ПОДТВЕРЖДЕНИЕ ДОСТАВКИ
    # ==========================================================
    @staticmethod
    def check_ownership(order: Order, requesting_user_id: Optional[str], email: Optional[str]):
        """
        Заказ с владельцем и переданный user_id должны совпадать.
        Во всех остальных случаях (гостевой заказ, user_id не передан)
        нужно предъявить email заказа.
        """
        if requesting_user_id and order.user_id:
            if requesting_user_id != order.user_id:
                raise Unauthorized("Unauthorized to confirm delivery for this order")
            return

        contact = order.contact_email
        if email and contact and email.strip().lower() == contact.strip().lower():
            return
        raise Unauthorized("Unauthorized to confirm delivery for this order")

    async def confirm_delivery(self, order_id: str, requesting_user_id: Optional[str] = None,
                               email: Optional[str] = None) -> OrderStatus:
        order = await self.get_order(order_id)
        try:
            self.check_ownership(order, requesting_user_id, email)
        except Unauthorized:
            if self.log:
                await self.log.log_warning("order", "Чужой заказ при подтверждении доставки", {
                    "id": order_id, "user_id": requesting_user_id,
                })
            raise
        return await self._transition(order, OrderStatus.DELIVERED, note="Delivery confirmed by customer")

    # ==========================================================
    # ОТМЕНА
    # ==========================================================
    async def cancel(self, order_id: str, reason: Optional[str] = None) -> OrderStatus:
        order = await self.get_order(order_id)
        status = await self._transition(order, OrderStatus.CANCELLED, note=reason or "Order cancelled")

        email = order.contact_email
        if email:
            subject, html = order_status_email(order.display_name, order_id, status.value,
                                               self.tracking_link(order_id))
            await self._notify("письмо об отмене", order_id,
                               self.notifier.send_email, email, subject, html, order_id=order_id,
                               category="order-cancellation")
        return status
