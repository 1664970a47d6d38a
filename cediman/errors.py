# cediman/errors.py

"""
Ошибки сервиса заказов.

Каждый класс знает свой HTTP-статус; обработчик в main.py превращает их
в ответ вида {"success": false, "error": ..., "details": ...}.
"""

from typing import Any


class OrderServiceError(Exception):
    """Базовая ошибка сервиса заказов."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)


class OrderNotFound(OrderServiceError):
    status_code = 404

    def __init__(self, order_id: str | None = None):
        self.order_id = order_id
        super().__init__("Order not found")


class BadRequest(OrderServiceError):
    """Отсутствуют или некорректны входные данные."""

    status_code = 400


class MissingReference(BadRequest):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Payment reference not found for this order")


class Unauthorized(OrderServiceError):
    status_code = 403


class PaymentNotSuccessful(OrderServiceError):
    """Шлюз ответил, что транзакция не прошла. gateway_status - сырой статус шлюза."""

    status_code = 400

    def __init__(self, gateway_status: str, details: Any = None):
        self.gateway_status = gateway_status
        super().__init__(
            f"Payment verification failed. Paystack status: {gateway_status}",
            details,
        )


class GatewayRejected(OrderServiceError):
    status_code = 400


class GatewayUnavailable(OrderServiceError):
    """Сетевая ошибка или таймаут при обращении к платёжному шлюзу."""

    def __init__(self, message: str, timeout: bool = False):
        self.timeout = timeout
        self.status_code = 408 if timeout else 500
        super().__init__(message)


class StoreWriteFailure(OrderServiceError):
    status_code = 500


class IllegalTransition(OrderServiceError):
    status_code = 409

    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Illegal status transition: {current} -> {new}")


class StatusConflict(OrderServiceError):
    """Статус заказа изменился между чтением и записью."""

    status_code = 409

    def __init__(self, order_id: str, expected: str):
        self.order_id = order_id
        self.expected = expected
        super().__init__(f"Order {order_id} is no longer in status '{expected}'")


class NotificationFailure(OrderServiceError):
    """Ошибка отправки уведомления. Наружу не пробрасывается, только логируется."""
