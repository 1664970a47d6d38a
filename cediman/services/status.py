# cediman/services/status.py

"""
Статусы заказа и единая проверка допустимости перехода.

confirmed -> submitted -> processing -> in_transit -> out_for_delivery -> delivered
    \\-> cancelled (из confirmed, submitted или processing)

submitted - внутренний статус "оплата подтверждена шлюзом", его ставит только
проверка платежа. Пропуск промежуточных статусов разрешён, движение назад - нет.
"""

from enum import Enum

from cediman.errors import BadRequest, IllegalTransition


class OrderStatus(str, Enum):
    CONFIRMED = "confirmed"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


FORWARD_SEQUENCE = [
    OrderStatus.CONFIRMED,
    OrderStatus.SUBMITTED,
    OrderStatus.PROCESSING,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]

RANK = {status: index for index, status in enumerate(FORWARD_SEQUENCE)}

TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

CANCELLABLE = frozenset({OrderStatus.CONFIRMED, OrderStatus.SUBMITTED, OrderStatus.PROCESSING})


def parse_status(value: str | OrderStatus) -> OrderStatus:
    """Строка из запроса -> OrderStatus; неизвестный статус -> BadRequest."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise BadRequest(f"Unknown order status '{value}'", {"allowed": allowed})


def is_forward(current: OrderStatus, new: OrderStatus) -> bool:
    """True, если new стоит дальше current по основной цепочке."""
    if current == OrderStatus.CANCELLED or new == OrderStatus.CANCELLED:
        return False
    return RANK[new] > RANK[current]


def check_transition(current: str | OrderStatus, new: str | OrderStatus) -> OrderStatus:
    """
    Проверяет переход current -> new и возвращает new как OrderStatus.
    Повторная запись того же статуса разрешена всегда (идемпотентность).
    """
    current = parse_status(current)
    new = parse_status(new)

    if new == current:
        return new
    if current in TERMINAL:
        raise IllegalTransition(current.value, new.value)
    if new == OrderStatus.CANCELLED:
        if current not in CANCELLABLE:
            raise IllegalTransition(current.value, new.value)
        return new
    if not is_forward(current, new):
        raise IllegalTransition(current.value, new.value)
    return new
