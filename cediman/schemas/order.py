# cediman/schemas/order.py

from datetime import datetime
from typing import Any, Optional

from pydantic import ConfigDict, Field, model_validator

from cediman.schemas.base import CamelModel
from cediman.services.status import OrderStatus

MONEY_TOLERANCE = 0.01


def payment_reference_of(payload: dict) -> Optional[str]:
    """
    Ссылка на платёж из документа старого формата.
    Поддерживаются paystackReference / paymentReference на верхнем уровне
    и payment.reference; верхний уровень в приоритете.
    """
    for key in ("paymentReference", "payment_reference", "paystackReference", "paystack_reference"):
        if payload.get(key):
            return payload[key]
    payment = payload.get("payment")
    if isinstance(payment, dict) and payment.get("reference"):
        return payment["reference"]
    return None


class OrderItem(CamelModel):
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    size: Optional[str] = None
    image: Optional[str] = None


class ShippingInfo(CamelModel):
    model_config = ConfigDict(extra="allow")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None


class DeliveryPerson(CamelModel):
    name: str
    phone: str
    vehicle_info: Optional[str] = None
    assigned_at: Optional[str] = None


class StatusHistoryEntry(CamelModel):
    status: str
    timestamp: str
    note: Optional[str] = None


# ────────────── Черновик заказа (оформление) ──────────────
class OrderDraft(CamelModel):
    order_id: Optional[str] = None
    user_id: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    customer_name: Optional[str] = None
    items: list[OrderItem] = Field(..., min_length=1)
    shipping: ShippingInfo
    payment: Optional[dict[str, Any]] = None
    subtotal: float = Field(..., ge=0)
    shipping_cost: float = Field(0.0, ge=0)
    total: float = Field(..., ge=0)
    payment_reference: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_reference(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("paymentReference") and not data.get("payment_reference"):
            reference = payment_reference_of(data)
            if reference:
                data = {**data, "paymentReference": reference}
        return data

    @model_validator(mode="after")
    def check_consistency(self) -> "OrderDraft":
        items_sum = sum(item.quantity * item.unit_price for item in self.items)
        if abs(items_sum - self.subtotal) > MONEY_TOLERANCE:
            raise ValueError(f"subtotal {self.subtotal} does not match items sum {items_sum}")
        if abs(self.subtotal + self.shipping_cost - self.total) > MONEY_TOLERANCE:
            raise ValueError("total must equal subtotal + shippingCost")
        if not (self.user_id or self.guest_email or self.shipping.email):
            raise ValueError("Order needs a userId or a contact email")
        return self


# ────────────── Заказ (как хранится) ──────────────
class Order(CamelModel):
    id: str
    status: OrderStatus
    user_id: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    customer_name: Optional[str] = None
    items: list[OrderItem] = Field(default_factory=list)
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    payment: Optional[dict[str, Any]] = None
    subtotal: float = 0.0
    shipping_cost: float = 0.0
    total: float = 0.0
    payment_reference: Optional[str] = None
    order_date: Optional[datetime] = None
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    delivery_person: Optional[DeliveryPerson] = None

    @property
    def contact_email(self) -> Optional[str]:
        """Email для уведомлений: гостевой, затем из адреса доставки."""
        return self.guest_email or self.shipping.email

    @property
    def contact_phone(self) -> Optional[str]:
        return self.guest_phone or self.shipping.phone

    @property
    def display_name(self) -> str:
        return self.customer_name or self.shipping.first_name or "Customer"


# ────────────── Тела запросов ──────────────
class VerifyPaymentRequest(CamelModel):
    order_id: str = Field(..., min_length=1)


class UpdateStatusRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    note: Optional[str] = None
    delivery_person: Optional[DeliveryPerson] = None


class ConfirmDeliveryRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    email: Optional[str] = None


class CancelOrderRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    reason: Optional[str] = None


class CheckReferenceRequest(CamelModel):
    reference: str = Field(..., min_length=1)


class VerifyGuestRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
