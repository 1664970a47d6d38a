# cediman/services/store.py

"""
Хранилище заказов.

OrderStore - контракт, которым пользуются контроллер жизненного цикла и оформление.
SqlOrderStore - реализация на SQLAlchemy поверх сессии запроса (request.state.db).
"""

import random
import string
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from cediman.errors import OrderNotFound, StatusConflict, StoreWriteFailure
from cediman.models.order import Order as OrderModel
from cediman.schemas.order import DeliveryPerson, Order, OrderDraft
from cediman.services.status import OrderStatus, parse_status


class OrderStore(Protocol):
    async def get(self, order_id: str) -> Optional[Order]: ...

    async def create(self, draft: OrderDraft) -> str: ...

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected_status: Optional[OrderStatus] = None,
        delivery_person: Optional[DeliveryPerson] = None,
        note: Optional[str] = None,
    ) -> None: ...

    async def delete(self, order_id: str) -> None: ...

    async def list_by_user(self, user_id: str) -> list[Order]: ...

    async def list_recent(self, limit: int = 100) -> list[Order]: ...

    async def find_by_payment_reference(self, reference: str) -> Optional[Order]: ...

    async def list_unowned(self) -> list[Order]: ...

    async def assign_user(self, order_id: str, user_id: str) -> None: ...


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_order_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"ORD-{int(datetime.now(timezone.utc).timestamp() * 1000)}-{suffix}"


def history_entry(status: OrderStatus, note: Optional[str] = None) -> dict:
    return {
        "status": status.value,
        "timestamp": utc_now_iso(),
        "note": note or f"Order status updated to {status.value}",
    }


def to_schema(row: OrderModel) -> Order:
    """ORM-строка -> Order."""
    return Order.model_validate({
        "id": row.id,
        "status": row.status,
        "user_id": row.user_id,
        "guest_email": row.guest_email,
        "guest_phone": row.guest_phone,
        "customer_name": row.customer_name,
        "items": row.items or [],
        "shipping": row.shipping or {},
        "payment": row.payment,
        "subtotal": row.subtotal,
        "shipping_cost": row.shipping_cost,
        "total": row.total,
        "payment_reference": row.payment_reference,
        "order_date": row.order_date,
        "status_history": row.status_history or [],
        "delivery_person": row.delivery_person,
    })


class SqlOrderStore:
    def __init__(self, db: AsyncSession, log=None):
        self.db = db
        self.log = log

    async def _log_error(self, message: str, data: dict):
        if self.log:
            await self.log.log_error("order_store", message, data)

    async def _get_row(self, order_id: str) -> Optional[OrderModel]:
        result = await self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ────────────── READ ──────────────
    async def get(self, order_id: str) -> Optional[Order]:
        row = await self._get_row(order_id)
        return to_schema(row) if row is not None else None

    async def list_by_user(self, user_id: str) -> list[Order]:
        result = await self.db.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.order_date.desc())
        )
        return [to_schema(row) for row in result.scalars().all()]

    async def list_recent(self, limit: int = 100) -> list[Order]:
        result = await self.db.execute(
            select(OrderModel).order_by(OrderModel.order_date.desc()).limit(limit)
        )
        return [to_schema(row) for row in result.scalars().all()]

    async def find_by_payment_reference(self, reference: str) -> Optional[Order]:
        result = await self.db.execute(
            select(OrderModel).where(OrderModel.payment_reference == reference).limit(1)
        )
        row = result.scalar_one_or_none()
        return to_schema(row) if row is not None else None

    async def list_unowned(self) -> list[Order]:
        result = await self.db.execute(
            select(OrderModel).where(OrderModel.user_id.is_(None)).order_by(OrderModel.order_date)
        )
        return [to_schema(row) for row in result.scalars().all()]

    # ────────────── WRITE ──────────────
    async def create(self, draft: OrderDraft) -> str:
        order_id = draft.order_id or generate_order_id()
        row = OrderModel(
            id=order_id,
            status=OrderStatus.CONFIRMED.value,
            user_id=draft.user_id,
            guest_email=draft.guest_email,
            guest_phone=draft.guest_phone,
            customer_name=draft.customer_name,
            items=[item.model_dump(by_alias=True, exclude_none=True) for item in draft.items],
            shipping=draft.shipping.model_dump(by_alias=True, exclude_none=True),
            payment=draft.payment,
            subtotal=draft.subtotal,
            shipping_cost=draft.shipping_cost,
            total=draft.total,
            payment_reference=draft.payment_reference,
            status_history=[history_entry(OrderStatus.CONFIRMED, "Order submitted successfully")],
            order_date=datetime.now(timezone.utc),
        )
        try:
            self.db.add(row)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            await self._log_error("Заказ не создан: нарушена уникальность", {"id": order_id, "error": str(e.orig)})
            raise StoreWriteFailure("Failed to create order", "Order ID or payment reference already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            await self._log_error("Заказ не создан", {"id": order_id, "error": str(e)})
            raise StoreWriteFailure("Failed to create order", str(e))
        return order_id

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected_status: Optional[OrderStatus] = None,
        delivery_person: Optional[DeliveryPerson] = None,
        note: Optional[str] = None,
    ) -> None:
        """
        Пишет новый статус и добавляет запись в историю.
        С expected_status запись проходит только если статус в базе не менялся
        с момента чтения (compare-and-swap), иначе StatusConflict.
        """
        status = parse_status(status)
        row = await self._get_row(order_id)
        if row is None:
            raise OrderNotFound(order_id)

        values = {
            "status": status.value,
            "status_history": [*(row.status_history or []), history_entry(status, note)],
        }
        if delivery_person is not None:
            values["delivery_person"] = delivery_person.model_dump(by_alias=True, exclude_none=True)

        stmt = update(OrderModel).where(OrderModel.id == order_id)
        if expected_status is not None:
            stmt = stmt.where(OrderModel.status == parse_status(expected_status).value)

        try:
            result = await self.db.execute(
                stmt.values(**values).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                # строку удалили или сменили статус между чтением и записью
                if expected_status is None:
                    raise OrderNotFound(order_id)
                raise StatusConflict(order_id, parse_status(expected_status).value)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            await self._log_error("Статус не записан", {"id": order_id, "status": status.value, "error": str(e)})
            raise StoreWriteFailure("Failed to update order status", str(e))

    async def delete(self, order_id: str) -> None:
        row = await self._get_row(order_id)
        if row is None:
            raise OrderNotFound(order_id)
        try:
            await self.db.delete(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            await self._log_error("Заказ не удалён", {"id": order_id, "error": str(e)})
            raise StoreWriteFailure("Failed to delete order", str(e))

    async def assign_user(self, order_id: str, user_id: str) -> None:
        """Привязка гостевого заказа к пользователю (только для административного бэкфилла)."""
        try:
            result = await self.db.execute(
                update(OrderModel)
                .where(OrderModel.id == order_id, OrderModel.user_id.is_(None))
                .values(user_id=user_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                raise OrderNotFound(order_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            await self._log_error("Владелец заказа не записан", {"id": order_id, "error": str(e)})
            raise StoreWriteFailure("Failed to assign order owner", str(e))
