# cediman/routes/orders.py

from fastapi import APIRouter, Depends, Query, Request, status

from cediman.routes.auth import admin_required
from cediman.routes.deps import get_checkout, get_lifecycle, get_store
from cediman.schemas.order import (
    CancelOrderRequest,
    CheckReferenceRequest,
    ConfirmDeliveryRequest,
    OrderDraft,
    UpdateStatusRequest,
    VerifyGuestRequest,
    VerifyPaymentRequest,
)
from cediman.services.checkout import Checkout
from cediman.services.lifecycle import OrderLifecycle
from cediman.services.store import SqlOrderStore

router = APIRouter()

ADMIN_LIMIT_MAX = 500


# ────────────── CREATE ──────────────
@router.post(
    "/create",
    status_code=status.HTTP_201_CREATED,
    summary="Оформить заказ",
    responses={
        201: {"description": "Заказ создан (или уже существует для этой ссылки на платёж)"},
        400: {"description": "Неверные данные заказа"},
        500: {"description": "Ошибка записи заказа"},
    },
)
async def create_order(request: Request, draft: OrderDraft, checkout: Checkout = Depends(get_checkout)):
    try:
        result = await checkout.create_order(draft)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при создании заказа: {e}")
        raise
    return {
        "success": True,
        "orderId": result["order_id"],
        "trackingLink": result["tracking_link"],
        "duplicate": result["duplicate"],
        "message": "Order already exists" if result["duplicate"] else "Order created",
    }


# ────────────── PAYMENT ──────────────
@router.post(
    "/verify-payment",
    summary="Проверить оплату заказа в Paystack",
    responses={
        200: {"description": "Оплата подтверждена, статус заказа обновлён"},
        400: {"description": "Нет ссылки на платёж или платёж не прошёл"},
        404: {"description": "Заказ не найден"},
        408: {"description": "Таймаут платёжного шлюза"},
        500: {"description": "Ошибка шлюза или записи статуса"},
    },
)
async def verify_payment(
    request: Request,
    body: VerifyPaymentRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    try:
        verification = await lifecycle.verify_and_confirm_payment(body.order_id)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка проверки оплаты: {e}", {"id": body.order_id})
        raise
    return {
        "success": True,
        "message": "Payment verified and order status updated",
        "data": {
            "reference": verification.reference,
            "amount": verification.amount,
            "paidAt": verification.paid_at,
        },
    }


# ────────────── STATUS ──────────────
@router.post(
    "/update-status",
    summary="Сменить статус заказа (администратор)",
    responses={
        200: {"description": "Статус обновлён, уведомления отправлены по возможности"},
        400: {"description": "Неизвестный статус"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Недопустимый переход или статус изменился параллельно"},
    },
)
async def update_status(
    request: Request,
    body: UpdateStatusRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    _=Depends(admin_required),
):
    try:
        new_status = await lifecycle.update_status(
            body.order_id,
            body.status,
            customer_email=body.customer_email,
            customer_phone=body.customer_phone,
            customer_name=body.customer_name,
            note=body.note,
            delivery_person=body.delivery_person,
        )
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка смены статуса: {e}", {"id": body.order_id})
        raise
    return {"success": True, "message": "Order status updated", "status": new_status.value}


@router.post(
    "/confirm-delivery",
    summary="Покупатель подтверждает получение",
    responses={
        200: {"description": "Заказ отмечен доставленным"},
        403: {"description": "Заказ принадлежит другому пользователю или email не совпал"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Заказ нельзя перевести в delivered"},
    },
)
async def confirm_delivery(
    request: Request,
    body: ConfirmDeliveryRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    try:
        await lifecycle.confirm_delivery(body.order_id, body.user_id, body.email)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка подтверждения доставки: {e}", {"id": body.order_id})
        raise
    return {"success": True, "message": "Order marked as delivered successfully"}


@router.post("/cancel", summary="Отменить заказ (администратор)")
async def cancel_order(
    request: Request,
    body: CancelOrderRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    _=Depends(admin_required),
):
    try:
        await lifecycle.cancel(body.order_id, body.reason)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка отмены заказа: {e}", {"id": body.order_id})
        raise
    return {"success": True, "message": "Order cancelled"}


# ────────────── LOOKUPS ──────────────
@router.post("/check-reference", summary="Есть ли заказ с этой ссылкой на платёж")
async def check_reference(body: CheckReferenceRequest, checkout: Checkout = Depends(get_checkout)):
    order_id = await checkout.check_reference(body.reference)
    if order_id:
        return {"exists": True, "orderId": order_id}
    return {"exists": False}


@router.post(
    "/verify-guest",
    summary="Проверка гостевого заказа по email",
    responses={403: {"description": "Email не совпадает"}, 404: {"description": "Заказ не найден"}},
)
async def verify_guest(body: VerifyGuestRequest, checkout: Checkout = Depends(get_checkout)):
    order = await checkout.verify_guest(body.order_id, body.email)
    return {"success": True, "message": "Order verified", "orderId": order.id, "email": body.email}


# ────────────── READ ──────────────
@router.get("/user", summary="Заказы пользователя")
async def read_user_orders(
    request: Request,
    user_id: str = Query(..., alias="userId", min_length=1),
    store: SqlOrderStore = Depends(get_store),
):
    orders = await store.list_by_user(user_id)
    await request.app.state.log.log_info("order", "Заказы пользователя загружены", {"user_id": user_id, "count": len(orders)})
    return {"success": True, "orders": [order.to_json() for order in orders]}


@router.get("/admin", summary="Последние заказы (администратор)")
async def read_recent_orders(
    limit: int = 100,
    store: SqlOrderStore = Depends(get_store),
    _=Depends(admin_required),
):
    limit = min(max(limit, 1), ADMIN_LIMIT_MAX)
    orders = await store.list_recent(limit)
    return {"success": True, "orders": [order.to_json() for order in orders]}


@router.get(
    "/{order_id}",
    summary="Получить заказ по ID",
    responses={404: {"description": "Заказ не найден"}},
)
async def read_order(order_id: str, lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    order = await lifecycle.get_order(order_id)
    return {"success": True, "order": order.to_json()}


# ────────────── DELETE ──────────────
@router.delete(
    "/{order_id}",
    summary="Удалить заказ (администратор, без возможности восстановления)",
    responses={404: {"description": "Заказ не найден"}, 500: {"description": "Ошибка удаления"}},
)
async def delete_order(
    request: Request,
    order_id: str,
    store: SqlOrderStore = Depends(get_store),
    _=Depends(admin_required),
):
    try:
        await store.delete(order_id)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при удалении заказа: {e}", {"id": order_id})
        raise
    await request.app.state.log.log_info("order", "Заказ удалён", {"id": order_id})
    return {"success": True}
