# cediman/routes/admin.py

from fastapi import APIRouter, Depends, Request

from cediman.routes.auth import admin_required
from cediman.services.users import backfill_order_owners_service

router = APIRouter()


@router.post(
    "/orders/backfill-owners",
    summary="Привязать гостевые заказы к пользователям по email",
    responses={
        200: {
            "description": "Бэкфилл выполнен",
            "content": {"application/json": {"example": {
                "success": True,
                "message": "Successfully updated 1 orders!",
                "stats": {"total": 2, "matched": 1, "notMatched": 1, "updated": 1},
                "updates": [{"orderId": "ORD-1", "userId": "3", "email": "buyer@mail.com"}],
            }}},
        },
        401: {"description": "Токен невалиден"},
        403: {"description": "Требуется администратор"},
    },
)
async def backfill_order_owners(request: Request, _=Depends(admin_required)):
    try:
        result = await backfill_order_owners_service(request)
    except Exception as e:
        await request.app.state.log.log_error("admin", f"Ошибка бэкфилла владельцев заказов: {e}")
        raise

    stats = result["stats"]
    if stats["total"] == 0:
        message = "No orders without owner. Nothing to fix!"
    elif stats["updated"] == 0:
        message = "No orders to update. All done!"
    else:
        message = f"Successfully updated {stats['updated']} orders!"
    return {"success": True, "message": message, **result}
