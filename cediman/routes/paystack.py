# cediman/routes/paystack.py

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cediman.schemas.payment import InitializePaymentRequest, VerifyReferenceRequest
from cediman.services.paystack import PaystackGateway

router = APIRouter()


@router.post(
    "/initialize",
    summary="Создать транзакцию Paystack",
    responses={
        200: {
            "description": "Транзакция создана",
            "content": {"application/json": {"example": {
                "success": True,
                "data": {"authorizationUrl": "https://checkout.paystack.com/abc", "accessCode": "abc", "reference": "PAY-1700000000000-ABCDEFGHI"},
            }}},
        },
        400: {"description": "Paystack отклонил запрос"},
        408: {"description": "Таймаут Paystack"},
        500: {"description": "Paystack не настроен или недоступен"},
    },
)
async def initialize_payment(request: Request, body: InitializePaymentRequest):
    gateway: PaystackGateway = request.app.state.gateway
    try:
        result = await gateway.initialize(body.email, body.amount, body.metadata)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка инициализации платежа: {e}", {"email": body.email})
        raise
    await request.app.state.log.log_info("payment", "Платёж инициализирован", {"reference": result.reference})
    return {"success": True, "data": result.to_json()}


@router.post(
    "/verify",
    summary="Проверить транзакцию Paystack по reference",
    responses={
        200: {"description": "Платёж успешен"},
        400: {"description": "Платёж не прошёл"},
        408: {"description": "Таймаут Paystack"},
        500: {"description": "Paystack не настроен или недоступен"},
    },
)
async def verify_payment(request: Request, body: VerifyReferenceRequest):
    gateway: PaystackGateway = request.app.state.gateway
    try:
        verification = await gateway.verify(body.reference)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка проверки платежа: {e}", {"reference": body.reference})
        raise

    if not verification.is_success:
        await request.app.state.log.log_warning("payment", "Платёж не прошёл", {
            "reference": body.reference, "status": verification.status,
        })
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Payment not successful", "status": verification.status},
        )

    return {
        "success": True,
        "data": {
            "reference": verification.reference,
            "amount": verification.amount,
            "status": verification.status,
            "paidAt": verification.paid_at,
            "channel": verification.channel,
            "customer": verification.customer,
            "metadata": verification.metadata,
        },
    }
