# cediman/routes/notifications.py

from fastapi import APIRouter, Depends

from cediman.routes.auth import admin_required
from cediman.routes.deps import get_notifier
from cediman.schemas.payment import SendEmailRequest, SendSmsRequest
from cediman.services.notifications import NotificationDispatcher

router = APIRouter()


@router.post("/send-email", summary="Отправить письмо покупателю (администратор)")
async def send_email(
    body: SendEmailRequest,
    notifier: NotificationDispatcher = Depends(get_notifier),
    _=Depends(admin_required),
):
    state = await notifier.send_email(body.to, body.subject, body.html, body.text, order_id=body.order_id)
    return {"success": state != "failed", "state": state}


@router.post("/send-sms", summary="Отправить SMS покупателю (администратор)")
async def send_sms(
    body: SendSmsRequest,
    notifier: NotificationDispatcher = Depends(get_notifier),
    _=Depends(admin_required),
):
    state = await notifier.send_sms(body.to, body.message, order_id=body.order_id)
    return {"success": state != "failed", "state": state}


@router.post("/retry", summary="Повторить неотправленные уведомления (администратор)")
async def retry_failed(
    notifier: NotificationDispatcher = Depends(get_notifier),
    _=Depends(admin_required),
):
    stats = await notifier.retry_failed()
    return {"success": True, **stats}
