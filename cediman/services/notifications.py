# cediman/services/notifications.py

"""
Отправка уведомлений покупателям.

Провайдеры: SendGridEmail (email) и FrogWigalSms (SMS), оба через httpx.
NotificationDispatcher сначала записывает уведомление в outbox (таблица notifications),
затем сразу пытается доставить. Ошибка доставки отмечается в outbox и логируется,
но вызывающему коду не пробрасывается. Неудачные записи можно повторить через retry_failed().
"""

import random
import re
import string
import time
from typing import Optional, Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from cediman.errors import NotificationFailure
from cediman.models.notification import Notification
from cediman.services.messages import strip_html

SENDGRID_API_BASE = "https://api.sendgrid.com"


def format_ghana_phone(phone: str) -> str:
    """0241234567 / +233 24 123 4567 -> 233241234567"""
    cleaned = re.sub(r"\D", "", phone or "")
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    if not cleaned.startswith("233"):
        cleaned = "233" + cleaned
    return cleaned


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain or '***'}"


class Provider(Protocol):
    channel: str

    @property
    def configured(self) -> bool: ...

    async def send(self, recipient: str, body: str, *, subject: Optional[str] = None,
                   text_body: Optional[str] = None, category: Optional[str] = None) -> None: ...


# ==========================================================
# ПРОВАЙДЕРЫ
# ==========================================================
class SendGridEmail:
    channel = "email"

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str = "noreply@cediman.com",
        from_name: str = "Cediman",
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._client = httpx.AsyncClient(
            base_url=SENDGRID_API_BASE,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, recipient: str, subject: str, html: str, text: Optional[str],
                      category: Optional[str] = None) -> dict:
        return {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "reply_to": {"email": self.from_email},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text or strip_html(html)},
                {"type": "text/html", "value": html},
            ],
            "categories": [category, "transactional"] if category else ["transactional"],
        }

    async def send(self, recipient: str, body: str, *, subject: Optional[str] = None,
                   text_body: Optional[str] = None, category: Optional[str] = None) -> None:
        payload = self.build_payload(recipient, subject or "", body, text_body, category)
        try:
            response = await self._client.post(
                "/v3/mail/send",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise NotificationFailure(f"SendGrid request failed: {e}")

        if response.status_code >= 300:
            try:
                errors = response.json().get("errors") or []
                message = errors[0].get("message") if errors else None
            except ValueError:
                message = None
            raise NotificationFailure(message or f"SendGrid responded with {response.status_code}")

    async def aclose(self):
        await self._client.aclose()


class FrogWigalSms:
    channel = "sms"

    def __init__(
        self,
        api_key: Optional[str],
        username: Optional[str] = None,
        sender_id: str = "Cediman",
        *,
        api_url: str = "https://frogapi.wigal.com.gh/api/v3/sms/send",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.username = username or api_key
        self.sender_id = sender_id
        self.api_url = api_url
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, recipient: str, body: str, *, subject: Optional[str] = None,
                   text_body: Optional[str] = None, category: Optional[str] = None) -> None:
        msg_id = "MSG-{}-{}".format(
            int(time.time() * 1000),
            "".join(random.choices(string.ascii_lowercase + string.digits, k=7)),
        )
        payload = {
            "senderid": self.sender_id,
            "destinations": [{
                "destination": format_ghana_phone(recipient),
                "message": body,
                "msgid": msg_id,
                "smstype": "text",
            }],
        }
        try:
            response = await self._client.post(
                self.api_url,
                json=payload,
                headers={"API-KEY": self.api_key or "", "USERNAME": self.username or ""},
            )
        except httpx.HTTPError as e:
            raise NotificationFailure(f"FrogWigal request failed: {e}")

        if not response.is_success:
            try:
                data = response.json()
                message = data.get("message") or data.get("error")
            except ValueError:
                message = None
            raise NotificationFailure(message or f"FrogWigal responded with {response.status_code}")

    async def aclose(self):
        await self._client.aclose()


# ==========================================================
# OUTBOX
# ==========================================================
class SqlOutbox:
    """Хранение уведомлений в таблице notifications (сессия запроса)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, entry: Notification) -> Notification:
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def save(self, entry: Notification) -> None:
        self.db.add(entry)
        await self.db.commit()

    async def retryable(self, max_attempts: int) -> list[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.state == "failed", Notification.attempts < max_attempts)
            .order_by(Notification.id)
        )
        return list(result.scalars().all())


# ==========================================================
# ДИСПЕТЧЕР
# ==========================================================
class NotificationDispatcher:
    def __init__(
        self,
        email: Optional[Provider] = None,
        sms: Optional[Provider] = None,
        *,
        outbox: Optional[SqlOutbox] = None,
        log=None,
        max_attempts: int = 5,
    ):
        self.providers = {p.channel: p for p in (email, sms) if p is not None}
        self.outbox = outbox
        self.log = log
        self.max_attempts = max_attempts

    async def send_email(self, to: str, subject: str, html_body: str,
                         text_body: Optional[str] = None, *, order_id: Optional[str] = None,
                         category: Optional[str] = None) -> str:
        """
        Возвращает итоговое состояние: sent | failed | skipped.
        category - метка письма у провайдера (order-confirmation, order-status, ...).
        """
        return await self._dispatch("email", to, html_body, subject=subject,
                                    text_body=text_body or strip_html(html_body), order_id=order_id,
                                    category=category)

    async def send_sms(self, to: str, message: str, *, order_id: Optional[str] = None) -> str:
        return await self._dispatch("sms", to, message, order_id=order_id)

    async def _dispatch(self, channel: str, recipient: str, body: str, *, subject: Optional[str] = None,
                        text_body: Optional[str] = None, order_id: Optional[str] = None,
                        category: Optional[str] = None) -> str:
        entry = Notification(
            channel=channel,
            recipient=recipient,
            subject=subject,
            body=body,
            text_body=text_body,
            category=category,
            order_id=order_id,
            state="pending",
            attempts=0,
        )
        if self.outbox is not None:
            entry = await self.outbox.add(entry)
        return await self._deliver(entry)

    async def _deliver(self, entry: Notification) -> str:
        provider = self.providers.get(entry.channel)
        target = mask_email(entry.recipient) if entry.channel == "email" else entry.recipient

        if provider is None or not provider.configured:
            entry.state, entry.last_error = "skipped", f"{entry.channel} provider not configured"
            if self.log:
                await self.log.log_warning("notify", "Провайдер не настроен, уведомление пропущено", {
                    "channel": entry.channel, "to": target, "order_id": entry.order_id,
                })
        else:
            entry.attempts = (entry.attempts or 0) + 1
            try:
                await provider.send(entry.recipient, entry.body, subject=entry.subject,
                                    text_body=entry.text_body, category=entry.category)
                entry.state, entry.last_error = "sent", None
                if self.log:
                    await self.log.log_info("notify", "Уведомление отправлено", {
                        "channel": entry.channel, "to": target, "order_id": entry.order_id,
                    })
            except Exception as e:
                # любая ошибка провайдера оставляет запись failed, чтобы retry_failed её подобрал
                error = e.message if isinstance(e, NotificationFailure) else f"{type(e).__name__}: {e}"
                entry.state, entry.last_error = "failed", error
                if self.log:
                    await self.log.log_error("notify", "Уведомление не отправлено", {
                        "channel": entry.channel, "to": target, "order_id": entry.order_id,
                        "attempt": entry.attempts, "error": error,
                    })

        if self.outbox is not None:
            try:
                await self.outbox.save(entry)
            except SQLAlchemyError as e:
                if self.log:
                    await self.log.log_error("notify", "Состояние уведомления не сохранено", {"error": str(e)})
        return entry.state

    async def retry_failed(self) -> dict:
        """Повторная доставка failed-уведомлений, у которых не исчерпаны попытки."""
        stats = {"retried": 0, "sent": 0, "failed": 0, "skipped": 0}
        if self.outbox is None:
            return stats

        for entry in await self.outbox.retryable(self.max_attempts):
            stats["retried"] += 1
            state = await self._deliver(entry)
            stats[state] = stats.get(state, 0) + 1
        return stats
