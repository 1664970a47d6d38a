# cediman/services/paystack.py

"""
Адаптер платёжного шлюза Paystack (REST API через httpx).

initialize - создаёт транзакцию и возвращает ссылку на оплату;
verify     - читает состояние транзакции по reference.
Суммы в API Paystack - в минорных единицах (песева/кобо), наружу отдаём седи.
"""

import asyncio
import random
import re
import string
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional
from urllib.parse import quote

import httpx

from cediman.errors import BadRequest, GatewayRejected, GatewayUnavailable
from cediman.schemas.base import CamelModel

# ссылка подставляется в путь URL: только безопасные символы и не "." / ".."
REFERENCE_PATTERN = re.compile(r"^(?!\.+$)[A-Za-z0-9._=-]+$")


class PaymentInitialization(CamelModel):
    authorization_url: str
    access_code: str
    reference: str


class PaymentVerification(CamelModel):
    reference: str
    amount_minor_units: int = 0
    status: str = "unknown"
    paid_at: Optional[str] = None
    channel: Optional[str] = None
    customer: Optional[dict[str, Any]] = None
    metadata: Optional[Any] = None

    @property
    def amount(self) -> float:
        return kobo_to_cedis(self.amount_minor_units)

    @property
    def is_success(self) -> bool:
        return self.status == "success"


def cedis_to_kobo(amount) -> int:
    """Седи -> минорные единицы, округление половины вверх."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def kobo_to_cedis(amount: int) -> float:
    return amount / 100


def generate_payment_reference() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=9))
    return f"PAY-{int(time.time() * 1000)}-{suffix}"


class PaystackGateway:
    def __init__(
        self,
        secret_key: Optional[str],
        *,
        base_url: str = "https://api.paystack.co",
        currency: str = "GHS",
        timeout: float = 30.0,
        callback_url: Optional[str] = None,
        log=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.currency = currency
        self.callback_url = callback_url
        self.log = log
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _headers(self) -> dict:
        if not self.secret_key:
            raise GatewayUnavailable("Paystack configuration missing")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Запрос к Paystack; self.timeout - общий лимит на весь запрос, включая чтение тела."""
        headers = self._headers()
        try:
            return await asyncio.wait_for(
                self._client.request(method, path, headers=headers, **kwargs),
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            if self.log:
                await self.log.log_error("payment", "Таймаут Paystack", {"path": path, "error": str(e)})
            raise GatewayUnavailable("Payment gateway timeout. Please try again.", timeout=True)
        except httpx.HTTPError as e:
            if self.log:
                await self.log.log_error("payment", "Сетевая ошибка Paystack", {"path": path, "error": str(e)})
            raise GatewayUnavailable(f"Network error talking to payment gateway: {e}")

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def initialize(self, email: str, amount, metadata: Optional[dict] = None) -> PaymentInitialization:
        reference = generate_payment_reference()
        payload = {
            "email": email,
            "amount": cedis_to_kobo(amount),
            "currency": self.currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        if self.callback_url:
            payload["callback_url"] = self.callback_url

        if self.log:
            await self.log.log_info("payment", "Инициализация платежа", {
                "email": email, "amount": amount, "reference": reference, "currency": self.currency,
            })

        response = await self._request("POST", "/transaction/initialize", json=payload)
        data = self._json(response)

        if not data.get("status") or not isinstance(data.get("data"), dict):
            message = data.get("message") or "Failed to initialize payment"
            if self.log:
                await self.log.log_error("payment", "Paystack отклонил инициализацию", {
                    "http_status": response.status_code, "response": data,
                })
            raise GatewayRejected(message, data or None)

        body = data["data"]
        return PaymentInitialization(
            authorization_url=body.get("authorization_url", ""),
            access_code=body.get("access_code", ""),
            reference=body.get("reference") or reference,
        )

    async def verify(self, reference: str) -> PaymentVerification:
        """
        Неуспешная транзакция - не исключение: статус возвращается как есть
        ("failed", "abandoned", ...), решение принимает вызывающий код.
        """
        if not REFERENCE_PATTERN.fullmatch(reference or ""):
            if self.log:
                await self.log.log_warning("payment", "Некорректная ссылка на платёж", {"reference": reference})
            raise BadRequest("Invalid payment reference")
        response = await self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        data = self._json(response)
        body = data.get("data") if isinstance(data.get("data"), dict) else {}

        verification = PaymentVerification(
            reference=body.get("reference") or reference,
            amount_minor_units=int(body.get("amount") or 0),
            status=body.get("status") or "unknown",
            paid_at=body.get("paid_at"),
            channel=body.get("channel"),
            customer=body.get("customer"),
            metadata=body.get("metadata"),
        )

        if self.log:
            await self.log.log_info("payment", "Проверка платежа", {
                "reference": reference,
                "http_status": response.status_code,
                "status": verification.status,
            })
        return verification

    async def aclose(self):
        await self._client.aclose()
