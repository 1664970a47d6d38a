# cediman/schemas/payment.py

from typing import Any, Optional

from pydantic import Field

from cediman.schemas.base import CamelModel


class InitializePaymentRequest(CamelModel):
    email: str = Field(..., min_length=3)
    amount: float = Field(..., gt=0, description="Сумма в седи")
    metadata: Optional[dict[str, Any]] = None


class VerifyReferenceRequest(CamelModel):
    reference: str = Field(..., min_length=1)


class SendEmailRequest(CamelModel):
    to: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1)
    html: str = Field(..., min_length=1)
    text: Optional[str] = None
    order_id: Optional[str] = None


class SendSmsRequest(CamelModel):
    to: str = Field(..., min_length=3)
    message: str = Field(..., min_length=1)
    order_id: Optional[str] = None
