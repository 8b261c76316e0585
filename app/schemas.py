"""Request and response bodies for the payment session API."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from adapters.base import PaymentContext


class CreatePaymentSessionRequest(BaseModel):
    amount: int = Field(gt=0, description="Amount in minor currency units")
    currency_code: str = Field(min_length=3, max_length=3)
    context: PaymentContext = Field(default_factory=PaymentContext)


class UpdatePaymentSessionRequest(CreatePaymentSessionRequest):
    pass


class RefundRequest(BaseModel):
    amount: int = Field(gt=0, description="Amount in minor currency units")


class PaymentSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider_id: str
    amount: int
    refunded_amount: int = 0
    currency_code: str
    status: str
    data: Dict[str, Any]
    created_at: datetime
    updated_at: Optional[datetime] = None


class PaymentStatusResponse(BaseModel):
    id: str
    status: str


class WebhookResponse(BaseModel):
    received: bool
    action: str
