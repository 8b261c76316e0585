"""Base classes and shared types for payment provider adapters."""

import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== Session types ====================

class PaymentSessionStatus(str, Enum):
    """Internal payment session status."""

    PENDING = "pending"
    REQUIRES_MORE = "requires_more"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset(
    {PaymentSessionStatus.CAPTURED, PaymentSessionStatus.CANCELED}
)


class PaymentActions(str, Enum):
    """Actions a provider may derive from an incoming webhook."""

    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    NOT_SUPPORTED = "not_supported"


class ShippingAddress(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address_1: Optional[str] = None
    address_2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country_code: Optional[str] = None

    def is_complete(self) -> bool:
        return all(
            [self.address_1, self.city, self.country_code, self.postal_code]
        )


class PaymentContext(BaseModel):
    """Caller-supplied data consumed when a payment is initiated."""

    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    email: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None


class PaymentSessionData(BaseModel):
    """Provider data round-tripped by the caller between operations.

    Unknown keys are preserved so that data written by newer adapter
    versions survives a round trip through older ones.
    """

    model_config = ConfigDict(extra="allow")

    order_id: Optional[str] = None
    status: Optional[str] = None
    redirect_url: Optional[str] = None
    capture_id: Optional[str] = None
    payer_id: Optional[str] = None
    refund_id: Optional[str] = None
    refund_status: Optional[str] = None
    currency_code: Optional[str] = None
    amount: Optional[int] = None

    def merge(self, **changes: Any) -> "PaymentSessionData":
        """Return a copy with ``changes`` applied over the current values."""
        return PaymentSessionData.model_validate(
            {**self.model_dump(), **changes}
        )


class ProviderResult(BaseModel):
    """Outcome of a provider operation."""

    data: PaymentSessionData
    status: Optional[PaymentSessionStatus] = None
    id: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class WebhookActionResult(BaseModel):
    action: PaymentActions
    data: Dict[str, Any] = Field(default_factory=dict)


# ==================== Validation helpers ====================

_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")


def normalize_currency_code(currency: Any) -> Optional[str]:
    """Return the uppercase ISO currency code, or ``None`` if malformed."""
    if not isinstance(currency, str) or not _CURRENCY_RE.match(currency):
        return None
    return currency.upper()


def validate_amount(amount: Any) -> bool:
    """Amounts are positive integers in minor currency units."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        return False
    return amount > 0


# ==================== Base Provider ====================

class PaymentProvider(ABC):
    """Abstract base class for payment provider adapters.

    Every operation receives the session data produced by the previous
    one and returns the data the caller must persist for the next.
    """

    identifier: str = ""

    @abstractmethod
    async def initiate_payment(
        self,
        amount: int,
        currency_code: str,
        context: PaymentContext,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        """Create a payment with the processor.

        Args:
            amount: Payment amount in minor currency units
            currency_code: Three-letter ISO currency code
            context: Redirect URLs and buyer details
            idempotency_key: Token making the call safe to retry

        Returns:
            Session data and a PENDING status
        """
        pass

    @abstractmethod
    async def update_payment(
        self,
        amount: int,
        currency_code: str,
        context: PaymentContext,
        data: PaymentSessionData,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        """Replace the payment after the amount changed."""
        pass

    @abstractmethod
    async def authorize_payment(
        self,
        data: PaymentSessionData,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        """Check buyer approval and advance the session.

        Returns:
            Updated session data and the resulting status
        """
        pass

    @abstractmethod
    async def capture_payment(
        self,
        data: PaymentSessionData,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        """Capture authorized funds."""
        pass

    @abstractmethod
    async def refund_payment(
        self,
        data: PaymentSessionData,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        """Refund a captured payment (full or partial).

        Args:
            data: Session data holding the capture reference
            amount: Refund amount in minor currency units
            idempotency_key: Token making the call safe to retry

        Returns:
            Session data including refund details
        """
        pass

    @abstractmethod
    async def retrieve_payment(self, data: PaymentSessionData) -> ProviderResult:
        """Fetch the processor-side payment without changing it."""
        pass

    @abstractmethod
    async def get_payment_status(
        self, data: PaymentSessionData
    ) -> PaymentSessionStatus:
        """Get current payment status."""
        pass

    async def cancel_payment(self, data: PaymentSessionData) -> ProviderResult:
        return ProviderResult(data=data, status=PaymentSessionStatus.CANCELED)

    async def delete_payment(self, data: PaymentSessionData) -> ProviderResult:
        return ProviderResult(data=data)

    async def get_webhook_action_and_data(
        self, payload: bytes, headers: Dict[str, str]
    ) -> WebhookActionResult:
        """Translate a processor webhook into a session action.

        Providers without a push channel keep this default.
        """
        return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None
