"""Typed records for the PayPal REST payloads the adapter reads."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ..exceptions import InvalidConfigurationError

PAYPAL_BASE_URL = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}

DEFAULT_BRAND_NAME = "Lovett's Designs & Crafts"


class PayPalOptions(BaseModel):
    client_id: str
    client_secret: str
    mode: Literal["sandbox", "live"] = "sandbox"
    brand_name: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _default_mode(cls, value):
        return value or "sandbox"

    @classmethod
    def validate_options(cls, options: dict) -> "PayPalOptions":
        """Build options, failing before any network call on missing credentials."""
        if not options.get("client_id") or not options.get("client_secret"):
            raise InvalidConfigurationError(
                "PayPal client_id and client_secret are required."
            )
        return cls.model_validate(options)

    @property
    def base_url(self) -> str:
        return PAYPAL_BASE_URL[self.mode]


class _PayPalRecord(BaseModel):
    model_config = ConfigDict(extra="allow")


class PayPalLink(_PayPalRecord):
    href: str
    rel: str
    method: Optional[str] = None


class PayPalCapture(_PayPalRecord):
    id: str
    status: Optional[str] = None


class PayPalPayments(_PayPalRecord):
    captures: List[PayPalCapture] = []
    authorizations: List[PayPalCapture] = []


class PayPalPurchaseUnit(_PayPalRecord):
    payments: Optional[PayPalPayments] = None


class PayPalPayer(_PayPalRecord):
    payer_id: Optional[str] = None


class PayPalOrder(_PayPalRecord):
    id: str
    status: str
    links: List[PayPalLink] = []
    purchase_units: List[PayPalPurchaseUnit] = []
    payer: Optional[PayPalPayer] = None

    @property
    def approval_url(self) -> str:
        for link in self.links:
            if link.rel == "approve":
                return link.href
        return ""

    @property
    def capture_id(self) -> str:
        if not self.purchase_units:
            return ""
        payments = self.purchase_units[0].payments
        if payments is None or not payments.captures:
            return ""
        return payments.captures[0].id

    @property
    def payer_id(self) -> Optional[str]:
        return self.payer.payer_id if self.payer else None


class PayPalRefund(_PayPalRecord):
    id: str
    status: Optional[str] = None


class PayPalTokenResponse(_PayPalRecord):
    access_token: str
    expires_in: int = 0
    token_type: Optional[str] = None
