"""PayPal Orders v2 payment provider."""

import logging
import time
from typing import Any, Callable, Dict, Optional, Union

import httpx

from ..base import (
    PaymentContext,
    PaymentProvider,
    PaymentSessionData,
    PaymentSessionStatus,
    ProviderResult,
)
from ..exceptions import InvalidConfigurationError
from .amounts import DEFAULT_CURRENCY, to_wire_amount
from .auth import TokenCache
from .client import ProviderClient
from .models import DEFAULT_BRAND_NAME, PayPalOptions, PayPalOrder, PayPalRefund

logger = logging.getLogger(__name__)

ORDERS_PATH = "/v2/checkout/orders"
CAPTURES_PATH = "/v2/payments/captures"

_ORDER_STATUS_MAP = {
    "COMPLETED": PaymentSessionStatus.CAPTURED,
    "APPROVED": PaymentSessionStatus.AUTHORIZED,
    "VOIDED": PaymentSessionStatus.CANCELED,
}


class PayPalProvider(PaymentProvider):
    """Drives a PayPal checkout order through initiate, capture and refund.

    PayPal has no separate authorization step in this flow: once the buyer
    approves the order, ``authorize_payment`` captures it immediately.
    Status changes are discovered by polling; webhooks are not supported.
    """

    identifier = "paypal"

    def __init__(
        self,
        options: Union[PayPalOptions, Dict[str, Any]],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not isinstance(options, PayPalOptions):
            options = PayPalOptions.validate_options(dict(options or {}))
        self.options = options
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=options.base_url, timeout=timeout
        )
        self.tokens = TokenCache(
            self._http, options.client_id, options.client_secret, clock=clock
        )
        self.client = ProviderClient(self._http, self.tokens)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ---------------------------------------------------------------- payload

    def build_order_payload(
        self, amount: int, currency_code: Optional[str], context: PaymentContext
    ) -> Dict[str, Any]:
        currency = (currency_code or DEFAULT_CURRENCY).upper()
        return_url = context.return_url or ""
        if not return_url:
            raise InvalidConfigurationError(
                "PayPal return_url is required to initiate a payment."
            )
        cancel_url = context.cancel_url or return_url

        purchase_unit: Dict[str, Any] = {
            "amount": {
                "currency_code": currency,
                "value": to_wire_amount(amount, currency),
            }
        }

        address = context.shipping_address
        shipping = None
        if address is not None and address.is_complete():
            shipping = {
                "address": {
                    "address_line_1": address.address_1 or "",
                    "address_line_2": address.address_2 or "",
                    "admin_area_2": address.city or "",
                    "admin_area_1": address.province or "",
                    "postal_code": address.postal_code or "",
                    "country_code": (address.country_code or "").upper(),
                }
            }
            full_name = f"{address.first_name or ''} {address.last_name or ''}".strip()
            if full_name:
                shipping["name"] = {"full_name": full_name}
            purchase_unit["shipping"] = shipping

        payload: Dict[str, Any] = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "application_context": {
                "return_url": return_url,
                "cancel_url": cancel_url,
                "brand_name": self.options.brand_name or DEFAULT_BRAND_NAME,
                "user_action": "PAY_NOW",
                "shipping_preference": (
                    "SET_PROVIDED_ADDRESS" if shipping else "GET_FROM_FILE"
                ),
            },
        }
        if context.email:
            payload["payer"] = {"email_address": context.email}
        return payload

    async def _get_order(self, order_id: str) -> PayPalOrder:
        raw = await self.client.request("GET", f"{ORDERS_PATH}/{order_id}")
        return PayPalOrder.model_validate(raw)

    async def _capture_order(
        self, order_id: str, idempotency_key: Optional[str]
    ) -> PayPalOrder:
        raw = await self.client.request(
            "POST", f"{ORDERS_PATH}/{order_id}/capture", {}, idempotency_key
        )
        order = PayPalOrder.model_validate(raw)
        logger.info("Captured PayPal order %s: %s", order_id, order.capture_id)
        return order

    # ------------------------------------------------------------- lifecycle

    async def initiate_payment(
        self,
        amount: int,
        currency_code: str,
        context: PaymentContext,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        payload = self.build_order_payload(amount, currency_code, context)
        raw = await self.client.request("POST", ORDERS_PATH, payload, idempotency_key)
        order = PayPalOrder.model_validate(raw)
        logger.info("Created PayPal order %s (%s)", order.id, order.status)

        return ProviderResult(
            id=order.id,
            status=PaymentSessionStatus.PENDING,
            data=PaymentSessionData(
                order_id=order.id,
                status=order.status,
                redirect_url=order.approval_url,
                currency_code=payload["purchase_units"][0]["amount"]["currency_code"],
                amount=amount,
            ),
        )

    async def update_payment(
        self,
        amount: int,
        currency_code: str,
        context: PaymentContext,
        data: PaymentSessionData,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        result = await self.initiate_payment(
            amount, currency_code, context, idempotency_key
        )
        merged = data.merge(**result.data.model_dump(exclude_none=True))
        return ProviderResult(id=result.id, status=result.status, data=merged)

    async def authorize_payment(
        self,
        data: PaymentSessionData,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        order_id = data.order_id
        if not order_id:
            raise InvalidConfigurationError("PayPal order_id is missing.")

        order = await self._get_order(order_id)

        if order.status == "APPROVED":
            captured = await self._capture_order(order_id, idempotency_key)
            return ProviderResult(
                status=PaymentSessionStatus.CAPTURED,
                data=data.merge(
                    capture_id=captured.capture_id,
                    payer_id=captured.payer_id,
                    status=captured.status,
                ),
            )

        if order.status == "COMPLETED":
            # Captured by an earlier attempt; never capture twice.
            return ProviderResult(
                status=PaymentSessionStatus.CAPTURED,
                data=data.merge(
                    capture_id=order.capture_id,
                    payer_id=order.payer_id,
                    status=order.status,
                ),
            )

        if order.status == "VOIDED":
            return ProviderResult(
                status=PaymentSessionStatus.CANCELED,
                data=data.merge(status=order.status),
            )

        return ProviderResult(
            status=PaymentSessionStatus.REQUIRES_MORE,
            data=data.merge(status=order.status),
        )

    async def capture_payment(
        self,
        data: PaymentSessionData,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        if data.capture_id or not data.order_id:
            return ProviderResult(data=data)

        captured = await self._capture_order(data.order_id, idempotency_key)
        return ProviderResult(
            status=PaymentSessionStatus.CAPTURED,
            data=data.merge(capture_id=captured.capture_id, status=captured.status),
        )

    async def refund_payment(
        self,
        data: PaymentSessionData,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> ProviderResult:
        capture_id = data.capture_id
        if not capture_id:
            raise InvalidConfigurationError("PayPal capture_id is required to refund.")

        currency = (data.currency_code or DEFAULT_CURRENCY).upper()
        raw = await self.client.request(
            "POST",
            f"{CAPTURES_PATH}/{capture_id}/refund",
            {"amount": {"currency_code": currency, "value": to_wire_amount(amount, currency)}},
            idempotency_key,
        )
        refund = PayPalRefund.model_validate(raw)
        logger.info("Refunded PayPal capture %s: %s", capture_id, refund.id)
        return ProviderResult(
            data=data.merge(refund_id=refund.id, refund_status=refund.status)
        )

    async def retrieve_payment(self, data: PaymentSessionData) -> ProviderResult:
        if not data.order_id:
            return ProviderResult(data=data)
        order = await self._get_order(data.order_id)
        return ProviderResult(
            id=order.id,
            status=self._map_status(order.status),
            data=data.merge(status=order.status),
            raw=order.model_dump(),
        )

    async def get_payment_status(
        self, data: PaymentSessionData
    ) -> PaymentSessionStatus:
        if not data.order_id:
            return PaymentSessionStatus.PENDING
        order = await self._get_order(data.order_id)
        return self._map_status(order.status)

    @staticmethod
    def _map_status(order_status: str) -> PaymentSessionStatus:
        return _ORDER_STATUS_MAP.get(order_status, PaymentSessionStatus.PENDING)
