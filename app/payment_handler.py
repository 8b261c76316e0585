import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from redis.asyncio import Redis

from models import PaymentSession
from schemas import PaymentSessionResponse
from adapters.base import (
    TERMINAL_STATUSES,
    PaymentActions,
    PaymentContext,
    PaymentProvider,
    PaymentSessionData,
    PaymentSessionStatus,
    ProviderResult,
    WebhookActionResult,
    normalize_currency_code,
    validate_amount,
)
from adapters.exceptions import (
    PaymentNotFoundError,
    PaymentStateError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class PaymentSessionHandler:
    """Persists payment sessions and replays their provider data.

    Sessions live in the database; Redis, when available, caches the
    rendered session for reads.
    """

    _CACHE_TTL = 300

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        provider: PaymentProvider,
        redis: Optional[Redis] = None,
    ):
        self._sessionmaker = sessionmaker
        self._provider = provider
        self._redis = redis
        logger.info(f"PaymentSessionHandler initialized with {provider.__class__.__name__}")

    @staticmethod
    def _cache_key(session_id: str) -> str:
        return f"payment_session:{session_id}"

    @staticmethod
    def _validate(amount: int, currency_code: str) -> str:
        if not validate_amount(amount):
            raise ValidationError(f"Invalid amount: {amount}")
        currency = normalize_currency_code(currency_code)
        if currency is None:
            raise ValidationError(f"Invalid currency code: {currency_code}")
        return currency

    async def _cache(self, view: PaymentSessionResponse) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.setex(
                self._cache_key(view.id), self._CACHE_TTL, view.model_dump_json()
            )
        except Exception as exc:  # pragma: no cover - cache failure
            logger.warning("Failed to cache payment session %s: %s", view.id, exc)

    async def _evict(self, session_id: str) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._cache_key(session_id))
        except Exception as exc:  # pragma: no cover - cache failure
            logger.warning("Failed to evict payment session %s: %s", session_id, exc)

    async def _load(self, db: AsyncSession, session_id: str) -> PaymentSession:
        row = await db.get(PaymentSession, session_id)
        if row is None:
            raise PaymentNotFoundError(f"Payment session not found: {session_id}")
        return row

    @staticmethod
    def _transition(row: PaymentSession, status: Optional[PaymentSessionStatus]) -> None:
        if status is None or status.value == row.status:
            return
        if PaymentSessionStatus(row.status) in TERMINAL_STATUSES:
            raise PaymentStateError(
                f"Payment session {row.id} is {row.status}; cannot move to {status.value}"
            )
        logger.info("Payment session %s: %s -> %s", row.id, row.status, status.value)
        row.status = status.value

    @staticmethod
    def _ensure_not_canceled(row: PaymentSession, action: str) -> None:
        # Must run before any processor call.
        if row.status == PaymentSessionStatus.CANCELED.value:
            raise PaymentStateError(f"Payment session {row.id} is canceled; cannot {action}")

    @staticmethod
    def _capture_key(row: PaymentSession) -> str:
        return f"{row.idempotency_key}:capture"

    @staticmethod
    def _refund_key(row: PaymentSession) -> str:
        # Stable until a refund is recorded.
        return f"{row.idempotency_key}:refund:{row.refunded_amount}"

    async def _apply(
        self, db: AsyncSession, row: PaymentSession, result: ProviderResult
    ) -> PaymentSessionResponse:
        self._transition(row, result.status)
        row.data = result.data.model_dump(mode="json", exclude_none=True)
        row.updated_at = datetime.now(timezone.utc)
        await db.commit()
        view = PaymentSessionResponse.model_validate(row)
        await self._cache(view)
        return view

    async def create_session(
        self,
        amount: int,
        currency_code: str,
        context: PaymentContext,
        idempotency_key: Optional[str] = None,
    ) -> PaymentSessionResponse:
        """Initiate a payment with the provider and store the new session."""
        currency = self._validate(amount, currency_code)
        idempotency_key = idempotency_key or str(uuid.uuid4())

        result = await self._provider.initiate_payment(
            amount, currency, context, idempotency_key
        )

        row = PaymentSession(
            id=str(uuid.uuid4()),
            provider_id=self._provider.identifier,
            amount=amount,
            currency_code=currency,
            status=(result.status or PaymentSessionStatus.PENDING).value,
            idempotency_key=idempotency_key,
            refunded_amount=0,
            data=result.data.model_dump(mode="json", exclude_none=True),
            created_at=datetime.now(timezone.utc),
        )
        async with self._sessionmaker() as db:
            db.add(row)
            await db.commit()
            view = PaymentSessionResponse.model_validate(row)

        await self._cache(view)
        logger.info("Created payment session %s (%s)", view.id, result.id)
        return view

    async def get_session(self, session_id: str) -> PaymentSessionResponse:
        if self._redis is not None:
            try:
                cached = await self._redis.get(self._cache_key(session_id))
                if cached:
                    return PaymentSessionResponse.model_validate_json(cached)
            except Exception as exc:  # pragma: no cover - cache failure
                logger.warning("Redis lookup failed for %s: %s", session_id, exc)

        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            view = PaymentSessionResponse.model_validate(row)

        await self._cache(view)
        return view

    async def update_session(
        self,
        session_id: str,
        amount: int,
        currency_code: str,
        context: PaymentContext,
    ) -> PaymentSessionResponse:
        """Re-create the provider payment after the cart total changed."""
        currency = self._validate(amount, currency_code)
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            if PaymentSessionStatus(row.status) in TERMINAL_STATUSES:
                raise PaymentStateError(
                    f"Payment session {row.id} is {row.status}; cannot update"
                )
            # PayPal replays any order created under a reused request id.
            idempotency_key = str(uuid.uuid4())
            result = await self._provider.update_payment(
                amount,
                currency,
                context,
                PaymentSessionData.model_validate(row.data or {}),
                idempotency_key,
            )
            row.idempotency_key = idempotency_key
            row.amount = amount
            row.currency_code = currency
            return await self._apply(db, row, result)

    async def authorize_session(self, session_id: str) -> PaymentSessionResponse:
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            self._ensure_not_canceled(row, "authorize")
            result = await self._provider.authorize_payment(
                PaymentSessionData.model_validate(row.data or {}),
                self._capture_key(row),
            )
            return await self._apply(db, row, result)

    async def capture_session(self, session_id: str) -> PaymentSessionResponse:
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            self._ensure_not_canceled(row, "capture")
            result = await self._provider.capture_payment(
                PaymentSessionData.model_validate(row.data or {}),
                self._capture_key(row),
            )
            return await self._apply(db, row, result)

    async def refund_session(
        self,
        session_id: str,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> PaymentSessionResponse:
        if not validate_amount(amount):
            raise ValidationError(f"Invalid amount: {amount}")
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            refundable = row.amount - row.refunded_amount
            if amount > refundable:
                raise ValidationError(
                    f"Refund amount {amount} exceeds refundable amount {refundable}"
                )
            result = await self._provider.refund_payment(
                PaymentSessionData.model_validate(row.data or {}),
                amount,
                idempotency_key or self._refund_key(row),
            )
            row.refunded_amount += amount
            return await self._apply(db, row, result)

    async def cancel_session(self, session_id: str) -> PaymentSessionResponse:
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            result = await self._provider.cancel_payment(
                PaymentSessionData.model_validate(row.data or {})
            )
            return await self._apply(db, row, result)

    async def sync_status(self, session_id: str) -> PaymentSessionResponse:
        """Poll the processor and record the mapped status."""
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            data = PaymentSessionData.model_validate(row.data or {})
            status = await self._provider.get_payment_status(data)
            if PaymentSessionStatus(row.status) in TERMINAL_STATUSES:
                if status.value != row.status:
                    logger.warning(
                        "Payment session %s is %s but the processor reports %s",
                        row.id,
                        row.status,
                        status.value,
                    )
                return PaymentSessionResponse.model_validate(row)
            return await self._apply(db, row, ProviderResult(data=data, status=status))

    async def delete_session(self, session_id: str) -> None:
        async with self._sessionmaker() as db:
            row = await self._load(db, session_id)
            await self._provider.delete_payment(
                PaymentSessionData.model_validate(row.data or {})
            )
            await db.delete(row)
            await db.commit()

        await self._evict(session_id)
        logger.info("Deleted payment session %s", session_id)

    async def handle_webhook(
        self, payload: bytes, headers: Dict[str, str]
    ) -> WebhookActionResult:
        result = await self._provider.get_webhook_action_and_data(payload, headers)
        if result.action is PaymentActions.NOT_SUPPORTED:
            logger.info(
                "Ignoring %s webhook; sessions are updated by polling",
                self._provider.identifier,
            )
        return result
