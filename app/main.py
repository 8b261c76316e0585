import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from config import get_settings
from adapters import PaymentProvider
from adapters.exceptions import (
    AuthenticationError,
    PaymentError,
    PaymentNotFoundError,
    PaymentStateError,
    ProviderRequestError,
    ValidationError,
)
from adapters.paypal import PayPalProvider
from payment_handler import PaymentSessionHandler
from schemas import (
    CreatePaymentSessionRequest,
    PaymentSessionResponse,
    PaymentStatusResponse,
    RefundRequest,
    UpdatePaymentSessionRequest,
    WebhookResponse,
)

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger("payment-service")

PAYMENT_FAILED_DETAIL = "Payment could not be completed"


class EndpointFilter(logging.Filter):
    """Filter out noisy health check access logs."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging filter
        return "GET /health" not in record.getMessage()


logging.getLogger("uvicorn.access").addFilter(EndpointFilter())


@lru_cache(maxsize=1)
def get_provider() -> PaymentProvider:
    """Build the PayPal provider; missing credentials abort startup."""
    return PayPalProvider(
        settings.paypal_options(), timeout=settings.PAYPAL_TIMEOUT_SECONDS
    )


# FastAPI App
@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = get_provider()

    engine: AsyncEngine = create_async_engine(settings.database_url)
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    # Ensure database is reachable before starting services
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))

    redis: Redis | None = None
    try:
        redis = Redis.from_url(
            settings.redis_url, encoding="utf-8", decode_responses=True
        )
        await redis.ping()
    except Exception as exc:  # pragma: no cover - startup warning
        logger.warning("Redis unavailable: %s", exc)
        redis = None

    app.state.handler = PaymentSessionHandler(sessionmaker, provider, redis)
    logger.info("Payment service ready (PayPal %s mode)", settings.PAYPAL_MODE)
    try:
        yield
    finally:
        await provider.aclose()
        await engine.dispose()
        if redis is not None:
            await redis.close()


app = FastAPI(
    title="Payment Service",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_handler(request: Request) -> PaymentSessionHandler:
    return request.app.state.handler


def to_http_error(exc: PaymentError) -> HTTPException:
    """Map payment errors onto HTTP responses without leaking processor bodies."""
    if isinstance(exc, PaymentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PaymentStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, (ProviderRequestError, AuthenticationError)):
        logger.error(f"Payment provider failure: {exc}")
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=PAYMENT_FAILED_DETAIL
        )
    logger.exception("Unexpected payment error")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=PAYMENT_FAILED_DETAIL
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "payment-service"}


@app.post(
    "/payment-sessions",
    response_model=PaymentSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_session(
    body: CreatePaymentSessionRequest,
    idempotency_key: Optional[str] = Header(default=None),
    handler: PaymentSessionHandler = Depends(get_handler),
):
    try:
        return await handler.create_session(
            body.amount, body.currency_code, body.context, idempotency_key
        )
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.get("/payment-sessions/{session_id}", response_model=PaymentSessionResponse)
async def get_payment_session(
    session_id: str, handler: PaymentSessionHandler = Depends(get_handler)
):
    try:
        return await handler.get_session(session_id)
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.patch("/payment-sessions/{session_id}", response_model=PaymentSessionResponse)
async def update_payment_session(
    session_id: str,
    body: UpdatePaymentSessionRequest,
    handler: PaymentSessionHandler = Depends(get_handler),
):
    try:
        return await handler.update_session(
            session_id, body.amount, body.currency_code, body.context
        )
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.post(
    "/payment-sessions/{session_id}/authorize", response_model=PaymentSessionResponse
)
async def authorize_payment_session(
    session_id: str, handler: PaymentSessionHandler = Depends(get_handler)
):
    try:
        return await handler.authorize_session(session_id)
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.post(
    "/payment-sessions/{session_id}/capture", response_model=PaymentSessionResponse
)
async def capture_payment_session(
    session_id: str, handler: PaymentSessionHandler = Depends(get_handler)
):
    try:
        return await handler.capture_session(session_id)
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.post(
    "/payment-sessions/{session_id}/refund", response_model=PaymentSessionResponse
)
async def refund_payment_session(
    session_id: str,
    body: RefundRequest,
    idempotency_key: Optional[str] = Header(default=None),
    handler: PaymentSessionHandler = Depends(get_handler),
):
    try:
        return await handler.refund_session(session_id, body.amount, idempotency_key)
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.post(
    "/payment-sessions/{session_id}/cancel", response_model=PaymentSessionResponse
)
async def cancel_payment_session(
    session_id: str, handler: PaymentSessionHandler = Depends(get_handler)
):
    try:
        return await handler.cancel_session(session_id)
    except PaymentError as exc:
        raise to_http_error(exc) from exc


@app.get("/payment-sessions/{session_id}/status", response_model=PaymentStatusResponse)
async def get_payment_session_status(
    session_id: str, handler: PaymentSessionHandler = Depends(get_handler)
):
    try:
        view = await handler.sync_status(session_id)
    except PaymentError as exc:
        raise to_http_error(exc) from exc
    return PaymentStatusResponse(id=view.id, status=view.status)


@app.delete(
    "/payment-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_payment_session(
    session_id: str, handler: PaymentSessionHandler = Depends(get_handler)
):
    try:
        await handler.delete_session(session_id)
    except PaymentError as exc:
        raise to_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/webhooks/paypal", response_model=WebhookResponse)
async def paypal_webhook(
    request: Request, handler: PaymentSessionHandler = Depends(get_handler)
):
    """PayPal webhooks are not consumed; session state is learned by polling."""
    payload = await request.body()
    result = await handler.handle_webhook(payload, dict(request.headers))
    return WebhookResponse(received=False, action=result.action.value)


@app.get("/")
async def root():
    return {"message": "Payment Service API", "provider": "paypal"}


if __name__ == "__main__":
    # Run FastAPI server
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.HTTP_PORT,
        reload=True,
        log_level="info"
    )
