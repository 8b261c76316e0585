"""OAuth2 client-credentials token cache for the PayPal REST API."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import AuthenticationError
from .models import PayPalTokenResponse

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/oauth2/token"
EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenCache:
    """Serves a cached bearer token, refreshing it shortly before expiry.

    Concurrent callers that find the token stale queue on a single lock, so
    only the first one performs the exchange and the rest reuse its result.
    Tokens live in process memory only.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = http_client
        self._client_id = client_id
        self._client_secret = client_secret
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()

    def _cached(self) -> Optional[str]:
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token.value
        return None

    async def get_access_token(self) -> str:
        cached = self._cached()
        if cached is not None:
            return cached

        async with self._lock:
            cached = self._cached()
            if cached is not None:
                return cached
            self._token = await self._exchange()
            return self._token.value

    def invalidate(self) -> None:
        self._token = None

    async def _exchange(self) -> AccessToken:
        now = self._clock()
        try:
            response = await self._http.post(
                TOKEN_PATH,
                auth=(self._client_id, self._client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            logger.error("PayPal token request failed: %s", exc)
            raise AuthenticationError(f"PayPal auth failed: {exc}") from exc

        if not response.is_success:
            detail = response.text or response.reason_phrase
            logger.error(
                "PayPal token exchange rejected (%s): %s",
                response.status_code,
                detail,
            )
            raise AuthenticationError(f"PayPal auth failed: {detail}")

        try:
            payload = PayPalTokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise AuthenticationError(
                f"PayPal auth failed: unexpected response {response.text}"
            ) from exc

        lifetime = max(0, payload.expires_in - EXPIRY_MARGIN_SECONDS)
        logger.info("Obtained PayPal access token valid for %ss", lifetime)
        return AccessToken(value=payload.access_token, expires_at=now + lifetime)
