"""Authenticated JSON request wrapper for the PayPal REST API."""

import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import ProviderRequestError
from .auth import TokenCache

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "PayPal-Request-Id"


class ProviderClient:
    """Sends PayPal API calls with bearer auth and idempotency headers.

    No retries happen here; callers re-issue a failed mutating call with the
    same idempotency key.
    """

    def __init__(self, http_client: httpx.AsyncClient, tokens: TokenCache) -> None:
        self._http = http_client
        self._tokens = tokens

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        token = await self._tokens.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key

        try:
            response = await self._http.request(
                method, path, json=body, headers=headers
            )
        except httpx.RequestError as exc:
            logger.error("PayPal %s %s failed: %s", method, path, exc)
            raise ProviderRequestError(None, str(exc)) from exc

        if not response.is_success:
            body_text = response.text or response.reason_phrase
            logger.error(
                "PayPal %s %s returned %s: %s",
                method,
                path,
                response.status_code,
                body_text,
            )
            raise ProviderRequestError(response.status_code, body_text)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.error(
                "PayPal %s %s returned a non-JSON body: %s", method, path, response.text
            )
            raise ProviderRequestError(response.status_code, response.text) from exc
