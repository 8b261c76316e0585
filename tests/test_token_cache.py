import asyncio
import base64
import os
import sys

import httpx
import pytest

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT_DIR)
sys.path.append(os.path.join(ROOT_DIR, "app"))

from adapters.exceptions import AuthenticationError  # noqa: E402
from adapters.paypal.auth import TokenCache  # noqa: E402
from tests.fakes import make_http_client  # noqa: E402


@pytest.fixture
def tokens(fake_paypal, clock):
    return TokenCache(
        make_http_client(fake_paypal), "client-id", "client-secret", clock=clock
    )


@pytest.mark.asyncio
async def test_exchange_uses_basic_auth_and_client_credentials(tokens, fake_paypal):
    token = await tokens.get_access_token()

    assert token == "A21AA-test-token"
    request = fake_paypal.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/oauth2/token"
    expected = base64.b64encode(b"client-id:client-secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.content == b"grant_type=client_credentials"


@pytest.mark.asyncio
async def test_token_is_cached_within_validity_window(tokens, fake_paypal, clock):
    first = await tokens.get_access_token()
    clock.now += 100
    second = await tokens.get_access_token()

    assert first == second
    assert fake_paypal.token_calls == 1


@pytest.mark.asyncio
async def test_token_refreshes_sixty_seconds_before_expiry(tokens, fake_paypal, clock):
    fake_paypal.token_body["expires_in"] = 3600
    await tokens.get_access_token()

    clock.now += 3600 - 61
    await tokens.get_access_token()
    assert fake_paypal.token_calls == 1

    clock.now += 1
    await tokens.get_access_token()
    assert fake_paypal.token_calls == 2


@pytest.mark.asyncio
async def test_short_lived_token_is_never_reused(tokens, fake_paypal):
    fake_paypal.token_body["expires_in"] = 30
    await tokens.get_access_token()
    await tokens.get_access_token()

    assert fake_paypal.token_calls == 2


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_exchange(tokens, fake_paypal):
    fake_paypal.token_delay = 0.05

    results = await asyncio.gather(*(tokens.get_access_token() for _ in range(10)))

    assert set(results) == {"A21AA-test-token"}
    assert fake_paypal.token_calls == 1


@pytest.mark.asyncio
async def test_rejected_exchange_raises_authentication_error(tokens, fake_paypal):
    fake_paypal.token_status = 401
    fake_paypal.token_body = {"error": "invalid_client"}

    with pytest.raises(AuthenticationError) as exc_info:
        await tokens.get_access_token()

    assert "invalid_client" in str(exc_info.value)


@pytest.mark.asyncio
async def test_failed_exchange_is_retried_on_next_call(tokens, fake_paypal):
    fake_paypal.token_status = 500
    with pytest.raises(AuthenticationError):
        await tokens.get_access_token()

    fake_paypal.token_status = 200
    assert await tokens.get_access_token() == "A21AA-test-token"
    assert fake_paypal.token_calls == 2


@pytest.mark.asyncio
async def test_transport_failure_raises_authentication_error(clock):
    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(
        base_url="https://api-m.sandbox.paypal.com",
        transport=httpx.MockTransport(broken),
    )
    tokens = TokenCache(client, "client-id", "client-secret", clock=clock)

    with pytest.raises(AuthenticationError):
        await tokens.get_access_token()


@pytest.mark.asyncio
async def test_invalidate_forces_new_exchange(tokens, fake_paypal):
    await tokens.get_access_token()
    tokens.invalidate()
    await tokens.get_access_token()

    assert fake_paypal.token_calls == 2
