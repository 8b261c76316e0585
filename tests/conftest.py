"""
Pytest configuration and fixtures for payment service tests.
"""

import os
import sys
import pytest
from unittest.mock import AsyncMock

# Add app directory to Python path for imports
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT_DIR)
sys.path.append(os.path.join(ROOT_DIR, "app"))

from adapters.paypal import PayPalProvider  # noqa: E402
from tests.fakes import FakeClock, FakePayPal, make_http_client  # noqa: E402


@pytest.fixture
def fake_paypal():
    return FakePayPal()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def paypal_provider(fake_paypal, clock):
    return PayPalProvider(
        {"client_id": "client-id", "client_secret": "client-secret", "brand_name": "Test Shop"},
        http_client=make_http_client(fake_paypal),
        clock=clock,
    )


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    redis_mock = AsyncMock()
    redis_mock.ping.return_value = True
    redis_mock.get.return_value = None
    redis_mock.setex.return_value = True
    redis_mock.delete.return_value = 1
    redis_mock.close.return_value = None
    return redis_mock


# Configure pytest-asyncio
def pytest_configure(config):
    """Configure pytest with asyncio support."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
