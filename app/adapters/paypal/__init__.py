"""PayPal REST API payment provider."""

from .amounts import decimal_places, from_wire_amount, to_wire_amount
from .auth import AccessToken, TokenCache
from .client import ProviderClient
from .models import PayPalOptions
from .provider import PayPalProvider

__all__ = [
    "AccessToken",
    "PayPalOptions",
    "PayPalProvider",
    "ProviderClient",
    "TokenCache",
    "decimal_places",
    "from_wire_amount",
    "to_wire_amount",
]
