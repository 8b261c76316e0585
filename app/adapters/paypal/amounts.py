"""Conversion between integer minor units and PayPal's decimal strings."""

from decimal import Decimal, InvalidOperation
from typing import Optional

from ..exceptions import ValidationError

DEFAULT_CURRENCY = "USD"

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND"})

THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "JOD", "KWD", "OMR", "TND"})


def decimal_places(currency_code: Optional[str]) -> int:
    code = (currency_code or DEFAULT_CURRENCY).upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_wire_amount(minor_amount: int, currency_code: Optional[str]) -> str:
    """Format ``minor_amount`` with exactly the currency's decimal places.

    Integer arithmetic only, so the result never depends on float rounding.

    >>> to_wire_amount(1003, "USD")
    '10.03'
    >>> to_wire_amount(1003, "KWD")
    '1.003'
    """
    places = decimal_places(currency_code)
    minor = int(minor_amount)
    sign = "-" if minor < 0 else ""
    whole, fraction = divmod(abs(minor), 10 ** places)
    if not places:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{fraction:0{places}d}"


def from_wire_amount(value: str, currency_code: Optional[str]) -> int:
    """Parse a PayPal decimal string back into minor units."""
    places = decimal_places(currency_code)
    try:
        scaled = Decimal(value).scaleb(places)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value}") from exc
    if not scaled.is_finite() or scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {value} has more than {places} decimal places"
        )
    return int(scaled)
