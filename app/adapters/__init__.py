"""Adapters for integrating external payment processors."""

from .base import PaymentProvider, PaymentSessionStatus, PaymentActions
from .exceptions import PaymentError, ValidationError, InvalidConfigurationError, AuthenticationError, ProviderRequestError, PaymentNotFoundError, PaymentStateError

__all__ = ["PaymentProvider", "PaymentSessionStatus", "PaymentActions", "PaymentError", "ValidationError", "InvalidConfigurationError", "AuthenticationError", "ProviderRequestError", "PaymentNotFoundError", "PaymentStateError"]
