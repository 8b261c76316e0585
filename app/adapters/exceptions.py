"""Exceptions raised by payment provider adapters."""

from typing import Optional


class PaymentError(Exception):
    """Base exception for payment-related errors."""
    pass


class ValidationError(PaymentError):
    """Raised when input validation fails."""
    pass


class InvalidConfigurationError(ValidationError):
    """Raised when credentials or required session data are missing.

    These are integration errors and are never retryable.
    """
    pass


class AuthenticationError(PaymentError):
    """Raised when the OAuth2 credential exchange fails."""
    pass


class ProviderRequestError(PaymentError):
    """Raised when the processor answers with a non-success response."""

    def __init__(self, status_code: Optional[int], body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Provider request failed ({status_code}): {body}")


class PaymentNotFoundError(PaymentError):
    """Raised when a payment session cannot be found."""
    pass


class PaymentStateError(PaymentError):
    """Raised when an operation would leave a terminal session state."""
    pass
