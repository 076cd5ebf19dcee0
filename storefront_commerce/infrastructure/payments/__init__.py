"""
Payment gateway adapters.
"""

from .paypal_gateway import (
    PayPalGateway,
    PayPalIdentityError,
    PayPalTokenProvider,
    create_paypal_http_client,
    translate_payment_error,
)

__all__ = [
    "PayPalGateway",
    "PayPalIdentityError",
    "PayPalTokenProvider",
    "create_paypal_http_client",
    "translate_payment_error",
]
