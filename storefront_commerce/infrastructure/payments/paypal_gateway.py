"""
PayPal REST payment gateway.

Implements the two-phase card payment used by the commerce pipeline on top of
the PayPal v1 payments API:

- authorize: ``POST /v1/payments/payment`` with intent ``authorize`` and a
  credit card funding instrument
- capture: ``GET /v1/payments/authorization/{id}`` for the held amount, then
  ``POST /v1/payments/authorization/{id}/capture`` as the final capture
- void: ``POST /v1/payments/authorization/{id}/void``

PayPal errors are translated into ``CommerceDomainError`` codes so callers can
tell a refused card (ask for another card) from a merchant configuration
problem (alert the operator).
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import httpx

from storefront_commerce.core.exceptions import CommerceDomainError, ErrorCode
from storefront_commerce.models import PaymentCard, PaymentConfiguration
from storefront_commerce.repositories.interfaces import IPaymentGateway

logger = logging.getLogger(__name__)

PAYPAL_BASE_URLS = {
    "sandbox": "https://api.sandbox.paypal.com",
    "live": "https://api.paypal.com",
}

PAYMENT_ERROR_PREFIX = "We are unable to process your payment - "
USE_ALTERNATE_CARD_MESSAGE = "Please use another card or contact your card issuer."
IDENTITY_FAILURE_DURING_PAYMENT_MESSAGE = (
    "The payment gateway rejected the merchant credentials. Please contact the storefront administrator."
)
IDENTITY_FAILURE_DURING_CONFIGURATION_MESSAGE = (
    "The payment gateway rejected the client id or secret."
)

# Seconds shaved off the token lifetime so a token is never used as it expires.
TOKEN_EXPIRY_MARGIN_SECONDS = 60

_CARD_ERRORS = (
    ("CREDIT_CARD_REFUSED", ErrorCode.CARD_REFUSED),
    ("EXPIRED_CREDIT_CARD", ErrorCode.CARD_EXPIRED),
    ("CREDIT_CARD_CVV_CHECK_FAILED", ErrorCode.CARD_CVN_CHECK_FAILED),
    ("UNKNOWN_ERROR", ErrorCode.PAYMENT_GATEWAY_PAYMENT_ERROR),
)

_FUNDING_INSTRUMENT_FIELD_PREFIX = "payer.funding_instruments[0]."


def create_paypal_http_client(account_type: str, timeout_seconds: float = 30.0) -> httpx.AsyncClient:
    """Shared HTTP client for one PayPal environment."""
    return httpx.AsyncClient(
        base_url=PAYPAL_BASE_URLS[account_type],
        timeout=timeout_seconds,
        headers={"Accept": "application/json"},
    )


class PayPalIdentityError(Exception):
    """PayPal refused the merchant client id or secret."""


def _gateway_failure(message: str) -> CommerceDomainError:
    return CommerceDomainError(ErrorCode.PAYMENT_GATEWAY_FAILURE).add_detail("ErrorMessage", message)


def _is_identity_failure(response: httpx.Response) -> bool:
    if response.status_code == 401:
        return True
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and str(body.get("error", "")).lower() == "invalid_client"


def translate_payment_error(response: httpx.Response) -> CommerceDomainError:
    """Map a failed PayPal payments response to a domain error."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    error_name = str(body.get("name") or "").upper()
    if not error_name:
        message = body.get("message") or response.reason_phrase or f"HTTP {response.status_code}"
        return _gateway_failure(PAYMENT_ERROR_PREFIX + message)

    for name, error_code in _CARD_ERRORS:
        if name in error_name:
            return CommerceDomainError(error_code)

    details = body.get("details")
    if "VALIDATION" in error_name and details:
        issues = []
        for detail in details:
            field = str(detail.get("field", "")).replace(_FUNDING_INSTRUMENT_FIELD_PREFIX, "")
            issues.append(f"{field} - {detail.get('issue', '')}")
        return _gateway_failure(f"{PAYMENT_ERROR_PREFIX}[{', '.join(issues)}]")

    return _gateway_failure(PAYMENT_ERROR_PREFIX + USE_ALTERNATE_CARD_MESSAGE)


class PayPalTokenProvider:
    """
    OAuth2 client credentials token, cached until shortly before it expires.

    One provider is shared by every gateway created for the same merchant
    configuration.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        configuration: PaymentConfiguration,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http_client
        self._configuration = configuration
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._token = None

    async def get_token(self) -> str:
        """
        Raises:
            PayPalIdentityError: The credentials were rejected.
            CommerceDomainError: PAYMENT_GATEWAY_FAILURE for any other problem.
        """
        async with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token

            try:
                response = await self._http.post(
                    "/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    auth=(self._configuration.client_id, self._configuration.client_secret),
                )
            except httpx.HTTPError as error:
                raise _gateway_failure(str(error)) from error

            if _is_identity_failure(response):
                logger.error("❌ PayPal rejected the merchant credentials")
                raise PayPalIdentityError(response.text)
            if response.is_error:
                raise _gateway_failure(f"Token request failed with HTTP {response.status_code}")

            body = response.json()
            self._token = body["access_token"]
            lifetime = float(body.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_SECONDS
            self._expires_at = self._clock() + max(0.0, lifetime)
            logger.debug("🔑 PayPal access token refreshed")
            return self._token


class PayPalGateway(IPaymentGateway):
    """
    Payment gateway charging one customer card through PayPal.

    A gateway is created per commerce request, for the card the customer
    entered; the HTTP client and token provider are shared.

    Attributes:
        payment_card: Card to charge.
        description: Text shown on the PayPal transaction.
        currency_code: ISO currency of the charge.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: PayPalTokenProvider,
        payment_card: PaymentCard,
        description: str,
        currency_code: str = "USD",
    ):
        if payment_card is None:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "payment card is required")
        if not description or not description.strip():
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "payment description is required")

        self._http = http_client
        self._tokens = token_provider
        self.payment_card = payment_card
        self.description = description
        self.currency_code = currency_code

    @staticmethod
    async def validate_configuration(
        http_client: httpx.AsyncClient, configuration: PaymentConfiguration
    ) -> None:
        """
        Check that PayPal accepts the merchant credentials.

        Raises:
            CommerceDomainError: PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_CONFIGURATION
                when the credentials are rejected, PAYMENT_GATEWAY_FAILURE otherwise.
        """
        if configuration.account_type not in PAYPAL_BASE_URLS:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "Payment mode is not supported")

        try:
            await PayPalTokenProvider(http_client, configuration).get_token()
        except PayPalIdentityError as error:
            raise CommerceDomainError(
                ErrorCode.PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_CONFIGURATION
            ).add_detail("ErrorMessage", IDENTITY_FAILURE_DURING_CONFIGURATION_MESSAGE) from error

        logger.info(f"✅ PayPal configuration validated ({configuration.account_type})")

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            token = await self._tokens.get_token()
        except PayPalIdentityError as error:
            raise CommerceDomainError(
                ErrorCode.PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_PAYMENT
            ).add_detail("ErrorMessage", IDENTITY_FAILURE_DURING_PAYMENT_MESSAGE) from error

        try:
            response = await self._http.request(
                method, path, json=json, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as error:
            logger.error(f"❌ PayPal {method} {path} failed: {error}")
            raise _gateway_failure(str(error)) from error

        if response.status_code == 401:
            self._tokens.invalidate()
            raise CommerceDomainError(
                ErrorCode.PAYMENT_GATEWAY_IDENTITY_FAILURE_DURING_PAYMENT
            ).add_detail("ErrorMessage", IDENTITY_FAILURE_DURING_PAYMENT_MESSAGE)

        if response.is_error:
            error = translate_payment_error(response)
            logger.warning(
                f"⚠️ PayPal {method} {path} returned {response.status_code}: {error.error_code.value}"
            )
            raise error

        return response.json() if response.content else {}

    def _build_payment(self, amount: Decimal) -> Dict[str, Any]:
        card = self.payment_card
        return {
            "intent": "authorize",
            "payer": {
                "payment_method": "credit_card",
                "funding_instruments": [{
                    "credit_card": {
                        "type": card.card_type,
                        "number": card.number,
                        "expire_month": card.expiry_month,
                        "expire_year": card.expiry_year,
                        "cvv2": card.cvn,
                        "first_name": card.holder_first_name,
                        "last_name": card.holder_last_name,
                    }
                }],
            },
            "transactions": [{
                "amount": {"currency": self.currency_code, "total": f"{amount:.2f}"},
                "description": self.description,
            }],
        }

    async def authorize(self, amount: Decimal) -> str:
        if amount is None or amount <= 0:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "amount must be positive")

        logger.info(f"💳 Authorizing {amount:.2f} {self.currency_code} on card {card_label(self.payment_card)}")
        payment = await self._request("POST", "/v1/payments/payment", json=self._build_payment(amount))

        try:
            return payment["transactions"][0]["related_resources"][0]["authorization"]["id"]
        except (KeyError, IndexError, TypeError) as error:
            raise _gateway_failure("Payment response did not contain an authorization") from error

    async def capture(self, authorization_code: str) -> None:
        if not authorization_code:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "authorization code is required")

        authorization = await self._request("GET", f"/v1/payments/authorization/{authorization_code}")
        amount = authorization.get("amount") or {}
        await self._request(
            "POST",
            f"/v1/payments/authorization/{authorization_code}/capture",
            json={
                "amount": {"currency": amount.get("currency"), "total": amount.get("total")},
                "is_final_capture": True,
            },
        )

    async def void(self, authorization_code: str) -> None:
        if not authorization_code:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "authorization code is required")

        await self._request("POST", f"/v1/payments/authorization/{authorization_code}/void")


def card_label(card: PaymentCard) -> str:
    return f"{card.card_type} {card.masked_number}"
