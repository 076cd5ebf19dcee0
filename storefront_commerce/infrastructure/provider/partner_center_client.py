"""
Partner Center REST client.

Provisions subscriptions for the storefront's customers:

- ``POST  /v1/customers/{customer_id}/orders``
- ``GET   /v1/customers/{customer_id}/subscriptions/{subscription_id}``
- ``PATCH /v1/customers/{customer_id}/subscriptions/{subscription_id}``

Requests authenticate with an Azure AD app-only token. Every call goes through
a circuit breaker that only counts transport errors and 5xx responses, so a
customer asking for a subscription that does not exist cannot open it.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import httpx

from storefront_commerce.core.exceptions import SubscriptionProviderError
from storefront_commerce.infrastructure.logging import get_correlation_id
from storefront_commerce.infrastructure.resilience import CircuitBreaker
from storefront_commerce.models import ProviderOrder, ProviderSubscription
from storefront_commerce.repositories.interfaces import ISubscriptionProvider

logger = logging.getLogger(__name__)

PARTNER_CENTER_RESOURCE = "https://api.partnercenter.microsoft.com"
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def counts_against_circuit(error: BaseException) -> bool:
    """Transport errors and 5xx responses say the provider is unhealthy."""
    return isinstance(error, SubscriptionProviderError) and error.is_transient


def _provider_error(response: httpx.Response, action: str) -> SubscriptionProviderError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {"body": body}

    description = body.get("description") or body.get("message") or response.reason_phrase
    return SubscriptionProviderError(
        f"{action} failed with HTTP {response.status_code}: {description}",
        status_code=response.status_code,
        details=body,
    )


class AadTokenProvider:
    """Azure AD client credentials token for the Partner Center resource."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        authority: str,
        tenant_id: str,
        application_id: str,
        application_secret: str,
        resource: str = PARTNER_CENTER_RESOURCE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http_client
        self._token_url = f"{authority.rstrip('/')}/{tenant_id}/oauth2/token"
        self._application_id = application_id
        self._application_secret = application_secret
        self._resource = resource
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._token = None

    async def get_token(self) -> str:
        """
        Raises:
            SubscriptionProviderError: The token could not be acquired.
        """
        async with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token

            try:
                response = await self._http.post(
                    self._token_url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._application_id,
                        "client_secret": self._application_secret,
                        "resource": self._resource,
                    },
                )
            except httpx.HTTPError as error:
                raise SubscriptionProviderError(f"Token request failed: {error}") from error

            if response.is_error:
                raise _provider_error(response, "Token request")

            body = response.json()
            self._token = body["access_token"]
            lifetime = float(body.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_SECONDS
            self._expires_at = self._clock() + max(0.0, lifetime)
            logger.debug("🔑 Partner Center access token refreshed")
            return self._token


class PartnerCenterClient(ISubscriptionProvider):
    """
    Subscription provider backed by the Partner Center REST API.

    Attributes:
        circuit_breaker: Breaker guarding every call.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: AadTokenProvider,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._http = http_client
        self._tokens = token_provider
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="partner-center")

    async def _send(self, method: str, path: str, action: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = await self._tokens.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "MS-RequestId": str(uuid.uuid4()),
            "MS-CorrelationId": get_correlation_id() or str(uuid.uuid4()),
        }

        try:
            response = await self._http.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as error:
            raise SubscriptionProviderError(f"{action} failed: {error}") from error

        if response.status_code == 401:
            self._tokens.invalidate()
        if response.is_error:
            raise _provider_error(response, action)

        return response.json()

    async def _request(self, method: str, path: str, action: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await self.circuit_breaker.call(
                self._send, method, path, action, json=json, is_failure=counts_against_circuit
            )
        except SubscriptionProviderError as error:
            logger.error(f"❌ {error}")
            raise

    async def place_order(self, customer_id: str, order: ProviderOrder) -> ProviderOrder:
        body = await self._request(
            "POST", f"/v1/customers/{customer_id}/orders", "Place order", json=order.to_wire()
        )
        return ProviderOrder.model_validate(body)

    async def get_subscription(self, customer_id: str, subscription_id: str) -> ProviderSubscription:
        body = await self._request(
            "GET",
            f"/v1/customers/{customer_id}/subscriptions/{subscription_id}",
            "Get subscription",
        )
        return ProviderSubscription.model_validate(body)

    async def update_subscription(
        self, customer_id: str, subscription: ProviderSubscription
    ) -> ProviderSubscription:
        body = await self._request(
            "PATCH",
            f"/v1/customers/{customer_id}/subscriptions/{subscription.id}",
            "Update subscription",
            json=subscription.to_wire(),
        )
        return ProviderSubscription.model_validate(body)


def create_partner_center_http_client(api_endpoint: str, timeout_seconds: float = 30.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=api_endpoint,
        timeout=timeout_seconds,
        headers={"Accept": "application/json", "X-Locale": "en-US"},
    )
