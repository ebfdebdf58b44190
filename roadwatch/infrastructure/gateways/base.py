"""
Payment gateway interface.

Each provider keeps its own amount units, endpoints and webhook digest
behind ``PaymentGateway``; the orchestrator only sees these result types.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar

import httpx

from roadwatch.core.logging import get_logger
from roadwatch.domain.exceptions import GatewayError
from roadwatch.domain.models import GatewayProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewayInitialization:
    """Checkout created at the provider."""

    redirect_url: str
    provider_reference: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayVerification:
    """Provider's verdict on a checkout."""

    success: bool
    provider_transaction_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayRefund:
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookReference:
    """Identifiers pulled out of a webhook body."""

    payment_reference: str
    gateway_reference: str | None = None


class PaymentGateway(ABC):
    """
    Abstract base class for payment providers.

    Implementations talk to the provider over ``httpx``. An
    ``httpx.AsyncClient`` can be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise a short-lived client is opened per
    call.
    """

    provider: ClassVar[GatewayProvider]
    signature_digest: ClassVar[Any] = hashlib.sha512
    supports_refund: ClassVar[bool] = True

    def __init__(
        self,
        secret_key: str,
        base_url: str,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize gateway.

        Args:
            secret_key: Provider secret, also the webhook HMAC key.
            base_url: API root without trailing slash.
            timeout: Per-request timeout in seconds.
            client: Optional shared HTTP client.
        """
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @abstractmethod
    async def initialize(
        self,
        payer_email: str,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any],
        payer_name: str | None = None,
        payer_phone: str | None = None,
        callback_url: str | None = None,
    ) -> GatewayInitialization:
        """
        Create a checkout for ``amount`` tracked by ``reference``.

        Raises:
            GatewayError: If the provider call fails.
        """

    @abstractmethod
    async def verify(
        self,
        reference: str,
        provider_reference: str | None = None,
    ) -> GatewayVerification:
        """
        Ask the provider whether a checkout succeeded.

        Raises:
            GatewayError: If the provider call fails.
        """

    @abstractmethod
    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> GatewayRefund:
        """
        Refund all or part of a settled transaction.

        Raises:
            GatewayError: If the provider call fails.
        """

    @abstractmethod
    def extract_webhook_reference(self, payload: dict[str, Any]) -> WebhookReference | None:
        """Payment reference carried by a webhook body, None if absent."""

    def verify_webhook_signature(self, raw_payload: bytes, signature: str | None) -> bool:
        """
        Check a webhook HMAC in constant time.

        Args:
            raw_payload: Request body exactly as received.
            signature: Hex digest sent by the provider.

        Returns:
            bool: True if the signature matches.
        """
        if not signature or not self._secret_key:
            return False
        expected = hmac.new(
            self._secret_key.encode(),
            raw_payload,
            self.signature_digest,
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def sign(self, raw_payload: bytes) -> str:
        """Signature the provider would send for ``raw_payload``."""
        return hmac.new(
            self._secret_key.encode(),
            raw_payload,
            self.signature_digest,
        ).hexdigest()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Send an authenticated request and decode the JSON body.

        Raises:
            GatewayError: On missing credentials, transport failure,
                non-2xx status or a non-JSON body.
        """
        provider = self.provider.value
        if not self._secret_key:
            raise GatewayError(provider, "secret key not configured")

        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._secret_key}"}

        try:
            if self._client is not None:
                response = await self._client.request(method, url, json=json, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error("gateway_request_failed", provider=provider, path=path, error=str(e))
            raise GatewayError(provider, f"request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error(
                "gateway_response_invalid",
                provider=provider,
                path=path,
                status_code=response.status_code,
            )
            raise GatewayError(provider, f"invalid response (HTTP {response.status_code})") from e

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "gateway_request_rejected",
                provider=provider,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise GatewayError(provider, message or f"HTTP {response.status_code}")

        if not isinstance(body, dict):
            raise GatewayError(provider, "unexpected response shape")
        return body
