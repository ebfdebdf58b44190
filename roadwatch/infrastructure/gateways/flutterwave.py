"""Flutterwave gateway: amounts in naira, webhooks signed with HMAC-SHA256."""

import hashlib
from decimal import Decimal
from typing import Any

from roadwatch.core.logging import get_logger
from roadwatch.domain.exceptions import GatewayError, InvalidInputError
from roadwatch.domain.models import GatewayProvider
from roadwatch.infrastructure.gateways.base import (
    GatewayInitialization,
    GatewayRefund,
    GatewayVerification,
    PaymentGateway,
    WebhookReference,
)

logger = get_logger(__name__)


class FlutterwaveGateway(PaymentGateway):
    """
    Flutterwave Standard checkout client.

    Refunds are not offered through this integration.
    """

    provider = GatewayProvider.FLUTTERWAVE
    signature_digest = hashlib.sha256
    supports_refund = False

    def __init__(self, *args: Any, currency: str = "NGN", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._currency = currency

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
        payload: dict[str, Any] = {
            "tx_ref": reference,
            "amount": str(amount),
            "currency": self._currency,
            "customer": {
                "email": payer_email,
                "name": payer_name,
                "phonenumber": payer_phone,
            },
            "meta": metadata,
            "customizations": {
                "title": "Traffic Violation Fine Payment",
            },
        }
        if callback_url:
            payload["redirect_url"] = callback_url

        logger.info("flutterwave_initialize", reference=reference, amount=str(amount))
        body = await self._request("POST", "/payments", json=payload)
        self._ensure_ok(body)

        data = body.get("data") or {}
        link = data.get("link")
        if not link:
            raise GatewayError(self.provider.value, "payment link missing from response")

        return GatewayInitialization(redirect_url=link, raw_response=data)

    async def verify(
        self,
        reference: str,
        provider_reference: str | None = None,
    ) -> GatewayVerification:
        # Flutterwave verifies by its own transaction id when one is known
        transaction_id = provider_reference or reference
        logger.info("flutterwave_verify", reference=reference, transaction_id=transaction_id)
        body = await self._request("GET", f"/transactions/{transaction_id}/verify")
        self._ensure_ok(body)

        data = body.get("data") or {}
        provider_id = data.get("id")
        return GatewayVerification(
            success=data.get("status") == "successful",
            provider_transaction_id=str(provider_id) if provider_id is not None else None,
            raw_response=data,
        )

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> GatewayRefund:
        raise InvalidInputError("Refunds not supported for this gateway yet")

    def extract_webhook_reference(self, payload: dict[str, Any]) -> WebhookReference | None:
        data = payload.get("data")
        if not isinstance(data, dict) or not data.get("tx_ref"):
            return None
        transaction_id = data.get("id")
        return WebhookReference(
            payment_reference=str(data["tx_ref"]),
            gateway_reference=str(transaction_id) if transaction_id is not None else None,
        )

    def _ensure_ok(self, body: dict[str, Any]) -> None:
        if body.get("status") != "success":
            raise GatewayError(self.provider.value, body.get("message") or "request not successful")
