"""Paystack gateway: amounts in kobo, webhooks signed with HMAC-SHA512."""

import hashlib
from decimal import Decimal
from typing import Any

from roadwatch.core.logging import get_logger
from roadwatch.domain.exceptions import GatewayError
from roadwatch.domain.models import GatewayProvider, utcnow
from roadwatch.infrastructure.gateways.base import (
    GatewayInitialization,
    GatewayRefund,
    GatewayVerification,
    PaymentGateway,
    WebhookReference,
)

logger = get_logger(__name__)


def to_kobo(amount: Decimal) -> int:
    """Naira to kobo, rounded to the nearest kobo."""
    return int((amount * 100).quantize(Decimal("1")))


class PaystackGateway(PaymentGateway):
    """
    Paystack transaction API client.

    Example:
        gateway = PaystackGateway(secret_key="sk_test_...", base_url="https://api.paystack.co")
        init = await gateway.initialize("payer@example.com", Decimal("5000"), "PAY_...", {})
    """

    provider = GatewayProvider.PAYSTACK
    signature_digest = hashlib.sha512

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
            "email": payer_email,
            "amount": to_kobo(amount),
            "reference": reference,
            "metadata": {
                **metadata,
                "payer_name": payer_name,
                "payer_phone": payer_phone,
                "source": "roadwatch",
                "timestamp": utcnow().isoformat(),
            },
        }
        if callback_url:
            payload["callback_url"] = callback_url

        logger.info("paystack_initialize", reference=reference, amount=str(amount))
        body = await self._request("POST", "/transaction/initialize", json=payload)
        self._ensure_ok(body)

        data = body.get("data") or {}
        redirect_url = data.get("authorization_url")
        if not redirect_url:
            raise GatewayError(self.provider.value, "authorization_url missing from response")

        return GatewayInitialization(
            redirect_url=redirect_url,
            provider_reference=data.get("reference"),
            raw_response=data,
        )

    async def verify(
        self,
        reference: str,
        provider_reference: str | None = None,
    ) -> GatewayVerification:
        logger.info("paystack_verify", reference=reference)
        body = await self._request("GET", f"/transaction/verify/{reference}")
        self._ensure_ok(body)

        data = body.get("data") or {}
        transaction_id = data.get("id")
        return GatewayVerification(
            success=data.get("status") == "success",
            provider_transaction_id=str(transaction_id) if transaction_id is not None else None,
            raw_response=data,
        )

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> GatewayRefund:
        payload: dict[str, Any] = {"transaction": provider_reference}
        if amount is not None:
            payload["amount"] = to_kobo(amount)

        logger.info("paystack_refund", transaction=provider_reference)
        body = await self._request("POST", "/refund", json=payload)
        self._ensure_ok(body)
        return GatewayRefund(raw_response=body.get("data") or {})

    def extract_webhook_reference(self, payload: dict[str, Any]) -> WebhookReference | None:
        data = payload.get("data")
        if not isinstance(data, dict) or not data.get("reference"):
            return None
        transaction_id = data.get("id")
        return WebhookReference(
            payment_reference=str(data["reference"]),
            gateway_reference=str(transaction_id) if transaction_id is not None else None,
        )

    def _ensure_ok(self, body: dict[str, Any]) -> None:
        if not body.get("status"):
            raise GatewayError(self.provider.value, body.get("message") or "request not successful")
