"""Payment gateway clients."""

import httpx

from roadwatch.core.config import Settings
from roadwatch.domain.models import GatewayProvider
from roadwatch.infrastructure.gateways.base import (
    GatewayInitialization,
    GatewayRefund,
    GatewayVerification,
    PaymentGateway,
    WebhookReference,
)
from roadwatch.infrastructure.gateways.flutterwave import FlutterwaveGateway
from roadwatch.infrastructure.gateways.paystack import PaystackGateway


def build_gateways(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> dict[GatewayProvider, PaymentGateway]:
    """
    Construct one client per configured provider.

    Args:
        settings: Application settings holding keys and base URLs.
        client: Optional HTTP client shared by all gateways.

    Returns:
        dict: Gateway per provider.
    """
    return {
        GatewayProvider.PAYSTACK: PaystackGateway(
            secret_key=settings.paystack_secret_key,
            base_url=settings.paystack_base_url,
            timeout=settings.gateway_timeout_seconds,
            client=client,
        ),
        GatewayProvider.FLUTTERWAVE: FlutterwaveGateway(
            secret_key=settings.flutterwave_secret_key,
            base_url=settings.flutterwave_base_url,
            timeout=settings.gateway_timeout_seconds,
            client=client,
            currency=settings.currency,
        ),
    }


__all__ = [
    "FlutterwaveGateway",
    "GatewayInitialization",
    "GatewayRefund",
    "GatewayVerification",
    "PaymentGateway",
    "PaystackGateway",
    "WebhookReference",
    "build_gateways",
]
