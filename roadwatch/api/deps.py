"""
FastAPI dependencies for dependency injection.

Provides database sessions, application service instances, gateway
clients and authentication dependencies for route handlers.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roadwatch.application.payment_orchestrator import PaymentOrchestrator
from roadwatch.application.vehicle_registry import VehicleRegistry
from roadwatch.application.violation_ledger import ViolationLedger
from roadwatch.core.config import get_settings
from roadwatch.core.security import Actor, check_rate_limit, get_current_actor, verify_api_key
from roadwatch.domain.events import EventPublisher
from roadwatch.domain.models import GatewayProvider
from roadwatch.infrastructure.db.session import get_session
from roadwatch.infrastructure.gateways import PaymentGateway, build_gateways
from roadwatch.infrastructure.notifications import LoggingEventPublisher


# Type aliases for cleaner route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
ApiKeyAuth = Annotated[None, Depends(verify_api_key)]
RateLimited = Annotated[None, Depends(check_rate_limit)]


def get_event_publisher() -> EventPublisher:
    return LoggingEventPublisher()


@lru_cache
def get_gateways() -> dict[GatewayProvider, PaymentGateway]:
    """
    Gateway clients built once from settings.

    Returns:
        dict: Gateway per provider.
    """
    return build_gateways(get_settings())


Publisher = Annotated[EventPublisher, Depends(get_event_publisher)]
Gateways = Annotated[dict[GatewayProvider, PaymentGateway], Depends(get_gateways)]


async def get_vehicle_registry(session: Session, publisher: Publisher) -> VehicleRegistry:
    """
    Dependency to get the vehicle registry.

    Args:
        session: Database session.
        publisher: Event publisher.

    Returns:
        VehicleRegistry: Registry bound to the request session.
    """
    return VehicleRegistry(session, publisher=publisher)


async def get_violation_ledger(
    session: Session,
    registry: Annotated[VehicleRegistry, Depends(get_vehicle_registry)],
    publisher: Publisher,
) -> ViolationLedger:
    return ViolationLedger(session, registry=registry, publisher=publisher)


async def get_payment_orchestrator(
    session: Session,
    gateways: Gateways,
    publisher: Publisher,
) -> PaymentOrchestrator:
    return PaymentOrchestrator(session, gateways, publisher=publisher)


# Type aliases for service dependencies
Registry = Annotated[VehicleRegistry, Depends(get_vehicle_registry)]
Ledger = Annotated[ViolationLedger, Depends(get_violation_ledger)]
Payments = Annotated[PaymentOrchestrator, Depends(get_payment_orchestrator)]
