"""Infrastructure layer package."""

from roadwatch.infrastructure.db import (
    PaymentRepository,
    VehicleRepository,
    ViolationRepository,
    ViolationTypeRepository,
    close_db,
    get_session,
    init_db,
)
from roadwatch.infrastructure.gateways import (
    FlutterwaveGateway,
    PaymentGateway,
    PaystackGateway,
    build_gateways,
)
from roadwatch.infrastructure.notifications import LoggingEventPublisher

__all__ = [
    # Database
    "get_session",
    "init_db",
    "close_db",
    "VehicleRepository",
    "ViolationTypeRepository",
    "ViolationRepository",
    "PaymentRepository",
    # Gateways
    "PaymentGateway",
    "PaystackGateway",
    "FlutterwaveGateway",
    "build_gateways",
    # Notifications
    "LoggingEventPublisher",
]
