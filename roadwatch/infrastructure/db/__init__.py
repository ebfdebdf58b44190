"""Database infrastructure package."""

from roadwatch.infrastructure.db.models import (
    Base,
    PaymentDB,
    VehicleOwnerDB,
    ViolationDB,
    ViolationTypeDB,
)
from roadwatch.infrastructure.db.repository import (
    AggregateRow,
    PaymentRepository,
    VehicleRepository,
    ViolationRepository,
    ViolationTypeRepository,
)
from roadwatch.infrastructure.db.session import (
    check_db,
    close_db,
    get_session,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "VehicleOwnerDB",
    "ViolationTypeDB",
    "ViolationDB",
    "PaymentDB",
    # Repositories
    "AggregateRow",
    "VehicleRepository",
    "ViolationTypeRepository",
    "ViolationRepository",
    "PaymentRepository",
    # Session
    "check_db",
    "get_session",
    "init_db",
    "close_db",
]
