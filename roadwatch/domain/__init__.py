"""Domain layer package - business rules and core models."""

from roadwatch.domain.events import (
    DomainEvent,
    EventPublisher,
    PaymentConfirmed,
    SuspensionTriggered,
    ViolationRecorded,
)
from roadwatch.domain.exceptions import (
    ConflictError,
    GatewayError,
    IllegalStateTransitionError,
    InvalidInputError,
    NotFoundError,
    RoadwatchError,
    SignatureInvalidError,
    TransientFailureError,
)
from roadwatch.domain.models import (
    FuzzyMatchResult,
    GatewayProvider,
    LicenseClass,
    Location,
    OwnerStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PlateCategory,
    PlateFormat,
    PlateValidationResult,
    VehicleOwner,
    Violation,
    ViolationCategory,
    ViolationStatus,
    ViolationType,
)
from roadwatch.domain.services import (
    DueDatePolicy,
    IdentifierGenerator,
    PlateMatcher,
    PointsPolicy,
    ViolationStateMachine,
)

__all__ = [
    # Events
    "DomainEvent",
    "EventPublisher",
    "PaymentConfirmed",
    "SuspensionTriggered",
    "ViolationRecorded",
    # Errors
    "ConflictError",
    "GatewayError",
    "IllegalStateTransitionError",
    "InvalidInputError",
    "NotFoundError",
    "RoadwatchError",
    "SignatureInvalidError",
    "TransientFailureError",
    # Models
    "FuzzyMatchResult",
    "GatewayProvider",
    "LicenseClass",
    "Location",
    "OwnerStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PlateCategory",
    "PlateFormat",
    "PlateValidationResult",
    "VehicleOwner",
    "Violation",
    "ViolationCategory",
    "ViolationStatus",
    "ViolationType",
    # Services
    "DueDatePolicy",
    "IdentifierGenerator",
    "PlateMatcher",
    "PointsPolicy",
    "ViolationStateMachine",
]
