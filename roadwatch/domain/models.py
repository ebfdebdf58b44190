"""
Domain models for the road-safety violation service.

These are pure domain objects with no infrastructure dependencies.
They represent the core business concepts: vehicle owners, the violation
catalog, recorded violations and the payments made against them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation used throughout the store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime | None) -> datetime | None:
    """
    Convert an incoming timestamp to the stored representation.

    Aware values are shifted to UTC and lose their offset; naive values
    are taken to be UTC already.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class PlateCategory(str, Enum):
    """Category derived from the format a plate number validated against."""

    PRIVATE = "private"
    COMMERCIAL = "commercial"
    GOVERNMENT = "government"
    DIPLOMATIC = "diplomatic"
    MILITARY = "military"
    UNKNOWN = "unknown"


class OwnerStatus(str, Enum):
    """
    Licence status of a vehicle owner.

    ACTIVE -> SUSPENDED happens automatically at the point threshold and
    never reverts on its own. EXPIRED and REVOKED are administrative.
    """

    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    REVOKED = "revoked"


class LicenseClass(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"


class ViolationCategory(str, Enum):
    EQUIPMENT = "equipment"
    DOCUMENTATION = "documentation"
    TRAFFIC = "traffic"
    PARKING = "parking"
    VEHICLE_CONDITION = "vehicle_condition"
    DANGEROUS_DRIVING = "dangerous_driving"


class ViolationStatus(str, Enum):
    """
    Lifecycle status of a recorded violation.

    PENDING: Issued, awaiting payment or contest.
    PAID: Settled through a verified payment.
    PARTIALLY_PAID: Part of the fine received.
    CONTESTED: Owner disputes the violation.
    DISMISSED: Cancelled, usually after a contest.
    COURT_PENDING: Referred to court.
    """

    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    CONTESTED = "contested"
    DISMISSED = "dismissed"
    COURT_PENDING = "court_pending"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    USSD = "ussd"
    CASH = "cash"
    POS = "pos"


class GatewayProvider(str, Enum):
    PAYSTACK = "paystack"
    FLUTTERWAVE = "flutterwave"


# Violation statuses a payment may be initiated against
PAYABLE_STATUSES: frozenset[ViolationStatus] = frozenset(
    {ViolationStatus.PENDING, ViolationStatus.PARTIALLY_PAID}
)


@dataclass(frozen=True)
class PlateFormat:
    """
    A recognized plate-number shape.

    Attributes:
        name: Short identifier (``current``, ``legacy``, ...).
        pattern: Anchored regular expression over the normalized plate.
        description: Human readable description.
        example: Example plate in this format.
        category: Category a matching plate belongs to.
        checks_state_code: Whether the leading two letters must be a
            recognized state code.
    """

    name: str
    pattern: str
    description: str
    example: str
    category: PlateCategory
    checks_state_code: bool = False


@dataclass(frozen=True)
class PlateValidationResult:
    """
    Outcome of validating a raw plate string.

    A negative result is reported through ``is_valid`` and ``errors``,
    never by raising.
    """

    is_valid: bool
    normalized: str
    matched_format: PlateFormat | None = None
    errors: tuple[str, ...] = ()

    @property
    def category(self) -> PlateCategory:
        if self.matched_format is None:
            return PlateCategory.UNKNOWN
        return self.matched_format.category


@dataclass(frozen=True)
class FuzzyMatchResult:
    """
    Outcome of comparing an input plate against a target plate.

    Attributes:
        is_match: Similarity reached the threshold.
        similarity: Normalized edit-distance similarity in [0, 1].
        suggestions: Up to five single-character corrections of the input.
    """

    is_match: bool
    similarity: float
    suggestions: tuple[str, ...] = ()


@dataclass
class VehicleOwner:
    """
    Domain model for a registered vehicle and its licence holder.

    Attributes:
        plate_number: Unique normalized plate number.
        full_name: Owner's name ("Unknown Owner" for placeholders).
        license_number: Optional unique licence number, uppercased.
        current_points: Accumulated penalty points, never negative.
        status: Licence status.
    """

    plate_number: str
    full_name: str
    license_number: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    state_of_residence: str | None = None
    lga: str | None = None
    license_class: LicenseClass = LicenseClass.C
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_year: int | None = None
    vehicle_color: str | None = None
    engine_number: str | None = None
    chassis_number: str | None = None
    issue_date: datetime | None = None
    expiry_date: datetime | None = None
    status: OwnerStatus = OwnerStatus.ACTIVE
    current_points: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    @property
    def is_license_expired(self) -> bool:
        if self.expiry_date is None:
            return False
        return utcnow() > self.expiry_date


@dataclass
class ViolationType:
    """
    Catalog entry describing an offence.

    Fine amount and points are copied onto each violation when it is
    recorded, so later catalog edits never change existing violations.
    """

    code: str
    title: str
    description: str
    fine_amount: Decimal
    points: int
    category: ViolationCategory
    suspension_eligible: bool = False
    is_active: bool = True
    id: int | None = None


@dataclass
class Location:
    """Where a violation was observed."""

    state: str
    lat: float | None = None
    lng: float | None = None
    address: str | None = None
    lga: str | None = None


@dataclass
class Violation:
    """
    Domain model for one recorded infraction.

    Attributes:
        ticket_number: Unique human-referenceable identifier.
        plate_number: Normalized plate the violation was recorded against.
        officer_id: Opaque id of the recording officer.
        violation_type_id: Catalog entry this violation instantiates.
        fine_amount: Fine snapshotted at creation.
        points: Points snapshotted at creation.
        location: Where it happened.
        violation_date: When it happened.
        due_date: Payment deadline, never before the grace period ends.
    """

    ticket_number: str
    plate_number: str
    officer_id: int
    violation_type_id: int
    fine_amount: Decimal
    points: int
    location: Location
    violation_date: datetime
    due_date: datetime
    vehicle_owner_id: int | None = None
    evidence_photo: str | None = None
    additional_evidence: dict[str, Any] | None = None
    officer_notes: str | None = None
    weather_condition: str | None = None
    road_condition: str | None = None
    traffic_condition: str | None = None
    status: ViolationStatus = ViolationStatus.PENDING
    paid_date: datetime | None = None
    contest_date: datetime | None = None
    contest_reason: str | None = None
    is_overturned: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    @property
    def is_overdue(self) -> bool:
        return self.status == ViolationStatus.PENDING and utcnow() > self.due_date

    @property
    def days_until_due(self) -> int:
        return (self.due_date - utcnow()).days


@dataclass
class Payment:
    """
    Domain model for one payment attempt against exactly one violation.

    Payments created by the same checkout share ``payment_reference`` and
    move between statuses together; refunds are per payment.
    """

    violation_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_reference: str
    gateway_provider: GatewayProvider
    status: PaymentStatus = PaymentStatus.PENDING
    gateway_reference: str | None = None
    payer_name: str | None = None
    payer_email: str | None = None
    payer_phone: str | None = None
    payment_url: str | None = None
    payment_date: datetime | None = None
    gateway_response: dict | None = None
    refunded_amount: Decimal = Decimal("0")
    refund_reason: str | None = None
    refund_date: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    @property
    def is_successful(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def can_be_refunded(self) -> bool:
        return self.status == PaymentStatus.COMPLETED and self.refunded_amount == 0
