"""Filter objects for read-only ledger and payment queries."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from roadwatch.domain.models import GatewayProvider, OwnerStatus, PaymentStatus, ViolationStatus


@dataclass
class ViolationSearchQuery:
    """
    Filters for searching recorded violations.

    Every filter is optional; ``plate_number`` and ``ticket_number`` are
    substring matches, the rest are exact or range filters.
    """

    plate_number: str | None = None
    ticket_number: str | None = None
    officer_id: int | None = None
    violation_type_id: int | None = None
    status: ViolationStatus | None = None
    location_state: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.limit


@dataclass
class PaymentStatisticsQuery:
    """Window and filters for payment statistics."""

    date_from: datetime | None = None
    date_to: datetime | None = None
    gateway: GatewayProvider | None = None
    status: PaymentStatus | None = None


@dataclass
class ViolationStatisticsQuery:
    """Window for violation statistics, optionally for one officer."""

    date_from: datetime | None = None
    date_to: datetime | None = None
    officer_id: int | None = None


@dataclass
class VehicleSearchQuery:
    """
    Filters for searching vehicle-owner records.

    A valid ``plate_number`` is matched exactly; a malformed one is
    widened to every stored plate the fuzzy scan accepts. Licence, name,
    phone and email are substring matches.
    """

    plate_number: str | None = None
    license_number: str | None = None
    full_name: str | None = None
    phone: str | None = None
    email: str | None = None
    state: str | None = None
    status: OwnerStatus | None = None
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.limit
