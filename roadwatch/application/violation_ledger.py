"""
Violation ledger use cases.

Records batches of violations against a plate, moves violations through
their status lifecycle and answers plate, ticket and search queries
plus per-officer and system-wide statistics.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from roadwatch.application.transaction import transaction
from roadwatch.application.vehicle_registry import PLACEHOLDER_OWNER_NAME, VehicleRegistry
from roadwatch.core.config import Settings, get_settings
from roadwatch.core.logging import get_logger
from roadwatch.domain.events import EventPublisher, ViolationRecorded
from roadwatch.domain.exceptions import (
    ConflictError,
    IllegalStateTransitionError,
    InvalidInputError,
    NotFoundError,
)
from roadwatch.domain.models import (
    PAYABLE_STATUSES,
    Location,
    VehicleOwner,
    Violation,
    ViolationStatus,
    ViolationType,
    as_naive_utc,
    utcnow,
)
from roadwatch.domain.queries import ViolationSearchQuery, ViolationStatisticsQuery
from roadwatch.domain.services import DueDatePolicy, IdentifierGenerator, ViolationStateMachine
from roadwatch.infrastructure.db.repository import (
    VehicleRepository,
    ViolationRepository,
    ViolationTypeRepository,
)
from roadwatch.infrastructure.notifications import LoggingEventPublisher

logger = get_logger(__name__)

MAX_TICKET_ATTEMPTS = 5
DEFAULT_ACTIVITY_DAYS = 30
TOP_TYPES_PER_OFFICER = 5
TOP_TYPES_SYSTEM = 10
MONTHLY_TREND_MONTHS = 12


@dataclass
class ViolationBatchRequest:
    """
    Everything an officer submits for one stop.

    Attributes:
        plate_number: Plate as read at the roadside.
        officer_id: Recording officer.
        violation_type_ids: Catalog entries, one violation each.
        location: Where the stop happened.
        evidence_photos: Photo references; the first is the primary photo.
        evidence_notes: Free-text evidence kept with the extra photos.
        violation_date: When it happened (now if None).
        due_date: Requested deadline; must respect the grace period.
    """

    plate_number: str
    officer_id: int
    violation_type_ids: list[int]
    location: Location
    evidence_photos: list[str] = field(default_factory=list)
    evidence_notes: str | None = None
    officer_notes: str | None = None
    weather_condition: str | None = None
    road_condition: str | None = None
    traffic_condition: str | None = None
    violation_date: datetime | None = None
    due_date: datetime | None = None


@dataclass
class ViolationBatchResult:
    violations: list[Violation]
    total_amount: Decimal
    total_points: int
    vehicle_owner: VehicleOwner
    suspension_triggered: bool


@dataclass
class PlateViolationSummary:
    """
    Violation history of one plate.

    ``outstanding_amount`` covers violations that can still be paid;
    ``owner_status`` is ``unknown`` when no vehicle is registered.
    """

    plate_number: str
    violations: list[Violation]
    total_violations: int
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    current_points: int
    owner_status: str


@dataclass
class ViolationSearchResult:
    violations: list[Violation]
    total_count: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    by_status: dict[str, int]


@dataclass
class PlateViolationStatistics:
    plate_number: str
    total_violations: int
    paid_violations: int
    pending_violations: int
    total_fines: Decimal
    outstanding_amount: Decimal


@dataclass(frozen=True)
class ViolationTypeTally:
    title: str
    count: int
    total_amount: Decimal


@dataclass(frozen=True)
class DailyActivity:
    day: date
    violations: int
    amount: Decimal


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    violations: int
    amount: Decimal


@dataclass
class OfficerStatistics:
    """
    Recording activity of one officer.

    ``average_per_day`` spreads the total over the requested window, or
    over the last 30 days when no full window is given.
    """

    officer_id: int
    total_violations: int
    total_amount: Decimal
    average_per_day: float
    top_violation_types: list[ViolationTypeTally]
    daily_activity: list[DailyActivity]


@dataclass
class SystemStatistics:
    total_violations: int
    total_amount: Decimal
    paid_violations: int
    paid_amount: Decimal
    pending_violations: int
    pending_amount: Decimal
    contested_violations: int
    top_violation_types: list[ViolationTypeTally]
    monthly_trends: list[MonthlyTrend]


class ViolationLedger:
    """
    Use cases over recorded violations.

    Example:
        ledger = ViolationLedger(session)
        result = await ledger.create_batch(request)
        print([v.ticket_number for v in result.violations])
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: VehicleRegistry | None = None,
        publisher: EventPublisher | None = None,
        settings: Settings | None = None,
        identifiers: IdentifierGenerator | None = None,
    ):
        """
        Initialize ledger.

        Args:
            session: Database session shared with the registry.
            registry: Vehicle registry (built on ``session`` if None).
            publisher: Receiver of ViolationRecorded/SuspensionTriggered.
            settings: Grace period; application settings if None.
            identifiers: Ticket number generator.
        """
        self._session = session
        self._settings = settings or get_settings()
        self._publisher = publisher or LoggingEventPublisher()
        self._registry = registry or VehicleRegistry(
            session,
            publisher=self._publisher,
            settings=self._settings,
        )
        self._identifiers = identifiers or IdentifierGenerator()
        self._due_dates = DueDatePolicy(grace_days=self._settings.payment_grace_days)
        self._states = ViolationStateMachine()
        self._violations = ViolationRepository(session)
        self._types = ViolationTypeRepository(session)
        self._vehicles = VehicleRepository(session)

    async def create_batch(self, request: ViolationBatchRequest) -> ViolationBatchResult:
        """
        Record one violation per requested type against a plate.

        Resolves the plate through the registry, creating a placeholder
        owner when nothing matches, snapshots fines and points from the
        catalog and applies the summed points once. Nothing is persisted
        unless every step succeeds.

        Args:
            request: Batch details.

        Returns:
            ViolationBatchResult: Created violations, totals and owner.

        Raises:
            InvalidInputError: Empty batch, unknown or inactive type,
                malformed plate with no match, or a due date inside the
                grace period.
        """
        if not request.violation_type_ids:
            raise InvalidInputError("At least one violation type is required")

        violation_date = as_naive_utc(request.violation_date) or utcnow()
        due_date = self._due_dates.resolve(violation_date, as_naive_utc(request.due_date))

        async with transaction(self._session):
            violation_types = await self._types.get_many(request.violation_type_ids)
            if len(violation_types) != len(request.violation_type_ids) or not all(
                t.is_active for t in violation_types
            ):
                raise InvalidInputError("One or more violation types are invalid or inactive")

            lookup = await self._registry.lookup(request.plate_number)
            vehicle = lookup.vehicle
            if vehicle is None:
                vehicle = await self._registry.register(
                    VehicleOwner(
                        plate_number=request.plate_number,
                        full_name=PLACEHOLDER_OWNER_NAME,
                    )
                )
                logger.warning(
                    "vehicle_placeholder_created",
                    plate=vehicle.plate_number,
                    vehicle_id=vehicle.id,
                )

            evidence_photo, additional_evidence = _split_evidence(
                request.evidence_photos,
                request.evidence_notes,
            )

            violations: list[Violation] = []
            for violation_type in violation_types:
                violation = Violation(
                    ticket_number=await self._allocate_ticket_number(),
                    plate_number=vehicle.plate_number,
                    vehicle_owner_id=vehicle.id,
                    officer_id=request.officer_id,
                    violation_type_id=violation_type.id,
                    fine_amount=violation_type.fine_amount,
                    points=violation_type.points,
                    location=request.location,
                    violation_date=violation_date,
                    due_date=due_date,
                    evidence_photo=evidence_photo,
                    additional_evidence=additional_evidence,
                    officer_notes=request.officer_notes,
                    weather_condition=request.weather_condition,
                    road_condition=request.road_condition,
                    traffic_condition=request.traffic_condition,
                )
                violations.append(await self._violations.create(violation))

            total_amount = sum((v.fine_amount for v in violations), Decimal("0.00"))
            total_points = sum(v.points for v in violations)

            adjustment = await self._registry.adjust_points(vehicle.plate_number, total_points)

        logger.info(
            "violations_recorded",
            plate=vehicle.plate_number,
            officer_id=request.officer_id,
            count=len(violations),
            total_amount=str(total_amount),
            total_points=total_points,
            fuzzy_match=bool(lookup.suggestions),
        )

        owner = adjustment.vehicle
        await self._publisher.publish(
            ViolationRecorded(
                plate_number=owner.plate_number,
                ticket_numbers=tuple(v.ticket_number for v in violations),
                total_amount=total_amount,
                total_points=total_points,
                due_date=due_date,
                owner_name=owner.full_name,
                owner_phone=owner.phone,
                owner_email=owner.email,
            )
        )
        if adjustment.suspension_triggered:
            await self._publisher.publish(self._registry.suspension_event(owner))

        return ViolationBatchResult(
            violations=violations,
            total_amount=total_amount,
            total_points=total_points,
            vehicle_owner=owner,
            suspension_triggered=adjustment.suspension_triggered,
        )

    async def update_status(
        self,
        violation_id: int,
        new_status: ViolationStatus,
        actor_id: int,
        notes: str | None = None,
    ) -> Violation:
        """
        Change a violation's status on behalf of an authorized actor.

        Every change appends a timestamped line to the officer notes.
        Changes outside the standard transition table are allowed but
        logged.

        Args:
            violation_id: Violation to change.
            new_status: Target status.
            actor_id: Who made the change.
            notes: Optional reason recorded with the change.

        Returns:
            Violation: Updated violation.

        Raises:
            NotFoundError: If the violation does not exist.
        """
        async with transaction(self._session):
            violation = await self._violations.get_by_id(violation_id, for_update=True)
            if violation is None:
                raise NotFoundError("Violation", violation_id)

            old_status = violation.status
            if old_status != new_status and not self._states.is_standard_transition(
                old_status, new_status
            ):
                logger.warning(
                    "violation_status_override",
                    violation_id=violation_id,
                    from_status=old_status.value,
                    to_status=new_status.value,
                    actor_id=actor_id,
                )

            now = utcnow()
            entry = (
                f"[{now.isoformat(timespec='seconds')}] Status changed from "
                f"{old_status.value} to {new_status.value} by actor {actor_id}"
            )
            if notes:
                entry += f": {notes}"

            values: dict[str, Any] = {
                "status": new_status,
                "officer_notes": (
                    f"{violation.officer_notes}\n{entry}" if violation.officer_notes else entry
                ),
            }
            if new_status == ViolationStatus.PAID:
                values["paid_date"] = now
            if old_status == ViolationStatus.CONTESTED and new_status == ViolationStatus.DISMISSED:
                values["is_overturned"] = True

            updated = await self._violations.update(violation_id, **values)

        logger.info(
            "violation_status_updated",
            violation_id=violation_id,
            from_status=old_status.value,
            to_status=new_status.value,
            actor_id=actor_id,
        )
        return updated

    async def contest(
        self,
        violation_id: int,
        reason: str,
        actor_id: int | None = None,
    ) -> Violation:
        """
        Mark a pending violation as contested.

        Raises:
            NotFoundError: If the violation does not exist.
            InvalidInputError: If no reason is given.
            IllegalStateTransitionError: If the violation is not pending.
        """
        if not reason or not reason.strip():
            raise InvalidInputError("A reason is required to contest a violation")

        async with transaction(self._session):
            violation = await self._violations.get_by_id(violation_id, for_update=True)
            if violation is None:
                raise NotFoundError("Violation", violation_id)
            if not self._states.can_contest(violation.status):
                raise IllegalStateTransitionError("Only pending violations can be contested")

            updated = await self._violations.update(
                violation_id,
                status=ViolationStatus.CONTESTED,
                contest_date=utcnow(),
                contest_reason=reason.strip(),
            )

        logger.info("violation_contested", violation_id=violation_id, actor_id=actor_id)
        return updated

    async def get(self, violation_id: int) -> Violation:
        violation = await self._violations.get_by_id(violation_id)
        if violation is None:
            raise NotFoundError("Violation", violation_id)
        return violation

    async def get_by_ticket(self, ticket_number: str) -> Violation:
        ticket = ticket_number.strip().upper()
        violation = await self._violations.get_by_ticket(ticket)
        if violation is None:
            raise NotFoundError("Violation", ticket)
        return violation

    async def get_by_plate(self, raw_plate: str) -> PlateViolationSummary:
        """
        All violations recorded against a plate with money totals.

        Args:
            raw_plate: Plate in any accepted spelling.

        Returns:
            PlateViolationSummary: Violations newest first plus totals.
        """
        plate_number = self._registry.matcher.normalize(raw_plate)
        if not plate_number:
            raise InvalidInputError("Plate number is required")

        violations = await self._violations.list_by_plate(plate_number)
        owner = await self._vehicles.get_by_plate(plate_number)

        zero = Decimal("0.00")
        total_amount = sum((v.fine_amount for v in violations), zero)
        paid_amount = sum(
            (v.fine_amount for v in violations if v.status == ViolationStatus.PAID),
            zero,
        )
        outstanding_amount = sum(
            (v.fine_amount for v in violations if v.status in PAYABLE_STATUSES),
            zero,
        )

        return PlateViolationSummary(
            plate_number=plate_number,
            violations=violations,
            total_violations=len(violations),
            total_amount=total_amount,
            paid_amount=paid_amount,
            outstanding_amount=outstanding_amount,
            current_points=owner.current_points if owner else 0,
            owner_status=owner.status.value if owner else "unknown",
        )

    async def search(self, query: ViolationSearchQuery) -> ViolationSearchResult:
        """
        Filtered, paginated search with a summary over every match.

        Args:
            query: Filters and page; ``limit`` is clamped to 1..100.

        Returns:
            ViolationSearchResult: Page, pagination and money summary.
        """
        query.page = max(query.page, 1)
        query.limit = min(max(query.limit, 1), 100)
        query.date_from = as_naive_utc(query.date_from)
        query.date_to = as_naive_utc(query.date_to)

        violations, total_count, rows = await self._violations.search(query)

        by_status = {row.key: row.count for row in rows}
        amounts = {row.key: row.amount for row in rows}
        zero = Decimal("0.00")
        total_pages = (total_count + query.limit - 1) // query.limit

        return ViolationSearchResult(
            violations=violations,
            total_count=total_count,
            page=query.page,
            limit=query.limit,
            total_pages=total_pages,
            has_next=query.page < total_pages,
            has_previous=query.page > 1,
            total_amount=sum(amounts.values(), zero),
            paid_amount=amounts.get(ViolationStatus.PAID.value, zero),
            pending_amount=sum((amounts.get(s.value, zero) for s in PAYABLE_STATUSES), zero),
            by_status=by_status,
        )

    async def plate_statistics(self, raw_plate: str) -> PlateViolationStatistics:
        summary = await self.get_by_plate(raw_plate)
        return PlateViolationStatistics(
            plate_number=summary.plate_number,
            total_violations=summary.total_violations,
            paid_violations=sum(
                1 for v in summary.violations if v.status == ViolationStatus.PAID
            ),
            pending_violations=sum(
                1 for v in summary.violations if v.status in PAYABLE_STATUSES
            ),
            total_fines=summary.total_amount,
            outstanding_amount=summary.outstanding_amount,
        )

    async def officer_statistics(self, query: ViolationStatisticsQuery) -> OfficerStatistics:
        """
        What one officer recorded in a window.

        Args:
            query: Window; ``officer_id`` is required.

        Returns:
            OfficerStatistics: Totals, the five most recorded offence
                types and activity per day.

        Raises:
            InvalidInputError: No officer or an inverted window.
        """
        if query.officer_id is None:
            raise InvalidInputError("An officer is required")
        aggregates = await self._aggregate(query)

        total_violations = sum(row.count for row in aggregates["by_status"])
        total_amount = sum((row.amount for row in aggregates["by_status"]), Decimal("0.00"))

        days = DEFAULT_ACTIVITY_DAYS
        if query.date_from is not None and query.date_to is not None:
            days = max(math.ceil((query.date_to - query.date_from).total_seconds() / 86400), 1)

        return OfficerStatistics(
            officer_id=query.officer_id,
            total_violations=total_violations,
            total_amount=total_amount,
            average_per_day=round(total_violations / days, 2),
            top_violation_types=_top_types(aggregates["by_type"], TOP_TYPES_PER_OFFICER),
            daily_activity=[
                DailyActivity(
                    day=date.fromisoformat(row.key[:10]),
                    violations=row.count,
                    amount=row.amount,
                )
                for row in aggregates["by_day"]
            ],
        )

    async def system_statistics(self, query: ViolationStatisticsQuery) -> SystemStatistics:
        """
        Totals across every officer in a window.

        Monthly trends cover the twelve most recent months with activity.

        Raises:
            InvalidInputError: If the window is inverted.
        """
        aggregates = await self._aggregate(query)
        zero = Decimal("0.00")
        by_status = {row.key: row for row in aggregates["by_status"]}

        def tally(status: ViolationStatus) -> tuple[int, Decimal]:
            row = by_status.get(status.value)
            return (row.count, row.amount) if row else (0, zero)

        paid_count, paid_amount = tally(ViolationStatus.PAID)
        pending_count, pending_amount = tally(ViolationStatus.PENDING)
        contested_count, _ = tally(ViolationStatus.CONTESTED)

        month_counts: dict[str, int] = defaultdict(int)
        month_amounts: dict[str, Decimal] = defaultdict(lambda: zero)
        for row in aggregates["by_day"]:
            month_counts[row.key[:7]] += row.count
            month_amounts[row.key[:7]] += row.amount

        return SystemStatistics(
            total_violations=sum(row.count for row in by_status.values()),
            total_amount=sum((row.amount for row in by_status.values()), zero),
            paid_violations=paid_count,
            paid_amount=paid_amount,
            pending_violations=pending_count,
            pending_amount=pending_amount,
            contested_violations=contested_count,
            top_violation_types=_top_types(aggregates["by_type"], TOP_TYPES_SYSTEM),
            monthly_trends=[
                MonthlyTrend(month=month, violations=count, amount=month_amounts[month])
                for month, count in sorted(month_counts.items())
            ][-MONTHLY_TREND_MONTHS:],
        )

    async def list_violation_types(self) -> list[ViolationType]:
        """Active offence catalog, ordered by code."""
        return await self._types.list_active()

    async def get_violation_type(self, type_id: int) -> ViolationType:
        violation_type = await self._types.get_by_id(type_id)
        if violation_type is None:
            raise NotFoundError("Violation type", type_id)
        return violation_type

    async def _aggregate(self, query: ViolationStatisticsQuery):
        query.date_from = as_naive_utc(query.date_from)
        query.date_to = as_naive_utc(query.date_to)
        if query.date_from and query.date_to and query.date_from > query.date_to:
            raise InvalidInputError("date_from must not be after date_to")
        return await self._violations.aggregate(query)

    async def _allocate_ticket_number(self) -> str:
        for _ in range(MAX_TICKET_ATTEMPTS):
            ticket_number = self._identifiers.ticket_number()
            if not await self._violations.ticket_exists(ticket_number):
                return ticket_number
            logger.warning("ticket_number_collision", ticket_number=ticket_number)
        raise ConflictError("Could not allocate a unique ticket number")


def _split_evidence(
    photos: list[str],
    notes: str | None,
) -> tuple[str | None, dict[str, Any] | None]:
    """Primary photo plus the JSON document holding the rest."""
    primary = photos[0] if photos else None
    extra: dict[str, Any] = {}
    if len(photos) > 1:
        extra["additional_photos"] = list(photos[1:])
    if notes:
        extra["notes"] = notes
    return primary, extra or None


def _top_types(rows, limit: int) -> list[ViolationTypeTally]:
    ranked = sorted(rows, key=lambda row: (-row.count, row.key))
    return [
        ViolationTypeTally(title=row.key, count=row.count, total_amount=row.amount)
        for row in ranked[:limit]
    ]
