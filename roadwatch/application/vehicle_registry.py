"""
Vehicle registry use cases.

Owns vehicle-owner records keyed by plate number, resolves raw plate
input (exact first, fuzzy on malformed input) and is the single place
where penalty points and the automatic suspension are applied.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from roadwatch.application.transaction import transaction, transaction_active
from roadwatch.core.config import Settings, get_settings
from roadwatch.core.logging import get_logger
from roadwatch.domain.events import EventPublisher, SuspensionTriggered
from roadwatch.domain.exceptions import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    RoadwatchError,
)
from roadwatch.domain.models import PlateValidationResult, VehicleOwner, as_naive_utc, utcnow
from roadwatch.domain.queries import VehicleSearchQuery
from roadwatch.domain.services import PlateMatcher, PointsPolicy
from roadwatch.infrastructure.db.repository import VehicleRepository
from roadwatch.infrastructure.notifications import LoggingEventPublisher

logger = get_logger(__name__)

PLACEHOLDER_OWNER_NAME = "Unknown Owner"

# Fields an administrator may change through update(); points and status
# only move through adjust_points()
UPDATABLE_FIELDS = frozenset({
    "plate_number",
    "license_number",
    "full_name",
    "address",
    "phone",
    "email",
    "state_of_residence",
    "lga",
    "license_class",
    "vehicle_make",
    "vehicle_model",
    "vehicle_year",
    "vehicle_color",
    "engine_number",
    "chassis_number",
    "issue_date",
    "expiry_date",
})

MAX_LOOKUP_SUGGESTIONS = 5
MAX_IMPORT_ERRORS = 50


@dataclass
class PlateLookupResult:
    """
    Outcome of resolving a raw plate string.

    Attributes:
        vehicle: Exact match, or best fuzzy candidate, or None.
        validation: Validation of the input plate.
        suggestions: Candidate plates from the fuzzy scan, best first.
    """

    vehicle: VehicleOwner | None
    validation: PlateValidationResult
    suggestions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SimilarPlate:
    vehicle_id: int
    plate_number: str
    similarity: float


@dataclass
class PointsAdjustment:
    vehicle: VehicleOwner
    suspension_triggered: bool


@dataclass
class VehicleSearchResult:
    vehicles: list[VehicleOwner]
    total_count: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool


@dataclass
class BulkImportResult:
    successful: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class VehicleRegistry:
    """
    Use cases over vehicle-owner records.

    Example:
        registry = VehicleRegistry(session)
        result = await registry.lookup("abc 123 de")
        if result.vehicle is None:
            print(result.suggestions)
    """

    def __init__(
        self,
        session: AsyncSession,
        matcher: PlateMatcher | None = None,
        publisher: EventPublisher | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize registry.

        Args:
            session: Database session.
            matcher: Plate matcher (default instance if None).
            publisher: Receiver of SuspensionTriggered events.
            settings: Thresholds; application settings if None.
        """
        self._session = session
        self._settings = settings or get_settings()
        self._matcher = matcher or PlateMatcher()
        self._publisher = publisher or LoggingEventPublisher()
        self._points = PointsPolicy(threshold=self._settings.suspension_point_threshold)
        self._repo = VehicleRepository(session)

    @property
    def matcher(self) -> PlateMatcher:
        return self._matcher

    async def get(self, vehicle_id: int) -> VehicleOwner:
        vehicle = await self._repo.get_by_id(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return vehicle

    async def lookup(self, raw_plate: str) -> PlateLookupResult:
        """
        Resolve a raw plate string to a vehicle.

        Exact match on the normalized plate first. Only when that misses
        and the input itself is malformed does a fuzzy scan run over every
        stored plate.

        Args:
            raw_plate: Plate as typed or read by a camera.

        Returns:
            PlateLookupResult: Vehicle (if any), validation, suggestions.
        """
        validation = self._matcher.validate(raw_plate)
        normalized = validation.normalized

        vehicle = await self._repo.get_by_plate(normalized) if normalized else None
        if vehicle is not None or validation.is_valid or not normalized:
            logger.info("plate_lookup", plate=normalized, found=vehicle is not None, fuzzy=False)
            return PlateLookupResult(vehicle=vehicle, validation=validation)

        candidates = await self._scan(normalized, self._settings.lookup_fuzzy_threshold)
        if not candidates:
            logger.info("plate_lookup", plate=normalized, found=False, fuzzy=True)
            return PlateLookupResult(vehicle=None, validation=validation)

        best = await self._repo.get_by_id(candidates[0].vehicle_id)
        logger.info(
            "plate_lookup",
            plate=normalized,
            found=best is not None,
            fuzzy=True,
            best_match=candidates[0].plate_number,
            similarity=round(candidates[0].similarity, 2),
        )
        return PlateLookupResult(
            vehicle=best,
            validation=validation,
            suggestions=[c.plate_number for c in candidates[:MAX_LOOKUP_SUGGESTIONS]],
        )

    async def find_similar(self, raw_plate: str, limit: int = 10) -> list[SimilarPlate]:
        """
        "Did you mean" candidates, whether or not an exact match exists.

        Args:
            raw_plate: Plate to compare.
            limit: Maximum candidates.

        Returns:
            list: Candidates by descending similarity, rounded to 2 places.
        """
        normalized = self._matcher.normalize(raw_plate)
        candidates = await self._scan(normalized, self._settings.similar_plate_threshold)
        return [
            replace(candidate, similarity=round(candidate.similarity, 2))
            for candidate in candidates[:limit]
        ]

    async def search(self, query: VehicleSearchQuery) -> VehicleSearchResult:
        """
        Filtered, paginated search over owner records.

        A valid plate filter is an exact match. A malformed one widens to
        every stored plate the lookup fuzzy threshold accepts, and falls
        back to the normalized text when nothing is close.

        Args:
            query: Filters and page; ``limit`` is clamped to 1..100.

        Returns:
            VehicleSearchResult: Page and pagination.
        """
        query.page = max(query.page, 1)
        query.limit = min(max(query.limit, 1), 100)

        plate_numbers: list[str] | None = None
        if query.plate_number:
            validation = self._matcher.validate(query.plate_number)
            plate_numbers = [validation.normalized]
            if not validation.is_valid:
                candidates = await self._scan(
                    validation.normalized,
                    self._settings.lookup_fuzzy_threshold,
                )
                if candidates:
                    plate_numbers = [c.plate_number for c in candidates]

        vehicles, total_count = await self._repo.search(query, plate_numbers)
        total_pages = (total_count + query.limit - 1) // query.limit

        return VehicleSearchResult(
            vehicles=vehicles,
            total_count=total_count,
            page=query.page,
            limit=query.limit,
            total_pages=total_pages,
            has_next=query.page < total_pages,
            has_previous=query.page > 1,
        )

    async def expired_licenses(self, limit: int = 100) -> list[VehicleOwner]:
        """Active owners driving on an expired licence, longest expired first."""
        return await self._repo.list_expired_licenses(utcnow(), min(max(limit, 1), 500))

    async def register(self, owner: VehicleOwner) -> VehicleOwner:
        """
        Create a vehicle-owner record.

        Args:
            owner: New owner; plate, licence and email are normalized.

        Returns:
            VehicleOwner: Persisted owner.

        Raises:
            InvalidInputError: If the plate does not validate.
            ConflictError: If the plate or licence is already registered.
        """
        plate_number = self._require_valid_plate(owner.plate_number)
        license_number = _normalize_license(owner.license_number)

        async with transaction(self._session):
            if await self._repo.get_by_plate(plate_number) is not None:
                raise ConflictError(f"Plate number already exists: {plate_number}")
            if license_number and await self._repo.get_by_license(license_number) is not None:
                raise ConflictError(f"License number already exists: {license_number}")

            created = await self._repo.create(
                replace(
                    owner,
                    plate_number=plate_number,
                    license_number=license_number,
                    email=owner.email.lower() if owner.email else None,
                    issue_date=as_naive_utc(owner.issue_date),
                    expiry_date=as_naive_utc(owner.expiry_date),
                )
            )

        logger.info(
            "vehicle_registered",
            vehicle_id=created.id,
            plate=created.plate_number,
            placeholder=created.full_name == PLACEHOLDER_OWNER_NAME,
        )
        return created

    async def update(self, vehicle_id: int, changes: dict[str, Any]) -> VehicleOwner:
        """
        Update a vehicle-owner record.

        Args:
            vehicle_id: Record to update.
            changes: Field values; see ``UPDATABLE_FIELDS``.

        Returns:
            VehicleOwner: Updated owner.

        Raises:
            NotFoundError: If the record does not exist.
            InvalidInputError: Unknown field or malformed plate.
            ConflictError: Plate or licence belongs to another record.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        values = dict(changes)

        async with transaction(self._session):
            current = await self.get(vehicle_id)

            if values.get("plate_number") is not None:
                plate_number = self._require_valid_plate(values["plate_number"])
                other = await self._repo.get_by_plate(plate_number)
                if other is not None and other.id != vehicle_id:
                    raise ConflictError(f"Plate number already exists: {plate_number}")
                values["plate_number"] = plate_number
            else:
                values.pop("plate_number", None)

            if "license_number" in values:
                license_number = _normalize_license(values["license_number"])
                if license_number:
                    other = await self._repo.get_by_license(license_number)
                    if other is not None and other.id != vehicle_id:
                        raise ConflictError(f"License number already exists: {license_number}")
                values["license_number"] = license_number

            if values.get("email"):
                values["email"] = values["email"].lower()
            for key in ("issue_date", "expiry_date"):
                if key in values:
                    values[key] = as_naive_utc(values[key])

            if not values:
                return current

            updated = await self._repo.update(vehicle_id, **values)

        logger.info("vehicle_updated", vehicle_id=vehicle_id, fields=sorted(values))
        return updated

    async def adjust_points(self, plate_number: str, delta: int) -> PointsAdjustment:
        """
        Apply a points delta under a row lock.

        Points are floored at zero. An active owner reaching the threshold
        is suspended; a suspension is never lifted here.

        Args:
            plate_number: Plate of the vehicle (normalized first).
            delta: Points to add, negative to remove.

        Returns:
            PointsAdjustment: Updated vehicle and whether it was suspended now.

        Raises:
            NotFoundError: If no vehicle has this plate.
        """
        normalized = self._matcher.normalize(plate_number)

        async with transaction(self._session):
            vehicle = await self._repo.get_by_plate(normalized, for_update=True)
            if vehicle is None:
                raise NotFoundError("Vehicle", normalized)

            outcome = self._points.apply(vehicle.current_points, vehicle.status, delta)
            updated = await self._repo.update(
                vehicle.id,
                current_points=outcome.current_points,
                status=outcome.status,
            )

        logger.info(
            "vehicle_points_adjusted",
            plate=normalized,
            delta=delta,
            points=outcome.current_points,
            status=outcome.status.value,
        )

        if outcome.suspension_triggered:
            logger.warning(
                "vehicle_suspended",
                plate=normalized,
                points=outcome.current_points,
                threshold=self._points.threshold,
            )
            # Inside an outer transaction the caller publishes after commit
            if not transaction_active(self._session):
                await self._publisher.publish(self.suspension_event(updated))

        return PointsAdjustment(vehicle=updated, suspension_triggered=outcome.suspension_triggered)

    def suspension_event(self, vehicle: VehicleOwner) -> SuspensionTriggered:
        return SuspensionTriggered(
            plate_number=vehicle.plate_number,
            current_points=vehicle.current_points,
            threshold=self._points.threshold,
            owner_name=vehicle.full_name,
            owner_phone=vehicle.phone,
            owner_email=vehicle.email,
        )

    async def bulk_import(self, owners: list[VehicleOwner]) -> BulkImportResult:
        """
        Register many owners, each in its own transaction.

        A failed record does not stop the import.

        Returns:
            BulkImportResult: Counts and at most 50 error messages.
        """
        result = BulkImportResult()

        for owner in owners:
            try:
                await self.register(owner)
            except RoadwatchError as e:
                result.failed += 1
                if len(result.errors) < MAX_IMPORT_ERRORS:
                    result.errors.append(f"{owner.plate_number}: {e.message}")
            else:
                result.successful += 1

        logger.info(
            "vehicle_bulk_import_completed",
            successful=result.successful,
            failed=result.failed,
        )
        return result

    async def _scan(self, normalized: str, threshold: float) -> list[SimilarPlate]:
        # Linear over every stored plate; replace with an n-gram index at scale
        matches: list[SimilarPlate] = []
        for vehicle_id, plate in await self._repo.list_plates():
            similarity = self._matcher.similarity(normalized, plate)
            if similarity >= threshold:
                matches.append(SimilarPlate(vehicle_id, plate, similarity))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches

    def _require_valid_plate(self, raw_plate: str) -> str:
        validation = self._matcher.validate(raw_plate)
        if not validation.is_valid:
            raise InvalidInputError(
                "Invalid plate number: " + ", ".join(validation.errors),
                errors=list(validation.errors),
            )
        return validation.normalized


def _normalize_license(license_number: str | None) -> str | None:
    if not license_number or not license_number.strip():
        return None
    return license_number.strip().upper()
