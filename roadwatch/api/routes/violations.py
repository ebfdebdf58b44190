"""
Violation ledger API routes.

Provides endpoints for officers to record violations and for the back
office to search, contest and resolve them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel, ConfigDict, Field

from roadwatch.api.deps import ApiKeyAuth, CurrentActor, Ledger, RateLimited
from roadwatch.api.routes.vehicles import VehicleResponse
from roadwatch.application.violation_ledger import ViolationBatchRequest
from roadwatch.core.logging import get_logger
from roadwatch.domain.models import Location, ViolationCategory, ViolationStatus
from roadwatch.domain.queries import ViolationSearchQuery, ViolationStatisticsQuery

logger = get_logger(__name__)

router = APIRouter(prefix="/violations", tags=["violations"])


class LocationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    state: str = Field(..., min_length=1, max_length=50, examples=["Lagos"])
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    address: str | None = None
    lga: str | None = Field(None, max_length=100)


class ViolationResponse(BaseModel):
    """Response model for a recorded violation."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Violation ID")
    ticket_number: str = Field(description="Ticket number", examples=["TKT-20240101-120000-A1B2C3"])
    plate_number: str
    vehicle_owner_id: int | None
    officer_id: int
    violation_type_id: int
    fine_amount: Decimal = Field(description="Fine snapshotted at creation")
    points: int
    location: LocationSchema
    violation_date: datetime
    due_date: datetime
    evidence_photo: str | None = None
    additional_evidence: dict[str, Any] | None = None
    officer_notes: str | None = None
    weather_condition: str | None = None
    road_condition: str | None = None
    traffic_condition: str | None = None
    status: ViolationStatus
    paid_date: datetime | None = None
    contest_date: datetime | None = None
    contest_reason: str | None = None
    is_overturned: bool
    is_overdue: bool
    days_until_due: int = Field(description="Whole days left to pay; negative once overdue")
    created_at: datetime
    updated_at: datetime


class ViolationCreateRequest(BaseModel):
    """Request to record one or more violations for a single stop."""

    plate_number: str = Field(..., min_length=1, max_length=20, examples=["ABC-123-DE"])
    violation_type_ids: list[int] = Field(..., min_length=1, max_length=20)
    location: LocationSchema
    evidence_photos: list[str] = Field(default_factory=list, max_length=10)
    evidence_notes: str | None = None
    officer_notes: str | None = None
    weather_condition: str | None = Field(None, max_length=50)
    road_condition: str | None = Field(None, max_length=50)
    traffic_condition: str | None = Field(None, max_length=50)
    violation_date: datetime | None = None
    due_date: datetime | None = None


class ViolationBatchResponse(BaseModel):
    violations: list[ViolationResponse]
    total_amount: Decimal
    total_points: int
    vehicle_owner: VehicleResponse
    suspension_triggered: bool


class StatusUpdateRequest(BaseModel):
    status: ViolationStatus
    notes: str | None = Field(None, max_length=1000)


class ContestRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class PlateViolationSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plate_number: str
    violations: list[ViolationResponse]
    total_violations: int
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    current_points: int
    owner_status: str = Field(description="Licence status, 'unknown' without an owner")


class ViolationSearchResponse(BaseModel):
    """Page of violations plus a summary over every match."""

    model_config = ConfigDict(from_attributes=True)

    violations: list[ViolationResponse]
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


class ViolationTypeResponse(BaseModel):
    """Offence catalog entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str = Field(examples=["SPD"])
    title: str
    description: str
    fine_amount: Decimal
    points: int
    category: ViolationCategory
    suspension_eligible: bool
    is_active: bool


class ViolationTypeTallyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    count: int
    total_amount: Decimal


class DailyActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    violations: int
    amount: Decimal


class MonthlyTrendResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: str = Field(examples=["2024-01"])
    violations: int
    amount: Decimal


class OfficerStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    officer_id: int
    total_violations: int
    total_amount: Decimal
    average_per_day: float
    top_violation_types: list[ViolationTypeTallyResponse]
    daily_activity: list[DailyActivityResponse]


class SystemStatisticsResponse(BaseModel):
    """Violation totals across every officer."""

    model_config = ConfigDict(from_attributes=True)

    total_violations: int
    total_amount: Decimal
    paid_violations: int
    paid_amount: Decimal
    pending_violations: int
    pending_amount: Decimal
    contested_violations: int
    top_violation_types: list[ViolationTypeTallyResponse]
    monthly_trends: list[MonthlyTrendResponse]


@router.post(
    "",
    response_model=ViolationBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record violations",
    description="Record one violation per type for a single stop; all or nothing.",
    responses={
        400: {"description": "Invalid plate, violation type or due date"},
        401: {"description": "Missing API key or bearer token"},
    },
)
async def create_violations(
    request: ViolationCreateRequest,
    ledger: Ledger,
    actor: CurrentActor,
    _: ApiKeyAuth,
    __: RateLimited,
) -> ViolationBatchResponse:
    """
    Record violations observed at a roadside stop.

    The acting officer comes from the bearer token.
    """
    result = await ledger.create_batch(
        ViolationBatchRequest(
            plate_number=request.plate_number,
            officer_id=actor.actor_id,
            violation_type_ids=request.violation_type_ids,
            location=Location(**request.location.model_dump()),
            evidence_photos=request.evidence_photos,
            evidence_notes=request.evidence_notes,
            officer_notes=request.officer_notes,
            weather_condition=request.weather_condition,
            road_condition=request.road_condition,
            traffic_condition=request.traffic_condition,
            violation_date=request.violation_date,
            due_date=request.due_date,
        )
    )
    return ViolationBatchResponse(
        violations=[ViolationResponse.model_validate(v) for v in result.violations],
        total_amount=result.total_amount,
        total_points=result.total_points,
        vehicle_owner=VehicleResponse.model_validate(result.vehicle_owner),
        suspension_triggered=result.suspension_triggered,
    )


@router.get(
    "",
    response_model=ViolationSearchResponse,
    summary="Search violations",
)
async def search_violations(
    ledger: Ledger,
    _: ApiKeyAuth,
    plate_number: str | None = None,
    ticket_number: str | None = None,
    officer_id: int | None = None,
    violation_type_id: int | None = None,
    violation_status: Annotated[ViolationStatus | None, Query(alias="status")] = None,
    location_state: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    min_amount: Annotated[Decimal | None, Query(ge=0)] = None,
    max_amount: Annotated[Decimal | None, Query(ge=0)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ViolationSearchResponse:
    """Filter violations; plate and ticket filters match substrings."""
    result = await ledger.search(
        ViolationSearchQuery(
            plate_number=plate_number.upper() if plate_number else None,
            ticket_number=ticket_number.upper() if ticket_number else None,
            officer_id=officer_id,
            violation_type_id=violation_type_id,
            status=violation_status,
            location_state=location_state,
            date_from=date_from,
            date_to=date_to,
            min_amount=min_amount,
            max_amount=max_amount,
            page=page,
            limit=limit,
        )
    )
    return ViolationSearchResponse.model_validate(result)


@router.get(
    "/types",
    response_model=list[ViolationTypeResponse],
    summary="Active offence catalog",
)
async def list_violation_types(
    ledger: Ledger,
    _: ApiKeyAuth,
) -> list[ViolationTypeResponse]:
    return [ViolationTypeResponse.model_validate(t) for t in await ledger.list_violation_types()]


@router.get(
    "/types/{type_id}",
    response_model=ViolationTypeResponse,
    summary="Get offence catalog entry",
)
async def get_violation_type(
    type_id: Annotated[int, Path(description="Violation type ID")],
    ledger: Ledger,
    _: ApiKeyAuth,
) -> ViolationTypeResponse:
    return ViolationTypeResponse.model_validate(await ledger.get_violation_type(type_id))


@router.get(
    "/my-stats",
    response_model=OfficerStatisticsResponse,
    summary="Statistics for the calling officer",
)
async def my_statistics(
    ledger: Ledger,
    actor: CurrentActor,
    _: ApiKeyAuth,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> OfficerStatisticsResponse:
    stats = await ledger.officer_statistics(
        ViolationStatisticsQuery(date_from=date_from, date_to=date_to, officer_id=actor.actor_id)
    )
    return OfficerStatisticsResponse.model_validate(stats)


@router.get(
    "/officer/{officer_id}/stats",
    response_model=OfficerStatisticsResponse,
    summary="Statistics for an officer",
)
async def officer_statistics(
    officer_id: Annotated[int, Path(description="Officer ID")],
    ledger: Ledger,
    actor: CurrentActor,
    _: ApiKeyAuth,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> OfficerStatisticsResponse:
    stats = await ledger.officer_statistics(
        ViolationStatisticsQuery(date_from=date_from, date_to=date_to, officer_id=officer_id)
    )
    logger.info("officer_statistics_requested", officer_id=officer_id, actor_id=actor.actor_id)
    return OfficerStatisticsResponse.model_validate(stats)


@router.get(
    "/stats/system",
    response_model=SystemStatisticsResponse,
    summary="System-wide violation statistics",
)
async def system_statistics(
    ledger: Ledger,
    actor: CurrentActor,
    _: ApiKeyAuth,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> SystemStatisticsResponse:
    """Totals, top offences and monthly trend. Requires a bearer token."""
    stats = await ledger.system_statistics(
        ViolationStatisticsQuery(date_from=date_from, date_to=date_to)
    )
    logger.info("system_statistics_requested", actor_id=actor.actor_id)
    return SystemStatisticsResponse.model_validate(stats)


@router.get(
    "/plate/{plate_number}",
    response_model=PlateViolationSummaryResponse,
    summary="Violations for a plate",
)
async def get_plate_violations(
    plate_number: Annotated[str, Path(min_length=1, max_length=30)],
    ledger: Ledger,
    _: ApiKeyAuth,
    __: RateLimited,
) -> PlateViolationSummaryResponse:
    summary = await ledger.get_by_plate(plate_number)
    return PlateViolationSummaryResponse.model_validate(summary)


@router.get(
    "/ticket/{ticket_number}",
    response_model=ViolationResponse,
    summary="Get violation by ticket number",
)
async def get_violation_by_ticket(
    ticket_number: Annotated[str, Path(min_length=1, max_length=40)],
    ledger: Ledger,
    _: ApiKeyAuth,
) -> ViolationResponse:
    return ViolationResponse.model_validate(await ledger.get_by_ticket(ticket_number))


@router.get(
    "/{violation_id}",
    response_model=ViolationResponse,
    summary="Get violation",
)
async def get_violation(
    violation_id: Annotated[int, Path(description="Violation ID")],
    ledger: Ledger,
    _: ApiKeyAuth,
) -> ViolationResponse:
    return ViolationResponse.model_validate(await ledger.get(violation_id))


@router.patch(
    "/{violation_id}/status",
    response_model=ViolationResponse,
    summary="Update violation status",
    description="Change status on behalf of the authenticated actor; the change is noted.",
)
async def update_violation_status(
    violation_id: Annotated[int, Path(description="Violation ID")],
    request: StatusUpdateRequest,
    ledger: Ledger,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> ViolationResponse:
    violation = await ledger.update_status(
        violation_id,
        request.status,
        actor_id=actor.actor_id,
        notes=request.notes,
    )
    return ViolationResponse.model_validate(violation)


@router.post(
    "/{violation_id}/contest",
    response_model=ViolationResponse,
    summary="Contest violation",
    responses={409: {"description": "Violation is not pending"}},
)
async def contest_violation(
    violation_id: Annotated[int, Path(description="Violation ID")],
    request: ContestRequest,
    ledger: Ledger,
    _: ApiKeyAuth,
    __: RateLimited,
) -> ViolationResponse:
    """Contest a pending violation."""
    violation = await ledger.contest(violation_id, request.reason)
    return ViolationResponse.model_validate(violation)
