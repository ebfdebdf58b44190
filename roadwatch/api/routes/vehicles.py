"""
Vehicle registry API routes.

Provides plate lookup and validation for roadside devices plus
registration and maintenance of vehicle-owner records.
"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel, ConfigDict, Field

from roadwatch.api.deps import ApiKeyAuth, CurrentActor, Ledger, RateLimited, Registry
from roadwatch.core.logging import get_logger
from roadwatch.domain.models import (
    LicenseClass,
    OwnerStatus,
    PlateCategory,
    PlateValidationResult,
    VehicleOwner,
)
from roadwatch.domain.queries import VehicleSearchQuery

logger = get_logger(__name__)

router = APIRouter(prefix="/vehicles", tags=["vehicles"])

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class VehicleResponse(BaseModel):
    """Response model for a vehicle-owner record."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Vehicle ID")
    plate_number: str = Field(description="Normalized plate number", examples=["ABC-123-DE"])
    full_name: str = Field(description="Owner name")
    license_number: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    state_of_residence: str | None = None
    lga: str | None = None
    license_class: LicenseClass
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_year: int | None = None
    vehicle_color: str | None = None
    engine_number: str | None = None
    chassis_number: str | None = None
    issue_date: datetime | None = None
    expiry_date: datetime | None = None
    status: OwnerStatus = Field(description="Licence status")
    current_points: int = Field(description="Accumulated penalty points")
    is_license_expired: bool
    created_at: datetime
    updated_at: datetime


class VehicleCreateRequest(BaseModel):
    """Request to register a vehicle owner."""

    plate_number: str = Field(..., min_length=1, max_length=20, examples=["ABC 123 DE"])
    full_name: str = Field(..., min_length=1, max_length=255)
    license_number: str | None = Field(None, max_length=50)
    address: str | None = None
    phone: str | None = Field(None, max_length=20)
    email: str | None = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    state_of_residence: str | None = Field(None, max_length=50)
    lga: str | None = Field(None, max_length=100)
    license_class: LicenseClass = LicenseClass.C
    vehicle_make: str | None = Field(None, max_length=100)
    vehicle_model: str | None = Field(None, max_length=100)
    vehicle_year: int | None = Field(None, ge=1900, le=2100)
    vehicle_color: str | None = Field(None, max_length=50)
    engine_number: str | None = Field(None, max_length=100)
    chassis_number: str | None = Field(None, max_length=100)
    issue_date: datetime | None = None
    expiry_date: datetime | None = None


class VehicleUpdateRequest(BaseModel):
    """Request to update a vehicle owner. Only provided fields change."""

    plate_number: str | None = Field(None, min_length=1, max_length=20)
    full_name: str | None = Field(None, min_length=1, max_length=255)
    license_number: str | None = Field(None, max_length=50)
    address: str | None = None
    phone: str | None = Field(None, max_length=20)
    email: str | None = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    state_of_residence: str | None = Field(None, max_length=50)
    lga: str | None = Field(None, max_length=100)
    license_class: LicenseClass | None = None
    vehicle_make: str | None = Field(None, max_length=100)
    vehicle_model: str | None = Field(None, max_length=100)
    vehicle_year: int | None = Field(None, ge=1900, le=2100)
    vehicle_color: str | None = Field(None, max_length=50)
    engine_number: str | None = Field(None, max_length=100)
    chassis_number: str | None = Field(None, max_length=100)
    issue_date: datetime | None = None
    expiry_date: datetime | None = None


class PlateValidationResponse(BaseModel):
    is_valid: bool = Field(description="Whether the plate matched a recognized format")
    normalized: str = Field(description="Normalized plate", examples=["AB-123-CD"])
    format: str | None = Field(description="Name of the matching format", examples=["legacy"])
    category: PlateCategory = Field(description="Category of the matching format")
    errors: list[str] = Field(description="Validation errors")


class PlateLookupResponse(BaseModel):
    """Response for resolving a raw plate."""

    vehicle: VehicleResponse | None = Field(description="Matched vehicle, exact or fuzzy")
    validation: PlateValidationResponse
    suggestions: list[str] = Field(description="Candidate plates, best first")


class SimilarPlateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    vehicle_id: int
    plate_number: str
    similarity: float = Field(ge=0.0, le=1.0)


class PointsAdjustRequest(BaseModel):
    plate_number: str = Field(..., min_length=1, max_length=20)
    delta: int = Field(..., description="Points to add; negative to remove")


class PointsAdjustResponse(BaseModel):
    vehicle: VehicleResponse
    suspension_triggered: bool


class BulkImportRequest(BaseModel):
    vehicles: list[VehicleCreateRequest] = Field(..., min_length=1, max_length=1000)


class BulkImportResponse(BaseModel):
    successful: int
    failed: int
    errors: list[str]


class VehicleSearchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    vehicles: list[VehicleResponse]
    total_count: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool


class VehicleStatsResponse(BaseModel):
    """Violation counts and money totals for one plate."""

    model_config = ConfigDict(from_attributes=True)

    plate_number: str
    total_violations: int
    paid_violations: int
    pending_violations: int = Field(description="Violations that can still be paid")
    total_fines: Decimal
    outstanding_amount: Decimal


@router.get(
    "/validate",
    response_model=PlateValidationResponse,
    summary="Validate plate number",
    description="Normalize and validate a plate without touching the registry.",
)
async def validate_plate(
    registry: Registry,
    _: ApiKeyAuth,
    __: RateLimited,
    plate: Annotated[str, Query(min_length=1, max_length=30, description="Raw plate")],
) -> PlateValidationResponse:
    return _validation_response(registry.matcher.validate(plate))


@router.get(
    "/lookup",
    response_model=PlateLookupResponse,
    summary="Look up vehicle by plate",
    description="Exact match first; fuzzy scan when the plate is malformed.",
)
async def lookup_vehicle(
    registry: Registry,
    _: ApiKeyAuth,
    __: RateLimited,
    plate: Annotated[str, Query(min_length=1, max_length=30, description="Raw plate")],
) -> PlateLookupResponse:
    """
    Resolve a plate as read at the roadside.

    **Authentication**: Requires X-API-Key header.
    """
    result = await registry.lookup(plate)
    return PlateLookupResponse(
        vehicle=VehicleResponse.model_validate(result.vehicle) if result.vehicle else None,
        validation=_validation_response(result.validation),
        suggestions=result.suggestions,
    )


@router.get(
    "/similar",
    response_model=list[SimilarPlateResponse],
    summary="Find similar plates",
)
async def find_similar_plates(
    registry: Registry,
    _: ApiKeyAuth,
    __: RateLimited,
    plate: Annotated[str, Query(min_length=1, max_length=30)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> list[SimilarPlateResponse]:
    """Stored plates resembling the input, most similar first."""
    matches = await registry.find_similar(plate, limit=limit)
    return [SimilarPlateResponse.model_validate(m) for m in matches]


@router.get(
    "/search",
    response_model=VehicleSearchResponse,
    summary="Search vehicles",
    description="Malformed plates are widened to similar stored plates.",
)
async def search_vehicles(
    registry: Registry,
    _: ApiKeyAuth,
    plate_number: str | None = None,
    license_number: str | None = None,
    full_name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    state: str | None = None,
    owner_status: Annotated[OwnerStatus | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> VehicleSearchResponse:
    result = await registry.search(
        VehicleSearchQuery(
            plate_number=plate_number,
            license_number=license_number,
            full_name=full_name,
            phone=phone,
            email=email,
            state=state,
            status=owner_status,
            page=page,
            limit=limit,
        )
    )
    return VehicleSearchResponse.model_validate(result)


@router.get(
    "/reports/expired-licenses",
    response_model=list[VehicleResponse],
    summary="Active vehicles with expired licences",
)
async def expired_licenses(
    registry: Registry,
    actor: CurrentActor,
    _: ApiKeyAuth,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[VehicleResponse]:
    vehicles = await registry.expired_licenses(limit=limit)
    logger.info("expired_licenses_requested", actor_id=actor.actor_id, count=len(vehicles))
    return [VehicleResponse.model_validate(v) for v in vehicles]


@router.get(
    "/{plate_number}/stats",
    response_model=VehicleStatsResponse,
    summary="Violation statistics for a plate",
)
async def vehicle_stats(
    plate_number: Annotated[str, Path(min_length=1, max_length=30)],
    ledger: Ledger,
    _: ApiKeyAuth,
) -> VehicleStatsResponse:
    return VehicleStatsResponse.model_validate(await ledger.plate_statistics(plate_number))


@router.get(
    "/{vehicle_id}",
    response_model=VehicleResponse,
    summary="Get vehicle",
)
async def get_vehicle(
    vehicle_id: Annotated[int, Path(description="Vehicle ID")],
    registry: Registry,
    _: ApiKeyAuth,
) -> VehicleResponse:
    return VehicleResponse.model_validate(await registry.get(vehicle_id))


@router.post(
    "",
    response_model=VehicleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register vehicle",
    responses={
        400: {"description": "Invalid plate number"},
        409: {"description": "Plate or licence already registered"},
    },
)
async def register_vehicle(
    request: VehicleCreateRequest,
    registry: Registry,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> VehicleResponse:
    """Register a vehicle owner. Requires a bearer token."""
    owner = await registry.register(VehicleOwner(**request.model_dump()))
    logger.info("vehicle_register_requested", vehicle_id=owner.id, actor_id=actor.actor_id)
    return VehicleResponse.model_validate(owner)


@router.patch(
    "/{vehicle_id}",
    response_model=VehicleResponse,
    summary="Update vehicle",
)
async def update_vehicle(
    vehicle_id: Annotated[int, Path(description="Vehicle ID")],
    request: VehicleUpdateRequest,
    registry: Registry,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> VehicleResponse:
    """Update the provided fields of a vehicle owner."""
    changes = request.model_dump(exclude_unset=True)
    owner = await registry.update(vehicle_id, changes)
    logger.info("vehicle_update_requested", vehicle_id=vehicle_id, actor_id=actor.actor_id)
    return VehicleResponse.model_validate(owner)


@router.post(
    "/points",
    response_model=PointsAdjustResponse,
    summary="Adjust penalty points",
    description="Apply a points delta; reaching the threshold suspends an active licence.",
)
async def adjust_points(
    request: PointsAdjustRequest,
    registry: Registry,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> PointsAdjustResponse:
    adjustment = await registry.adjust_points(request.plate_number, request.delta)
    logger.info(
        "vehicle_points_adjust_requested",
        plate=adjustment.vehicle.plate_number,
        delta=request.delta,
        actor_id=actor.actor_id,
    )
    return PointsAdjustResponse(
        vehicle=VehicleResponse.model_validate(adjustment.vehicle),
        suspension_triggered=adjustment.suspension_triggered,
    )


@router.post(
    "/import",
    response_model=BulkImportResponse,
    summary="Bulk import vehicles",
    description="Register many vehicles; failed records are reported, not fatal.",
)
async def bulk_import_vehicles(
    request: BulkImportRequest,
    registry: Registry,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> BulkImportResponse:
    result = await registry.bulk_import(
        [VehicleOwner(**vehicle.model_dump()) for vehicle in request.vehicles]
    )
    logger.info(
        "vehicle_import_requested",
        actor_id=actor.actor_id,
        successful=result.successful,
        failed=result.failed,
    )
    return BulkImportResponse(**asdict(result))


def _validation_response(validation: PlateValidationResult) -> PlateValidationResponse:
    return PlateValidationResponse(
        is_valid=validation.is_valid,
        normalized=validation.normalized,
        format=validation.matched_format.name if validation.matched_format else None,
        category=validation.category,
        errors=list(validation.errors),
    )
