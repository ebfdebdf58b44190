"""
Integration tests for the vehicle registry.

Run the registry against an in-memory SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest

from roadwatch.application.vehicle_registry import VehicleRegistry
from roadwatch.domain.events import SuspensionTriggered
from roadwatch.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from roadwatch.domain.models import OwnerStatus, VehicleOwner, utcnow
from roadwatch.domain.queries import VehicleSearchQuery
from roadwatch.infrastructure.notifications import RecordingEventPublisher


class TestRegister:
    """Tests for creating vehicle-owner records."""

    @pytest.mark.asyncio
    async def test_register_normalizes(self, vehicle: VehicleOwner):
        """Test plate, licence and email are canonicalized."""
        assert vehicle.id is not None
        assert vehicle.plate_number == "ABC-123-DE"
        assert vehicle.license_number == "LAG-2020-000123"
        assert vehicle.email == "adaeze.okafor@example.com"
        assert vehicle.current_points == 0
        assert vehicle.status == OwnerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_duplicate_plate(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        with pytest.raises(ConflictError, match="Plate number already exists"):
            await registry.register(VehicleOwner(plate_number="ABC123DE", full_name="Someone Else"))

    @pytest.mark.asyncio
    async def test_duplicate_license(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        with pytest.raises(ConflictError, match="License number already exists"):
            await registry.register(
                VehicleOwner(
                    plate_number="KJA-555-XY",
                    full_name="Someone Else",
                    license_number="LAG-2020-000123",
                )
            )

    @pytest.mark.asyncio
    async def test_invalid_plate(self, registry: VehicleRegistry):
        with pytest.raises(InvalidInputError) as exc_info:
            await registry.register(VehicleOwner(plate_number="NOT A PLATE", full_name="X"))

        assert "Invalid Nigerian plate number format" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_blank_license_stored_as_none(self, registry: VehicleRegistry):
        created = await registry.register(
            VehicleOwner(plate_number="KJA-555-XY", full_name="Tunde Bello", license_number="  ")
        )

        assert created.license_number is None


class TestLookup:
    """Tests for resolving raw plate input."""

    @pytest.mark.asyncio
    async def test_exact_match(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        result = await registry.lookup("abc123de")

        assert result.vehicle is not None
        assert result.vehicle.id == vehicle.id
        assert result.suggestions == []

    @pytest.mark.asyncio
    async def test_fuzzy_match_on_malformed_input(
        self, registry: VehicleRegistry, vehicle: VehicleOwner
    ):
        """Test a camera misread still finds the stored plate."""
        result = await registry.lookup("ABC-l23-DE")

        assert result.validation.is_valid is False
        assert result.vehicle is not None
        assert result.vehicle.plate_number == "ABC-123-DE"
        assert result.suggestions[0] == "ABC-123-DE"

    @pytest.mark.asyncio
    async def test_valid_plate_without_record_skips_fuzzy(
        self, registry: VehicleRegistry, vehicle: VehicleOwner
    ):
        """Test a well-formed unknown plate is a plain miss."""
        result = await registry.lookup("ABC-123-DF")

        assert result.vehicle is None
        assert result.suggestions == []

    @pytest.mark.asyncio
    async def test_empty_input(self, registry: VehicleRegistry):
        result = await registry.lookup("")

        assert result.vehicle is None
        assert result.validation.errors == ("Plate number is required",)

    @pytest.mark.asyncio
    async def test_find_similar(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        await registry.register(VehicleOwner(plate_number="ABC-124-DE", full_name="Ngozi Eze"))
        await registry.register(VehicleOwner(plate_number="KJA-555-XY", full_name="Tunde Bello"))

        similar = await registry.find_similar("ABC-123-DE")

        plates = [s.plate_number for s in similar]
        assert plates[0] == "ABC-123-DE"
        assert similar[0].similarity == 1.0
        assert "ABC-124-DE" in plates
        assert "KJA-555-XY" not in plates

    @pytest.mark.asyncio
    async def test_get_missing(self, registry: VehicleRegistry):
        with pytest.raises(NotFoundError):
            await registry.get(9999)


class TestUpdate:
    """Tests for administrative updates."""

    @pytest.mark.asyncio
    async def test_update_fields(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        updated = await registry.update(
            vehicle.id,
            {"phone": "+2348099999999", "email": "NEW@Example.com", "plate_number": "abc124de"},
        )

        assert updated.phone == "+2348099999999"
        assert updated.email == "new@example.com"
        assert updated.plate_number == "ABC-124-DE"

    @pytest.mark.asyncio
    async def test_plate_taken_by_other(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        other = await registry.register(
            VehicleOwner(plate_number="KJA-555-XY", full_name="Tunde Bello")
        )

        with pytest.raises(ConflictError):
            await registry.update(other.id, {"plate_number": "ABC-123-DE"})

    @pytest.mark.asyncio
    async def test_points_not_updatable(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        """Test points only move through adjust_points."""
        with pytest.raises(InvalidInputError, match="current_points"):
            await registry.update(vehicle.id, {"current_points": 0})

    @pytest.mark.asyncio
    async def test_update_missing(self, registry: VehicleRegistry):
        with pytest.raises(NotFoundError):
            await registry.update(9999, {"phone": "+2348000000000"})


class TestAdjustPoints:
    """Tests for points accrual through the registry."""

    @pytest.mark.asyncio
    async def test_accrual_below_threshold(
        self,
        registry: VehicleRegistry,
        vehicle: VehicleOwner,
        publisher: RecordingEventPublisher,
    ):
        adjustment = await registry.adjust_points("ABC-123-DE", 5)

        assert adjustment.vehicle.current_points == 5
        assert adjustment.suspension_triggered is False
        assert publisher.of_type(SuspensionTriggered) == []

    @pytest.mark.asyncio
    async def test_threshold_suspends_and_publishes(
        self,
        registry: VehicleRegistry,
        vehicle: VehicleOwner,
        publisher: RecordingEventPublisher,
    ):
        """Test 10 then 2 points suspends the owner and emits one event."""
        await registry.adjust_points("ABC-123-DE", 10)
        adjustment = await registry.adjust_points("abc 123 de", 2)

        assert adjustment.vehicle.current_points == 12
        assert adjustment.vehicle.status == OwnerStatus.SUSPENDED
        assert adjustment.suspension_triggered is True

        events = publisher.of_type(SuspensionTriggered)
        assert len(events) == 1
        assert events[0].plate_number == "ABC-123-DE"
        assert events[0].threshold == 12
        assert events[0].owner_email == "adaeze.okafor@example.com"

    @pytest.mark.asyncio
    async def test_negative_delta_floors_at_zero(
        self, registry: VehicleRegistry, vehicle: VehicleOwner
    ):
        adjustment = await registry.adjust_points("ABC-123-DE", -4)

        assert adjustment.vehicle.current_points == 0

    @pytest.mark.asyncio
    async def test_unknown_plate(self, registry: VehicleRegistry):
        with pytest.raises(NotFoundError):
            await registry.adjust_points("KJA-555-XY", 1)


class TestBulkImport:
    """Tests for importing many owners."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        """Test failures are counted without stopping the import."""
        result = await registry.bulk_import(
            [
                VehicleOwner(plate_number="KJA-555-XY", full_name="Tunde Bello"),
                VehicleOwner(plate_number="ABC-123-DE", full_name="Duplicate"),
                VehicleOwner(plate_number="garbage", full_name="Bad Plate"),
                VehicleOwner(plate_number="LND-101-AA", full_name="Halima Musa"),
            ]
        )

        assert result.successful == 2
        assert result.failed == 2
        assert len(result.errors) == 2
        assert result.errors[0].startswith("ABC-123-DE:")

        assert (await registry.lookup("LND-101-AA")).vehicle is not None


class TestSearch:
    """Tests for filtered owner search and licence reports."""

    @pytest.fixture
    async def owners(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        others = [
            VehicleOwner(
                plate_number="KJA-555-XY",
                full_name="Tunde Bello",
                email="tunde@example.com",
                state_of_residence="Lagos",
            ),
            VehicleOwner(
                plate_number="LND-101-AA",
                full_name="Halima Musa",
                email="halima@example.com",
                state_of_residence="Kano",
            ),
        ]
        return [vehicle] + [await registry.register(owner) for owner in others]

    @pytest.mark.asyncio
    async def test_exact_plate(self, registry: VehicleRegistry, owners):
        result = await registry.search(VehicleSearchQuery(plate_number="kja 555 xy"))

        assert result.total_count == 1
        assert result.vehicles[0].full_name == "Tunde Bello"

    @pytest.mark.asyncio
    async def test_malformed_plate_widens_to_close_matches(
        self, registry: VehicleRegistry, owners
    ):
        result = await registry.search(VehicleSearchQuery(plate_number="ABC-l23-DE"))

        assert [v.plate_number for v in result.vehicles] == ["ABC-123-DE"]

    @pytest.mark.asyncio
    async def test_malformed_plate_without_match(self, registry: VehicleRegistry, owners):
        result = await registry.search(VehicleSearchQuery(plate_number="???"))

        assert result.total_count == 0
        assert result.vehicles == []

    @pytest.mark.asyncio
    async def test_name_and_email_partial(self, registry: VehicleRegistry, owners):
        by_name = await registry.search(VehicleSearchQuery(full_name="bello"))
        by_email = await registry.search(VehicleSearchQuery(email="HALIMA@"))

        assert [v.plate_number for v in by_name.vehicles] == ["KJA-555-XY"]
        assert [v.plate_number for v in by_email.vehicles] == ["LND-101-AA"]

    @pytest.mark.asyncio
    async def test_state_and_status(self, registry: VehicleRegistry, owners):
        await registry.adjust_points("KJA-555-XY", 12)

        lagos_active = await registry.search(
            VehicleSearchQuery(state="Lagos", status=OwnerStatus.ACTIVE)
        )

        assert [v.plate_number for v in lagos_active.vehicles] == ["ABC-123-DE"]

    @pytest.mark.asyncio
    async def test_pagination(self, registry: VehicleRegistry, owners):
        first = await registry.search(VehicleSearchQuery(page=1, limit=2))
        second = await registry.search(VehicleSearchQuery(page=2, limit=2))

        assert first.total_count == 3
        assert first.total_pages == 2
        assert first.has_next is True
        assert first.has_previous is False
        assert len(second.vehicles) == 1
        assert second.has_next is False
        assert second.has_previous is True
        assert {v.id for v in first.vehicles + second.vehicles} == {o.id for o in owners}

    @pytest.mark.asyncio
    async def test_limit_clamped(self, registry: VehicleRegistry, owners):
        result = await registry.search(VehicleSearchQuery(page=0, limit=1000))

        assert result.page == 1
        assert result.limit == 100

    @pytest.mark.asyncio
    async def test_expired_licenses(self, registry: VehicleRegistry, vehicle: VehicleOwner):
        """Test only active owners past expiry are listed, longest expired first."""
        now = utcnow()
        for plate, name, expiry in [
            ("KJA-555-XY", "Tunde Bello", now - timedelta(days=3)),
            ("LND-101-AA", "Halima Musa", now - timedelta(days=400)),
            ("ENU-222-BB", "Chidi Eze", now + timedelta(days=90)),
            ("ABJ-333-CC", "Sani Bala", now - timedelta(days=10)),
        ]:
            await registry.register(
                VehicleOwner(plate_number=plate, full_name=name, expiry_date=expiry)
            )
        await registry.adjust_points("ABJ-333-CC", 12)

        expired = await registry.expired_licenses()

        assert [v.plate_number for v in expired] == ["LND-101-AA", "KJA-555-XY"]
        assert all(v.is_license_expired for v in expired)

    @pytest.mark.asyncio
    async def test_expiry_with_offset_stored_as_utc(self, registry: VehicleRegistry):
        registered = await registry.register(
            VehicleOwner(
                plate_number="KJA-555-XY",
                full_name="Tunde Bello",
                expiry_date=datetime(2030, 6, 1, 12, 0, tzinfo=timezone(timedelta(hours=1))),
            )
        )

        assert registered.expiry_date == datetime(2030, 6, 1, 11, 0)
