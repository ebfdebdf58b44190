"""
Repository pattern implementations for data access.

Repositories abstract database operations and provide
a clean interface for the application layer. Each returns typed domain
dataclasses, never ORM rows.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from roadwatch.domain.models import (
    GatewayProvider,
    LicenseClass,
    Location,
    OwnerStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    VehicleOwner,
    Violation,
    ViolationCategory,
    ViolationStatus,
    ViolationType,
)
from roadwatch.domain.queries import (
    PaymentStatisticsQuery,
    VehicleSearchQuery,
    ViolationSearchQuery,
    ViolationStatisticsQuery,
)
from roadwatch.infrastructure.db.models import (
    PaymentDB,
    VehicleOwnerDB,
    ViolationDB,
    ViolationTypeDB,
)


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class AggregateRow:
    """One group of a ``GROUP BY`` aggregate."""

    key: str
    count: int
    amount: Decimal


class VehicleRepository:
    """
    Repository for vehicle owner records.

    Provides lookups by plate and licence plus the locked read used for
    point adjustment.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(self, vehicle_id: int) -> VehicleOwner | None:
        stmt = (
            select(VehicleOwnerDB)
            .where(VehicleOwnerDB.id == vehicle_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        db_owner = result.scalar_one_or_none()
        return self._to_domain(db_owner) if db_owner else None

    async def get_by_plate(
        self,
        plate_number: str,
        for_update: bool = False,
    ) -> VehicleOwner | None:
        """
        Get a vehicle owner by normalized plate number.

        Args:
            plate_number: Normalized plate.
            for_update: Lock the row until the transaction ends.

        Returns:
            VehicleOwner: Domain model if found, None otherwise.
        """
        stmt = select(VehicleOwnerDB).where(VehicleOwnerDB.plate_number == plate_number)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        db_owner = result.scalar_one_or_none()
        return self._to_domain(db_owner) if db_owner else None

    async def get_by_license(self, license_number: str) -> VehicleOwner | None:
        stmt = select(VehicleOwnerDB).where(VehicleOwnerDB.license_number == license_number)
        result = await self._session.execute(stmt)
        db_owner = result.scalar_one_or_none()
        return self._to_domain(db_owner) if db_owner else None

    async def list_plates(self) -> list[tuple[int, str]]:
        """
        All stored ``(id, plate_number)`` pairs.

        Feeds the linear fuzzy scan; at large populations this should be
        replaced by an indexed approximate-match lookup.
        """
        result = await self._session.execute(
            select(VehicleOwnerDB.id, VehicleOwnerDB.plate_number)
        )
        return [(row.id, row.plate_number) for row in result.all()]

    async def search(
        self,
        query: VehicleSearchQuery,
        plate_numbers: Sequence[str] | None = None,
    ) -> tuple[list[VehicleOwner], int]:
        """
        Filter and paginate owners, most recently updated first.

        Args:
            query: Search filters and page.
            plate_numbers: Exact plates to restrict to; the caller resolves
                ``query.plate_number`` into this list.

        Returns:
            tuple: (page of owners, total matching count)
        """
        conditions = []
        if plate_numbers is not None:
            conditions.append(VehicleOwnerDB.plate_number.in_(plate_numbers))
        if query.license_number:
            conditions.append(VehicleOwnerDB.license_number.contains(query.license_number.upper()))
        if query.full_name:
            conditions.append(VehicleOwnerDB.full_name.ilike(f"%{query.full_name}%"))
        if query.phone:
            conditions.append(VehicleOwnerDB.phone.contains(query.phone))
        if query.email:
            conditions.append(VehicleOwnerDB.email.contains(query.email.lower()))
        if query.state:
            conditions.append(VehicleOwnerDB.state_of_residence == query.state)
        if query.status is not None:
            conditions.append(VehicleOwnerDB.status == query.status.value)

        stmt = (
            select(VehicleOwnerDB)
            .where(*conditions)
            .order_by(VehicleOwnerDB.updated_at.desc(), VehicleOwnerDB.id.desc())
            .limit(query.limit)
            .offset(query.offset)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        total = (
            await self._session.execute(
                select(func.count(VehicleOwnerDB.id)).where(*conditions)
            )
        ).scalar_one()
        return [self._to_domain(row) for row in rows], total

    async def list_expired_licenses(self, now: datetime, limit: int) -> list[VehicleOwner]:
        """Active owners whose licence expired before ``now``, oldest expiry first."""
        stmt = (
            select(VehicleOwnerDB)
            .where(
                VehicleOwnerDB.expiry_date < now,
                VehicleOwnerDB.status == OwnerStatus.ACTIVE.value,
            )
            .order_by(VehicleOwnerDB.expiry_date.asc(), VehicleOwnerDB.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def create(self, owner: VehicleOwner) -> VehicleOwner:
        """
        Persist a new vehicle owner.

        Args:
            owner: Domain model to persist.

        Returns:
            VehicleOwner: Created owner with ID populated.
        """
        db_owner = VehicleOwnerDB(**self._to_columns(owner))
        self._session.add(db_owner)
        await self._session.flush()
        return self._to_domain(db_owner)

    async def update(self, vehicle_id: int, **values: Any) -> VehicleOwner | None:
        """
        Update columns of one vehicle owner.

        Args:
            vehicle_id: Row to update.
            **values: Column values; enums are stored by value.

        Returns:
            VehicleOwner: Updated owner, or None if the row is gone.
        """
        stmt = (
            update(VehicleOwnerDB)
            .where(VehicleOwnerDB.id == vehicle_id)
            .values(**_enum_values(values))
        )
        await self._session.execute(stmt)
        return await self.get_by_id(vehicle_id)

    @staticmethod
    def _to_columns(owner: VehicleOwner) -> dict[str, Any]:
        return {
            "plate_number": owner.plate_number,
            "license_number": owner.license_number,
            "full_name": owner.full_name,
            "address": owner.address,
            "phone": owner.phone,
            "email": owner.email,
            "state_of_residence": owner.state_of_residence,
            "lga": owner.lga,
            "license_class": owner.license_class.value,
            "vehicle_make": owner.vehicle_make,
            "vehicle_model": owner.vehicle_model,
            "vehicle_year": owner.vehicle_year,
            "vehicle_color": owner.vehicle_color,
            "engine_number": owner.engine_number,
            "chassis_number": owner.chassis_number,
            "issue_date": owner.issue_date,
            "expiry_date": owner.expiry_date,
            "status": owner.status.value,
            "current_points": owner.current_points,
        }

    def _to_domain(self, db_owner: VehicleOwnerDB) -> VehicleOwner:
        """Convert database model to domain model."""
        return VehicleOwner(
            id=db_owner.id,
            plate_number=db_owner.plate_number,
            license_number=db_owner.license_number,
            full_name=db_owner.full_name,
            address=db_owner.address,
            phone=db_owner.phone,
            email=db_owner.email,
            state_of_residence=db_owner.state_of_residence,
            lga=db_owner.lga,
            license_class=LicenseClass(db_owner.license_class),
            vehicle_make=db_owner.vehicle_make,
            vehicle_model=db_owner.vehicle_model,
            vehicle_year=db_owner.vehicle_year,
            vehicle_color=db_owner.vehicle_color,
            engine_number=db_owner.engine_number,
            chassis_number=db_owner.chassis_number,
            issue_date=db_owner.issue_date,
            expiry_date=db_owner.expiry_date,
            status=OwnerStatus(db_owner.status),
            current_points=db_owner.current_points,
            created_at=db_owner.created_at,
            updated_at=db_owner.updated_at,
        )


class ViolationTypeRepository:
    """Repository for the offence catalog."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, type_id: int) -> ViolationType | None:
        result = await self._session.execute(
            select(ViolationTypeDB).where(ViolationTypeDB.id == type_id)
        )
        db_type = result.scalar_one_or_none()
        return self._to_domain(db_type) if db_type else None

    async def get_many(self, type_ids: Sequence[int]) -> list[ViolationType]:
        """
        Load catalog entries by id, active or not.

        Args:
            type_ids: Catalog ids.

        Returns:
            list: Entries found, in the order the ids were given.
        """
        if not type_ids:
            return []
        stmt = select(ViolationTypeDB).where(ViolationTypeDB.id.in_(set(type_ids)))
        result = await self._session.execute(stmt)
        by_id = {row.id: self._to_domain(row) for row in result.scalars().all()}
        return [by_id[type_id] for type_id in type_ids if type_id in by_id]

    async def list_active(self) -> list[ViolationType]:
        stmt = (
            select(ViolationTypeDB)
            .where(ViolationTypeDB.is_active == True)  # noqa: E712
            .order_by(ViolationTypeDB.code)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def create(self, violation_type: ViolationType) -> ViolationType:
        db_type = ViolationTypeDB(
            code=violation_type.code,
            title=violation_type.title,
            description=violation_type.description,
            fine_amount=violation_type.fine_amount,
            points=violation_type.points,
            category=violation_type.category.value,
            suspension_eligible=violation_type.suspension_eligible,
            is_active=violation_type.is_active,
        )
        self._session.add(db_type)
        await self._session.flush()
        return self._to_domain(db_type)

    def _to_domain(self, db_type: ViolationTypeDB) -> ViolationType:
        """Convert database model to domain model."""
        return ViolationType(
            id=db_type.id,
            code=db_type.code,
            title=db_type.title,
            description=db_type.description,
            fine_amount=_money(db_type.fine_amount),
            points=db_type.points,
            category=ViolationCategory(db_type.category),
            suspension_eligible=db_type.suspension_eligible,
            is_active=db_type.is_active,
        )


class ViolationRepository:
    """
    Repository for recorded violations.

    Provides creation, lookups, status updates and filtered search.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def create(self, violation: Violation) -> Violation:
        """
        Persist a new violation.

        Args:
            violation: Domain model to persist.

        Returns:
            Violation: Created violation with ID populated.
        """
        db_violation = ViolationDB(
            ticket_number=violation.ticket_number,
            plate_number=violation.plate_number,
            vehicle_owner_id=violation.vehicle_owner_id,
            officer_id=violation.officer_id,
            violation_type_id=violation.violation_type_id,
            fine_amount=violation.fine_amount,
            points=violation.points,
            location_lat=violation.location.lat,
            location_lng=violation.location.lng,
            location_address=violation.location.address,
            location_state=violation.location.state,
            location_lga=violation.location.lga,
            evidence_photo=violation.evidence_photo,
            additional_evidence=violation.additional_evidence,
            officer_notes=violation.officer_notes,
            weather_condition=violation.weather_condition,
            road_condition=violation.road_condition,
            traffic_condition=violation.traffic_condition,
            status=violation.status.value,
            violation_date=violation.violation_date,
            due_date=violation.due_date,
        )
        self._session.add(db_violation)
        await self._session.flush()
        return self._to_domain(db_violation)

    async def get_by_id(self, violation_id: int, for_update: bool = False) -> Violation | None:
        stmt = (
            select(ViolationDB)
            .where(ViolationDB.id == violation_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        db_violation = result.scalar_one_or_none()
        return self._to_domain(db_violation) if db_violation else None

    async def get_by_ticket(self, ticket_number: str) -> Violation | None:
        stmt = select(ViolationDB).where(ViolationDB.ticket_number == ticket_number)
        result = await self._session.execute(stmt)
        db_violation = result.scalar_one_or_none()
        return self._to_domain(db_violation) if db_violation else None

    async def ticket_exists(self, ticket_number: str) -> bool:
        stmt = select(ViolationDB.id).where(ViolationDB.ticket_number == ticket_number)
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def get_many(self, violation_ids: Sequence[int]) -> list[Violation]:
        if not violation_ids:
            return []
        stmt = (
            select(ViolationDB)
            .where(ViolationDB.id.in_(set(violation_ids)))
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def list_payable(self, violation_ids: Sequence[int]) -> list[Violation]:
        """
        Lock and load the given violations that may still be paid.

        Args:
            violation_ids: Requested violation ids.

        Returns:
            list: Violations among them whose status is pending or
                partially paid, ordered by id.
        """
        if not violation_ids:
            return []
        stmt = (
            select(ViolationDB)
            .where(
                ViolationDB.id.in_(set(violation_ids)),
                ViolationDB.status.in_(
                    [ViolationStatus.PENDING.value, ViolationStatus.PARTIALLY_PAID.value]
                ),
            )
            .order_by(ViolationDB.id)
            .with_for_update()
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def list_by_plate(self, plate_number: str) -> list[Violation]:
        """All violations for a plate, newest first."""
        stmt = (
            select(ViolationDB)
            .where(ViolationDB.plate_number == plate_number)
            .order_by(ViolationDB.violation_date.desc(), ViolationDB.id.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def update(self, violation_id: int, **values: Any) -> Violation | None:
        """
        Update columns of one violation.

        Args:
            violation_id: Row to update.
            **values: Column values; enums are stored by value.

        Returns:
            Violation: Updated violation, or None if the row is gone.
        """
        stmt = (
            update(ViolationDB)
            .where(ViolationDB.id == violation_id)
            .values(**_enum_values(values))
        )
        await self._session.execute(stmt)
        return await self.get_by_id(violation_id)

    async def mark_paid(self, violation_ids: Sequence[int], paid_date: datetime) -> int:
        """
        Mark violations as paid in one statement.

        Returns:
            int: Number of rows updated.
        """
        if not violation_ids:
            return 0
        stmt = (
            update(ViolationDB)
            .where(ViolationDB.id.in_(set(violation_ids)))
            .values(status=ViolationStatus.PAID.value, paid_date=paid_date)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def search(
        self,
        query: ViolationSearchQuery,
    ) -> tuple[list[Violation], int, list[AggregateRow]]:
        """
        Filter, paginate and summarize violations.

        Args:
            query: Search filters and page.

        Returns:
            tuple: (page of violations newest first, total matching count,
                per-status counts and fine totals over all matches)
        """
        conditions = []
        if query.plate_number:
            conditions.append(ViolationDB.plate_number.contains(query.plate_number))
        if query.ticket_number:
            conditions.append(ViolationDB.ticket_number.contains(query.ticket_number))
        if query.officer_id is not None:
            conditions.append(ViolationDB.officer_id == query.officer_id)
        if query.violation_type_id is not None:
            conditions.append(ViolationDB.violation_type_id == query.violation_type_id)
        if query.status is not None:
            conditions.append(ViolationDB.status == query.status.value)
        if query.location_state:
            conditions.append(ViolationDB.location_state == query.location_state)
        if query.date_from is not None:
            conditions.append(ViolationDB.violation_date >= query.date_from)
        if query.date_to is not None:
            conditions.append(ViolationDB.violation_date <= query.date_to)
        if query.min_amount is not None:
            conditions.append(ViolationDB.fine_amount >= query.min_amount)
        if query.max_amount is not None:
            conditions.append(ViolationDB.fine_amount <= query.max_amount)

        page_stmt = (
            select(ViolationDB)
            .where(*conditions)
            .order_by(ViolationDB.violation_date.desc(), ViolationDB.id.desc())
            .limit(query.limit)
            .offset(query.offset)
        )
        rows = (await self._session.execute(page_stmt)).scalars().all()

        count_stmt = select(func.count(ViolationDB.id)).where(*conditions)
        total = (await self._session.execute(count_stmt)).scalar_one()

        summary_stmt = (
            select(
                ViolationDB.status,
                func.count(ViolationDB.id),
                func.sum(ViolationDB.fine_amount),
            )
            .where(*conditions)
            .group_by(ViolationDB.status)
        )
        summary = [
            AggregateRow(key=status, count=count, amount=_money(amount))
            for status, count, amount in (await self._session.execute(summary_stmt)).all()
        ]

        return [self._to_domain(row) for row in rows], total, summary

    async def aggregate(self, query: ViolationStatisticsQuery) -> dict[str, list[AggregateRow]]:
        """
        Grouped violation aggregates for statistics.

        Returns:
            dict: ``by_status``, ``by_type`` (catalog title) and ``by_day``
                lists of AggregateRow.
        """
        conditions = []
        if query.officer_id is not None:
            conditions.append(ViolationDB.officer_id == query.officer_id)
        if query.date_from is not None:
            conditions.append(ViolationDB.violation_date >= query.date_from)
        if query.date_to is not None:
            conditions.append(ViolationDB.violation_date <= query.date_to)

        async def grouped(column, join_types: bool = False) -> list[AggregateRow]:
            stmt = select(column, func.count(ViolationDB.id), func.sum(ViolationDB.fine_amount))
            if join_types:
                stmt = stmt.join(ViolationTypeDB, ViolationTypeDB.id == ViolationDB.violation_type_id)
            stmt = stmt.where(*conditions).group_by(column).order_by(column)
            return [
                AggregateRow(key=str(key), count=count, amount=_money(amount))
                for key, count, amount in (await self._session.execute(stmt)).all()
            ]

        return {
            "by_status": await grouped(ViolationDB.status),
            "by_type": await grouped(ViolationTypeDB.title, join_types=True),
            "by_day": await grouped(func.date(ViolationDB.violation_date)),
        }

    def _to_domain(self, db_violation: ViolationDB) -> Violation:
        """Convert database model to domain model."""
        return Violation(
            id=db_violation.id,
            ticket_number=db_violation.ticket_number,
            plate_number=db_violation.plate_number,
            vehicle_owner_id=db_violation.vehicle_owner_id,
            officer_id=db_violation.officer_id,
            violation_type_id=db_violation.violation_type_id,
            fine_amount=_money(db_violation.fine_amount),
            points=db_violation.points,
            location=Location(
                state=db_violation.location_state,
                lat=db_violation.location_lat,
                lng=db_violation.location_lng,
                address=db_violation.location_address,
                lga=db_violation.location_lga,
            ),
            evidence_photo=db_violation.evidence_photo,
            additional_evidence=db_violation.additional_evidence,
            officer_notes=db_violation.officer_notes,
            weather_condition=db_violation.weather_condition,
            road_condition=db_violation.road_condition,
            traffic_condition=db_violation.traffic_condition,
            status=ViolationStatus(db_violation.status),
            violation_date=db_violation.violation_date,
            due_date=db_violation.due_date,
            paid_date=db_violation.paid_date,
            contest_date=db_violation.contest_date,
            contest_reason=db_violation.contest_reason,
            is_overturned=db_violation.is_overturned,
            created_at=db_violation.created_at,
            updated_at=db_violation.updated_at,
        )


class PaymentRepository:
    """
    Repository for payment attempts.

    Payments are addressed individually by id or as a group by their
    shared payment reference.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def create(self, payment: Payment) -> Payment:
        db_payment = PaymentDB(
            violation_id=payment.violation_id,
            amount=payment.amount,
            payment_method=payment.payment_method.value,
            payment_reference=payment.payment_reference,
            gateway_provider=payment.gateway_provider.value,
            payer_name=payment.payer_name,
            payer_email=payment.payer_email,
            payer_phone=payment.payer_phone,
            status=payment.status.value,
            refunded_amount=payment.refunded_amount,
        )
        self._session.add(db_payment)
        await self._session.flush()
        return self._to_domain(db_payment)

    async def get_by_id(self, payment_id: int, for_update: bool = False) -> Payment | None:
        stmt = (
            select(PaymentDB)
            .where(PaymentDB.id == payment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        db_payment = result.scalar_one_or_none()
        return self._to_domain(db_payment) if db_payment else None

    async def reference_exists(self, payment_reference: str) -> bool:
        stmt = select(PaymentDB.id).where(PaymentDB.payment_reference == payment_reference).limit(1)
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def list_by_reference(
        self,
        payment_reference: str,
        status: PaymentStatus | None = None,
        for_update: bool = False,
    ) -> list[Payment]:
        """
        Payments sharing a reference.

        Args:
            payment_reference: Grouping key from initiation.
            status: Optional status filter.
            for_update: Lock the rows until the transaction ends.

        Returns:
            list: Payments ordered by id.
        """
        stmt = (
            select(PaymentDB)
            .where(PaymentDB.payment_reference == payment_reference)
            .order_by(PaymentDB.id)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(PaymentDB.status == status.value)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def list_by_violation(self, violation_id: int) -> list[Payment]:
        """Every payment attempt against one violation, newest first."""
        stmt = (
            select(PaymentDB)
            .where(PaymentDB.violation_id == violation_id)
            .order_by(PaymentDB.created_at.desc(), PaymentDB.id.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def update(self, payment_id: int, **values: Any) -> Payment | None:
        stmt = (
            update(PaymentDB)
            .where(PaymentDB.id == payment_id)
            .values(**_enum_values(values))
        )
        await self._session.execute(stmt)
        return await self.get_by_id(payment_id)

    async def update_by_reference(
        self,
        payment_reference: str,
        from_status: PaymentStatus,
        **values: Any,
    ) -> int:
        """
        Move every payment of a reference out of ``from_status`` together.

        Returns:
            int: Number of rows updated.
        """
        stmt = (
            update(PaymentDB)
            .where(
                PaymentDB.payment_reference == payment_reference,
                PaymentDB.status == from_status.value,
            )
            .values(**_enum_values(values))
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def search(
        self,
        payment_reference: str | None = None,
        payer_email: str | None = None,
        status: PaymentStatus | None = None,
        gateway: GatewayProvider | None = None,
        violation_id: int | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        """
        Filter and paginate payments, newest first.

        Returns:
            tuple: (page of payments, total matching count)
        """
        conditions = []
        if payment_reference:
            conditions.append(PaymentDB.payment_reference.contains(payment_reference))
        if payer_email:
            conditions.append(PaymentDB.payer_email.contains(payer_email))
        if status is not None:
            conditions.append(PaymentDB.status == status.value)
        if gateway is not None:
            conditions.append(PaymentDB.gateway_provider == gateway.value)
        if violation_id is not None:
            conditions.append(PaymentDB.violation_id == violation_id)

        stmt = (
            select(PaymentDB)
            .where(*conditions)
            .order_by(PaymentDB.created_at.desc(), PaymentDB.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        total = (
            await self._session.execute(select(func.count(PaymentDB.id)).where(*conditions))
        ).scalar_one()
        return [self._to_domain(row) for row in rows], total

    async def aggregate(
        self,
        query: PaymentStatisticsQuery,
    ) -> dict[str, list[AggregateRow] | Decimal]:
        """
        Grouped payment aggregates for statistics.

        The window applies to the payment date, falling back to the
        creation date for payments that never completed.

        Returns:
            dict: ``by_status``, ``by_gateway`` and ``by_day`` lists of
                AggregateRow plus the ``refunded`` total.
        """
        effective_date = func.coalesce(PaymentDB.payment_date, PaymentDB.created_at)

        conditions = []
        if query.date_from is not None:
            conditions.append(effective_date >= query.date_from)
        if query.date_to is not None:
            conditions.append(effective_date <= query.date_to)
        if query.gateway is not None:
            conditions.append(PaymentDB.gateway_provider == query.gateway.value)
        if query.status is not None:
            conditions.append(PaymentDB.status == query.status.value)

        async def grouped(column) -> list[AggregateRow]:
            stmt = (
                select(column, func.count(PaymentDB.id), func.sum(PaymentDB.amount))
                .where(*conditions)
                .group_by(column)
                .order_by(column)
            )
            return [
                AggregateRow(key=str(key), count=count, amount=_money(amount))
                for key, count, amount in (await self._session.execute(stmt)).all()
            ]

        refunded_stmt = select(func.sum(PaymentDB.refunded_amount)).where(*conditions)
        refunded = (await self._session.execute(refunded_stmt)).scalar_one()

        return {
            "by_status": await grouped(PaymentDB.status),
            "by_gateway": await grouped(PaymentDB.gateway_provider),
            "by_day": await grouped(func.date(effective_date)),
            "refunded": _money(refunded),
        }

    def _to_domain(self, db_payment: PaymentDB) -> Payment:
        """Convert database model to domain model."""
        return Payment(
            id=db_payment.id,
            violation_id=db_payment.violation_id,
            amount=_money(db_payment.amount),
            payment_method=PaymentMethod(db_payment.payment_method),
            payment_reference=db_payment.payment_reference,
            gateway_reference=db_payment.gateway_reference,
            gateway_provider=GatewayProvider(db_payment.gateway_provider),
            payer_name=db_payment.payer_name,
            payer_email=db_payment.payer_email,
            payer_phone=db_payment.payer_phone,
            payment_url=db_payment.payment_url,
            status=PaymentStatus(db_payment.status),
            payment_date=db_payment.payment_date,
            gateway_response=db_payment.gateway_response,
            refunded_amount=_money(db_payment.refunded_amount),
            refund_reason=db_payment.refund_reason,
            refund_date=db_payment.refund_date,
            created_at=db_payment.created_at,
            updated_at=db_payment.updated_at,
        )


def _enum_values(values: dict[str, Any]) -> dict[str, Any]:
    """Store enum members by their value."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in values.items()
    }
