"""
SQLAlchemy ORM models for database tables.

These models define the database schema and provide
persistence for domain entities.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from roadwatch.domain.models import utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class VehicleOwnerDB(Base):
    """
    Database model for registered vehicles and their licence holders.

    Plate and licence numbers are unique; points and status are only
    changed under a row lock.
    """

    __tablename__ = "vehicle_owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plate_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    license_number: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state_of_residence: Mapped[str | None] = mapped_column(String(50), nullable=True)
    lga: Mapped[str | None] = mapped_column(String(100), nullable=True)
    license_class: Mapped[str] = mapped_column(String(1), default="C", nullable=False)
    vehicle_make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vehicle_color: Mapped[str | None] = mapped_column(String(50), nullable=True)
    engine_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    chassis_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    issue_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False, index=True)
    current_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<VehicleOwner(plate={self.plate_number}, points={self.current_points})>"


class ViolationTypeDB(Base):
    """Database model for the offence catalog."""

    __tablename__ = "violation_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    fine_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    suspension_eligible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ViolationType(code={self.code}, fine={self.fine_amount})>"


class ViolationDB(Base):
    """
    Database model for recorded violations.

    Fine and points are copies of the catalog values at creation time.
    """

    __tablename__ = "violations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    plate_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    vehicle_owner_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("vehicle_owners.id", ondelete="SET NULL"),
        nullable=True,
    )
    officer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    violation_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("violation_types.id"),
        nullable=False,
    )
    fine_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    location_state: Mapped[str] = mapped_column(String(50), nullable=False)
    location_lga: Mapped[str | None] = mapped_column(String(100), nullable=True)
    evidence_photo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    additional_evidence: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    officer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    weather_condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    road_condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    traffic_condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    violation_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    paid_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    contest_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    contest_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_overturned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_violations_status_date", "status", "violation_date"),
    )

    def __repr__(self) -> str:
        return f"<Violation(ticket={self.ticket_number}, status={self.status})>"


class PaymentDB(Base):
    """
    Database model for payment attempts.

    ``payment_reference`` groups every row created by one checkout and
    is deliberately not unique.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    violation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("violations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    gateway_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gateway_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    payer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payer_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    gateway_response: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    refunded_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0"),
        nullable=False,
    )
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_payments_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Payment(reference={self.payment_reference}, status={self.status})>"
