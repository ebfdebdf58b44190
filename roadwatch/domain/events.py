"""
Domain events emitted after state changes commit.

The ledger and orchestrator only supply the structured payload; delivery
(SMS, email) belongs to whatever implements ``EventPublisher``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, Union

from roadwatch.domain.models import utcnow


@dataclass(frozen=True)
class ViolationRecorded:
    """One or more violations were recorded against a plate."""

    plate_number: str
    ticket_numbers: tuple[str, ...]
    total_amount: Decimal
    total_points: int
    due_date: datetime
    owner_name: str
    owner_phone: str | None = None
    owner_email: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SuspensionTriggered:
    """A vehicle owner's licence flipped from active to suspended."""

    plate_number: str
    current_points: int
    threshold: int
    owner_name: str
    owner_phone: str | None = None
    owner_email: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PaymentConfirmed:
    """A gateway confirmed payment for every violation under a reference."""

    payment_reference: str
    gateway: str
    total_amount: Decimal
    ticket_numbers: tuple[str, ...]
    payer_email: str | None = None
    payer_phone: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


DomainEvent = Union[ViolationRecorded, SuspensionTriggered, PaymentConfirmed]


class EventPublisher(Protocol):
    """Consumer of domain events."""

    async def publish(self, event: DomainEvent) -> None:
        ...
