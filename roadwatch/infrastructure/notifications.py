"""
Event publishers.

Delivery over SMS or email is handled by an external notifier; the
default publisher records each event as a structured log line that such
a consumer can ship.
"""

from dataclasses import asdict

from roadwatch.core.logging import get_logger
from roadwatch.domain.events import DomainEvent, SuspensionTriggered

logger = get_logger(__name__)

_EVENT_NAMES = {
    "ViolationRecorded": "event_violation_recorded",
    "SuspensionTriggered": "event_suspension_triggered",
    "PaymentConfirmed": "event_payment_confirmed",
}


class LoggingEventPublisher:
    """Publishes domain events to the structured log."""

    async def publish(self, event: DomainEvent) -> None:
        payload = {
            key: str(value) if value is not None and not isinstance(value, (int, tuple)) else value
            for key, value in asdict(event).items()
        }
        name = _EVENT_NAMES[type(event).__name__]

        log = logger.warning if isinstance(event, SuspensionTriggered) else logger.info
        log(name, **payload)


class RecordingEventPublisher:
    """Keeps published events in memory, for tests and local runs."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[DomainEvent]:
        return [event for event in self.events if isinstance(event, event_type)]
