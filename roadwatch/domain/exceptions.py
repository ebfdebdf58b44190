"""
Domain error kinds.

Each operation reports failures as one of these. The API layer maps
them onto HTTP status codes; nothing below it knows about HTTP.
"""


class RoadwatchError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(RoadwatchError):
    """Entity id or reference does not exist."""

    def __init__(self, entity: str, identifier: object):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class ConflictError(RoadwatchError):
    """Unique value already taken (plate, licence, payment reference)."""


class InvalidInputError(RoadwatchError):
    """Malformed plate, out-of-range amount, inactive catalog entry, ..."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class IllegalStateTransitionError(RoadwatchError):
    """Requested status change is not allowed from the current status."""


class GatewayError(RoadwatchError):
    """
    A payment provider call failed or returned a non-success status.

    Attributes:
        provider: Gateway that failed.
        provider_message: Message returned by the provider, for diagnostics.
    """

    def __init__(self, provider: str, provider_message: str):
        super().__init__(f"{provider} gateway error: {provider_message}")
        self.provider = provider
        self.provider_message = provider_message


class SignatureInvalidError(RoadwatchError):
    """Webhook signature did not match the shared secret."""


class TransientFailureError(RoadwatchError):
    """Deadlock or lost connection; the caller may retry."""
