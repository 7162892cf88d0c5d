"""Domain errors raised by the core and mapped to HTTP responses in main.py."""
from typing import List

from attendance_engine.events.schemas import ConflictingEvent


class DomainError(Exception):
    """Base exception for business rule violations."""

    kind = "domain_error"


class ValidationError(DomainError):
    """Input is malformed or violates a scheduling/eligibility rule."""

    kind = "validation_error"


class NotFoundError(DomainError):
    """A referenced event, location, cluster, course or section does not exist."""

    kind = "not_found"


class StateError(DomainError):
    """The operation is not allowed in the event's current status."""

    kind = "state_error"


class ConflictError(DomainError):
    """The event would occupy a location already used by other events."""

    kind = "location_conflict"

    def __init__(self, message: str, conflicts: List[ConflictingEvent]):
        super().__init__(message)
        self.conflicts = list(conflicts)
