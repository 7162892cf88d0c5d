"""Shared enumerations and error payloads."""
from pydantic import BaseModel
from typing import Any, List, Optional
from enum import Enum


class EventStatus(str, Enum):
    """Event lifecycle status."""
    UPCOMING = "UPCOMING"
    REGISTRATION = "REGISTRATION"
    ONGOING = "ONGOING"
    CONCLUDED = "CONCLUDED"
    CANCELLED = "CANCELLED"
    FINALIZED = "FINALIZED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_EVENT_STATUSES


TERMINAL_EVENT_STATUSES = frozenset({EventStatus.CANCELLED, EventStatus.FINALIZED})

# Statuses re-evaluated by the scheduler.
SCHEDULED_EVENT_STATUSES = (
    EventStatus.UPCOMING,
    EventStatus.REGISTRATION,
    EventStatus.ONGOING,
)

# Events in these statuses no longer occupy their locations.
RELEASED_EVENT_STATUSES = frozenset(
    {EventStatus.CANCELLED, EventStatus.CONCLUDED, EventStatus.FINALIZED}
)


class AttendanceStatus(str, Enum):
    """Attendance status of one student for one event."""
    REGISTERED = "REGISTERED"
    PARTIALLY_REGISTERED = "PARTIALLY_REGISTERED"
    PRESENT = "PRESENT"
    LATE = "LATE"
    IDLE = "IDLE"
    ABSENT = "ABSENT"


class LocationPurpose(str, Enum):
    """What a location may be assigned as."""
    REGISTRATION_AREA = "REGISTRATION_AREA"
    EVENT_VENUE = "EVENT_VENUE"


class LocationEnvironment(str, Enum):
    """Signal environment; GPS monitoring is only reliable outdoors."""
    INDOOR = "INDOOR"
    OUTDOOR = "OUTDOOR"


class ErrorResponse(BaseModel):
    """Schema for domain error responses."""
    kind: str
    detail: str
    conflicts: Optional[List[Any]] = None
