"""Event lifecycle: time-driven status, location conflicts and admin action rules."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from attendance_engine.events.schemas import ConflictingEvent, Event, EventBase
from attendance_engine.exceptions import StateError, ValidationError
from attendance_engine.schemas import RELEASED_EVENT_STATUSES, EventStatus

Interval = Tuple[datetime, datetime]


def evaluate_event_status(event: Event, now: datetime) -> EventStatus:
    """
    Status an event should have at `now`.

    Terminal events (CANCELLED, FINALIZED) keep their status; they are only
    ever reached through explicit admin actions.
    """
    if event.status.is_terminal:
        return event.status
    if now < event.registration_start:
        return EventStatus.UPCOMING
    if now < event.start:
        return EventStatus.REGISTRATION
    if now < event.end:
        return EventStatus.ONGOING
    return EventStatus.CONCLUDED


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open intervals [a_start, a_end) and [b_start, b_end) share at least one instant."""
    return a_start < b_end and a_end > b_start


def registration_usage(event: EventBase) -> Interval:
    return event.registration_start, event.start


def venue_usage(event: EventBase) -> Interval:
    return event.start, event.end


def detect_location_conflicts(
    candidate: EventBase,
    events: Iterable[Event],
    exclude_id: Optional[int] = None,
) -> List[ConflictingEvent]:
    """
    Events that already use the candidate's registration area or venue at overlapping times.

    Registration areas are compared over [registration_start, start), venues
    over [start, end). Events that are cancelled, concluded or finalized have
    released their locations and are ignored.
    """
    conflicts: Dict[int, ConflictingEvent] = {}
    for other in events:
        if other.id == exclude_id or other.id in conflicts:
            continue
        if other.status in RELEASED_EVENT_STATUSES:
            continue

        same_registration_area = (
            candidate.registration_location_id is not None
            and candidate.registration_location_id == other.registration_location_id
        )
        clash = same_registration_area and intervals_overlap(
            *registration_usage(candidate), *registration_usage(other)
        )
        if not clash and candidate.venue_location_id == other.venue_location_id:
            clash = intervals_overlap(*venue_usage(candidate), *venue_usage(other))

        if clash:
            conflicts[other.id] = ConflictingEvent(
                event_id=other.id,
                name=other.name,
                registration_start=other.registration_start,
                start=other.start,
                end=other.end,
            )
    return list(conflicts.values())


def validate_schedule(
    registration_start: Optional[datetime],
    start: Optional[datetime],
    end: Optional[datetime],
    *,
    now: datetime,
    min_minutes: int,
    max_minutes: int,
) -> None:
    """Reject malformed or past time windows with a specific reason."""
    if registration_start is None or start is None or end is None:
        raise ValidationError(
            "Please provide all date fields: registration start, event start and event end."
        )
    if registration_start < now:
        raise ValidationError("Registration start must be in the future.")
    if start < now:
        raise ValidationError("Event start must be in the future.")
    if end < now:
        raise ValidationError("Event end must be in the future.")
    if registration_start > start:
        raise ValidationError("Registration must open before the event begins.")
    if start >= end:
        raise ValidationError("Event start must be before the event end.")

    duration = end - start
    if duration < timedelta(minutes=min_minutes):
        raise ValidationError(f"Event must last at least {min_minutes} minutes.")
    if duration > timedelta(minutes=max_minutes):
        raise ValidationError(f"Event cannot exceed {max_minutes} minutes in duration.")


class EventAction(str, Enum):
    """Administrative actions gated by the event's status."""
    UPDATE = "UPDATE"
    CANCEL = "CANCEL"
    DELETE = "DELETE"
    FINALIZE = "FINALIZE"


_UPDATE_LOCKED = (
    "Event '{name}' is {status} and can no longer be updated; "
    "changes could alter its attendance records."
)

# (status, action) -> None when allowed, otherwise the rejection reason.
ACTION_RULES: Dict[Tuple[EventStatus, EventAction], Optional[str]] = {
    (EventStatus.UPCOMING, EventAction.UPDATE): None,
    (EventStatus.UPCOMING, EventAction.CANCEL): None,
    (EventStatus.UPCOMING, EventAction.DELETE): None,
    (EventStatus.UPCOMING, EventAction.FINALIZE): "Event '{name}' has not started yet and cannot be finalized.",
    (EventStatus.REGISTRATION, EventAction.UPDATE): None,
    (EventStatus.REGISTRATION, EventAction.CANCEL): None,
    (EventStatus.REGISTRATION, EventAction.DELETE): None,
    (EventStatus.REGISTRATION, EventAction.FINALIZE): "Event '{name}' is still in registration and cannot be finalized.",
    (EventStatus.ONGOING, EventAction.UPDATE): None,
    (EventStatus.ONGOING, EventAction.CANCEL): None,
    (EventStatus.ONGOING, EventAction.DELETE): None,
    (EventStatus.ONGOING, EventAction.FINALIZE): "Event '{name}' is still ongoing and cannot be finalized until it concludes.",
    (EventStatus.CONCLUDED, EventAction.UPDATE): _UPDATE_LOCKED,
    (EventStatus.CONCLUDED, EventAction.CANCEL): None,
    (EventStatus.CONCLUDED, EventAction.DELETE): None,
    (EventStatus.CONCLUDED, EventAction.FINALIZE): None,
    (EventStatus.CANCELLED, EventAction.UPDATE): "Event '{name}' is cancelled and can no longer be updated.",
    (EventStatus.CANCELLED, EventAction.CANCEL): "Event '{name}' is already cancelled.",
    (EventStatus.CANCELLED, EventAction.DELETE): None,
    (EventStatus.CANCELLED, EventAction.FINALIZE): "Event '{name}' was cancelled and cannot be finalized.",
    (EventStatus.FINALIZED, EventAction.UPDATE): (
        "Event '{name}' is FINALIZED; finalized events are locked to keep attendance history intact."
    ),
    (EventStatus.FINALIZED, EventAction.CANCEL): "Event '{name}' is already finalized and cannot be cancelled.",
    (EventStatus.FINALIZED, EventAction.DELETE): None,
    (EventStatus.FINALIZED, EventAction.FINALIZE): "Event '{name}' has already been finalized.",
}

# Deleting is only possible while an event has no attendance records.
DELETE_WITH_RECORDS_REASONS: Dict[EventStatus, str] = {
    EventStatus.UPCOMING: "Event '{name}' already has {count} attendance record(s) and cannot be deleted.",
    EventStatus.REGISTRATION: (
        "Event '{name}' is in registration with {count} registered student(s); "
        "cancel or edit the event instead of deleting it."
    ),
    EventStatus.ONGOING: "Event '{name}' is ongoing with {count} attendance record(s) being verified.",
    EventStatus.CONCLUDED: "Event '{name}' has concluded with {count} attendance record(s) awaiting finalization.",
    EventStatus.CANCELLED: "Event '{name}' still has {count} attendance record(s) and cannot be deleted.",
    EventStatus.FINALIZED: "Event '{name}' holds {count} finalized attendance record(s) and cannot be deleted.",
}


def ensure_action_allowed(event: Event, action: EventAction, *, attendance_count: int = 0) -> None:
    """Raise StateError when `action` is not permitted in the event's current status."""
    reason = ACTION_RULES[(event.status, action)]
    if reason is None and action is EventAction.DELETE and attendance_count > 0:
        reason = DELETE_WITH_RECORDS_REASONS[event.status]
    if reason is not None:
        raise StateError(reason.format(name=event.name, status=event.status.value, count=attendance_count))
