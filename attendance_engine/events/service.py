"""Business logic for events."""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional, Set

from attendance_engine.attendance import finalizer
from attendance_engine.attendance.schemas import FinalizationResponse
from attendance_engine.events.lifecycle import (
    EventAction,
    detect_location_conflicts,
    ensure_action_allowed,
    evaluate_event_status,
    validate_schedule,
)
from attendance_engine.events.schemas import (
    Event,
    EventBase,
    EventCreate,
    EventStatusResponse,
    EventUpdate,
)
from attendance_engine.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from attendance_engine.metrics import EVENTS_FINALIZED, FINALIZED_RECORDS, STATUS_TRANSITIONS
from attendance_engine.repository import (
    AttendanceRepository,
    EventRepository,
    LocationRepository,
    RosterRepository,
)
from attendance_engine.schemas import AttendanceStatus, EventStatus, LocationEnvironment, LocationPurpose
from attendance_engine.settings import Settings, settings
from attendance_engine.students.eligibility import EligibilityResolver, validate_eligibility
from attendance_engine.timeutils import utc_now

logger = logging.getLogger(__name__)

_TIMESTAMP_FIELDS = ("registration_start", "start", "end")
# fields a client may explicitly clear
_NULLABLE_FIELDS = ("description", "registration_location_id")


class EventService:
    """Service class for event operations."""

    # events currently being finalized in this process
    _finalizing: Set[int] = set()
    _finalizing_lock = threading.Lock()

    def __init__(
        self,
        events: EventRepository,
        locations: LocationRepository,
        roster: RosterRepository,
        attendance: AttendanceRepository,
        clock: Callable[[], datetime] = utc_now,
        config: Settings = settings,
    ):
        self.events = events
        self.locations = locations
        self.attendance = attendance
        self.resolver = EligibilityResolver(roster)
        self.clock = clock
        self.config = config

    def get_event(self, event_id: int) -> Event:
        event = self.events.get(event_id)
        if not event:
            raise NotFoundError(f"Event not found: {event_id}")
        return event

    def create_event(self, data: EventCreate) -> Event:
        """Validate and store a new event in UPCOMING."""
        self._validate_schedule(data)
        validate_eligibility(data.eligibility)
        self.resolver.ensure_references_exist(data.eligibility)
        self._check_locations(data)
        self._check_conflicts(data)

        event = self.events.add(data, EventStatus.UPCOMING)
        logger.info("Created event %s (%s)", event.id, event.name)
        return event

    def update_event(self, event_id: int, data: EventUpdate) -> Event:
        """Apply a partial update; new dates are re-validated and the status re-evaluated."""
        event = self.get_event(event_id)
        if data.status is not None:
            raise ValidationError(
                "Event status cannot be set directly; it follows the event's schedule and admin actions."
            )
        ensure_action_allowed(event, EventAction.UPDATE)

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True, exclude={"status"}).items()
            if value is not None or key in _NULLABLE_FIELDS
        }
        if not changes:
            return event

        updated = Event.model_validate({**event.model_dump(), **changes})
        dates_changed = any(getattr(updated, f) != getattr(event, f) for f in _TIMESTAMP_FIELDS)
        if dates_changed:
            self._validate_schedule(updated)
        if "eligibility" in changes:
            validate_eligibility(updated.eligibility)
            self.resolver.ensure_references_exist(updated.eligibility)
        self._check_locations(updated)
        self._check_conflicts(updated, exclude_id=event.id)

        if dates_changed:
            updated = updated.model_copy(update={"status": evaluate_event_status(updated, self.clock())})

        saved = self.events.save(updated)
        if saved.status != event.status:
            STATUS_TRANSITIONS.labels(event.status.value, saved.status.value).inc()
        logger.info("Updated event %s (%s): %s", saved.id, saved.name, sorted(changes))
        return saved

    def cancel_event(self, event_id: int) -> Event:
        event = self.get_event(event_id)
        ensure_action_allowed(event, EventAction.CANCEL)
        if not self.events.update_status(event.id, event.status, EventStatus.CANCELLED):
            raise StateError(
                f"Event '{event.name}' changed while it was being cancelled; reload it and try again."
            )
        STATUS_TRANSITIONS.labels(event.status.value, EventStatus.CANCELLED.value).inc()
        logger.info("Cancelled event %s (%s)", event.id, event.name)
        return self.get_event(event.id)

    def delete_event(self, event_id: int) -> None:
        event = self.get_event(event_id)
        count = self.attendance.count_for_event(event.id)
        ensure_action_allowed(event, EventAction.DELETE, attendance_count=count)
        self.events.delete(event.id)
        logger.info("Deleted event %s (%s)", event.id, event.name)

    def evaluate_status(self, event_id: int, now: Optional[datetime] = None) -> EventStatusResponse:
        """Status the event should have now, next to the stored one. Nothing is written."""
        event = self.get_event(event_id)
        now = now or self.clock()
        return EventStatusResponse(
            event_id=event.id,
            stored_status=event.status,
            evaluated_status=evaluate_event_status(event, now),
            evaluated_at=now,
        )

    def finalize_event(self, event_id: int) -> FinalizationResponse:
        """
        Classify every expected student's attendance and lock the event as FINALIZED.

        Record changes, absentee inserts and the status change commit together;
        if anything fails nothing is kept and the call can simply be retried.
        """
        event = self.get_event(event_id)
        ensure_action_allowed(event, EventAction.FINALIZE)

        with self._finalization_guard(event):
            records = self.attendance.list_for_event(event.id)
            samples = self.attendance.samples_for_event(event.id)
            roster = self.resolver.resolve(event.eligibility)
            logger.info("Total expected active students for event %s: %d", event.id, len(roster))

            changes = finalizer.finalize_event(
                event,
                records,
                samples,
                roster,
                self.clock(),
                present_threshold=self.config.present_ratio_threshold,
                idle_threshold=self.config.idle_ratio_threshold,
                grace_minutes=self.config.attendance_grace_minutes,
            )
            created = self.attendance.apply_finalization(event.id, changes)

        EVENTS_FINALIZED.inc()
        STATUS_TRANSITIONS.labels(EventStatus.CONCLUDED.value, EventStatus.FINALIZED.value).inc()
        for record in changes:
            if record.id is not None:
                FINALIZED_RECORDS.labels(record.status.value).inc()
        # absentees skipped by a concurrent insert are not in `created`
        if created:
            FINALIZED_RECORDS.labels(AttendanceStatus.ABSENT.value).inc(created)
        logger.info("Attendance finalization completed for event %s (%s)", event.id, event.name)

        return FinalizationResponse(
            event_id=event.id,
            updated_count=sum(1 for r in changes if r.id is not None),
            created_count=created,
            records=changes,
        )

    @contextmanager
    def _finalization_guard(self, event: Event):
        with self._finalizing_lock:
            if event.id in self._finalizing:
                raise StateError(f"Event '{event.name}' is already being finalized.")
            self._finalizing.add(event.id)
        try:
            yield
        finally:
            with self._finalizing_lock:
                self._finalizing.discard(event.id)

    def _validate_schedule(self, event: EventBase) -> None:
        validate_schedule(
            event.registration_start,
            event.start,
            event.end,
            now=self.clock(),
            min_minutes=self.config.event_min_duration_minutes,
            max_minutes=self.config.event_max_duration_minutes,
        )

    def _check_locations(self, event: EventBase) -> None:
        venue = self.locations.get(event.venue_location_id)
        if not venue:
            raise NotFoundError(f"Event venue location not found: {event.venue_location_id}")
        if venue.purpose != LocationPurpose.EVENT_VENUE:
            raise ValidationError(f"Location '{venue.name}' is not an event venue.")

        registration_id = event.registration_location_id
        if registration_id is not None and registration_id != venue.id:
            registration = self.locations.get(registration_id)
            if not registration:
                raise NotFoundError(f"Registration location not found: {registration_id}")
            if registration.purpose != LocationPurpose.REGISTRATION_AREA:
                raise ValidationError(f"Location '{registration.name}' is not a registration area.")

        if event.location_monitoring_enabled and venue.environment == LocationEnvironment.INDOOR:
            raise ValidationError(
                "Location monitoring cannot be enabled for an indoor venue; "
                "GPS is unreliable indoors."
            )
        if event.strict_location_validation and registration_id in (None, venue.id):
            raise ValidationError(
                "Strict location validation requires separate registration and venue locations."
            )

    def _check_conflicts(self, event: EventBase, exclude_id: Optional[int] = None) -> None:
        conflicts = detect_location_conflicts(event, self.events.list_active(), exclude_id=exclude_id)
        if conflicts:
            raise ConflictError(
                "Location conflict with existing event(s): " + "; ".join(c.describe() for c in conflicts),
                conflicts,
            )
