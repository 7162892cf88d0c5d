"""
Final attendance classification for a concluded event.

Every existing record is re-evaluated from its presence samples (or from its
check-in time when location monitoring is off) and every expected student
without a record receives an ABSENT record. The functions here are pure; the
caller owns persistence and the status transition.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from attendance_engine.attendance.schemas import AttendanceRecord, PresenceSample
from attendance_engine.events.schemas import Event
from attendance_engine.schemas import AttendanceStatus
from attendance_engine.settings import settings
from attendance_engine.students.schemas import Student
from attendance_engine.timeutils import to_millis

logger = logging.getLogger(__name__)

NEVER_ENTERED_VENUE = "Checked in at registration area but never entered the event venue."
NO_LOCATION_UPDATES = "No location updates were detected during the event."
NO_ATTENDANCE_RECORDED = (
    "No attendance recorded. The student may have missed the event or not registered in time."
)


def compute_inside_duration(
    samples: Sequence[PresenceSample], event_start_ms: int, event_end_ms: int
) -> int:
    """
    Milliseconds spent inside the venue during [event_start_ms, event_end_ms].

    Each sample's inside flag holds until the next sample; the span between
    two consecutive samples is clipped to the event window before it counts.
    """
    if len(samples) < 2:
        return 0

    ordered = sorted(samples, key=lambda s: s.timestamp_ms)
    total = 0
    for current, following in zip(ordered, ordered[1:]):
        if not current.inside:
            continue
        span_start = max(current.timestamp_ms, event_start_ms)
        span_end = min(following.timestamp_ms, event_end_ms)
        if span_end > span_start:
            total += span_end - span_start
    return total


def inside_ratio(samples: Sequence[PresenceSample], event_start_ms: int, event_end_ms: int) -> float:
    duration = event_end_ms - event_start_ms
    if duration <= 0:
        return 0.0
    return compute_inside_duration(samples, event_start_ms, event_end_ms) / duration


def _arrived_late(event: Event, record: AttendanceRecord, grace_minutes: int) -> bool:
    if record.time_in is None:
        return False
    return record.time_in > event.start + timedelta(minutes=grace_minutes)


def _late_reason(record: AttendanceRecord) -> str:
    return f"Arrived late to the event at {record.time_in.isoformat()}"


def _evaluate(
    event: Event,
    record: AttendanceRecord,
    samples: Sequence[PresenceSample],
    present_threshold: float,
    idle_threshold: float,
    grace_minutes: int,
) -> Tuple[AttendanceStatus, Optional[str]]:
    if record.status == AttendanceStatus.PARTIALLY_REGISTERED:
        return AttendanceStatus.ABSENT, NEVER_ENTERED_VENUE
    # absences written by an earlier finalization stay absent
    if record.status == AttendanceStatus.ABSENT and record.reason in (
        NEVER_ENTERED_VENUE,
        NO_ATTENDANCE_RECORDED,
    ):
        return AttendanceStatus.ABSENT, record.reason

    if not event.location_monitoring_enabled:
        if _arrived_late(event, record, grace_minutes):
            return AttendanceStatus.LATE, _late_reason(record)
        return AttendanceStatus.PRESENT, None

    if not samples:
        return AttendanceStatus.ABSENT, NO_LOCATION_UPDATES

    ratio = inside_ratio(samples, to_millis(event.start), to_millis(event.end))
    percentage = ratio * 100
    if ratio >= present_threshold:
        if _arrived_late(event, record, grace_minutes):
            return AttendanceStatus.LATE, _late_reason(record)
        return AttendanceStatus.PRESENT, None
    if ratio >= idle_threshold:
        return AttendanceStatus.IDLE, f"Partially attended the event, present for {percentage:.1f}% of the time."
    return AttendanceStatus.ABSENT, f"Minimal attendance, present for only {percentage:.1f}% of the time."


def classify_record(
    event: Event,
    record: AttendanceRecord,
    samples: Sequence[PresenceSample],
    now: datetime,
    *,
    present_threshold: Optional[float] = None,
    idle_threshold: Optional[float] = None,
    grace_minutes: Optional[int] = None,
) -> AttendanceRecord:
    """
    Final status of one existing record.

    Returns the record untouched when its status does not change; otherwise a
    copy with the new status, reason and `time_out` set to `now`.
    """
    status, reason = _evaluate(
        event,
        record,
        samples,
        settings.present_ratio_threshold if present_threshold is None else present_threshold,
        settings.idle_ratio_threshold if idle_threshold is None else idle_threshold,
        settings.attendance_grace_minutes if grace_minutes is None else grace_minutes,
    )
    if status == record.status:
        return record
    return record.model_copy(update={"status": status, "reason": reason, "time_out": now})


def finalize_event(
    event: Event,
    existing_records: Iterable[AttendanceRecord],
    samples_by_record: Dict[int, List[PresenceSample]],
    eligible_roster: Iterable[Student],
    now: datetime,
    **thresholds,
) -> List[AttendanceRecord]:
    """
    Records to persist when finalizing `event`.

    Contains the existing records whose status changed, followed by one new
    ABSENT record (id None) for every expected student that has no record.
    Running it again over its own persisted output yields nothing new.
    """
    changes: List[AttendanceRecord] = []
    seen_students = set()

    for record in existing_records:
        seen_students.add(record.student_id)
        samples = samples_by_record.get(record.id, []) if record.id is not None else []
        classified = classify_record(event, record, samples, now, **thresholds)
        if classified is not record:
            logger.info(
                "Finalized attendance for student %s as %s in event %s",
                record.student_id, classified.status.value, event.id,
            )
            changes.append(classified)

    absentees = 0
    for student in eligible_roster:
        if student.id in seen_students:
            continue
        seen_students.add(student.id)
        changes.append(
            AttendanceRecord(
                student_id=student.id,
                event_id=event.id,
                status=AttendanceStatus.ABSENT,
                reason=NO_ATTENDANCE_RECORDED,
            )
        )
        absentees += 1

    logger.info(
        "Finalization computed for event %s: %d changed record(s), %d absentee(s)",
        event.id, len(changes) - absentees, absentees,
    )
    return changes
