"""Unit tests for attendance finalization."""
from datetime import datetime, timedelta, timezone

import pytest

from attendance_engine.attendance.finalizer import (
    NEVER_ENTERED_VENUE,
    NO_ATTENDANCE_RECORDED,
    NO_LOCATION_UPDATES,
    classify_record,
    compute_inside_duration,
    finalize_event,
    inside_ratio,
)
from attendance_engine.attendance.schemas import AttendanceRecord, PresenceSample
from attendance_engine.conftest import EVENT_END, EVENT_START, build_event
from attendance_engine.schemas import AttendanceStatus, EventStatus
from attendance_engine.students.schemas import Student
from attendance_engine.timeutils import to_millis

NOW = EVENT_END + timedelta(hours=2)
THRESHOLDS = dict(present_threshold=0.7, idle_threshold=0.3, grace_minutes=0)


def at(hour, minute):
    return datetime(EVENT_START.year, EVENT_START.month, EVENT_START.day, hour, minute, tzinfo=timezone.utc)


def sample(hour, minute, inside):
    return PresenceSample(timestamp_ms=to_millis(at(hour, minute)), inside=inside)


def record(record_id=1, student_id=1, status=AttendanceStatus.REGISTERED, time_in=None, **extra):
    return AttendanceRecord(
        id=record_id, student_id=student_id, event_id=1, location_id=1,
        status=status, time_in=time_in, **extra,
    )


def monitored_event():
    return build_event(status=EventStatus.CONCLUDED, location_monitoring_enabled=True)


def plain_event():
    return build_event(status=EventStatus.CONCLUDED, location_monitoring_enabled=False)


class TestInsideDuration:
    """Test cases for inside-duration computation."""

    START_MS = to_millis(EVENT_START)
    END_MS = to_millis(EVENT_END)

    def test_fewer_than_two_samples(self):
        assert compute_inside_duration([], self.START_MS, self.END_MS) == 0
        assert compute_inside_duration([sample(9, 10, True)], self.START_MS, self.END_MS) == 0

    def test_only_inside_spans_count(self):
        samples = [sample(8, 59, False), sample(9, 10, True), sample(9, 50, False)]
        assert compute_inside_duration(samples, self.START_MS, self.END_MS) == 40 * 60 * 1000

    def test_spans_are_clipped_to_the_event(self):
        samples = [sample(8, 55, True), sample(10, 0, True)]
        assert compute_inside_duration(samples, self.START_MS, self.END_MS) == 60 * 60 * 1000

    def test_samples_are_sorted_first(self):
        samples = [sample(9, 50, False), sample(9, 10, True), sample(8, 59, False)]
        assert compute_inside_duration(samples, self.START_MS, self.END_MS) == 40 * 60 * 1000

    def test_spans_outside_the_event_are_ignored(self):
        samples = [sample(8, 0, True), sample(8, 30, True), sample(10, 30, True), sample(11, 0, False)]
        assert compute_inside_duration(samples, self.START_MS, self.END_MS) == 0

    def test_ratio_bounds(self):
        samples = [sample(8, 0, True), sample(11, 0, True)]
        assert inside_ratio(samples, self.START_MS, self.END_MS) == 1.0
        assert inside_ratio(samples, self.START_MS, self.START_MS) == 0.0


class TestClassifyRecord:
    """Test cases for per-record classification."""

    def test_partial_registration_is_absent(self):
        result = classify_record(
            monitored_event(), record(status=AttendanceStatus.PARTIALLY_REGISTERED, time_in=at(8, 30)),
            [sample(9, 0, True), sample(10, 0, True)], NOW, **THRESHOLDS,
        )
        assert result.status == AttendanceStatus.ABSENT
        assert result.reason == NEVER_ENTERED_VENUE
        assert result.time_out == NOW

    def test_idle_at_two_thirds(self):
        """Inside 09:10-09:50 of a 09:00-10:00 event is 66.7%."""
        samples = [sample(8, 59, False), sample(9, 10, True), sample(9, 50, False)]
        result = classify_record(monitored_event(), record(time_in=at(8, 50)), samples, NOW, **THRESHOLDS)
        assert result.status == AttendanceStatus.IDLE
        assert "66.7%" in result.reason

    def test_present_when_clipped_to_full_window(self):
        samples = [sample(8, 55, True), sample(10, 0, True)]
        result = classify_record(monitored_event(), record(time_in=at(8, 58)), samples, NOW, **THRESHOLDS)
        assert result.status == AttendanceStatus.PRESENT
        assert result.reason is None

    def test_late_arrival_downgrades_present(self):
        """95% inside but checked in at 09:15 is LATE."""
        samples = [sample(9, 0, True), sample(9, 57, False)]
        result = classify_record(monitored_event(), record(time_in=at(9, 15)), samples, NOW, **THRESHOLDS)
        assert result.status == AttendanceStatus.LATE
        assert "Arrived late" in result.reason

    def test_low_ratio_is_absent(self):
        samples = [sample(9, 0, True), sample(9, 10, False)]
        result = classify_record(monitored_event(), record(time_in=at(8, 50)), samples, NOW, **THRESHOLDS)
        assert result.status == AttendanceStatus.ABSENT
        assert "16.7%" in result.reason

    def test_late_arrival_does_not_touch_idle(self):
        samples = [sample(9, 10, True), sample(9, 50, False)]
        result = classify_record(monitored_event(), record(time_in=at(9, 15)), samples, NOW, **THRESHOLDS)
        assert result.status == AttendanceStatus.IDLE

    def test_no_samples_is_absent(self):
        result = classify_record(monitored_event(), record(time_in=at(8, 50)), [], NOW, **THRESHOLDS)
        assert result.status == AttendanceStatus.ABSENT
        assert result.reason == NO_LOCATION_UPDATES

    def test_single_sample_counts_as_zero(self):
        result = classify_record(
            monitored_event(), record(time_in=at(8, 50)), [sample(9, 5, True)], NOW, **THRESHOLDS
        )
        assert result.status == AttendanceStatus.ABSENT
        assert "0.0%" in result.reason

    @pytest.mark.parametrize(
        "time_in, expected",
        [
            (datetime(2030, 1, 10, 8, 45, tzinfo=timezone.utc), AttendanceStatus.PRESENT),
            (EVENT_START, AttendanceStatus.PRESENT),
            (datetime(2030, 1, 10, 9, 1, tzinfo=timezone.utc), AttendanceStatus.LATE),
            (None, AttendanceStatus.PRESENT),
        ],
    )
    def test_without_monitoring(self, time_in, expected):
        result = classify_record(plain_event(), record(time_in=time_in), [], NOW, **THRESHOLDS)
        assert result.status == expected

    def test_backfilled_absence_is_kept_without_monitoring(self):
        backfilled = record(status=AttendanceStatus.ABSENT, reason=NO_ATTENDANCE_RECORDED)
        assert classify_record(plain_event(), backfilled, [], NOW, **THRESHOLDS) is backfilled

    def test_grace_period(self):
        result = classify_record(
            plain_event(), record(time_in=at(9, 4)), [], NOW,
            present_threshold=0.7, idle_threshold=0.3, grace_minutes=5,
        )
        assert result.status == AttendanceStatus.PRESENT

    def test_unchanged_record_is_returned_as_is(self):
        original = record(status=AttendanceStatus.PRESENT, time_in=at(8, 45))
        result = classify_record(plain_event(), original, [], NOW, **THRESHOLDS)
        assert result is original
        assert result.time_out is None

    def test_defaults_come_from_settings(self):
        samples = [sample(8, 59, False), sample(9, 10, True), sample(9, 50, False)]
        result = classify_record(monitored_event(), record(time_in=at(8, 50)), samples, NOW)
        assert result.status == AttendanceStatus.IDLE


class TestFinalizeEvent:
    """Test cases for whole-event finalization."""

    @staticmethod
    def roster(count):
        return [Student(id=i, student_number=f"S-{i:03d}") for i in range(1, count + 1)]

    @staticmethod
    def persist(records, changes):
        """Apply finalizer output the way the repository does."""
        by_id = {r.id: r for r in records}
        next_id = max(by_id, default=0) + 1
        for change in changes:
            if change.id is None:
                change = change.model_copy(update={"id": next_id})
                next_id += 1
            by_id[change.id] = change
        return list(by_id.values())

    def test_backfills_missing_students(self):
        """50 eligible, 47 recorded: exactly 3 new ABSENT records."""
        records = [record(record_id=i, student_id=i, time_in=at(8, 50)) for i in range(1, 48)]
        changes = finalize_event(plain_event(), records, {}, self.roster(50), NOW, **THRESHOLDS)

        absentees = [c for c in changes if c.id is None]
        assert sorted(a.student_id for a in absentees) == [48, 49, 50]
        for absentee in absentees:
            assert absentee.status == AttendanceStatus.ABSENT
            assert absentee.reason == NO_ATTENDANCE_RECORDED
            assert absentee.time_in is None
            assert absentee.time_out is None
            assert absentee.event_id == 1
        assert len(changes) == 47 + 3

    def test_rerun_changes_nothing(self):
        samples = {
            1: [sample(8, 59, False), sample(9, 10, True), sample(9, 50, False)],
            2: [sample(9, 0, True), sample(9, 57, False)],
        }
        records = [
            record(record_id=1, student_id=1, time_in=at(8, 50)),
            record(record_id=2, student_id=2, time_in=at(9, 15)),
            record(record_id=3, student_id=3, status=AttendanceStatus.PARTIALLY_REGISTERED, time_in=at(8, 40)),
        ]
        first = finalize_event(monitored_event(), records, samples, self.roster(5), NOW, **THRESHOLDS)
        assert len(first) == 5

        persisted = self.persist(records, first)
        second = finalize_event(monitored_event(), persisted, samples, self.roster(5), NOW, **THRESHOLDS)
        assert second == []

    def test_rerun_without_monitoring_keeps_backfilled_absences(self):
        records = [
            record(record_id=1, student_id=1, time_in=at(8, 50)),
            record(record_id=2, student_id=2),
        ]
        first = finalize_event(plain_event(), records, {}, self.roster(3), NOW, **THRESHOLDS)
        assert [(c.student_id, c.status) for c in first] == [
            (1, AttendanceStatus.PRESENT),
            (2, AttendanceStatus.PRESENT),
            (3, AttendanceStatus.ABSENT),
        ]

        persisted = self.persist(records, first)
        assert finalize_event(plain_event(), persisted, {}, self.roster(3), NOW, **THRESHOLDS) == []

    def test_partial_registration_stays_absent_without_monitoring(self):
        records = [record(status=AttendanceStatus.PARTIALLY_REGISTERED, time_in=at(8, 40))]
        first = finalize_event(plain_event(), records, {}, [], NOW, **THRESHOLDS)
        assert first[0].status == AttendanceStatus.ABSENT
        assert finalize_event(plain_event(), first, {}, [], NOW, **THRESHOLDS) == []

    def test_duplicate_roster_entries(self):
        roster = self.roster(2) + self.roster(2)
        changes = finalize_event(plain_event(), [], {}, roster, NOW, **THRESHOLDS)
        assert [c.student_id for c in changes] == [1, 2]

    def test_records_outside_the_roster_are_still_classified(self):
        """A student who attended but is no longer eligible keeps a classified record."""
        records = [record(record_id=9, student_id=99, time_in=at(9, 30))]
        changes = finalize_event(plain_event(), records, {}, self.roster(1), NOW, **THRESHOLDS)
        assert [(c.student_id, c.status) for c in changes] == [
            (99, AttendanceStatus.LATE),
            (1, AttendanceStatus.ABSENT),
        ]

    def test_is_deterministic(self):
        samples = {1: [sample(9, 0, True), sample(9, 40, False)]}
        records = [record(time_in=at(8, 55))]
        args = (monitored_event(), records, samples, self.roster(3), NOW)
        assert finalize_event(*args, **THRESHOLDS) == finalize_event(*args, **THRESHOLDS)
