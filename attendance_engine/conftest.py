"""Shared fixtures: event factory and in-memory repositories."""
from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

from attendance_engine.attendance.schemas import AttendanceRecord, PresenceSample
from attendance_engine.events.schemas import EligibilitySpec, Event, EventCreate
from attendance_engine.exceptions import StateError
from attendance_engine.locations.schemas import Location
from attendance_engine.schemas import (
    EventStatus,
    LocationEnvironment,
    LocationPurpose,
    RELEASED_EVENT_STATUSES,
)
from attendance_engine.students.schemas import Cluster, Course, Section, Student

# 09:00-10:00 event with registration from 08:00
EVENT_START = datetime(2030, 1, 10, 9, 0, tzinfo=timezone.utc)
EVENT_END = EVENT_START + timedelta(hours=1)
REGISTRATION_START = EVENT_START - timedelta(hours=1)

VENUE_ID = 1
REGISTRATION_AREA_ID = 2


def build_event(**overrides) -> Event:
    data = dict(
        id=1,
        name="Orientation",
        registration_start=REGISTRATION_START,
        start=EVENT_START,
        end=EVENT_END,
        status=EventStatus.UPCOMING,
        eligibility=EligibilitySpec(all_students=True),
        registration_location_id=REGISTRATION_AREA_ID,
        venue_location_id=VENUE_ID,
    )
    data.update(overrides)
    return Event(**data)


@pytest.fixture
def make_event():
    return build_event


class FakeEventRepository:
    def __init__(self, events=()):
        self.events: Dict[int, Event] = {e.id: e for e in events}
        self.fail_on: set = set()
        self.status_writes: List[tuple] = []

    def get(self, event_id):
        return self.events.get(event_id)

    def list_by_statuses(self, statuses):
        return [e for e in self.events.values() if e.status in statuses]

    def list_active(self):
        return [e for e in self.events.values() if e.status not in RELEASED_EVENT_STATUSES]

    def add(self, data: EventCreate, status):
        event = Event(**data.model_dump(), id=max(self.events, default=0) + 1, status=status)
        self.events[event.id] = event
        return event

    def save(self, event):
        if self.events[event.id].version != event.version:
            raise StateError("stale")
        saved = event.model_copy(update={"version": event.version + 1})
        self.events[event.id] = saved
        return saved

    def delete(self, event_id):
        self.events.pop(event_id, None)

    def update_status(self, event_id, expected, new):
        if event_id in self.fail_on:
            raise RuntimeError("storage unavailable")
        current = self.events[event_id]
        if current.status != expected:
            return False
        self.events[event_id] = current.model_copy(update={"status": new, "version": current.version + 1})
        self.status_writes.append((event_id, expected, new))
        return True

    def scope(self):
        return nullcontext(self)


class FakeLocationRepository:
    def __init__(self, locations=()):
        self.locations = {loc.id: loc for loc in locations}

    def get(self, location_id):
        return self.locations.get(location_id)


class FakeRosterRepository:
    def __init__(self, clusters=(), courses=(), sections=(), students=()):
        self.clusters = list(clusters)
        self.courses = list(courses)
        self.sections = list(sections)
        self.students = list(students)

    def find_clusters(self, ids):
        return [c for c in self.clusters if c.id in set(ids)]

    def find_courses(self, ids):
        return [c for c in self.courses if c.id in set(ids)]

    def find_sections(self, ids):
        return [s for s in self.sections if s.id in set(ids)]

    def courses_in_clusters(self, cluster_ids):
        return [c for c in self.courses if c.cluster_id in set(cluster_ids)]

    def sections_in_courses(self, course_ids):
        return [s for s in self.sections if s.course_id in set(course_ids)]

    def students_in_sections(self, section_ids):
        return [s for s in self.students if s.section_id in set(section_ids)]

    def all_students(self):
        return list(self.students)


class FakeAttendanceRepository:
    def __init__(self, events: FakeEventRepository, records=(), samples=None):
        self.event_repo = events
        self.records: List[AttendanceRecord] = list(records)
        self.samples: Dict[int, List[PresenceSample]] = samples or {}
        self.fail_on_apply = False

    def count_for_event(self, event_id):
        return sum(1 for r in self.records if r.event_id == event_id)

    def list_for_event(self, event_id):
        return [r for r in self.records if r.event_id == event_id]

    def samples_for_event(self, event_id):
        ids = {r.id for r in self.list_for_event(event_id)}
        return {k: v for k, v in self.samples.items() if k in ids}

    def apply_finalization(self, event_id, records):
        if self.fail_on_apply:
            raise RuntimeError("storage unavailable")
        if self.event_repo.get(event_id).status != EventStatus.CONCLUDED:
            raise StateError("Event is no longer CONCLUDED")
        by_id = {r.id: i for i, r in enumerate(self.records)}
        taken = {(r.student_id, r.event_id) for r in self.records}
        inserted = 0
        for record in records:
            if record.id is not None:
                self.records[by_id[record.id]] = record
            elif (record.student_id, event_id) not in taken:
                new_id = max((r.id for r in self.records), default=0) + 1
                self.records.append(record.model_copy(update={"id": new_id}))
                taken.add((record.student_id, event_id))
                inserted += 1
        self.event_repo.update_status(event_id, EventStatus.CONCLUDED, EventStatus.FINALIZED)
        return inserted


@pytest.fixture
def locations():
    return FakeLocationRepository(
        [
            Location(
                id=VENUE_ID, name="Main Field", purpose=LocationPurpose.EVENT_VENUE,
                environment=LocationEnvironment.OUTDOOR,
                center_lat=14.6, center_lon=121.0, radius_m=80.0,
            ),
            Location(
                id=REGISTRATION_AREA_ID, name="Gate A", purpose=LocationPurpose.REGISTRATION_AREA,
                center_lat=14.601, center_lon=121.0, radius_m=20.0,
            ),
            Location(
                id=3, name="Auditorium", purpose=LocationPurpose.EVENT_VENUE,
                environment=LocationEnvironment.INDOOR,
                ring=[(14.0, 121.0), (14.0, 121.1), (14.1, 121.1), (14.1, 121.0)],
            ),
        ]
    )


@pytest.fixture
def roster():
    sections = [
        Section(id="BSIT-1A", name="1A", course_id="BSIT", year_level=1),
        Section(id="BSIT-2A", name="2A", course_id="BSIT", year_level=2),
        Section(id="BSCS-1A", name="1A", course_id="BSCS", year_level=1),
        Section(id="BSN-1A", name="1A", course_id="BSN", year_level=1),
    ]
    students = [
        Student(id=1, student_number="s-001", section_id="BSIT-1A", year_level=1),
        Student(id=2, student_number="s-002", section_id="BSIT-2A", year_level=2),
        Student(id=3, student_number="s-003", section_id="BSCS-1A", year_level=1),
        Student(id=4, student_number="s-004", section_id="BSN-1A", year_level=1),
        Student(id=5, student_number="s-005", section_id="BSIT-1A", year_level=1, is_active=False),
    ]
    return FakeRosterRepository(
        clusters=[Cluster(id="CCS", name="Computing"), Cluster(id="CON", name="Nursing")],
        courses=[
            Course(id="BSIT", name="Information Technology", cluster_id="CCS"),
            Course(id="BSCS", name="Computer Science", cluster_id="CCS"),
            Course(id="BSN", name="Nursing", cluster_id="CON"),
        ],
        sections=sections,
        students=students,
    )


@pytest.fixture
def everyone():
    return EligibilitySpec(all_students=True)
