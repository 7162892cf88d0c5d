"""Storage contracts used by the services, the scheduler and the finalizer."""
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from attendance_engine.attendance.schemas import AttendanceRecord, PresenceSample
from attendance_engine.events.schemas import Event, EventCreate
from attendance_engine.locations.schemas import Location
from attendance_engine.schemas import EventStatus
from attendance_engine.students.schemas import Cluster, Course, Section, Student


class EventRepository(Protocol):
    def get(self, event_id: int) -> Optional[Event]: ...

    def list_active(self) -> List[Event]:
        """Events that still hold their locations (not cancelled, concluded or finalized)."""
        ...

    def list_by_statuses(self, statuses: Sequence[EventStatus]) -> List[Event]: ...

    def add(self, data: EventCreate, status: EventStatus) -> Event: ...

    def save(self, event: Event) -> Event:
        """Persist every field of `event` and bump its version."""
        ...

    def delete(self, event_id: int) -> None: ...

    def update_status(self, event_id: int, expected: EventStatus, new: EventStatus) -> bool:
        """Conditional write; False when the stored status is no longer `expected`."""
        ...


class LocationRepository(Protocol):
    def get(self, location_id: int) -> Optional[Location]: ...


class RosterRepository(Protocol):
    def find_clusters(self, ids: Iterable[str]) -> List[Cluster]: ...

    def find_courses(self, ids: Iterable[str]) -> List[Course]: ...

    def find_sections(self, ids: Iterable[str]) -> List[Section]: ...

    def courses_in_clusters(self, cluster_ids: Sequence[str]) -> List[Course]: ...

    def sections_in_courses(self, course_ids: Sequence[str]) -> List[Section]: ...

    def students_in_sections(self, section_ids: Sequence[str]) -> List[Student]: ...

    def all_students(self) -> List[Student]: ...


class AttendanceRepository(Protocol):
    def count_for_event(self, event_id: int) -> int: ...

    def list_for_event(self, event_id: int) -> List[AttendanceRecord]: ...

    def samples_for_event(self, event_id: int) -> Dict[int, List[PresenceSample]]:
        """Presence samples keyed by attendance record id."""
        ...

    def apply_finalization(self, event_id: int, records: List[AttendanceRecord]) -> int:
        """
        Persist finalizer output and move the event from CONCLUDED to FINALIZED
        in one transaction. Records with an id are updated, the others inserted
        unless the student already has a record. Returns the number of inserted
        rows. Raises StateError when the event is no longer CONCLUDED.
        """
        ...
