"""SQL access to events, attendance records and presence samples."""
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy import JSON, DateTime, bindparam, text
from sqlalchemy.orm import Session

from attendance_engine.attendance.schemas import AttendanceRecord, PresenceSample
from attendance_engine.db import SessionLocal
from attendance_engine.events.schemas import Event, EventCreate
from attendance_engine.exceptions import StateError
from attendance_engine.schemas import SCHEDULED_EVENT_STATUSES, EventStatus

logger = logging.getLogger(__name__)

_EVENT_SELECT = """
    SELECT id, name, description, registration_start, starts_at, ends_at, status,
           eligibility, facial_verification_enabled, location_monitoring_enabled,
           strict_location_validation, registration_location_id, venue_location_id,
           version, created_at, updated_at
      FROM events
"""

_EVENT_TYPES = {
    "registration_start": DateTime(timezone=True),
    "starts_at": DateTime(timezone=True),
    "ends_at": DateTime(timezone=True),
    "created_at": DateTime(timezone=True),
    "updated_at": DateTime(timezone=True),
    "eligibility": JSON,
}

_EVENT_FIELDS = """
    name = :name,
    description = :description,
    registration_start = :registration_start,
    starts_at = :starts_at,
    ends_at = :ends_at,
    status = :status,
    eligibility = :eligibility,
    facial_verification_enabled = :facial_verification_enabled,
    location_monitoring_enabled = :location_monitoring_enabled,
    strict_location_validation = :strict_location_validation,
    registration_location_id = :registration_location_id,
    venue_location_id = :venue_location_id
"""


def _event_binds():
    return (
        bindparam("eligibility", type_=JSON),
        bindparam("registration_start", type_=DateTime(timezone=True)),
        bindparam("starts_at", type_=DateTime(timezone=True)),
        bindparam("ends_at", type_=DateTime(timezone=True)),
    )


def _event_params(data, status: EventStatus) -> dict:
    return {
        "name": data.name,
        "description": data.description,
        "registration_start": data.registration_start,
        "starts_at": data.start,
        "ends_at": data.end,
        "status": status.value,
        "eligibility": data.eligibility.model_dump(),
        "facial_verification_enabled": data.facial_verification_enabled,
        "location_monitoring_enabled": data.location_monitoring_enabled,
        "strict_location_validation": data.strict_location_validation,
        "registration_location_id": data.registration_location_id,
        "venue_location_id": data.venue_location_id,
    }


def _to_event(row) -> Event:
    return Event(
        id=row.id,
        name=row.name,
        description=row.description,
        registration_start=row.registration_start,
        start=row.starts_at,
        end=row.ends_at,
        status=row.status,
        eligibility=row.eligibility or {},
        facial_verification_enabled=bool(row.facial_verification_enabled),
        location_monitoring_enabled=bool(row.location_monitoring_enabled),
        strict_location_validation=bool(row.strict_location_validation),
        registration_location_id=row.registration_location_id,
        venue_location_id=row.venue_location_id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlEventRepository:
    """Events table access. Writes commit immediately."""

    def __init__(self, db: Session):
        self.db = db

    def _fetch(self, where: str = "", params: Optional[dict] = None, expanding: Sequence[str] = ()):
        stmt = text(_EVENT_SELECT + where)
        if expanding:
            stmt = stmt.bindparams(*(bindparam(name, expanding=True) for name in expanding))
        return self.db.execute(stmt.columns(**_EVENT_TYPES), params or {}).fetchall()

    def get(self, event_id: int) -> Optional[Event]:
        rows = self._fetch(" WHERE id = :id", {"id": event_id})
        return _to_event(rows[0]) if rows else None

    def list_by_statuses(self, statuses: Sequence[EventStatus]) -> List[Event]:
        if not statuses:
            return []
        rows = self._fetch(
            " WHERE status IN :statuses ORDER BY id",
            {"statuses": [s.value for s in statuses]},
            expanding=("statuses",),
        )
        return [_to_event(r) for r in rows]

    def list_active(self) -> List[Event]:
        return self.list_by_statuses(SCHEDULED_EVENT_STATUSES)

    def add(self, data: EventCreate, status: EventStatus) -> Event:
        stmt = text(
            """
            INSERT INTO events (
                name, description, registration_start, starts_at, ends_at, status,
                eligibility, facial_verification_enabled, location_monitoring_enabled,
                strict_location_validation, registration_location_id, venue_location_id, version
            )
            VALUES (
                :name, :description, :registration_start, :starts_at, :ends_at, :status,
                :eligibility, :facial_verification_enabled, :location_monitoring_enabled,
                :strict_location_validation, :registration_location_id, :venue_location_id, 0
            )
            RETURNING id
            """
        ).bindparams(*_event_binds())
        try:
            new_id = self.db.execute(stmt, _event_params(data, status)).fetchone().id
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self.get(new_id)

    def save(self, event: Event) -> Event:
        """Write back all fields; fails when someone else saved the event since it was read."""
        stmt = text(
            f"""
            UPDATE events
               SET {_EVENT_FIELDS},
                   version = version + 1,
                   updated_at = CURRENT_TIMESTAMP
             WHERE id = :id AND version = :version
            """
        ).bindparams(*_event_binds())
        params = _event_params(event, event.status)
        params.update(id=event.id, version=event.version)
        try:
            result = self.db.execute(stmt, params)
            if result.rowcount != 1:
                raise StateError(
                    f"Event '{event.name}' was modified by another operation; reload it and try again."
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self.get(event.id)

    def delete(self, event_id: int) -> None:
        try:
            self.db.execute(text("DELETE FROM events WHERE id = :id"), {"id": event_id})
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def update_status(self, event_id: int, expected: EventStatus, new: EventStatus) -> bool:
        try:
            result = self.db.execute(
                text(
                    """
                    UPDATE events
                       SET status = :new, version = version + 1, updated_at = CURRENT_TIMESTAMP
                     WHERE id = :id AND status = :expected
                    """
                ),
                {"id": event_id, "expected": expected.value, "new": new.value},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount == 1


class SqlAttendanceRepository:
    """Attendance records and their presence samples."""

    def __init__(self, db: Session):
        self.db = db

    def count_for_event(self, event_id: int) -> int:
        row = self.db.execute(
            text("SELECT COUNT(*) AS total FROM attendance_records WHERE event_id = :event_id"),
            {"event_id": event_id},
        ).fetchone()
        return row.total if row else 0

    def list_for_event(self, event_id: int) -> List[AttendanceRecord]:
        stmt = text(
            """
            SELECT id, student_id, event_id, location_id, status, reason, time_in, time_out
              FROM attendance_records
             WHERE event_id = :event_id
             ORDER BY id
            """
        ).columns(time_in=DateTime(timezone=True), time_out=DateTime(timezone=True))
        rows = self.db.execute(stmt, {"event_id": event_id}).fetchall()
        return [
            AttendanceRecord(
                id=r.id,
                student_id=r.student_id,
                event_id=r.event_id,
                location_id=r.location_id,
                status=r.status,
                reason=r.reason,
                time_in=r.time_in,
                time_out=r.time_out,
            )
            for r in rows
        ]

    def samples_for_event(self, event_id: int) -> Dict[int, List[PresenceSample]]:
        rows = self.db.execute(
            text(
                """
                SELECT ps.record_id, ps.timestamp_ms, ps.inside
                  FROM presence_samples ps
                  JOIN attendance_records ar ON ar.id = ps.record_id
                 WHERE ar.event_id = :event_id
                 ORDER BY ps.record_id, ps.timestamp_ms
                """
            ),
            {"event_id": event_id},
        ).fetchall()
        samples: Dict[int, List[PresenceSample]] = {}
        for r in rows:
            samples.setdefault(r.record_id, []).append(
                PresenceSample(timestamp_ms=r.timestamp_ms, inside=bool(r.inside))
            )
        return samples

    def apply_finalization(self, event_id: int, records: List[AttendanceRecord]) -> int:
        update_record = text(
            """
            UPDATE attendance_records
               SET status = :status, reason = :reason, time_out = :time_out
             WHERE id = :id AND event_id = :event_id
            """
        ).bindparams(bindparam("time_out", type_=DateTime(timezone=True)))
        insert_absentee = text(
            """
            INSERT INTO attendance_records (student_id, event_id, location_id, status, reason, time_in, time_out)
            VALUES (:student_id, :event_id, :location_id, :status, :reason, :time_in, :time_out)
            ON CONFLICT (student_id, event_id) DO NOTHING
            """
        ).bindparams(
            bindparam("time_in", type_=DateTime(timezone=True)),
            bindparam("time_out", type_=DateTime(timezone=True)),
        )
        inserted = 0
        try:
            for record in records:
                if record.id is not None:
                    self.db.execute(
                        update_record,
                        {
                            "id": record.id,
                            "event_id": event_id,
                            "status": record.status.value,
                            "reason": record.reason,
                            "time_out": record.time_out,
                        },
                    )
                else:
                    result = self.db.execute(
                        insert_absentee,
                        {
                            "student_id": record.student_id,
                            "event_id": event_id,
                            "location_id": record.location_id,
                            "status": record.status.value,
                            "reason": record.reason,
                            "time_in": record.time_in,
                            "time_out": record.time_out,
                        },
                    )
                    inserted += max(result.rowcount, 0)

            result = self.db.execute(
                text(
                    """
                    UPDATE events
                       SET status = :finalized, version = version + 1, updated_at = CURRENT_TIMESTAMP
                     WHERE id = :id AND status = :concluded
                    """
                ),
                {
                    "id": event_id,
                    "finalized": EventStatus.FINALIZED.value,
                    "concluded": EventStatus.CONCLUDED.value,
                },
            )
            if result.rowcount != 1:
                raise StateError("Event is no longer CONCLUDED; it was finalized or changed by another operation.")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Persisted finalization of event %s: %d record(s), %d inserted", event_id, len(records), inserted)
        return inserted


@contextmanager
def event_repository_scope() -> Iterator[SqlEventRepository]:
    """Event repository on its own session, for work outside a request."""
    db = SessionLocal()
    try:
        yield SqlEventRepository(db)
    finally:
        db.close()
