"""SQLAlchemy models for events and their attendance."""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, JSON, BigInteger, ForeignKey, UniqueConstraint,
)
from sqlalchemy.sql import func
from attendance_engine.db import Base


class Event(Base):
    """Event model."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    registration_start = Column(DateTime(timezone=True), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    eligibility = Column(JSON, nullable=False)
    facial_verification_enabled = Column(Boolean, nullable=False, default=False)
    location_monitoring_enabled = Column(Boolean, nullable=False, default=False)
    strict_location_validation = Column(Boolean, nullable=False, default=False)
    registration_location_id = Column(
        Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True
    )
    venue_location_id = Column(
        Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AttendanceRecord(Base):
    """One student's attendance at one event."""

    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("student_id", "event_id", name="uq_attendance_student_event"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_id = Column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id = Column(
        Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(String(32), nullable=False)
    reason = Column(Text, nullable=True)
    time_in = Column(DateTime(timezone=True), nullable=True)
    time_out = Column(DateTime(timezone=True), nullable=True)


class PresenceSample(Base):
    """Append-only geofence ping attached to an attendance record."""

    __tablename__ = "presence_samples"

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(
        Integer, ForeignKey("attendance_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    timestamp_ms = Column(BigInteger, nullable=False)
    inside = Column(Boolean, nullable=False)
