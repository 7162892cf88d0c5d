"""Pydantic schemas for attendance records and presence samples."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from attendance_engine.schemas import AttendanceStatus
from attendance_engine.timeutils import as_utc


class PresenceSample(BaseModel):
    """One geofence ping: was the device inside the venue at that instant."""

    timestamp_ms: int = Field(..., description="Epoch milliseconds")
    inside: bool

    model_config = ConfigDict(from_attributes=True, frozen=True)


class AttendanceRecord(BaseModel):
    """Attendance of one student at one event."""

    id: Optional[int] = None
    student_id: int
    event_id: int
    location_id: Optional[int] = None
    status: AttendanceStatus
    reason: Optional[str] = None
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("time_in", "time_out")
    @classmethod
    def ensure_utc(cls, v):
        return as_utc(v)


class FinalizationResponse(BaseModel):
    """Summary of a finalization run."""

    event_id: int
    updated_count: int
    created_count: int
    records: List[AttendanceRecord]
