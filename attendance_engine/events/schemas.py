"""Pydantic schemas for events."""
from typing import Optional, List
from datetime import datetime

from pydantic import BaseModel, Field, ConfigDict, field_validator  # v2

from attendance_engine.schemas import EventStatus
from attendance_engine.timeutils import as_utc

_TIMESTAMP_FIELDS = ("registration_start", "start", "end")


class EligibilitySpec(BaseModel):
    """Who is expected at an event. Resolved against the roster at evaluation time."""
    all_students: bool = Field(default=False, description="Every active student")
    cluster_ids: List[str] = Field(default_factory=list)
    course_ids: List[str] = Field(default_factory=list)
    section_ids: List[str] = Field(default_factory=list)
    year_levels: List[int] = Field(default_factory=list, description="Optional year-level filter")

    model_config = ConfigDict(from_attributes=True)


class EventBase(BaseModel):
    """Base schema for event data."""
    name: str = Field(..., min_length=1, max_length=200, description="Event name")
    description: Optional[str] = None
    registration_start: datetime = Field(..., description="Registration window opens")
    start: datetime = Field(..., description="Event starts (registration closes)")
    end: datetime = Field(..., description="Event ends")
    eligibility: EligibilitySpec = Field(..., description="Who is expected to attend")
    facial_verification_enabled: bool = False
    location_monitoring_enabled: bool = False
    strict_location_validation: bool = False
    registration_location_id: Optional[int] = Field(
        None, description="Registration area; None when the venue doubles as registration area"
    )
    venue_location_id: int = Field(..., description="Event venue")

    @field_validator(*_TIMESTAMP_FIELDS)
    @classmethod
    def ensure_utc(cls, v):
        return as_utc(v)


class EventCreate(EventBase):
    """Schema for creating an event."""
    pass


class EventUpdate(BaseModel):
    """Partial update for an event; all fields optional."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    registration_start: Optional[datetime] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    eligibility: Optional[EligibilitySpec] = None
    facial_verification_enabled: Optional[bool] = None
    location_monitoring_enabled: Optional[bool] = None
    strict_location_validation: Optional[bool] = None
    registration_location_id: Optional[int] = None
    venue_location_id: Optional[int] = None
    # rejected when set: status only changes through the scheduler or admin actions
    status: Optional[EventStatus] = None

    @field_validator(*_TIMESTAMP_FIELDS)
    @classmethod
    def ensure_utc(cls, v):
        return as_utc(v)


class Event(EventBase):
    """Event entity."""
    id: int
    status: EventStatus = EventStatus.UPCOMING
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConflictingEvent(BaseModel):
    """An existing event that already occupies a requested location."""
    event_id: int
    name: str
    registration_start: datetime
    start: datetime
    end: datetime

    def describe(self) -> str:
        return (
            f"{self.name} (Registration: {self.registration_start.isoformat()}-{self.start.isoformat()}, "
            f"Start-End: {self.start.isoformat()}-{self.end.isoformat()})"
        )


class EventStatusResponse(BaseModel):
    """Schema for a status evaluation."""
    event_id: int
    stored_status: EventStatus
    evaluated_status: EventStatus
    evaluated_at: datetime
