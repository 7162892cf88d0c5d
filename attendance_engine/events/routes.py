"""FastAPI routes for events."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from attendance_engine.attendance.schemas import FinalizationResponse
from attendance_engine.db import get_db
from attendance_engine.events.repository import SqlAttendanceRepository, SqlEventRepository
from attendance_engine.events.schemas import Event, EventCreate, EventStatusResponse, EventUpdate
from attendance_engine.events.service import EventService
from attendance_engine.locations.repository import SqlLocationRepository
from attendance_engine.students.repository import SqlRosterRepository

router = APIRouter(prefix="/events", tags=["events"])


def get_event_service(db: Session = Depends(get_db)) -> EventService:
    """Build the service on the request's session."""
    return EventService(
        events=SqlEventRepository(db),
        locations=SqlLocationRepository(db),
        roster=SqlRosterRepository(db),
        attendance=SqlAttendanceRepository(db),
    )


@router.post("", response_model=Event, status_code=status.HTTP_201_CREATED)
def create_event(data: EventCreate, service: EventService = Depends(get_event_service)):
    """Create an event; it starts out UPCOMING."""
    return service.create_event(data)


@router.get("/{event_id}", response_model=Event)
def get_event(event_id: int, service: EventService = Depends(get_event_service)):
    return service.get_event(event_id)


@router.put("/{event_id}", response_model=Event)
def update_event(
    event_id: int, data: EventUpdate, service: EventService = Depends(get_event_service)
):
    """Partially update an event that has not concluded yet."""
    return service.update_event(event_id, data)


@router.post("/{event_id}/cancel", response_model=Event)
def cancel_event(event_id: int, service: EventService = Depends(get_event_service)):
    return service.cancel_event(event_id)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(event_id: int, service: EventService = Depends(get_event_service)):
    """Delete an event that has no attendance records."""
    service.delete_event(event_id)


@router.get("/{event_id}/status", response_model=EventStatusResponse)
def evaluate_status(event_id: int, service: EventService = Depends(get_event_service)):
    """Stored status next to the status the schedule implies right now."""
    return service.evaluate_status(event_id)


@router.post("/{event_id}/finalize", response_model=FinalizationResponse)
def finalize_event(event_id: int, service: EventService = Depends(get_event_service)):
    """Finalize attendance for a CONCLUDED event."""
    return service.finalize_event(event_id)
