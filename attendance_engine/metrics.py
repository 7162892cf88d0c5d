from fastapi import APIRouter
from starlette.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Counter

router = APIRouter()

# incremented by the scheduler and the event service
STATUS_TRANSITIONS = Counter(
    "event_status_transitions_total",
    "Event status changes persisted",
    ["from_status", "to_status"],
)
SCHEDULER_FAILURES = Counter(
    "status_scheduler_failures_total",
    "Events whose status update failed during a scheduler tick",
)
EVENTS_FINALIZED = Counter("events_finalized_total", "Events moved to FINALIZED")
FINALIZED_RECORDS = Counter(
    "finalized_attendance_records_total",
    "Attendance records written by finalization",
    ["status"],
)


@router.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
