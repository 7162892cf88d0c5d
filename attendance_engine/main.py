"""FastAPI application for the attendance engine."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from attendance_engine.events.repository import event_repository_scope
from attendance_engine.events.routes import router as events_router
from attendance_engine.events.scheduler import StatusScheduler
from attendance_engine.exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    StateError,
    ValidationError,
)
from attendance_engine.metrics import router as metrics_router
from attendance_engine.schemas import ErrorResponse
from attendance_engine.settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    StateError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = None
    if settings.scheduler_enabled:
        scheduler = StatusScheduler(event_repository_scope, settings.scheduler_interval_seconds)
        task = asyncio.create_task(scheduler.run())
    yield
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Status scheduler task cancelled")


app = FastAPI(
    title="Attendance Engine",
    description="Event lifecycle and attendance evaluation",
    version="1.0.0",
    lifespan=lifespan,
)

# Observability
app.include_router(metrics_router)  # exposes GET /metrics

# Functional routers
app.include_router(events_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    body = ErrorResponse(
        kind=exc.kind,
        detail=str(exc),
        conflicts=[c.model_dump(mode="json") for c in exc.conflicts]
        if isinstance(exc, ConflictError)
        else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# --------------------
# Root
# --------------------
@app.get("/")
async def root():
    return {"message": "Attendance engine", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
