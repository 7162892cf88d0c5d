"""Periodic re-evaluation of event statuses."""
import asyncio
import logging
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Callable, Optional

from attendance_engine.events.lifecycle import evaluate_event_status
from attendance_engine.metrics import SCHEDULER_FAILURES, STATUS_TRANSITIONS
from attendance_engine.schemas import SCHEDULED_EVENT_STATUSES
from attendance_engine.timeutils import utc_now

logger = logging.getLogger(__name__)

RepositoryScope = Callable[[], AbstractContextManager]


class StatusScheduler:
    """
    Moves events through UPCOMING -> REGISTRATION -> ONGOING -> CONCLUDED as
    time passes.

    Each tick loads the events that can still change with time and writes a
    new status with a conditional update, so a concurrent admin action wins.
    A failure on one event is logged and the tick carries on; the event is
    picked up again on the next tick. CONCLUDED is as far as the scheduler
    goes: finalization is always an explicit admin action.
    """

    def __init__(
        self,
        repository_scope: RepositoryScope,
        interval_seconds: float,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository_scope = repository_scope
        self.interval_seconds = interval_seconds
        self.clock = clock

    def tick(self, now: Optional[datetime] = None) -> int:
        """Run one evaluation pass and return the number of events updated."""
        now = now or self.clock()
        updated = 0
        with self.repository_scope() as events:
            for event in events.list_by_statuses(SCHEDULED_EVENT_STATUSES):
                new_status = evaluate_event_status(event, now)
                if new_status == event.status:
                    continue
                try:
                    changed = events.update_status(event.id, event.status, new_status)
                except Exception:
                    SCHEDULER_FAILURES.inc()
                    logger.exception("Failed to update status of event %s", event.id)
                    continue
                if changed:
                    updated += 1
                    STATUS_TRANSITIONS.labels(event.status.value, new_status.value).inc()
                    logger.info(
                        "Event %s (%s) moved from %s to %s",
                        event.id, event.name, event.status.value, new_status.value,
                    )
                else:
                    logger.info("Event %s changed concurrently; re-evaluating next tick", event.id)
        return updated

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Tick every `interval_seconds` until `stop` is set or the task is cancelled."""
        logger.info("Status scheduler started (every %ss)", self.interval_seconds)
        while stop is None or not stop.is_set():
            try:
                await asyncio.to_thread(self.tick)
            except Exception:
                logger.exception("Status scheduler tick failed")
            await asyncio.sleep(self.interval_seconds)
        logger.info("Status scheduler stopped")
