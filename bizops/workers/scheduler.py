"""
Background Scheduler Supervisor
Owns the interval timers that drive recurring-job processing, appointment reminders
and the overdue invoice sweep inside the API (or a standalone worker) process.

Timers are keyed:
- recurring-jobs       one global timer, every RECURRING_INTERVAL_SECONDS
- reminder-{id}        one per active business, every REMINDER_INTERVAL_SECONDS
- overdue-invoices     one global timer, every OVERDUE_INVOICE_INTERVAL_SECONDS

At most one timer runs per key. Each timer is an asyncio task that ticks once
immediately, then once per interval until stopped; stopping never interrupts
a tick that is already running.
"""

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ..config import (
    OVERDUE_INVOICE_INTERVAL_SECONDS,
    RECURRING_INTERVAL_SECONDS,
    REMINDER_INTERVAL_SECONDS,
)
from ..database import SessionLocal
from ..domain.businesses.repository import BusinessRepository
from ..domain.recurring.schemas import ScheduleRunSummary
from ..domain.recurring.service import RecurringScheduleService
from ..domain.reminders.schemas import ReminderSummary
from ..domain.reminders.service import ReminderDispatcher
from ..services.invoice_automation import run_overdue_invoice_check

logger = logging.getLogger(__name__)

RECURRING_JOBS_KEY = "recurring-jobs"
OVERDUE_INVOICES_KEY = "overdue-invoices"


def reminder_key(business_id: int) -> str:
    return f"reminder-{business_id}"


@dataclass
class ScheduledTimer:
    key: str
    interval: float
    task: Callable[[], Any]
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    runner: Optional[asyncio.Task] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    runs: int = 0
    failures: int = 0

    def request_stop(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self.stop_event.set()
        else:
            self.loop.call_soon_threadsafe(self.stop_event.set)


class SchedulerSupervisor:
    """Registry of running timers plus the tasks they drive"""

    def __init__(
        self,
        recurring_service: Optional[RecurringScheduleService] = None,
        reminder_dispatcher: Optional[ReminderDispatcher] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        reminder_interval: float = REMINDER_INTERVAL_SECONDS,
        recurring_interval: float = RECURRING_INTERVAL_SECONDS,
        overdue_interval: float = OVERDUE_INVOICE_INTERVAL_SECONDS,
        reminder_lead_hours: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.recurring_service = recurring_service or RecurringScheduleService(session_factory)
        self.reminder_dispatcher = reminder_dispatcher or ReminderDispatcher(
            session_factory=session_factory
        )
        self.reminder_interval = reminder_interval
        self.recurring_interval = recurring_interval
        self.overdue_interval = overdue_interval
        # None = per-business notification settings
        self.reminder_lead_hours = reminder_lead_hours

        self._timers: dict[str, ScheduledTimer] = {}
        self._lock = threading.Lock()

    # Registry

    def start(self, key: str, interval: float, task: Callable[[], Any]) -> bool:
        """
        Start a timer under `key` unless one is already registered

        Must be called with a running event loop. The task may be a plain or
        async callable; it runs immediately and then every `interval` seconds.

        Returns:
            True if a new timer was started, False if `key` was already running
        """
        loop = asyncio.get_running_loop()

        with self._lock:
            if key in self._timers:
                logger.info(f"Scheduler {key} already running")
                return False

            timer = ScheduledTimer(key=key, interval=interval, task=task, loop=loop)
            self._timers[key] = timer
            timer.runner = loop.create_task(self._run(timer), name=f"scheduler:{key}")

        logger.info(f"⏱️ Started scheduler {key} (every {interval:g}s)")
        return True

    def stop(self, key: str) -> bool:
        """Stop and deregister the timer for `key`; no-op if it is not running"""
        with self._lock:
            timer = self._timers.pop(key, None)

        if not timer:
            return False

        timer.request_stop()
        logger.info(f"Stopped scheduler: {key}")
        return True

    def stop_all(self) -> list[asyncio.Task]:
        """
        Stop every registered timer

        Returns the runner tasks so callers can await in-flight ticks.
        """
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()

        for timer in timers:
            timer.request_stop()
            logger.info(f"Stopped scheduler: {timer.key}")

        return [timer.runner for timer in timers if timer.runner is not None]

    async def shutdown(self, timeout: Optional[float] = 30.0) -> None:
        """Stop all timers and wait for ticks already in progress to finish"""
        runners = self.stop_all()
        if not runners:
            return

        done, pending = await asyncio.wait(runners, timeout=timeout)
        if pending:
            logger.warning(f"⚠️ {len(pending)} scheduler tick(s) still running after {timeout}s, cancelling")
            for runner in pending:
                runner.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def is_running(self, key: str) -> bool:
        with self._lock:
            return key in self._timers

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def status(self) -> list[dict]:
        with self._lock:
            timers = sorted(self._timers.values(), key=lambda t: t.key)
        return [
            {
                "key": timer.key,
                "interval_seconds": timer.interval,
                "started_at": timer.started_at,
                "last_run_at": timer.last_run_at,
                "runs": timer.runs,
                "failures": timer.failures,
                "last_error": timer.last_error,
            }
            for timer in timers
        ]

    async def _run(self, timer: ScheduledTimer) -> None:
        while not timer.stop_event.is_set():
            await self._tick(timer)
            if timer.stop_event.is_set():
                break
            try:
                await asyncio.wait_for(timer.stop_event.wait(), timeout=timer.interval)
            except asyncio.TimeoutError:
                pass

    async def _tick(self, timer: ScheduledTimer) -> Any:
        """Run one tick; any exception is logged and the timer keeps its schedule"""
        try:
            result = timer.task()
            if inspect.isawaitable(result):
                result = await result
            timer.last_error = None
            return result
        except Exception as e:
            timer.failures += 1
            timer.last_error = str(e) or type(e).__name__
            logger.error(f"❌ Scheduler {timer.key} tick failed: {type(e).__name__}: {e}", exc_info=True)
            return None
        finally:
            timer.runs += 1
            timer.last_run_at = datetime.utcnow()

    # Application timers

    def start_all(self) -> None:
        """Start reminder timers for every active business plus the global timers"""
        try:
            db = self.session_factory()
            try:
                business_ids = BusinessRepository.list_active_businesses(db)
            finally:
                db.close()

            for business_id in business_ids:
                self.start_reminders(business_id)

            if not business_ids:
                logger.info("No active businesses found, reminder schedulers skipped")
        except Exception as e:
            logger.error(f"❌ Error starting reminder schedulers: {e}")

        self.start(RECURRING_JOBS_KEY, self.recurring_interval, self.run_recurring_check)
        self.start(OVERDUE_INVOICES_KEY, self.overdue_interval, self.run_overdue_invoice_check)
        logger.info("All schedulers started")

    def start_reminders(self, business_id: int) -> bool:
        return self.start(
            reminder_key(business_id),
            self.reminder_interval,
            lambda: self.run_reminder_check(business_id),
        )

    def stop_reminders(self, business_id: int) -> bool:
        return self.stop(reminder_key(business_id))

    async def run_reminder_check(self, business_id: int) -> ReminderSummary:
        logger.debug(f"Running reminder check for business {business_id} at {datetime.utcnow().isoformat()}")
        results = await self.reminder_dispatcher.send_upcoming_reminders(
            business_id, self.reminder_lead_hours
        )
        summary = ReminderSummary.from_results(results)
        if results:
            logger.info(
                f"Reminder results for business {business_id}: "
                f"{summary.sent} sent, {summary.skipped} skipped, {summary.failed} failed"
            )
        return summary

    async def run_recurring_check(self) -> ScheduleRunSummary:
        logger.debug(f"Running recurring jobs check at {datetime.utcnow().isoformat()}")
        results = await self.recurring_service.process_due_schedules(datetime.utcnow())
        summary = ScheduleRunSummary.from_results(results)
        if results:
            logger.info(
                f"Recurring jobs processed: {summary.created} created, "
                f"{summary.already_processed} already processed, {summary.failed} failed"
            )
        return summary

    async def run_overdue_invoice_check(self) -> dict:
        return await run_overdue_invoice_check(self.session_factory)
