"""
API endpoints for background scheduler status and manual runs
(In production the timers drive these automatically; the run endpoints are for ops/backfills)
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from ..auth import require_admin_token
from ..domain.recurring.schemas import ScheduleRunResult, ScheduleRunSummary
from ..domain.reminders.schemas import ReminderResult, ReminderSummary
from ..workers.scheduler import SchedulerSupervisor, reminder_key

router = APIRouter(
    prefix="/scheduler", tags=["scheduler"], dependencies=[Depends(require_admin_token)]
)


class TimerStatus(BaseModel):
    key: str
    interval_seconds: float
    started_at: datetime
    last_run_at: Optional[datetime] = None
    runs: int
    failures: int
    last_error: Optional[str] = None


class RecurringRunResponse(BaseModel):
    summary: ScheduleRunSummary
    results: list[ScheduleRunResult]


class ReminderRunResponse(BaseModel):
    summary: ReminderSummary
    results: list[ReminderResult]


class TimerChange(BaseModel):
    key: str
    changed: bool


def get_supervisor(request: Request) -> SchedulerSupervisor:
    return request.app.state.supervisor


@router.get("/status", response_model=list[TimerStatus])
async def get_scheduler_status(supervisor: SchedulerSupervisor = Depends(get_supervisor)):
    """Registered timers with their run counters"""
    return [TimerStatus(**entry) for entry in supervisor.status()]


@router.post("/recurring/run", response_model=RecurringRunResponse)
async def run_recurring_schedules(supervisor: SchedulerSupervisor = Depends(get_supervisor)):
    """Manually trigger one recurring-schedule processing pass"""
    results = await supervisor.recurring_service.process_due_schedules(datetime.utcnow())
    return RecurringRunResponse(summary=ScheduleRunSummary.from_results(results), results=results)


@router.post("/reminders/{business_id}/run", response_model=ReminderRunResponse)
async def run_reminders(
    business_id: int,
    lead_hours: Optional[int] = Query(default=None, ge=1, le=168),
    supervisor: SchedulerSupervisor = Depends(get_supervisor),
):
    """Manually trigger one reminder pass for a business"""
    results = await supervisor.reminder_dispatcher.send_upcoming_reminders(business_id, lead_hours)
    return ReminderRunResponse(summary=ReminderSummary.from_results(results), results=results)


@router.post("/reminders/{business_id}/start", response_model=TimerChange)
async def start_business_reminders(
    business_id: int, supervisor: SchedulerSupervisor = Depends(get_supervisor)
):
    """Start the reminder timer for a business provisioned after boot"""
    changed = supervisor.start_reminders(business_id)
    return TimerChange(key=reminder_key(business_id), changed=changed)


@router.post("/reminders/{business_id}/stop", response_model=TimerChange)
async def stop_business_reminders(
    business_id: int, supervisor: SchedulerSupervisor = Depends(get_supervisor)
):
    """Stop the reminder timer for a deactivated business"""
    changed = supervisor.stop_reminders(business_id)
    return TimerChange(key=reminder_key(business_id), changed=changed)
