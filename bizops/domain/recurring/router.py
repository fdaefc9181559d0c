"""Recurring schedule router - FastAPI endpoints for schedule lifecycle"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ...auth import require_admin_token
from ...models_recurring import RecurringSchedule
from .frequency import FrequencyError
from .schemas import (
    RecurringJobHistoryResponse,
    RecurringScheduleCreate,
    RecurringScheduleResponse,
    ScheduleRunResult,
)
from .service import RecurringScheduleService, ScheduleNotFoundError, ScheduleStateError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recurring-schedules",
    tags=["Recurring Schedules"],
    dependencies=[Depends(require_admin_token)],
)


def get_recurring_service() -> RecurringScheduleService:
    """Dependency injection for RecurringScheduleService"""
    return RecurringScheduleService()


def _to_response(schedule: RecurringSchedule) -> RecurringScheduleResponse:
    return RecurringScheduleResponse(
        id=schedule.id,
        businessId=schedule.business_id,
        customerId=schedule.customer_id,
        serviceId=schedule.service_id,
        staffId=schedule.staff_id,
        name=schedule.name,
        frequency=schedule.frequency,
        interval=schedule.interval,
        dayOfWeek=schedule.day_of_week,
        dayOfMonth=schedule.day_of_month,
        startDate=schedule.start_date,
        endDate=schedule.end_date,
        nextRunDate=schedule.next_run_date,
        lastRunDate=schedule.last_run_date,
        status=schedule.status,
        totalJobsCreated=schedule.total_jobs_created,
        jobTitle=schedule.job_title,
        autoCreateInvoice=bool(schedule.auto_create_invoice),
        invoiceAmount=schedule.invoice_amount,
        invoiceTax=schedule.invoice_tax,
    )


def _change_status(action, schedule_id: int) -> RecurringScheduleResponse:
    try:
        return _to_response(action(schedule_id))
    except ScheduleNotFoundError:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    except ScheduleStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=list[RecurringScheduleResponse])
async def list_schedules(
    business_id: int = Query(...),
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    """Get all recurring schedules for a business"""
    return [_to_response(s) for s in service.list_schedules(business_id)]


@router.post("", response_model=RecurringScheduleResponse, status_code=201)
async def create_schedule(
    data: RecurringScheduleCreate,
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    """Create a new recurring schedule"""
    try:
        schedule = service.create_schedule(data)
    except FrequencyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScheduleStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_response(schedule)


@router.get("/{schedule_id}", response_model=RecurringScheduleResponse)
async def get_schedule(
    schedule_id: int,
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    """Get a specific recurring schedule"""
    schedule = service.get_schedule(schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    return _to_response(schedule)


@router.get("/{schedule_id}/history", response_model=list[RecurringJobHistoryResponse])
async def get_schedule_history(
    schedule_id: int,
    limit: int = Query(default=10, ge=1, le=100),
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    """Most recent occurrences generated by a schedule"""
    try:
        history = service.list_history(schedule_id, limit)
    except ScheduleNotFoundError:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    return [
        RecurringJobHistoryResponse(scheduledFor=h.scheduled_for, jobId=h.job_id, invoiceId=h.invoice_id)
        for h in history
    ]


@router.post("/{schedule_id}/pause", response_model=RecurringScheduleResponse)
async def pause_schedule(
    schedule_id: int,
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    return _change_status(service.pause_schedule, schedule_id)


@router.post("/{schedule_id}/resume", response_model=RecurringScheduleResponse)
async def resume_schedule(
    schedule_id: int,
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    return _change_status(service.resume_schedule, schedule_id)


@router.post("/{schedule_id}/cancel", response_model=RecurringScheduleResponse)
async def cancel_schedule(
    schedule_id: int,
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    return _change_status(service.cancel_schedule, schedule_id)


@router.post("/{schedule_id}/run", response_model=ScheduleRunResult)
async def run_schedule(
    schedule_id: int,
    service: RecurringScheduleService = Depends(get_recurring_service),
):
    """Create the schedule's next job/invoice now instead of waiting for the timer"""
    try:
        return await service.run_schedule(schedule_id)
    except ScheduleNotFoundError:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    except ScheduleStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
