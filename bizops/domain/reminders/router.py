"""Reminder router - manual invoice reminders and job follow-ups"""

from fastapi import APIRouter, Depends, HTTPException

from ...auth import require_admin_token
from .schemas import InvoiceReminderRequest, JobFollowUpRequest, MessageResult
from .service import ReminderDispatcher

router = APIRouter(
    prefix="/reminders",
    tags=["Reminders"],
    dependencies=[Depends(require_admin_token)],
)


def get_reminder_dispatcher() -> ReminderDispatcher:
    """Dependency injection for ReminderDispatcher"""
    return ReminderDispatcher()


def _respond(result: MessageResult) -> MessageResult:
    if not result.found:
        raise HTTPException(status_code=404, detail=result.error)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result


@router.post("/invoices/{invoice_id}", response_model=MessageResult)
async def send_invoice_reminder(
    invoice_id: int,
    data: InvoiceReminderRequest,
    dispatcher: ReminderDispatcher = Depends(get_reminder_dispatcher),
):
    """Send a payment reminder SMS for an unpaid invoice"""
    return _respond(await dispatcher.send_invoice_reminder(invoice_id, data.businessId))


@router.post("/jobs/{job_id}/follow-up", response_model=MessageResult)
async def send_job_follow_up(
    job_id: int,
    data: JobFollowUpRequest,
    dispatcher: ReminderDispatcher = Depends(get_reminder_dispatcher),
):
    """Send a thank-you / review request SMS for a completed job"""
    return _respond(await dispatcher.send_job_follow_up(job_id, data.businessId, data.reviewLink))
