"""Reminder schemas - per-appointment outcomes and one-off message requests"""

from typing import Literal, Optional

from pydantic import BaseModel


class ReminderResult(BaseModel):
    appointment_id: int
    status: Literal["sent", "skipped", "failed"]
    channels: list[str] = []
    message: Optional[str] = None
    error: Optional[str] = None


class ReminderSummary(BaseModel):
    sent: int = 0
    skipped: int = 0
    failed: int = 0

    @classmethod
    def from_results(cls, results: list[ReminderResult]) -> "ReminderSummary":
        return cls(
            sent=sum(1 for r in results if r.status == "sent"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            failed=sum(1 for r in results if r.status == "failed"),
        )


class MessageResult(BaseModel):
    """Outcome of an invoice reminder or job follow-up"""

    reference_id: int
    success: bool
    found: bool = True
    error: Optional[str] = None


class InvoiceReminderRequest(BaseModel):
    businessId: int


class JobFollowUpRequest(BaseModel):
    businessId: int
    reviewLink: Optional[str] = None
