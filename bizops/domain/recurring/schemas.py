"""Recurring schedule schemas - Pydantic models for validation and run results"""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class RecurringScheduleItemCreate(BaseModel):
    description: str = Field(min_length=1)
    quantity: float = 1
    unitPrice: float
    amount: float


class RecurringScheduleCreate(BaseModel):
    """Schema for creating a new recurring schedule"""

    businessId: int
    customerId: int
    serviceId: Optional[int] = None
    staffId: Optional[int] = None
    name: str = Field(min_length=1)
    frequency: Literal["daily", "weekly", "biweekly", "monthly", "quarterly", "yearly"]
    interval: int = Field(default=1, ge=1)
    dayOfWeek: Optional[int] = Field(default=None, ge=0, le=6)
    dayOfMonth: Optional[int] = Field(default=None, ge=1, le=31)
    startDate: date
    endDate: Optional[date] = None
    jobTitle: str = Field(min_length=1)
    jobDescription: Optional[str] = None
    estimatedDuration: Optional[int] = None
    autoCreateInvoice: bool = True
    invoiceAmount: Optional[float] = None
    invoiceTax: Optional[float] = None
    invoiceNotes: Optional[str] = None
    items: list[RecurringScheduleItemCreate] = []

    @model_validator(mode="after")
    def check_dates(self):
        if self.endDate is not None and self.endDate < self.startDate:
            raise ValueError("endDate must be on or after startDate")
        return self


class ScheduleRunResult(BaseModel):
    """Outcome of processing one due schedule"""

    schedule_id: int
    scheduled_for: Optional[date] = None
    success: bool
    already_processed: bool = False
    job_id: Optional[int] = None
    invoice_id: Optional[int] = None
    next_run_date: Optional[date] = None
    completed: bool = False
    error: Optional[str] = None


class ScheduleRunSummary(BaseModel):
    created: int = 0
    already_processed: int = 0
    failed: int = 0

    @classmethod
    def from_results(cls, results: list[ScheduleRunResult]) -> "ScheduleRunSummary":
        return cls(
            created=sum(1 for r in results if r.success),
            already_processed=sum(1 for r in results if r.already_processed),
            failed=sum(1 for r in results if not r.success and not r.already_processed),
        )


class RecurringScheduleResponse(BaseModel):
    id: int
    businessId: int
    customerId: int
    serviceId: Optional[int] = None
    staffId: Optional[int] = None
    name: str
    frequency: str
    interval: int
    dayOfWeek: Optional[int] = None
    dayOfMonth: Optional[int] = None
    startDate: date
    endDate: Optional[date] = None
    nextRunDate: Optional[date] = None
    lastRunDate: Optional[date] = None
    status: str
    totalJobsCreated: int
    jobTitle: str
    autoCreateInvoice: bool
    invoiceAmount: Optional[float] = None
    invoiceTax: Optional[float] = None


class RecurringJobHistoryResponse(BaseModel):
    scheduledFor: date
    jobId: int
    invoiceId: Optional[int] = None
