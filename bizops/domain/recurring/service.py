"""Recurring schedule service - materializes due occurrences into jobs and invoices"""

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import INVOICE_DUE_DAYS
from ...database import SessionLocal
from ...models_recurring import RecurringJobHistory, RecurringSchedule
from .frequency import FrequencyError, compute_first_run, compute_next_run, validate_cadence
from .repository import RecurringRepository
from .schemas import RecurringScheduleCreate, ScheduleRunResult

logger = logging.getLogger(__name__)


class ScheduleNotFoundError(LookupError):
    pass


class ScheduleStateError(ValueError):
    """Raised for a status change the schedule lifecycle does not allow"""


# Allowed manual status transitions; completed is set by the processor only
VALID_TRANSITIONS = {
    "active": ["paused", "cancelled"],
    "paused": ["active", "cancelled"],
    "completed": [],
    "cancelled": [],
}


def _as_date(now: Union[date, datetime, None]) -> date:
    if now is None:
        return datetime.utcnow().date()
    if isinstance(now, datetime):
        return now.date()
    return now


class RecurringScheduleService:
    """Service layer for recurring schedule processing and lifecycle"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        invoice_due_days: int = INVOICE_DUE_DAYS,
    ):
        self.session_factory = session_factory
        self.invoice_due_days = invoice_due_days
        self.repo = RecurringRepository()

    async def process_due_schedules(
        self, now: Union[date, datetime, None] = None
    ) -> list[ScheduleRunResult]:
        """
        Process every schedule that is due as of `now`

        Each schedule runs in its own transaction and produces exactly one
        occurrence per call; a failing schedule is reported and skipped.

        Returns:
            One ScheduleRunResult per due schedule
        """
        today = _as_date(now)
        due = await asyncio.to_thread(self._list_due, today)

        if not due:
            logger.debug(f"ℹ️ No recurring schedules due as of {today}")
            return []

        logger.info(f"🔁 Processing {len(due)} due recurring schedules (as of {today})")

        results = []
        for schedule_id, scheduled_for in due:
            results.append(
                await asyncio.to_thread(self._process_schedule, schedule_id, scheduled_for)
            )
        return results

    async def run_schedule(self, schedule_id: int) -> ScheduleRunResult:
        """
        Materialize the schedule's next occurrence now, even if it is not due yet

        Goes through the same transaction as the timer, so running an
        occurrence that already exists creates nothing.

        Raises:
            ScheduleNotFoundError: Unknown schedule
            ScheduleStateError: Schedule is not active or has no occurrence left
        """
        scheduled_for = await asyncio.to_thread(self._upcoming_occurrence, schedule_id)
        logger.info(f"▶️ Manual run of schedule {schedule_id} for {scheduled_for}")
        return await asyncio.to_thread(self._process_schedule, schedule_id, scheduled_for)

    def _list_due(self, today: date) -> list[tuple[int, date]]:
        db = self.session_factory()
        try:
            return [
                (schedule.id, schedule.next_run_date)
                for schedule in self.repo.list_due_schedules(db, today)
            ]
        finally:
            db.close()

    def _upcoming_occurrence(self, schedule_id: int) -> date:
        db = self.session_factory()
        try:
            schedule = self.repo.get_schedule(db, schedule_id)
            if not schedule:
                raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
            if schedule.status != "active":
                raise ScheduleStateError(f"Schedule is not active (status: {schedule.status})")
            if schedule.next_run_date is None or (
                schedule.end_date is not None and schedule.next_run_date > schedule.end_date
            ):
                raise ScheduleStateError(f"Schedule {schedule_id} has no occurrence left to run")
            return schedule.next_run_date
        finally:
            db.close()

    def _process_schedule(self, schedule_id: int, scheduled_for: date) -> ScheduleRunResult:
        """Create the job/invoice/history for one occurrence and advance the schedule"""
        db = self.session_factory()
        try:
            schedule = self.repo.get_schedule(db, schedule_id, for_update=True)
            if not schedule:
                raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")

            if self.repo.history_exists(db, schedule_id, scheduled_for):
                return self._already_processed(db, schedule, scheduled_for)

            if schedule.status != "active":
                raise ScheduleStateError(f"Schedule is not active (status: {schedule.status})")

            if schedule.next_run_date != scheduled_for:
                # Another run advanced the pointer after this tick listed it
                return ScheduleRunResult(
                    schedule_id=schedule_id,
                    scheduled_for=scheduled_for,
                    success=False,
                    already_processed=True,
                    next_run_date=schedule.next_run_date,
                )

            job = self.repo.create_job(db, schedule, scheduled_for)

            invoice = None
            if schedule.auto_create_invoice:
                invoice = self.repo.create_invoice(
                    db, schedule, job, scheduled_for, due_days=self.invoice_due_days
                )

            self.repo.create_history(
                db,
                schedule_id=schedule.id,
                job_id=job.id,
                scheduled_for=scheduled_for,
                invoice_id=invoice.id if invoice else None,
            )

            next_run_date = compute_next_run(schedule, scheduled_for)
            completed = schedule.end_date is not None and next_run_date > schedule.end_date

            self.repo.update_schedule_run(
                db,
                schedule,
                last_run_date=scheduled_for,
                next_run_date=next_run_date,
                total_jobs_created=(schedule.total_jobs_created or 0) + 1,
                status="completed" if completed else schedule.status,
            )
            db.commit()

            logger.info(
                f"✅ Schedule {schedule_id}: job {job.id}"
                + (f", invoice {invoice.invoice_number}" if invoice else "")
                + f" for {scheduled_for}; next run {next_run_date}"
                + (" (schedule completed)" if completed else "")
            )
            return ScheduleRunResult(
                schedule_id=schedule_id,
                scheduled_for=scheduled_for,
                success=True,
                job_id=job.id,
                invoice_id=invoice.id if invoice else None,
                next_run_date=next_run_date,
                completed=completed,
            )

        except IntegrityError as e:
            db.rollback()
            if self.repo.history_exists(db, schedule_id, scheduled_for):
                logger.info(
                    f"ℹ️ Schedule {schedule_id} occurrence {scheduled_for} recorded concurrently, skipping"
                )
                return ScheduleRunResult(
                    schedule_id=schedule_id,
                    scheduled_for=scheduled_for,
                    success=False,
                    already_processed=True,
                )
            logger.error(f"❌ Integrity error processing schedule {schedule_id}: {e}")
            return self._failed(schedule_id, scheduled_for, e)

        except FrequencyError as e:
            db.rollback()
            logger.error(f"❌ Schedule {schedule_id} has an invalid cadence: {e}")
            return self._failed(schedule_id, scheduled_for, e)

        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error processing schedule {schedule_id}: {type(e).__name__}: {e}")
            return self._failed(schedule_id, scheduled_for, e)

        finally:
            db.close()

    def _already_processed(
        self, db: Session, schedule: RecurringSchedule, scheduled_for: date
    ) -> ScheduleRunResult:
        """
        The occurrence already has a history row: create nothing

        If the pointer was left on that occurrence it is moved past it so the
        schedule does not stay due forever; the job counter is untouched.
        """
        logger.info(f"ℹ️ Schedule {schedule.id} occurrence {scheduled_for} already processed")
        next_run_date = schedule.next_run_date
        completed = False

        if schedule.status == "active" and schedule.next_run_date == scheduled_for:
            next_run_date = compute_next_run(schedule, scheduled_for)
            completed = schedule.end_date is not None and next_run_date > schedule.end_date
            self.repo.update_schedule_run(
                db,
                schedule,
                last_run_date=scheduled_for,
                next_run_date=next_run_date,
                total_jobs_created=schedule.total_jobs_created or 0,
                status="completed" if completed else schedule.status,
            )
            db.commit()
            logger.warning(
                f"⚠️ Schedule {schedule.id} pointer was stale; advanced to {next_run_date}"
            )

        return ScheduleRunResult(
            schedule_id=schedule.id,
            scheduled_for=scheduled_for,
            success=False,
            already_processed=True,
            next_run_date=next_run_date,
            completed=completed,
        )

    @staticmethod
    def _failed(schedule_id: int, scheduled_for: date, error: Exception) -> ScheduleRunResult:
        return ScheduleRunResult(
            schedule_id=schedule_id,
            scheduled_for=scheduled_for,
            success=False,
            error=str(error) or type(error).__name__,
        )

    # Lifecycle

    def create_schedule(self, data: RecurringScheduleCreate) -> RecurringSchedule:
        """Create an active schedule whose first run is the first occurrence on/after startDate"""
        validate_cadence(data.frequency, data.interval, data.dayOfWeek, data.dayOfMonth)
        first_run = compute_first_run(data.frequency, data.startDate, data.dayOfWeek, data.dayOfMonth)
        if data.endDate is not None and first_run > data.endDate:
            raise ScheduleStateError(
                f"No occurrence between {data.startDate} and {data.endDate}"
            )

        items = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": item.unitPrice,
                "amount": item.amount,
            }
            for item in data.items
        ]

        db = self.session_factory()
        try:
            schedule = self.repo.create_schedule(
                db,
                items,
                business_id=data.businessId,
                customer_id=data.customerId,
                service_id=data.serviceId,
                staff_id=data.staffId,
                name=data.name,
                frequency=data.frequency,
                interval=data.interval,
                day_of_week=data.dayOfWeek,
                day_of_month=data.dayOfMonth,
                start_date=data.startDate,
                end_date=data.endDate,
                next_run_date=first_run,
                status="active",
                total_jobs_created=0,
                job_title=data.jobTitle,
                job_description=data.jobDescription,
                estimated_duration=data.estimatedDuration,
                auto_create_invoice=data.autoCreateInvoice,
                invoice_amount=data.invoiceAmount,
                invoice_tax=data.invoiceTax,
                invoice_notes=data.invoiceNotes,
            )
            db.commit()
            db.refresh(schedule)
            logger.info(
                f"📅 Recurring schedule {schedule.id} created for business {data.businessId}: "
                f"{data.frequency} x{data.interval}, first run {first_run}"
            )
            return schedule
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def pause_schedule(self, schedule_id: int) -> RecurringSchedule:
        return self._transition(schedule_id, "paused")

    def resume_schedule(self, schedule_id: int) -> RecurringSchedule:
        return self._transition(schedule_id, "active")

    def cancel_schedule(self, schedule_id: int) -> RecurringSchedule:
        return self._transition(schedule_id, "cancelled")

    def _transition(self, schedule_id: int, new_status: str) -> RecurringSchedule:
        db = self.session_factory()
        try:
            schedule = self.repo.get_schedule(db, schedule_id, for_update=True)
            if not schedule:
                raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")

            if schedule.status == new_status:
                return schedule
            if new_status not in VALID_TRANSITIONS.get(schedule.status, []):
                raise ScheduleStateError(
                    f"Cannot move schedule {schedule_id} from {schedule.status} to {new_status}"
                )

            old_status = schedule.status
            schedule.status = new_status
            db.commit()
            db.refresh(schedule)
            logger.info(f"✅ Schedule {schedule_id} transitioned: {old_status} → {new_status}")
            return schedule
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_schedule(self, schedule_id: int) -> Optional[RecurringSchedule]:
        db = self.session_factory()
        try:
            return self.repo.get_schedule(db, schedule_id)
        finally:
            db.close()

    def list_schedules(self, business_id: int) -> list[RecurringSchedule]:
        db = self.session_factory()
        try:
            return self.repo.list_schedules(db, business_id)
        finally:
            db.close()

    def list_history(self, schedule_id: int, limit: int = 10) -> list[RecurringJobHistory]:
        """Most recent occurrences first"""
        db = self.session_factory()
        try:
            if not self.repo.get_schedule(db, schedule_id):
                raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
            return self.repo.list_history(db, schedule_id, limit)
        finally:
            db.close()
