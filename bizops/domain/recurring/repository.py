"""Recurring schedule repository - Database operations for recurring schedules

Methods only add/flush; the service owns the transaction so one schedule's
job, invoice, history row and pointer update commit or roll back together.
"""

import uuid
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Invoice, InvoiceItem, Job
from ...models_recurring import RecurringJobHistory, RecurringSchedule, RecurringScheduleItem


def generate_invoice_number(scheduled_for: date) -> str:
    """Unique, sortable invoice number, e.g. INV-20240605-3F9A1C2B"""
    return f"INV-{scheduled_for:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class RecurringRepository:
    """Repository for recurring schedule database operations"""

    @staticmethod
    def list_due_schedules(db: Session, today: date) -> list[RecurringSchedule]:
        """Active schedules whose next run has arrived and has not passed their end date"""
        return (
            db.query(RecurringSchedule)
            .filter(
                RecurringSchedule.status == "active",
                RecurringSchedule.next_run_date.isnot(None),
                RecurringSchedule.next_run_date <= today,
                or_(
                    RecurringSchedule.end_date.is_(None),
                    RecurringSchedule.next_run_date <= RecurringSchedule.end_date,
                ),
            )
            .order_by(RecurringSchedule.next_run_date.asc(), RecurringSchedule.id.asc())
            .all()
        )

    @staticmethod
    def get_schedule(db: Session, schedule_id: int, for_update: bool = False) -> Optional[RecurringSchedule]:
        query = db.query(RecurringSchedule).filter(RecurringSchedule.id == schedule_id)
        if for_update:
            # Row lock on PostgreSQL; ignored by SQLite
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_schedules(db: Session, business_id: int) -> list[RecurringSchedule]:
        return (
            db.query(RecurringSchedule)
            .filter(RecurringSchedule.business_id == business_id)
            .order_by(RecurringSchedule.created_at.desc())
            .all()
        )

    @staticmethod
    def create_schedule(db: Session, items: list[dict], **schedule_data) -> RecurringSchedule:
        schedule = RecurringSchedule(**schedule_data)
        for position, item in enumerate(items):
            schedule.items.append(RecurringScheduleItem(position=position, **item))
        db.add(schedule)
        db.flush()
        return schedule

    @staticmethod
    def history_exists(db: Session, schedule_id: int, scheduled_for: date) -> bool:
        return (
            db.query(RecurringJobHistory.id)
            .filter(
                RecurringJobHistory.schedule_id == schedule_id,
                RecurringJobHistory.scheduled_for == scheduled_for,
            )
            .first()
            is not None
        )

    @staticmethod
    def list_history(db: Session, schedule_id: int, limit: int = 10) -> list[RecurringJobHistory]:
        return (
            db.query(RecurringJobHistory)
            .filter(RecurringJobHistory.schedule_id == schedule_id)
            .order_by(RecurringJobHistory.scheduled_for.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def create_job(db: Session, schedule: RecurringSchedule, scheduled_for: date) -> Job:
        job = Job(
            business_id=schedule.business_id,
            customer_id=schedule.customer_id,
            staff_id=schedule.staff_id,
            service_id=schedule.service_id,
            recurring_schedule_id=schedule.id,
            title=schedule.job_title,
            description=schedule.job_description,
            estimated_duration=schedule.estimated_duration,
            scheduled_date=scheduled_for,
            status="pending",
        )
        db.add(job)
        db.flush()
        return job

    @staticmethod
    def create_invoice(
        db: Session,
        schedule: RecurringSchedule,
        job: Job,
        scheduled_for: date,
        due_days: int = 30,
    ) -> Optional[Invoice]:
        """
        Create the occurrence's invoice with the schedule's line items

        Amount falls back to the sum of the line items; returns None when
        there is nothing to bill.
        """
        items = list(schedule.items)
        amount = schedule.invoice_amount
        if amount is None and items:
            amount = sum(item.amount for item in items)
        if amount is None:
            return None

        tax = schedule.invoice_tax or 0
        invoice = Invoice(
            business_id=schedule.business_id,
            customer_id=schedule.customer_id,
            job_id=job.id,
            invoice_number=generate_invoice_number(scheduled_for),
            amount=amount,
            tax=tax,
            total=amount + tax,
            notes=schedule.invoice_notes,
            due_date=scheduled_for + timedelta(days=due_days),
            status="pending",
        )
        for item in items:
            invoice.items.append(
                InvoiceItem(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=item.amount,
                )
            )
        db.add(invoice)
        db.flush()
        return invoice

    @staticmethod
    def create_history(
        db: Session,
        schedule_id: int,
        job_id: int,
        scheduled_for: date,
        invoice_id: Optional[int] = None,
    ) -> RecurringJobHistory:
        history = RecurringJobHistory(
            schedule_id=schedule_id,
            job_id=job_id,
            invoice_id=invoice_id,
            scheduled_for=scheduled_for,
        )
        db.add(history)
        # Flush now so the unique (schedule_id, scheduled_for) constraint fires inside the transaction
        db.flush()
        return history

    @staticmethod
    def update_schedule_run(
        db: Session,
        schedule: RecurringSchedule,
        last_run_date: Optional[date],
        next_run_date: date,
        total_jobs_created: int,
        status: str,
    ) -> RecurringSchedule:
        schedule.last_run_date = last_run_date
        schedule.next_run_date = next_run_date
        schedule.total_jobs_created = total_jobs_created
        schedule.status = status
        db.flush()
        return schedule
