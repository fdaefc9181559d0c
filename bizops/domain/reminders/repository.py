"""Reminder repository - Appointment queries, reminder flags and message lookups"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, Business, Customer, Invoice, Job, Service
from ...models_notification import NotificationLog, NotificationSettings

REMINDABLE_STATUSES = ("scheduled", "confirmed")


class ReminderRepository:
    """Repository for appointment reminder database operations"""

    @staticmethod
    def list_appointments_needing_reminder(
        db: Session, business_id: int, now: datetime, lead_hours: int
    ) -> list[Appointment]:
        """Unreminded scheduled/confirmed appointments starting within [now, now + lead_hours]"""
        window_end = now + timedelta(hours=lead_hours)
        return (
            db.query(Appointment)
            .filter(
                Appointment.business_id == business_id,
                Appointment.start_date >= now,
                Appointment.start_date <= window_end,
                Appointment.status.in_(REMINDABLE_STATUSES),
                Appointment.reminder_sent_at.is_(None),
            )
            .order_by(Appointment.start_date.asc())
            .all()
        )

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_invoice(db: Session, invoice_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.id == invoice_id).first()

    @staticmethod
    def get_job(db: Session, job_id: int) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def get_business(db: Session, business_id: int) -> Optional[Business]:
        return db.query(Business).filter(Business.id == business_id).first()

    @staticmethod
    def get_customer(db: Session, customer_id: int) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.id == customer_id).first()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_settings(db: Session, business_id: int) -> Optional[NotificationSettings]:
        return (
            db.query(NotificationSettings)
            .filter(NotificationSettings.business_id == business_id)
            .first()
        )

    @staticmethod
    def mark_reminded(db: Session, appointment: Appointment, when: datetime) -> None:
        appointment.reminder_sent_at = when
        db.commit()

    @staticmethod
    def log_notification(db: Session, **log_data) -> NotificationLog:
        entry = NotificationLog(**log_data)
        db.add(entry)
        db.commit()
        return entry
