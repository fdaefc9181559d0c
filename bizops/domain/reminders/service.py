"""Reminder service - sends appointment reminders ahead of their start time

Database work runs in worker threads (asyncio.to_thread) so a reminder tick
inside the API process never blocks the event loop; the session is only
touched by one thread at a time.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_REMINDER_LEAD_HOURS
from ...database import SessionLocal
from ...models import Customer
from ...models_notification import NotificationSettings
from ...services.notification_service import DeliveryResult, NotificationSender
from . import templates
from .repository import ReminderRepository
from .schemas import MessageResult, ReminderResult

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "appointment_reminder"
INVOICE_REMINDER_TYPE = "invoice_reminder"
JOB_FOLLOW_UP_TYPE = "job_follow_up"

SEND_FAILED = "send failed"
CLOSED_INVOICE_STATUSES = ("paid", "cancelled")


@dataclass
class OutboundMessage:
    """A rendered message ready for one channel, plus what the notification log needs"""

    business_id: int
    customer_id: int
    type: str
    channel: str
    recipient: str
    body: str
    subject: Optional[str] = None
    from_number: Optional[str] = None
    reply_to: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None


class ReminderDispatcher:
    """Finds appointments inside the reminder window and notifies their customers"""

    def __init__(
        self,
        sender: Optional[NotificationSender] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.sender = sender or NotificationSender()
        self.session_factory = session_factory
        self.repo = ReminderRepository()

    async def send_upcoming_reminders(
        self,
        business_id: int,
        lead_hours: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[ReminderResult]:
        """
        Send reminders for a business's appointments starting within the next lead_hours

        lead_hours defaults to the business's notification settings, then
        DEFAULT_REMINDER_LEAD_HOURS. Each appointment is handled on its own: a successful send marks it as
        reminded, a failed send leaves it eligible for the next run.

        Returns:
            One ReminderResult per candidate appointment
        """
        now = now or datetime.utcnow()
        results: list[ReminderResult] = []

        db = self.session_factory()
        try:
            appointment_ids = await asyncio.to_thread(
                self._find_candidates, db, business_id, lead_hours, now
            )
            for appointment_id in appointment_ids:
                results.append(await self._remind(db, business_id, appointment_id, now))
            return results

        except Exception as e:
            logger.error(f"❌ Error sending upcoming reminders for business {business_id}: {e}")
            db.rollback()
            return results
        finally:
            db.close()

    def _find_candidates(
        self, db: Session, business_id: int, lead_hours: Optional[int], now: datetime
    ) -> list[int]:
        business = self.repo.get_business(db, business_id)
        if not business:
            logger.warning(f"⚠️ Business {business_id} not found, no reminders sent")
            return []

        if lead_hours is None:
            settings = self.repo.get_settings(db, business_id)
            lead_hours = (
                settings.appointment_reminder_hours
                if settings and settings.appointment_reminder_hours
                else DEFAULT_REMINDER_LEAD_HOURS
            )

        appointments = self.repo.list_appointments_needing_reminder(db, business_id, now, lead_hours)
        if appointments:
            logger.info(
                f"Found {len(appointments)} appointments for reminders "
                f"(business {business_id}, {lead_hours}h ahead)"
            )
        return [appointment.id for appointment in appointments]

    async def _remind(
        self, db: Session, business_id: int, appointment_id: int, now: datetime
    ) -> ReminderResult:
        try:
            prepared = await asyncio.to_thread(
                self._prepare_reminder, db, business_id, appointment_id
            )
            if isinstance(prepared, ReminderResult):
                return prepared

            sent_channels = []
            errors = []
            for message in prepared:
                result = await self._deliver(db, message)
                if result.ok:
                    sent_channels.append(message.channel)
                else:
                    errors.append(f"{message.channel}: {result.error}")

            if not sent_channels:
                logger.error(f"❌ Reminder failed for appointment {appointment_id}: {'; '.join(errors)}")
                return ReminderResult(
                    appointment_id=appointment_id, status="failed", error="; ".join(errors)
                )

            await asyncio.to_thread(self._mark_reminded, db, appointment_id, now)
            logger.info(
                f"✅ Reminder sent for appointment {appointment_id} via {', '.join(sent_channels)}"
            )
            return ReminderResult(
                appointment_id=appointment_id,
                status="sent",
                channels=sent_channels,
                error="; ".join(errors) or None,
            )

        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error sending reminder for appointment {appointment_id}: {e}")
            return ReminderResult(
                appointment_id=appointment_id, status="failed", error=str(e) or type(e).__name__
            )

    def _prepare_reminder(
        self, db: Session, business_id: int, appointment_id: int
    ) -> Union[ReminderResult, list[OutboundMessage]]:
        """Render one message per enabled channel, or a skipped result"""
        business = self.repo.get_business(db, business_id)
        appointment = self.repo.get_appointment(db, appointment_id)
        if not appointment:
            return ReminderResult(
                appointment_id=appointment_id, status="skipped", message="Appointment not found"
            )
        customer = self.repo.get_customer(db, appointment.customer_id)
        if not customer:
            return ReminderResult(
                appointment_id=appointment_id, status="skipped", message="Customer not found"
            )

        channels = self._channels_for(customer, self.repo.get_settings(db, business_id))
        if not channels:
            logger.debug(f"⚠️ No reminder channel for appointment {appointment_id}")
            return ReminderResult(
                appointment_id=appointment_id,
                status="skipped",
                message="Customer has no reachable contact for enabled channels",
            )

        service_name = None
        if appointment.service_id:
            service = self.repo.get_service(db, appointment.service_id)
            if service:
                service_name = service.name

        context = templates.build_context(customer, business, appointment, service_name)

        messages = []
        for channel, recipient in channels:
            subject = None
            if channel == "sms":
                body = templates.render_sms(context, business.reminder_template)
            else:
                subject, body = templates.render_email(context)
            messages.append(
                OutboundMessage(
                    business_id=business.id,
                    customer_id=customer.id,
                    type=NOTIFICATION_TYPE,
                    channel=channel,
                    recipient=recipient,
                    body=body,
                    subject=subject,
                    from_number=business.twilio_phone_number,
                    reply_to=business.email,
                    reference_type="appointment",
                    reference_id=appointment_id,
                )
            )
        return messages

    def _mark_reminded(self, db: Session, appointment_id: int, when: datetime) -> None:
        self.repo.mark_reminded(db, self.repo.get_appointment(db, appointment_id), when)

    @staticmethod
    def _channels_for(
        customer: Customer, settings: Optional[NotificationSettings]
    ) -> list[tuple[str, str]]:
        sms_enabled = settings is None or settings.appointment_reminder_sms is not False
        email_enabled = settings is None or settings.appointment_reminder_email is not False

        channels = []
        if sms_enabled and customer.phone:
            channels.append(("sms", customer.phone))
        if email_enabled and customer.email:
            channels.append(("email", customer.email))
        return channels

    # One-off messages

    async def send_invoice_reminder(self, invoice_id: int, business_id: int) -> MessageResult:
        """SMS the customer that an unpaid invoice is due"""
        return await self._send_one_off(
            "invoice", invoice_id, self._prepare_invoice_reminder, invoice_id, business_id
        )

    async def send_job_follow_up(
        self, job_id: int, business_id: int, review_link: Optional[str] = None
    ) -> MessageResult:
        """SMS a thank-you (and optional review link) for a completed job"""
        return await self._send_one_off(
            "job", job_id, self._prepare_job_follow_up, job_id, business_id, review_link
        )

    async def _send_one_off(
        self, label: str, reference_id: int, prepare: Callable, *args
    ) -> MessageResult:
        db = self.session_factory()
        try:
            prepared = await asyncio.to_thread(prepare, db, *args)
            if isinstance(prepared, MessageResult):
                logger.info(f"ℹ️ No message sent for {label} {reference_id}: {prepared.error}")
                return prepared

            result = await self._deliver(db, prepared)
            if not result.ok:
                return MessageResult(reference_id=reference_id, success=False, error=result.error)

            logger.info(f"✅ {prepared.type} sent to {prepared.recipient} for {label} {reference_id}")
            return MessageResult(reference_id=reference_id, success=True)

        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error sending message for {label} {reference_id}: {e}")
            return MessageResult(reference_id=reference_id, success=False, error=str(e) or type(e).__name__)
        finally:
            db.close()

    def _prepare_invoice_reminder(
        self, db: Session, invoice_id: int, business_id: int
    ) -> Union[MessageResult, OutboundMessage]:
        invoice = self.repo.get_invoice(db, invoice_id)
        if not invoice or invoice.business_id != business_id:
            return MessageResult(reference_id=invoice_id, success=False, found=False, error="Invoice not found")
        if invoice.status in CLOSED_INVOICE_STATUSES:
            return MessageResult(reference_id=invoice_id, success=False, error=f"Invoice already {invoice.status}")

        customer = self.repo.get_customer(db, invoice.customer_id)
        if not customer or not customer.phone:
            return MessageResult(reference_id=invoice_id, success=False, error="Customer has no phone number")

        business = self.repo.get_business(db, business_id)
        if not business:
            return MessageResult(reference_id=invoice_id, success=False, error="Business not found")

        return OutboundMessage(
            business_id=business.id,
            customer_id=customer.id,
            type=INVOICE_REMINDER_TYPE,
            channel="sms",
            recipient=customer.phone,
            body=templates.render_invoice_reminder(customer, business, invoice),
            from_number=business.twilio_phone_number,
            reference_type="invoice",
            reference_id=invoice.id,
        )

    def _prepare_job_follow_up(
        self, db: Session, job_id: int, business_id: int, review_link: Optional[str]
    ) -> Union[MessageResult, OutboundMessage]:
        job = self.repo.get_job(db, job_id)
        if not job or job.business_id != business_id:
            return MessageResult(reference_id=job_id, success=False, found=False, error="Job not found")
        if job.status != "completed":
            return MessageResult(reference_id=job_id, success=False, error="Job not completed")

        customer = self.repo.get_customer(db, job.customer_id)
        if not customer or not customer.phone:
            return MessageResult(reference_id=job_id, success=False, error="Customer has no phone number")

        business = self.repo.get_business(db, business_id)
        if not business:
            return MessageResult(reference_id=job_id, success=False, error="Business not found")

        return OutboundMessage(
            business_id=business.id,
            customer_id=customer.id,
            type=JOB_FOLLOW_UP_TYPE,
            channel="sms",
            recipient=customer.phone,
            body=templates.render_job_follow_up(customer, business, job, review_link),
            from_number=business.twilio_phone_number,
            reference_type="job",
            reference_id=job.id,
        )

    # Delivery

    async def _deliver(self, db: Session, message: OutboundMessage) -> DeliveryResult:
        try:
            result = await self.sender.send(
                message.channel,
                message.recipient,
                message.body,
                subject=message.subject,
                from_number=message.from_number,
                reply_to=message.reply_to,
            )
        except Exception as e:
            logger.error(f"❌ {message.channel} message to {message.recipient} raised: {e}")
            result = DeliveryResult(ok=False, error=str(e) or type(e).__name__)

        if not result.ok and not result.error:
            result = DeliveryResult(ok=False, error=SEND_FAILED, provider_message_id=result.provider_message_id)

        await asyncio.to_thread(self._log_delivery, db, message, result)
        return result

    def _log_delivery(self, db: Session, message: OutboundMessage, result: DeliveryResult) -> None:
        try:
            self.repo.log_notification(
                db,
                business_id=message.business_id,
                customer_id=message.customer_id,
                type=message.type,
                channel=message.channel,
                recipient=message.recipient,
                subject=message.subject,
                message=message.body,
                status="sent" if result.ok else "failed",
                error=result.error,
                provider_message_id=result.provider_message_id,
                reference_type=message.reference_type,
                reference_id=message.reference_id,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(
                f"⚠️ Could not write notification log for {message.reference_type} {message.reference_id}: {e}"
            )
