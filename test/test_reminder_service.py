"""
Tests for appointment reminders, invoice reminders and job follow-ups.
"""

import asyncio
import time
from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from bizops.domain.reminders.schemas import ReminderResult, ReminderSummary
from bizops.domain.reminders.repository import ReminderRepository
from bizops.domain.reminders.service import ReminderDispatcher
from bizops.models import Appointment, Invoice, Job
from bizops.models_notification import NotificationLog, NotificationSettings
from bizops.services.notification_service import DeliveryResult

from conftest import FakeSender


@pytest.fixture
def business(make_business):
    return make_business(
        email="office@sparkle.example", twilio_phone_number="+15550102000", timezone="America/New_York"
    )


@pytest.fixture
def customer(make_customer, business):
    return make_customer(business)


def dispatch(dispatcher, business_id, now, lead_hours=None):
    return asyncio.run(dispatcher.send_upcoming_reminders(business_id, lead_hours, now=now))


@pytest.mark.integration
class TestSendUpcomingReminders:
    def test_sends_on_all_channels_and_marks_appointment(
        self, db, session_factory, fake_sender, business, customer, make_appointment, now
    ):
        """
        GIVEN an appointment three hours away and a customer with phone and email
        WHEN reminders run
        THEN an SMS and an email go out and the appointment is flagged as reminded
        """
        appointment = make_appointment(business, customer, now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        results = dispatch(dispatcher, business.id, now)

        assert len(results) == 1
        assert results[0].status == "sent"
        assert results[0].channels == ["sms", "email"]
        assert [m["channel"] for m in fake_sender.sent] == ["sms", "email"]
        assert [m["to"] for m in fake_sender.sent] == ["555-123-4567", "jane@example.com"]

        sms = fake_sender.sent[0]["message"]
        assert sms.startswith("Hi Jane!")
        assert "Sparkle Cleaning Co" in sms
        assert "Monday, June 10" in sms
        assert "8:00 AM" in sms
        assert fake_sender.sent[1]["subject"] == "Reminder: Your upcoming appointment with Sparkle Cleaning Co"

        db.expire_all()
        assert db.get(Appointment, appointment.id).reminder_sent_at == now

    def test_reminded_appointment_is_not_sent_twice(
        self, session_factory, fake_sender, business, customer, make_appointment, now
    ):
        make_appointment(business, customer, now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        dispatch(dispatcher, business.id, now)
        second = dispatch(dispatcher, business.id, now + timedelta(hours=1))

        assert second == []
        assert len(fake_sender.sent) == 2

    def test_failed_send_leaves_appointment_eligible(
        self, db, session_factory, business, customer, make_appointment, now
    ):
        """
        GIVEN every channel fails
        WHEN reminders run
        THEN the result is failed and the next run retries the appointment
        """
        appointment = make_appointment(business, customer, now + timedelta(hours=3))
        failing = ReminderDispatcher(
            sender=FakeSender(fail_channels={"sms", "email"}), session_factory=session_factory
        )

        results = dispatch(failing, business.id, now)

        db.expire_all()
        assert results[0].status == "failed"
        assert "sms: sms rejected" in results[0].error
        assert db.get(Appointment, appointment.id).reminder_sent_at is None

        healthy = ReminderDispatcher(sender=FakeSender(), session_factory=session_factory)
        retry = dispatch(healthy, business.id, now + timedelta(hours=1))

        assert retry[0].status == "sent"

    def test_one_channel_succeeding_counts_as_sent(
        self, db, session_factory, business, customer, make_appointment, now
    ):
        appointment = make_appointment(business, customer, now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(
            sender=FakeSender(raise_channels={"sms"}), session_factory=session_factory
        )

        result = dispatch(dispatcher, business.id, now)[0]

        db.expire_all()
        assert result.status == "sent"
        assert result.channels == ["email"]
        assert "sms provider unreachable" in result.error
        assert db.get(Appointment, appointment.id).reminder_sent_at == now

    def test_customer_without_contact_is_skipped(
        self, db, session_factory, fake_sender, business, make_customer, make_appointment, now
    ):
        unreachable = make_customer(business, phone=None, email=None)
        appointment = make_appointment(business, unreachable, now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        results = dispatch(dispatcher, business.id, now)

        db.expire_all()
        assert results[0].status == "skipped"
        assert fake_sender.sent == []
        assert db.get(Appointment, appointment.id).reminder_sent_at is None

    def test_window_and_status_filters(
        self, session_factory, fake_sender, business, customer, make_appointment, now
    ):
        """
        GIVEN appointments in the past, beyond the window, cancelled, already reminded and due
        WHEN reminders run with the default 24 hour lead
        THEN only the due appointment is reminded
        """
        make_appointment(business, customer, now - timedelta(hours=1))
        make_appointment(business, customer, now + timedelta(hours=25))
        make_appointment(business, customer, now + timedelta(hours=2), status="cancelled")
        make_appointment(business, customer, now + timedelta(hours=2), status="completed")
        make_appointment(business, customer, now + timedelta(hours=2), reminder_sent_at=now - timedelta(days=1))
        due = make_appointment(business, customer, now + timedelta(hours=24), status="confirmed")
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        results = dispatch(dispatcher, business.id, now)

        assert [r.appointment_id for r in results] == [due.id]

    def test_explicit_lead_hours_widens_window(
        self, session_factory, fake_sender, business, customer, make_appointment, now
    ):
        later = make_appointment(business, customer, now + timedelta(hours=25))
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        results = dispatch(dispatcher, business.id, now, lead_hours=48)

        assert [r.appointment_id for r in results] == [later.id]

    def test_business_settings_control_lead_and_channels(
        self, db, session_factory, fake_sender, business, customer, make_appointment, now
    ):
        """
        GIVEN a business with a 2 hour lead and SMS reminders turned off
        WHEN reminders run
        THEN only appointments within 2 hours are reminded, by email only
        """
        db.add(
            NotificationSettings(
                business_id=business.id,
                appointment_reminder_sms=False,
                appointment_reminder_email=True,
                appointment_reminder_hours=2,
            )
        )
        db.commit()
        soon = make_appointment(business, customer, now + timedelta(hours=1))
        make_appointment(business, customer, now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        results = dispatch(dispatcher, business.id, now)

        assert [r.appointment_id for r in results] == [soon.id]
        assert results[0].channels == ["email"]
        assert [m["channel"] for m in fake_sender.sent] == ["email"]

    def test_service_name_and_custom_template(
        self, db, session_factory, fake_sender, business, customer, make_service, make_appointment, now
    ):
        business.reminder_template = "Hey {first_name}, {service_name} on {date} {unknown}"
        db.commit()
        service = make_service(business)
        make_appointment(business, customer, now + timedelta(hours=3), service_id=service.id)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        dispatch(dispatcher, business.id, now)

        assert fake_sender.sent[0]["message"] == "Hey Jane, Deep Clean on Monday, June 10 {unknown}"
        assert "Deep Clean" in fake_sender.sent[1]["message"]

    def test_notification_log_written_per_channel(
        self, db, session_factory, business, customer, make_appointment, now
    ):
        appointment = make_appointment(business, customer, now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(
            sender=FakeSender(fail_channels={"email"}), session_factory=session_factory
        )

        dispatch(dispatcher, business.id, now)

        db.expire_all()
        logs = db.query(NotificationLog).order_by(NotificationLog.id).all()
        assert [(log.channel, log.status) for log in logs] == [("sms", "sent"), ("email", "failed")]
        assert all(log.type == "appointment_reminder" for log in logs)
        assert all(log.reference_id == appointment.id for log in logs)
        assert logs[0].provider_message_id == "MSG1"
        assert logs[1].error == "email rejected"

    def test_unknown_business_returns_nothing(self, session_factory, fake_sender, now):
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        assert dispatch(dispatcher, 999, now) == []

    def test_other_business_appointments_are_ignored(
        self, session_factory, fake_sender, business, make_business, make_customer, make_appointment, now
    ):
        other = make_business(name="Other Co")
        make_appointment(other, make_customer(other), now + timedelta(hours=3))
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        assert dispatch(dispatcher, business.id, now) == []

    def test_failure_without_detail_gets_generic_error(
        self, db, session_factory, business, customer, make_appointment, now
    ):
        """
        GIVEN a sender that reports failure without an error message
        WHEN reminders run
        THEN the result and the log carry "send failed" instead of an empty error
        """
        make_appointment(business, customer, now + timedelta(hours=3))
        sender = SimpleNamespace(send=AsyncMock(return_value=DeliveryResult(ok=False)))
        dispatcher = ReminderDispatcher(sender=sender, session_factory=session_factory)

        result = dispatch(dispatcher, business.id, now)[0]

        db.expire_all()
        assert result.status == "failed"
        assert result.error == "sms: send failed; email: send failed"
        assert [log.error for log in db.query(NotificationLog)] == ["send failed", "send failed"]

    def test_reminder_pass_does_not_block_event_loop(
        self, session_factory, fake_sender, business, customer, make_appointment, now, mocker
    ):
        """
        GIVEN a due appointment whose lookup takes half a second
        WHEN reminders run while another coroutine ticks every 10 ms
        THEN the other coroutine keeps running during the pass
        """
        make_appointment(business, customer, now + timedelta(hours=3))
        original = ReminderRepository.get_appointment

        def slow_get_appointment(db, appointment_id):
            time.sleep(0.5)
            return original(db, appointment_id)

        mocker.patch.object(ReminderRepository, "get_appointment", side_effect=slow_get_appointment)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        async def run_with_heartbeat():
            beats = 0

            async def heartbeat():
                nonlocal beats
                while True:
                    await asyncio.sleep(0.01)
                    beats += 1

            task = asyncio.create_task(heartbeat())
            results = await dispatcher.send_upcoming_reminders(business.id, now=now)
            task.cancel()
            return results, beats

        results, beats = asyncio.run(run_with_heartbeat())

        assert results[0].status == "sent"
        assert beats >= 20


@pytest.mark.unit
def test_reminder_summary_counts():
    results = [
        ReminderResult(appointment_id=1, status="sent", channels=["sms"]),
        ReminderResult(appointment_id=2, status="sent", channels=["email"]),
        ReminderResult(appointment_id=3, status="skipped"),
        ReminderResult(appointment_id=4, status="failed", error="boom"),
    ]

    summary = ReminderSummary.from_results(results)

    assert (summary.sent, summary.skipped, summary.failed) == (2, 1, 1)


@pytest.fixture
def make_invoice(db):
    def factory(business, customer, **overrides):
        data = {
            "business_id": business.id,
            "customer_id": customer.id,
            "invoice_number": "INV-20240605-0001",
            "amount": 1200.0,
            "tax": 34.5,
            "total": 1234.5,
            "status": "pending",
            "due_date": date(2024, 7, 5),
        }
        data.update(overrides)
        invoice = Invoice(**data)
        db.add(invoice)
        db.commit()
        return invoice

    return factory


@pytest.fixture
def make_job(db):
    def factory(business, customer, **overrides):
        data = {
            "business_id": business.id,
            "customer_id": customer.id,
            "title": "Move-out clean",
            "status": "completed",
        }
        data.update(overrides)
        job = Job(**data)
        db.add(job)
        db.commit()
        return job

    return factory


@pytest.mark.integration
class TestInvoiceReminder:
    def test_sends_sms_and_logs_it(self, db, session_factory, fake_sender, business, customer, make_invoice):
        """
        GIVEN a pending invoice for a customer with a phone number
        WHEN an invoice reminder is sent
        THEN the customer gets an SMS with the number and amount and the send is logged
        """
        invoice = make_invoice(business, customer)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(dispatcher.send_invoice_reminder(invoice.id, business.id))

        assert result.success is True
        assert [m["channel"] for m in fake_sender.sent] == ["sms"]
        assert fake_sender.sent[0]["message"] == (
            "Hi Jane! This is a reminder from Sparkle Cleaning Co that invoice #INV-20240605-0001 "
            "for $1,234.50 is due. Pay online or call us at (555) 010-2000. Thank you!"
        )

        db.expire_all()
        log = db.query(NotificationLog).one()
        assert (log.type, log.reference_type, log.reference_id, log.status) == (
            "invoice_reminder",
            "invoice",
            invoice.id,
            "sent",
        )

    @pytest.mark.parametrize("status", ["paid", "cancelled"])
    def test_closed_invoice_is_not_reminded(
        self, session_factory, fake_sender, business, customer, make_invoice, status
    ):
        invoice = make_invoice(business, customer, status=status)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(dispatcher.send_invoice_reminder(invoice.id, business.id))

        assert result.success is False
        assert result.error == f"Invoice already {status}"
        assert fake_sender.sent == []

    def test_customer_without_phone(
        self, session_factory, fake_sender, business, make_customer, make_invoice
    ):
        no_phone = make_customer(business, phone=None)
        invoice = make_invoice(business, no_phone)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(dispatcher.send_invoice_reminder(invoice.id, business.id))

        assert result.error == "Customer has no phone number"
        assert fake_sender.sent == []

    def test_other_business_invoice_is_not_found(
        self, session_factory, fake_sender, business, customer, make_business, make_invoice
    ):
        invoice = make_invoice(business, customer)
        other = make_business(name="Other Co")
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(dispatcher.send_invoice_reminder(invoice.id, other.id))
        missing = asyncio.run(dispatcher.send_invoice_reminder(999, business.id))

        assert (result.found, result.error) == (False, "Invoice not found")
        assert missing.found is False
        assert fake_sender.sent == []

    def test_provider_failure_is_reported(self, session_factory, business, customer, make_invoice):
        invoice = make_invoice(business, customer)
        dispatcher = ReminderDispatcher(
            sender=FakeSender(fail_channels={"sms"}), session_factory=session_factory
        )

        result = asyncio.run(dispatcher.send_invoice_reminder(invoice.id, business.id))

        assert (result.success, result.found, result.error) == (False, True, "sms rejected")


@pytest.mark.integration
class TestJobFollowUp:
    def test_review_link_is_included(self, db, session_factory, fake_sender, business, customer, make_job):
        job = make_job(business, customer)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(
            dispatcher.send_job_follow_up(job.id, business.id, review_link="https://g.page/r/sparkle")
        )

        assert result.success is True
        assert fake_sender.sent[0]["message"] == (
            "Hi Jane! Thank you for choosing Sparkle Cleaning Co. We hope you're satisfied with "
            "our work on \"Move-out clean\". We'd appreciate a review: https://g.page/r/sparkle"
        )

        db.expire_all()
        log = db.query(NotificationLog).one()
        assert (log.type, log.reference_type, log.reference_id) == ("job_follow_up", "job", job.id)

    def test_without_review_link_offers_phone(self, session_factory, fake_sender, business, customer, make_job):
        job = make_job(business, customer)
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        asyncio.run(dispatcher.send_job_follow_up(job.id, business.id))

        assert fake_sender.sent[0]["message"].endswith(
            "If you have any questions, call us at (555) 010-2000."
        )

    def test_unfinished_job_is_refused(self, session_factory, fake_sender, business, customer, make_job):
        job = make_job(business, customer, status="in_progress")
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(dispatcher.send_job_follow_up(job.id, business.id))

        assert (result.success, result.found, result.error) == (False, True, "Job not completed")
        assert fake_sender.sent == []

    def test_unknown_job(self, session_factory, fake_sender, business):
        dispatcher = ReminderDispatcher(sender=fake_sender, session_factory=session_factory)

        result = asyncio.run(dispatcher.send_job_follow_up(999, business.id))

        assert (result.found, result.error) == (False, "Job not found")
