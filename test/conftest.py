"""
Pytest configuration file for the scheduler engine tests.

Contains shared fixtures, factories and fakes for all tests.
Each test gets its own SQLite database file so services can open
independent sessions exactly like they do against PostgreSQL.
"""

import os
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Configure the app for tests before anything imports bizops.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("TWILIO_ACCOUNT_SID", None)
os.environ.pop("RESEND_API_KEY", None)

from bizops import models_notification, models_recurring  # noqa: E402, F401
from bizops.database import Base  # noqa: E402
from bizops.models import Appointment, Business, Customer, Service  # noqa: E402
from bizops.models_recurring import RecurringSchedule, RecurringScheduleItem  # noqa: E402
from bizops.services.notification_service import DeliveryResult  # noqa: E402


# --------------------
# Database
# --------------------


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    """Session for arranging data and asserting results (call db.expire_all() after service calls)"""
    session = session_factory()
    yield session
    session.close()


# --------------------
# Factories
# --------------------


@pytest.fixture
def make_business(db):
    def factory(**overrides):
        data = {"name": "Sparkle Cleaning Co", "phone": "(555) 010-2000", "is_active": True}
        data.update(overrides)
        business = Business(**data)
        db.add(business)
        db.commit()
        return business

    return factory


@pytest.fixture
def make_customer(db):
    def factory(business, **overrides):
        data = {
            "business_id": business.id,
            "first_name": "Jane",
            "last_name": "Doe",
            "phone": "555-123-4567",
            "email": "jane@example.com",
        }
        data.update(overrides)
        customer = Customer(**data)
        db.add(customer)
        db.commit()
        return customer

    return factory


@pytest.fixture
def make_service(db):
    def factory(business, name="Deep Clean"):
        service = Service(business_id=business.id, name=name, price=120.0, duration=90)
        db.add(service)
        db.commit()
        return service

    return factory


@pytest.fixture
def make_schedule(db):
    def factory(business, customer, items=None, **overrides):
        data = {
            "business_id": business.id,
            "customer_id": customer.id,
            "name": "Weekly office clean",
            "frequency": "weekly",
            "interval": 1,
            "start_date": date(2024, 6, 5),
            "next_run_date": date(2024, 6, 5),
            "status": "active",
            "total_jobs_created": 0,
            "job_title": "Office clean",
            "job_description": "Vacuum, mop, trash",
            "estimated_duration": 120,
            "auto_create_invoice": True,
            "invoice_amount": 150.0,
            "invoice_tax": 12.0,
            "invoice_notes": "Thank you for your business",
        }
        data.update(overrides)
        schedule = RecurringSchedule(**data)
        for position, item in enumerate(items or []):
            schedule.items.append(RecurringScheduleItem(position=position, **item))
        db.add(schedule)
        db.commit()
        return schedule

    return factory


@pytest.fixture
def make_appointment(db):
    def factory(business, customer, start, **overrides):
        data = {
            "business_id": business.id,
            "customer_id": customer.id,
            "start_date": start,
            "end_date": start + timedelta(hours=1),
            "status": "scheduled",
        }
        data.update(overrides)
        appointment = Appointment(**data)
        db.add(appointment)
        db.commit()
        return appointment

    return factory


@pytest.fixture
def now():
    return datetime(2024, 6, 10, 9, 0, 0)


# --------------------
# Fakes
# --------------------


class FakeSender:
    """Records sends instead of calling Twilio/Resend"""

    def __init__(self, fail_channels=(), raise_channels=()):
        self.fail_channels = set(fail_channels)
        self.raise_channels = set(raise_channels)
        self.sent = []

    async def send(self, channel, to, message, subject=None, from_number=None, reply_to=None):
        self.sent.append({"channel": channel, "to": to, "message": message, "subject": subject})
        if channel in self.raise_channels:
            raise ConnectionError(f"{channel} provider unreachable")
        if channel in self.fail_channels:
            return DeliveryResult(ok=False, error=f"{channel} rejected")
        return DeliveryResult(ok=True, provider_message_id=f"MSG{len(self.sent)}")


@pytest.fixture
def fake_sender():
    return FakeSender()
