"""
Recurring Schedule Models
A schedule materializes one Job (and optionally one Invoice) per occurrence;
RecurringJobHistory is the per-occurrence ledger that keeps processing idempotent.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class RecurringSchedule(Base):
    __tablename__ = "recurring_schedules"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=True)
    name = Column(String(255), nullable=False)

    # Cadence
    frequency = Column(String(20), nullable=False)  # daily, weekly, biweekly, monthly, quarterly, yearly
    interval = Column(Integer, default=1, nullable=False)  # Repeat every N units
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday ... 6 = Saturday
    day_of_month = Column(Integer, nullable=True)  # 1-31, clamped to month length
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    next_run_date = Column(Date, nullable=True, index=True)
    last_run_date = Column(Date, nullable=True)

    status = Column(String(20), default="active", nullable=False, index=True)
    total_jobs_created = Column(Integer, default=0, nullable=False)

    # Job template
    job_title = Column(String(255), nullable=False)
    job_description = Column(Text, nullable=True)
    estimated_duration = Column(Integer, nullable=True)  # Minutes

    # Invoice template
    auto_create_invoice = Column(Boolean, default=True)
    invoice_amount = Column(Float, nullable=True)
    invoice_tax = Column(Float, nullable=True)
    invoice_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    items = relationship(
        "RecurringScheduleItem",
        back_populates="schedule",
        order_by="RecurringScheduleItem.position",
        cascade="all, delete-orphan",
    )
    history = relationship("RecurringJobHistory", back_populates="schedule")


class RecurringScheduleItem(Base):
    """Line item copied onto every invoice the schedule generates"""

    __tablename__ = "recurring_schedule_items"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("recurring_schedules.id"), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)
    description = Column(String(500), nullable=False)
    quantity = Column(Float, default=1)
    unit_price = Column(Float, nullable=False)
    amount = Column(Float, nullable=False)

    schedule = relationship("RecurringSchedule", back_populates="items")


class RecurringJobHistory(Base):
    """One row per materialized occurrence"""

    __tablename__ = "recurring_job_history"
    __table_args__ = (
        UniqueConstraint("schedule_id", "scheduled_for", name="uq_recurring_history_occurrence"),
    )

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("recurring_schedules.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)
    scheduled_for = Column(Date, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    schedule = relationship("RecurringSchedule", back_populates="history")
