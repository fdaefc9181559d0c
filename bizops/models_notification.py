"""
Notification Models
Per-business notification preferences and the audit log of every SMS/email sent
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class NotificationSettings(Base):
    """Per-business notification preferences"""

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, unique=True)

    # Appointment reminders
    appointment_reminder_email = Column(Boolean, default=True)
    appointment_reminder_sms = Column(Boolean, default=True)
    appointment_reminder_hours = Column(Integer, default=24)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    business = relationship("Business", back_populates="notification_settings")


class NotificationLog(Base):
    """Track messages sent via SMS or email"""

    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)

    # Message details
    type = Column(String(50), nullable=False)  # appointment_reminder, ...
    channel = Column(String(10), nullable=False)  # sms, email
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)
    message = Column(Text, nullable=True)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)

    # Provider response
    provider_message_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)  # sent, failed
    error = Column(Text, nullable=True)

    sent_at = Column(DateTime, server_default=func.now())
