"""
Unified Notification Service
Single entry point for outbound SMS and email so callers deal with one result shape
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..shared.validators import validate_email, validate_us_phone

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    ok: bool
    error: Optional[str] = None
    provider_message_id: Optional[str] = None


class NotificationSender:
    """Messaging channel used by the reminder dispatcher"""

    async def send(
        self,
        channel: str,
        to: str,
        message: str,
        subject: Optional[str] = None,
        from_number: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Send a rendered message on one channel

        Provider failures are returned, not raised.
        """
        if channel == "sms":
            return await self._send_sms(to, message, from_number)
        if channel == "email":
            return await self._send_email(to, subject or "", message, reply_to)
        raise ValueError(f"Unsupported channel: {channel}")

    async def _send_sms(self, to: str, message: str, from_number: Optional[str]) -> DeliveryResult:
        from .twilio_service import send_sms

        try:
            formatted_phone = validate_us_phone(to)
        except ValueError as e:
            logger.warning(f"⚠️ Invalid phone number format: {to}")
            return DeliveryResult(ok=False, error=str(e))

        logger.info(f"📱 Attempting to send SMS to {formatted_phone}")
        success, message_sid, error = await send_sms(formatted_phone, message, from_number=from_number)
        if not success:
            logger.warning(f"⚠️ SMS not sent to {formatted_phone}: {error}")
        return DeliveryResult(ok=success, error=error, provider_message_id=message_sid)

    async def _send_email(
        self, to: str, subject: str, message: str, reply_to: Optional[str]
    ) -> DeliveryResult:
        from ..email_service import send_email

        try:
            address = validate_email(to)
        except ValueError as e:
            logger.warning(f"⚠️ Invalid email address: {to}")
            return DeliveryResult(ok=False, error=str(e))

        try:
            logger.info(f"📧 Attempting to send email to {address}")
            response = await send_email(to=address, subject=subject, body=message, reply_to=reply_to)
        except Exception as e:
            return DeliveryResult(ok=False, error=str(e))

        provider_id = response.get("id") if isinstance(response, dict) else None
        return DeliveryResult(ok=True, provider_message_id=provider_id)
