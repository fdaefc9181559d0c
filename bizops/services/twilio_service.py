"""
Twilio SMS Service
Sends SMS through the Twilio REST API using the platform account
"""

import logging
from typing import Optional

import httpx

from ..config import (
    TWILIO_ACCOUNT_SID,
    TWILIO_API_BASE_URL,
    TWILIO_AUTH_TOKEN,
    TWILIO_MESSAGING_SERVICE_SID,
    TWILIO_PHONE_NUMBER,
)

logger = logging.getLogger(__name__)


async def send_sms(
    to_phone: str,
    message_body: str,
    from_number: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> tuple[bool, Optional[str], Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        to_phone: Recipient phone number (E.164 format)
        message_body: SMS message content
        from_number: Sender number; defaults to the platform number or messaging service
        client: Optional shared httpx client

    Returns:
        Tuple of (success, message_sid, error_message)
    """
    if not to_phone:
        return False, None, "No phone number provided"

    if not to_phone.startswith("+"):
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, None, "Phone number must be in E.164 format (e.g., +1234567890)"

    if not TWILIO_ACCOUNT_SID or not TWILIO_AUTH_TOKEN:
        logger.error("❌ Twilio is not configured - TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN missing")
        return False, None, "SMS service not configured"

    data = {"To": to_phone, "Body": message_body}
    if from_number:
        data["From"] = from_number
    elif TWILIO_MESSAGING_SERVICE_SID:
        data["MessagingServiceSid"] = TWILIO_MESSAGING_SERVICE_SID
    elif TWILIO_PHONE_NUMBER:
        data["From"] = TWILIO_PHONE_NUMBER
    else:
        return False, None, "No sender number configured"

    url = f"{TWILIO_API_BASE_URL}/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json"
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient()

    try:
        logger.info(f"🚀 Sending SMS to Twilio API for {to_phone}")
        response = await client.post(
            url,
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
            data=data,
            timeout=10.0,
        )
        logger.info(f"📡 Twilio API response status: {response.status_code}")

        if response.status_code in (200, 201):
            message_sid = response.json().get("sid")
            logger.info(f"✅ SMS sent successfully to {to_phone} (SID: {message_sid})")
            return True, message_sid, None

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message", f"HTTP {response.status_code}")
        error_code = error_data.get("code")
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
        return False, None, f"[{error_code}] {error_message}" if error_code else error_message

    except httpx.HTTPError as e:
        logger.error(f"Twilio API error: {str(e)}")
        return False, None, str(e) or type(e).__name__
    finally:
        if owns_client:
            await client.aclose()
