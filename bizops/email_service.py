"""
Email Service using Resend
Plain-text notification bodies are wrapped into a minimal HTML document
"""

import asyncio
import html
import logging
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY

logger = logging.getLogger(__name__)


def text_to_html(body: str) -> str:
    paragraphs = [p for p in body.split("\n\n") if p.strip()]
    rendered = "".join(
        f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs
    )
    return f'<html><body style="font-family: Arial, sans-serif; color: #1f2937;">{rendered}</body></html>'


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    body: str,
    from_address: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        body: Plain-text body
        from_address: Optional custom from address
        reply_to: Optional reply-to address (usually the business email)

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    resend.api_key = RESEND_API_KEY

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        email_data = {
            "from": from_address or EMAIL_FROM_ADDRESS,
            "to": recipients,
            "subject": subject,
            "html": text_to_html(body),
            "text": body,
        }
        if reply_to:
            email_data["reply_to"] = reply_to

        # Resend's client is synchronous
        response = await asyncio.to_thread(resend.Emails.send, email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e
