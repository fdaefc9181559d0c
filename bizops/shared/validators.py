"""Contact normalization for outbound reminders"""

import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a customer phone number to E.164 for Twilio

    Bare 10-digit numbers (any punctuation, optional leading 1) are treated as
    US numbers. Numbers written with a non-US country code ("+44 20 ...") keep
    their code as long as they have 8-15 digits.

    Raises:
        ValueError: If the number cannot be sent to
    """
    if not phone:
        return phone

    raw = phone.strip()
    digits = re.sub(r"\D", "", raw)

    if raw.startswith("+") and not raw.startswith("+1"):
        if not 8 <= len(digits) <= 15:
            raise ValueError("International phone numbers must have 8-15 digits")
        return f"+{digits}"

    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and check a customer email; raises ValueError when malformed"""
    if not email:
        return email

    address = email.strip().lower()
    if not EMAIL_PATTERN.match(address):
        raise ValueError("Invalid email format")
    return address
