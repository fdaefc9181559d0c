"""
Reminder message rendering

Variables available to per-business templates:
    {first_name} {last_name} {customer_name} {business_name} {business_phone}
    {service_name} {date} {time}
Unknown placeholders are left in the text as-is.
"""

from datetime import datetime

from dateutil import tz

DEFAULT_SMS_TEMPLATE = (
    "Hi {first_name}! This is a reminder from {business_name} about {service_name} "
    "scheduled for {date} at {time}. Reply CONFIRM to confirm or call us at "
    "{business_phone} to reschedule."
)

DEFAULT_EMAIL_SUBJECT = "Reminder: Your upcoming appointment with {business_name}"

DEFAULT_EMAIL_TEMPLATE = (
    "Hi {first_name} {last_name},\n\n"
    "This is a friendly reminder that {service_name} with {business_name} is scheduled "
    "for {date} at {time}.\n\n"
    "Need to reschedule? Call us at {business_phone}.\n\n"
    "See you soon!\n{business_name}"
)


class _KeepMissing(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def format_date(value: datetime) -> str:
    """e.g. Wednesday, June 5"""
    return f"{value:%A, %B} {value.day}"


def format_time(value: datetime) -> str:
    """e.g. 9:30 AM"""
    hour = value.hour % 12 or 12
    return f"{hour}:{value:%M %p}"


def to_business_time(value: datetime, timezone_name: str = None) -> datetime:
    """Convert a naive UTC timestamp to the business's wall clock (UTC when the zone is unknown)"""
    zone = tz.gettz(timezone_name) if timezone_name else None
    if zone is None:
        return value
    return value.replace(tzinfo=tz.UTC).astimezone(zone)


def greeting_name(customer) -> str:
    return (customer.first_name or "").strip() or "there"


def format_amount(value) -> str:
    """e.g. $1,234.50"""
    return f"${value or 0:,.2f}"


def build_context(customer, business, appointment, service_name: str = None) -> dict:
    starts_at = to_business_time(appointment.start_date, business.timezone)
    first_name = greeting_name(customer)
    last_name = (customer.last_name or "").strip()
    return {
        "first_name": first_name,
        "last_name": last_name,
        "customer_name": f"{first_name} {last_name}".strip(),
        "business_name": business.name,
        "business_phone": business.phone or "",
        "service_name": service_name or "your appointment",
        "date": format_date(starts_at),
        "time": format_time(starts_at),
    }


def render(template: str, context: dict) -> str:
    return template.format_map(_KeepMissing(context)).strip()


def render_sms(context: dict, template: str = None) -> str:
    return render(template or DEFAULT_SMS_TEMPLATE, context)


def render_email(context: dict, template: str = None) -> tuple[str, str]:
    """Returns (subject, body)"""
    return render(DEFAULT_EMAIL_SUBJECT, context), render(template or DEFAULT_EMAIL_TEMPLATE, context)


def render_invoice_reminder(customer, business, invoice) -> str:
    contact = f"Pay online or call us at {business.phone}." if business.phone else "Pay online."
    return (
        f"Hi {greeting_name(customer)}! This is a reminder from {business.name} that invoice "
        f"#{invoice.invoice_number} for {format_amount(invoice.total)} is due. {contact} Thank you!"
    )


def render_job_follow_up(customer, business, job, review_link: str = None) -> str:
    message = (
        f"Hi {greeting_name(customer)}! Thank you for choosing {business.name}. "
        f'We hope you\'re satisfied with our work on "{job.title}".'
    )
    if review_link:
        message += f" We'd appreciate a review: {review_link}"
    elif business.phone:
        message += f" If you have any questions, call us at {business.phone}."
    return message
