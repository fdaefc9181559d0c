import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bizops.db")

# Bearer token for the internal scheduler admin endpoints (disabled when unset)
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

# Twilio SMS Configuration (platform account; businesses may override the From number)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")
TWILIO_API_BASE_URL = os.getenv("TWILIO_API_BASE_URL", "https://api.twilio.com/2010-04-01")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "BizOps <noreply@bizops.app>")

# Background schedulers
# Set SCHEDULERS_ENABLED=false when running extra API replicas so only one process ticks
SCHEDULERS_ENABLED = os.getenv("SCHEDULERS_ENABLED", "true").lower() == "true"
REMINDER_INTERVAL_SECONDS = int(os.getenv("REMINDER_INTERVAL_SECONDS", "3600"))  # Every hour
RECURRING_INTERVAL_SECONDS = int(os.getenv("RECURRING_INTERVAL_SECONDS", "3600"))  # Every hour
OVERDUE_INVOICE_INTERVAL_SECONDS = int(
    os.getenv("OVERDUE_INVOICE_INTERVAL_SECONDS", "21600")
)  # Every 6 hours
DEFAULT_REMINDER_LEAD_HOURS = int(os.getenv("DEFAULT_REMINDER_LEAD_HOURS", "24"))

# Invoices generated from recurring schedules
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "30"))
