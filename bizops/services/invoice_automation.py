"""
Automated status transitions for invoices
Handles pending → overdue once an invoice's due date has passed
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..domain.businesses.repository import BusinessRepository
from ..models import Invoice

logger = logging.getLogger(__name__)


def mark_overdue_invoices(db: Session, today: Optional[date] = None) -> dict:
    """
    Mark pending invoices whose due date is before today as overdue
    Invoices are handled business by business so one bad tenant does not block the rest

    Returns:
        dict: Summary of status changes made
    """
    today = today or datetime.utcnow().date()
    summary = {"checked_businesses": 0, "marked_overdue": 0, "failed_businesses": 0}

    business_ids = BusinessRepository.list_active_businesses(db)

    for business_id in business_ids:
        try:
            overdue = (
                db.query(Invoice)
                .filter(
                    Invoice.business_id == business_id,
                    Invoice.status == "pending",
                    Invoice.due_date.isnot(None),
                    Invoice.due_date < today,
                )
                .all()
            )
            for invoice in overdue:
                invoice.status = "overdue"
                logger.info(
                    f"✅ Invoice {invoice.invoice_number} (business {business_id}) transitioned: pending → overdue"
                )
            db.commit()
            summary["marked_overdue"] += len(overdue)
            summary["checked_businesses"] += 1
        except Exception as e:
            db.rollback()
            summary["failed_businesses"] += 1
            logger.error(f"❌ Error checking overdue invoices for business {business_id}: {e}")

    if summary["marked_overdue"]:
        logger.info(f"📊 Overdue invoice summary: {summary}")
    else:
        logger.debug("ℹ️ No invoices became overdue")
    return summary


async def run_overdue_invoice_check(
    session_factory: Callable[[], Session] = SessionLocal, today: Optional[date] = None
) -> dict:
    def sweep() -> dict:
        db = session_factory()
        try:
            return mark_overdue_invoices(db, today)
        finally:
            db.close()

    return await asyncio.to_thread(sweep)
