"""
Tests for the overdue invoice sweep.
"""

import asyncio
from datetime import date

import pytest

from bizops.models import Invoice
from bizops.services.invoice_automation import mark_overdue_invoices, run_overdue_invoice_check


@pytest.fixture
def make_invoice(db):
    def factory(business, customer, number, status="pending", due_date=None):
        invoice = Invoice(
            business_id=business.id,
            customer_id=customer.id,
            invoice_number=number,
            amount=100.0,
            tax=0,
            total=100.0,
            status=status,
            due_date=due_date,
        )
        db.add(invoice)
        db.commit()
        return invoice

    return factory


@pytest.mark.integration
class TestMarkOverdueInvoices:
    def test_only_past_due_pending_invoices_change(self, db, make_business, make_customer, make_invoice):
        """
        GIVEN pending, paid and undated invoices around 2024-06-10
        WHEN the overdue sweep runs on 2024-06-10
        THEN only pending invoices due before that day become overdue
        """
        business = make_business()
        customer = make_customer(business)
        late = make_invoice(business, customer, "INV-1", due_date=date(2024, 6, 1))
        due_today = make_invoice(business, customer, "INV-2", due_date=date(2024, 6, 10))
        future = make_invoice(business, customer, "INV-3", due_date=date(2024, 6, 20))
        paid = make_invoice(business, customer, "INV-4", status="paid", due_date=date(2024, 5, 1))
        undated = make_invoice(business, customer, "INV-5")

        summary = mark_overdue_invoices(db, today=date(2024, 6, 10))

        db.expire_all()
        assert summary == {"checked_businesses": 1, "marked_overdue": 1, "failed_businesses": 0}
        assert db.get(Invoice, late.id).status == "overdue"
        assert db.get(Invoice, due_today.id).status == "pending"
        assert db.get(Invoice, future.id).status == "pending"
        assert db.get(Invoice, paid.id).status == "paid"
        assert db.get(Invoice, undated.id).status == "pending"

    def test_inactive_businesses_are_skipped(self, db, make_business, make_customer, make_invoice):
        business = make_business(is_active=False)
        invoice = make_invoice(business, make_customer(business), "INV-9", due_date=date(2024, 6, 1))

        summary = mark_overdue_invoices(db, today=date(2024, 6, 10))

        db.expire_all()
        assert summary["checked_businesses"] == 0
        assert db.get(Invoice, invoice.id).status == "pending"

    def test_second_sweep_changes_nothing(self, session_factory, make_business, make_customer, make_invoice):
        business = make_business()
        make_invoice(business, make_customer(business), "INV-1", due_date=date(2024, 6, 1))

        first = asyncio.run(run_overdue_invoice_check(session_factory, today=date(2024, 6, 10)))
        second = asyncio.run(run_overdue_invoice_check(session_factory, today=date(2024, 6, 10)))

        assert first["marked_overdue"] == 1
        assert second["marked_overdue"] == 0
