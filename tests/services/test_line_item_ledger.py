"""
Tests for LineItemLedger.

Invariants tested:
- Totals always equal the sum of the stored items.
- Net-input registers convert the typed amount to gross; cancellations
  are never converted.
- Manual receipt invoices name every item after the manual receipt.
- Committed invoices reject every line item change.
- Unknown tax rates are rejected before persisting in strict mode.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from invoice_kernel.domain.settings import KernelSettings
from invoice_kernel.exceptions import (
    AlreadyCommittedError,
    InvalidStateError,
    UnknownTaxRateError,
)
from invoice_kernel.models.invoice import Invoice, LineItem
from invoice_kernel.models.register import Register
from invoice_kernel.services.invoice_service import InvoiceService


class TestAddLineItem:
    def test_totals_follow_items(self, invoice_service, create_invoice, make_line_item):
        invoice = create_invoice()

        invoice_service.add_line_item(invoice, make_line_item("120.00", "20"))
        invoice_service.add_line_item(invoice, make_line_item("11.00", "10"))

        assert invoice.gross_total == Decimal("131.00")
        assert invoice.net_total == Decimal("110")

    def test_quantity_multiplies(self, invoice_service, create_invoice, make_line_item):
        invoice = create_invoice()
        invoice_service.add_line_item(invoice, make_line_item("2.50", "10", quantity="4"))

        assert invoice.gross_total == Decimal("10.00")

    def test_line_numbers_are_sequential(self, invoice_service, create_invoice, make_line_item):
        invoice = create_invoice()
        first = invoice_service.add_line_item(invoice, make_line_item())
        second = invoice_service.add_line_item(invoice, make_line_item())

        assert (first.line_no, second.line_no) == (1, 2)

    def test_defaults_quantity_and_description(self, invoice_service, create_invoice):
        invoice = create_invoice()
        item = invoice_service.add_line_item(
            invoice,
            LineItem(
                name="Water",
                tax_percentage=Decimal("10"),
                gross_amount_per_item=Decimal("1.10"),
            ),
        )

        assert item.quantity == Decimal("1")
        assert item.product_description == ""
        assert invoice.gross_total == Decimal("1.10")

    def test_net_input_register_converts_to_gross(
        self, invoice_service, create_register, create_invoice, make_line_item
    ):
        """Net 100.00 at 20 % on a net-input register is stored as 120.00 gross."""
        net_register = create_register(net_amount_input=True)
        invoice = create_invoice(net_register)

        item = invoice_service.add_line_item(invoice, make_line_item("100.00", "20"))

        assert item.gross_amount_per_item == Decimal("120")
        assert invoice.gross_total == Decimal("120")
        assert invoice.net_total == Decimal("100")

    def test_gross_input_register_keeps_amount(
        self, invoice_service, create_invoice, make_line_item
    ):
        invoice = create_invoice()
        item = invoice_service.add_line_item(invoice, make_line_item("100.00", "20"))

        assert item.gross_amount_per_item == Decimal("100.00")

    def test_manual_receipt_renames_item(
        self, invoice_service, create_invoice, make_line_item
    ):
        invoice = create_invoice()
        invoice_service.mark_as_manual_receipt(invoice, "HB-17", date(2024, 3, 5))

        item = invoice_service.add_line_item(invoice, make_line_item(name="Coffee"))

        assert item.name == "Manual receipt HB-17 on 05.03.2024"

    def test_manual_receipt_on_net_register_is_not_converted(
        self, invoice_service, create_register, create_invoice, make_line_item
    ):
        net_register = create_register(net_amount_input=True)
        invoice = create_invoice(net_register)
        invoice_service.mark_as_manual_receipt(invoice, "HB-1", date(2024, 1, 2))

        item = invoice_service.add_line_item(invoice, make_line_item("50.00", "20"))

        assert item.gross_amount_per_item == Decimal("50.00")

    def test_unknown_tax_rate_rejected(
        self, invoice_service, session, create_invoice, make_line_item
    ):
        invoice = create_invoice()

        with pytest.raises(UnknownTaxRateError):
            invoice_service.add_line_item(invoice, make_line_item(tax="7"))

        count = session.execute(select(func.count()).select_from(LineItem)).scalar_one()
        assert count == 0

    def test_unknown_tax_rate_accepted_when_lenient(
        self, session, deterministic_clock, register_lock, create_invoice, make_line_item
    ):
        lenient = InvoiceService(
            session,
            settings=KernelSettings(strict_tax_rates=False),
            clock=deterministic_clock,
            register_lock=register_lock,
        )
        invoice = create_invoice()

        lenient.add_line_item(invoice, make_line_item("10.70", "7"))

        assert invoice.gross_total == Decimal("10.70")

    def test_persisted_item_rejected(self, invoice_service, create_invoice, make_line_item):
        invoice = create_invoice()
        item = invoice_service.add_line_item(invoice, make_line_item())

        with pytest.raises(InvalidStateError):
            invoice_service.add_line_item(invoice, item)

    def test_committed_invoice_rejected(
        self, invoice_service, draft_with_items, make_line_item
    ):
        invoice = draft_with_items(("10.00", "20"))
        invoice_service.commit(invoice)

        with pytest.raises(AlreadyCommittedError):
            invoice_service.add_line_item(invoice, make_line_item())

        assert invoice.gross_total == Decimal("10.00")

    def test_logs_line_item_added(
        self, invoice_service, create_invoice, make_line_item, captured_logs
    ):
        invoice = create_invoice()
        invoice_service.add_line_item(invoice, make_line_item())

        added = [r for r in captured_logs() if r["message"] == "line_item_added"]
        assert len(added) == 1
        assert added[0]["invoice_id"] == str(invoice.id)


class TestDeleteLineItem:
    def test_delete_recalculates(self, invoice_service, create_invoice, make_line_item):
        invoice = create_invoice()
        keep = invoice_service.add_line_item(invoice, make_line_item("5.00", "20"))
        drop = invoice_service.add_line_item(invoice, make_line_item("7.00", "10"))

        invoice_service.delete_line_item(invoice, drop)

        assert invoice.gross_total == Decimal("5.00")
        remaining = invoice_service.ledger.line_items_of(invoice)
        assert [item.id for item in remaining] == [keep.id]

    def test_delete_last_item_zeroes_totals(
        self, invoice_service, create_invoice, make_line_item
    ):
        invoice = create_invoice()
        item = invoice_service.add_line_item(invoice, make_line_item("5.00", "20"))

        invoice_service.delete_line_item(invoice, item)

        assert invoice.gross_total == Decimal("0")
        assert invoice.net_total == Decimal("0")

    def test_item_of_other_invoice_rejected(
        self, invoice_service, create_invoice, make_line_item
    ):
        first = create_invoice()
        second = create_invoice()
        item = invoice_service.add_line_item(first, make_line_item())

        with pytest.raises(InvalidStateError):
            invoice_service.delete_line_item(second, item)

    def test_committed_invoice_rejected(
        self, invoice_service, session, draft_with_items
    ):
        invoice = draft_with_items(("10.00", "20"), ("3.00", "10"))
        invoice_service.commit(invoice)
        item = invoice_service.ledger.line_items_of(invoice)[0]

        with pytest.raises(AlreadyCommittedError):
            invoice_service.delete_line_item(invoice, item)

        assert len(invoice_service.ledger.line_items_of(invoice)) == 2
        assert invoice.gross_total == Decimal("13.00")


class TestRecalculateTotals:
    def test_idempotent(self, invoice_service, draft_with_items):
        invoice = draft_with_items(("1.10", "10", "3"), ("2.40", "20"))

        invoice_service.recalculate_totals(invoice)
        first = (invoice.gross_total, invoice.net_total)
        invoice_service.recalculate_totals(invoice)

        assert (invoice.gross_total, invoice.net_total) == first
        assert invoice.gross_total == Decimal("5.70")

    def test_committed_invoice_rejected(self, invoice_service, draft_with_items):
        invoice = draft_with_items(("10.00", "20"))
        invoice_service.commit(invoice)

        with pytest.raises(AlreadyCommittedError):
            invoice_service.recalculate_totals(invoice)


class TestCommittedElsewhere:
    """A draft loaded in one session and committed from another."""

    @pytest.fixture
    def two_services(self, file_session_factory, deterministic_clock, register_lock):
        sessions = [file_session_factory(), file_session_factory()]
        services = [
            InvoiceService(s, clock=deterministic_clock, register_lock=register_lock)
            for s in sessions
        ]
        yield services
        for s in sessions:
            s.close()

    @pytest.fixture
    def draft(self, two_services, make_line_item, test_user_id):
        service = two_services[0]
        session = service.ledger.session
        register = Register(company_id=uuid4(), name="Till 2")
        session.add(register)
        session.commit()
        invoice = service.create_invoice(register.company_id, test_user_id, register.id)
        service.add_line_item(invoice, make_line_item("10.00", "20"))
        return invoice

    def test_add_rejected_with_already_committed(
        self, two_services, draft, make_line_item
    ):
        first, second = two_services
        stale = second.ledger.session.get(Invoice, draft.id)
        assert stale.committed_at is None

        first.commit(draft)

        with pytest.raises(AlreadyCommittedError) as exc_info:
            second.add_line_item(stale, make_line_item("5.00", "20"))

        assert exc_info.value.number == 1
        assert len(second.ledger.line_items_of(stale)) == 1

    def test_delete_rejected_with_already_committed(self, two_services, draft):
        first, second = two_services
        stale = second.ledger.session.get(Invoice, draft.id)
        stale_item = second.ledger.line_items_of(stale)[0]

        first.commit(draft)

        with pytest.raises(AlreadyCommittedError):
            second.delete_line_item(stale, stale_item)

        assert len(second.ledger.line_items_of(stale)) == 1

    def test_manual_receipt_rejected_with_already_committed(self, two_services, draft):
        first, second = two_services
        stale = second.ledger.session.get(Invoice, draft.id)

        first.commit(draft)

        with pytest.raises(AlreadyCommittedError):
            second.mark_as_manual_receipt(stale, "HB-8", date(2024, 5, 1))
