"""
InvoiceService -- the public entry point for invoice operations.

Responsibility:
    Composes the line item ledger, the commit protocol and the cancellation
    protocol around one session, and owns the transaction boundary of each
    call when constructed with ``auto_commit=True``.

Architecture position:
    Kernel > Services -- top-level orchestrator.  Constructed explicitly by
    the caller with its dependencies; there is no process-wide instance.

Failure modes:
    Every mutating call either completes and commits, or rolls back the
    session and re-raises.  Errors are the typed kernel errors listed in
    ``invoice_kernel.exceptions`` plus untouched storage errors.

Usage:
    service = InvoiceService(session, settings=config.settings, clock=clock)
    invoice = service.create_invoice(company_id, user_id, register_id)
    service.add_line_item(invoice, LineItem(name="Coffee", tax_percentage=Decimal("10"),
                                            gross_amount_per_item=Decimal("3.30")))
    result = service.commit(invoice)
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator
from uuid import UUID

from sqlalchemy.orm import Session

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.journal_position import JournalDirection, JournalPosition
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.invoice import Invoice, LineItem, PaymentMethod
from invoice_kernel.models.register import Register
from invoice_kernel.selectors.register_selector import RegisterSelector
from invoice_kernel.services.cancellation_service import CancellationService
from invoice_kernel.services.commit_service import (
    CommitOptions,
    CommitResult,
    InvoiceCommitService,
)
from invoice_kernel.services.line_item_ledger import LineItemLedger
from invoice_kernel.services.register_lock import RegisterLock

logger = get_logger("services.invoice")


class InvoiceService:
    """
    Facade over the invoice kernel services.

    Contract:
        Holds no state beyond its collaborators.  With ``auto_commit=True``
        (default) every mutating method commits on success and rolls back on
        failure.  With ``auto_commit=False`` methods only flush and the
        caller ends the transaction.

    Guarantees:
        - Draft-only operations raise AlreadyCommittedError on committed
          invoices and change nothing.
        - commit() numbers invoices contiguously per register.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: KernelSettings = DEFAULT_SETTINGS,
        clock: Clock | None = None,
        register_lock: RegisterLock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._settings = settings
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        self._registers = RegisterSelector(session)
        self._ledger = LineItemLedger(session, settings)
        self._committer = InvoiceCommitService(
            session,
            settings=settings,
            clock=self._clock,
            register_lock=register_lock,
            auto_commit=auto_commit,
        )
        self._cancellations = CancellationService(session, self._ledger, settings)

    @property
    def ledger(self) -> LineItemLedger:
        return self._ledger

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            if self._auto_commit:
                self._session.commit()
            else:
                self._session.flush()
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            raise

    # -------------------------------------------------------------------------
    # Drafts
    # -------------------------------------------------------------------------

    def create_invoice(
        self,
        company_id: UUID,
        user_id: UUID,
        register_id: UUID,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
        customer_id: UUID | None = None,
        test_receipt: bool = False,
    ) -> Invoice:
        """
        Create an empty draft invoice in a register.

        Raises:
            RegisterNotFoundError: If the register does not exist.
        """
        with self._unit_of_work():
            self._registers.get_or_raise(register_id)
            invoice = Invoice(
                company_id=company_id,
                user_id=user_id,
                register_id=register_id,
                customer_id=customer_id,
                payment_method=PaymentMethod(payment_method),
                test_receipt=test_receipt,
            )
            self._session.add(invoice)
            self._session.flush()

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "register_id": str(register_id),
                "payment_method": PaymentMethod(payment_method).value,
            },
        )
        return invoice

    def add_line_item(self, invoice: Invoice, item: LineItem) -> LineItem:
        with self._unit_of_work():
            return self._ledger.add_line_item(invoice, item)

    def delete_line_item(self, invoice: Invoice, item: LineItem) -> None:
        with self._unit_of_work():
            self._ledger.delete_line_item(invoice, item)

    def recalculate_totals(self, invoice: Invoice) -> Invoice:
        with self._unit_of_work():
            return self._ledger.recalculate_totals(invoice)

    def mark_as_manual_receipt(
        self,
        invoice: Invoice,
        number: str,
        receipt_date: date | None = None,
    ) -> bool:
        """
        Record that this invoice transcribes a handwritten receipt.

        Only the first call has an effect; the manual receipt number and
        date are never overwritten.  Line items added afterwards are named
        after the manual receipt.

        Returns:
            True if the invoice was changed.

        Raises:
            AlreadyCommittedError: If the invoice is committed.
        """
        with self._unit_of_work():
            self._ledger.require_stored_draft(invoice)
            if invoice.manual_receipt_number:
                return False
            invoice.manual_receipt_number = number
            invoice.manual_receipt_date = receipt_date
            self._session.flush()

        logger.info(
            "invoice_marked_manual_receipt",
            extra={
                "invoice_id": str(invoice.id),
                "manual_receipt_number": number,
            },
        )
        return True

    # -------------------------------------------------------------------------
    # Commit and cancellation
    # -------------------------------------------------------------------------

    def commit(self, invoice: Invoice, options: CommitOptions | None = None) -> CommitResult:
        """Commit a draft invoice.  See InvoiceCommitService.commit."""
        return self._committer.commit(invoice, options)

    def cancel(self, invoice: Invoice) -> Invoice:
        """
        Create the (uncommitted) cancellation invoice of a committed invoice.

        Raises:
            InvalidStateError: If the invoice is not committed.
        """
        with LogContext.bind(invoice_id=str(invoice.id)):
            with self._unit_of_work():
                return self._cancellations.cancel(invoice)

    def record_journal_position(
        self,
        company_id: UUID,
        user_id: UUID,
        register: Register | UUID,
        position: JournalPosition,
        test_receipt: bool = False,
    ) -> Invoice:
        """
        Record a cash deposit or withdrawal as a ledger-paid draft invoice.

        The invoice carries one 0 % line of ``+amount`` (deposit) or
        ``-amount`` (withdrawal).  Committing it moves the register balance
        like any other ledger invoice.
        """
        register_id = register.id if isinstance(register, Register) else register
        labels = self._settings.labels
        if position.direction is JournalDirection.IN:
            name = labels.cash_deposit.format(note=position.note)
        else:
            name = labels.cash_withdrawal.format(note=position.note)

        with self._unit_of_work():
            self._registers.get_or_raise(register_id)
            invoice = Invoice(
                company_id=company_id,
                user_id=user_id,
                register_id=register_id,
                payment_method=PaymentMethod.LEDGER,
                test_receipt=test_receipt,
            )
            self._session.add(invoice)
            self._session.flush()
            self._ledger.add_line_item(
                invoice,
                LineItem(
                    name=name,
                    quantity=Decimal("1"),
                    tax_percentage=Decimal("0"),
                    gross_amount_per_item=position.signed_amount,
                    product_description="",
                ),
            )

        logger.info(
            "journal_position_recorded",
            extra={
                "invoice_id": str(invoice.id),
                "register_id": str(register_id),
                "direction": position.direction.value,
                "amount": str(position.amount),
            },
        )
        return invoice
