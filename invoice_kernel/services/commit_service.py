"""
InvoiceCommitService -- numbering and commit protocol.

Responsibility:
    Turns a draft invoice into a committed one: assigns its number within
    the register, stamps the commit time, writes the tax bucket amounts and
    moves the register balance for cash and ledger payments.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes RegisterLock,
    InvoiceSelector and the pure tax/money functions.

Invariants enforced:
    - number = (committed invoices in the register) + 1, counted while the
      register is exclusively locked.  Numbers per register are therefore
      exactly 1..n with no duplicates and no gaps.
    - commit_ticket is bumped under the same lock on every commit.
    - committed_at is set exactly once, from the injected Clock.
    - register.balance moves by register_journal_delta in the same
      transaction that commits the invoice.

Failure modes:
    - AlreadyCommittedError: the invoice is committed (checked before and
      again inside the lock).  Nothing is written.
    - UnknownTaxRateError: an item carries an unknown rate in strict mode.
    - RegisterLockError: the store aborted the lock wait.  Retryable.
    - Any other storage error propagates untouched.
    On every failure the transaction is rolled back (auto_commit=True) and
    the invoice is left uncommitted, so the commit can be retried.

Audit relevance:
    ``invoice_committed`` is logged with register, number, ticket and
    totals for every successful commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.invoice_state import require_draft
from invoice_kernel.domain.money import sum_amounts
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from invoice_kernel.domain.tax import TaxBucket, bucket_gross_by_tax
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.invoice import Invoice, PaymentMethod
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.services.base import BaseService
from invoice_kernel.services.register_lock import (
    InProcessRegisterLock,
    RegisterLock,
    default_register_lock,
)

logger = get_logger("services.commit")


@dataclass(frozen=True)
class CommitOptions:
    """Caller-supplied overrides applied at commit time."""

    payment_method: PaymentMethod | str | None = None


@dataclass(frozen=True)
class CommitResult:
    """Immutable summary of a successful commit."""

    invoice_id: UUID
    register_id: UUID
    number: int
    committed_at: datetime
    gross_total: Decimal
    register_journal_delta: Decimal | None


class InvoiceCommitService(BaseService[Invoice]):
    """
    Commit protocol for draft invoices.

    Contract:
        ``commit(invoice)`` runs in the session's current transaction.  With
        ``auto_commit=True`` (default) it commits on success and rolls back
        on failure; the register lock is released only after the commit.
        With ``auto_commit=False`` the caller ends the transaction, and the
        register lock must be a RowLevelRegisterLock; an InProcessRegisterLock
        is rejected with ValueError.  Without an explicit lock, PostgreSQL
        sessions get a RowLevelRegisterLock and other stores raise ValueError.

    Guarantees:
        - Concurrent commits on one register receive distinct, contiguous
          numbers in lock-passing order.
        - Tax buckets are computed from the items as stored.

    Non-goals:
        - Does NOT export or transmit committed invoices.
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
        super().__init__(session)
        self._settings = settings
        self._clock = clock or SystemClock()
        self._register_lock = register_lock or default_register_lock(session, settings.lock)
        if not auto_commit and isinstance(self._register_lock, InProcessRegisterLock):
            # The mutex would be released before the caller commits
            raise ValueError("InProcessRegisterLock requires auto_commit=True")
        self._auto_commit = auto_commit
        self._invoices = InvoiceSelector(session)

    def commit(self, invoice: Invoice, options: CommitOptions | None = None) -> CommitResult:
        """
        Commit a draft invoice.

        Preconditions:
            - The invoice has been flushed (it has an id and a register).

        Postconditions:
            - invoice.number and invoice.committed_at are set.
            - net_total, gross_total and the five bucket amounts are final.
            - For cash and ledger payments, register_journal_delta equals
              gross_total and the register balance moved by it.

        Raises:
            AlreadyCommittedError: If the invoice is already committed.
            UnknownTaxRateError: Unknown tax rate with strict tax rates.
            RegisterLockError: If the register lock could not be acquired.
        """
        options = options or CommitOptions()
        self.session.flush()
        invoice_id = invoice.id
        register_id = invoice.register_id
        require_draft(invoice.state, str(invoice_id))

        # Derived outside the lock; assigned inside it
        items = self._invoices.line_items(invoice_id)
        buckets = bucket_gross_by_tax(
            items,
            bucket_rates=self._settings.tax_bucket_rates,
            strict=self._settings.strict_tax_rates,
        )
        gross_total = sum_amounts(item.calculated_gross_total for item in items)
        net_total = sum_amounts(item.calculated_net_total for item in items)

        with LogContext.bind(invoice_id=str(invoice_id), register_id=str(register_id)):
            logger.info(
                "invoice_commit_started",
                extra={"item_count": len(items), "gross_total": str(gross_total)},
            )
            try:
                with self._register_lock.exclusive(self.session, register_id) as register:
                    try:
                        self.session.refresh(invoice)
                        require_draft(invoice.state, str(invoice_id))

                        register.commit_ticket += 1
                        number = self._invoices.count_committed(register_id) + 1

                        invoice.number = number
                        invoice.committed_at = self._clock.now()
                        if options.payment_method is not None:
                            invoice.payment_method = PaymentMethod(options.payment_method)

                        invoice.gross_total = gross_total
                        invoice.net_total = net_total
                        for bucket in TaxBucket:
                            setattr(invoice, bucket.invoice_field, buckets.get(bucket))

                        if PaymentMethod(invoice.payment_method).moves_register_balance:
                            invoice.register_journal_delta = gross_total
                            register.balance = register.balance + gross_total
                        else:
                            invoice.register_journal_delta = None

                        self.session.flush()
                        result = CommitResult(
                            invoice_id=invoice_id,
                            register_id=register_id,
                            number=number,
                            committed_at=invoice.committed_at,
                            gross_total=gross_total,
                            register_journal_delta=invoice.register_journal_delta,
                        )
                        ticket = register.commit_ticket

                        if self._auto_commit:
                            self.session.commit()
                    except Exception:
                        if self._auto_commit:
                            self.session.rollback()
                        raise
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.warning("invoice_commit_failed", exc_info=True)
                raise

            logger.info(
                "invoice_committed",
                extra={
                    "number": result.number,
                    "commit_ticket": ticket,
                    "payment_method": PaymentMethod(invoice.payment_method).value,
                    "gross_total": str(result.gross_total),
                    "register_journal_delta": (
                        str(result.register_journal_delta)
                        if result.register_journal_delta is not None
                        else None
                    ),
                },
            )
        return result
