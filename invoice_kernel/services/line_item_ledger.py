"""
LineItemLedger -- adds and removes line items on draft invoices.

Responsibility:
    Owns every change to an invoice's line item set and keeps the invoice's
    net and gross totals equal to the sum of its items.

Architecture position:
    Kernel > Services -- imperative shell.  Consumed by the cancellation
    protocol and the InvoiceService facade.

Invariants enforced:
    - Line items change only while the invoice is a draft.
    - Totals are always recomputed from the items as stored, never from the
      in-memory collection.
    - With strict tax rates, an item whose rate is not a configured bucket
      is rejected before it is persisted.

Failure modes:
    - AlreadyCommittedError: the invoice is committed.
    - InvalidStateError: the item is already persisted, or belongs to a
      different invoice.
    - UnknownTaxRateError: unknown tax percentage in strict mode.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from invoice_kernel.domain.invoice_state import require_draft
from invoice_kernel.domain.money import gross_from_net, sum_amounts
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from invoice_kernel.domain.tax import validate_tax_rate
from invoice_kernel.exceptions import InvalidStateError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.invoice import Invoice, LineItem
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.services.base import BaseService

logger = get_logger("services.line_item_ledger")


class LineItemLedger(BaseService[LineItem]):
    """
    Line item mutations for draft invoices.

    Contract:
        Every public method flushes; none commits.  A failing call leaves
        the caller's transaction to be rolled back by the caller (the
        InvoiceService facade does this when auto_commit is set), so a
        delete and the recalculation that follows it land together or not
        at all.

    Non-goals:
        - Does NOT edit existing items; callers delete and re-add.
    """

    def __init__(self, session: Session, settings: KernelSettings = DEFAULT_SETTINGS):
        super().__init__(session)
        self._settings = settings
        self._invoices = InvoiceSelector(session)

    def add_line_item(self, invoice: Invoice, item: LineItem) -> LineItem:
        """
        Attach a new line item to a draft invoice.

        On a manual-receipt invoice the item is renamed to the manual
        receipt label.  Otherwise, on a net-input register, the amount the
        caller typed is a net amount and is converted to gross (cancellation
        invoices already carry gross amounts and are never converted).

        Returns:
            The persisted item.

        Raises:
            AlreadyCommittedError: If the invoice is committed.
            InvalidStateError: If the item is already persisted.
            UnknownTaxRateError: Unknown tax rate with strict tax rates.
        """
        if invoice.id is None:
            self.session.add(invoice)
            self.session.flush()
        invoice_id = str(invoice.id)
        self.require_stored_draft(invoice)

        if inspect(item).has_identity:
            raise InvalidStateError(
                entity_type="LineItem",
                entity_id=str(item.id),
                reason="line item must be new",
            )

        if item.quantity is None:
            item.quantity = Decimal("1")
        if item.product_description is None:
            item.product_description = ""

        if self._settings.strict_tax_rates:
            validate_tax_rate(item.tax_percentage, self._settings.tax_bucket_rates)

        if invoice.manual_receipt_number:
            item.name = self._settings.labels.manual_receipt_label(
                invoice.manual_receipt_number, invoice.manual_receipt_date
            )
        elif (
            item.gross_amount_per_item is not None
            and invoice.register.net_amount_input
            and not invoice.is_cancellation
        ):
            item.gross_amount_per_item = gross_from_net(
                item.gross_amount_per_item, item.tax_percentage
            )

        item.line_no = self._next_line_no(invoice)
        item.invoice = invoice
        self.session.add(item)
        self.session.flush()

        self.recalculate_totals(invoice)

        logger.info(
            "line_item_added",
            extra={
                "invoice_id": invoice_id,
                "line_item_id": str(item.id),
                "line_no": item.line_no,
                "tax_percentage": str(item.tax_percentage),
                "gross_amount_per_item": str(item.gross_amount_per_item),
            },
        )
        return item

    def delete_line_item(self, invoice: Invoice, item: LineItem) -> None:
        """
        Remove a line item from a draft invoice and recompute its totals.

        Raises:
            AlreadyCommittedError: If the invoice is committed.
            InvalidStateError: If the item does not belong to the invoice.
        """
        invoice_id = str(invoice.id)
        self.require_stored_draft(invoice)

        if item.invoice_id != invoice.id:
            raise InvalidStateError(
                entity_type="LineItem",
                entity_id=str(item.id),
                reason=f"line item does not belong to invoice {invoice_id}",
            )

        self.session.delete(item)
        self.session.flush()
        self.recalculate_totals(invoice)

        logger.info(
            "line_item_deleted",
            extra={"invoice_id": invoice_id, "line_item_id": str(item.id)},
        )

    def recalculate_totals(self, invoice: Invoice) -> Invoice:
        """
        Recompute net_total and gross_total from the stored items.

        Idempotent: a second call with no item changes in between writes the
        same totals.

        Raises:
            AlreadyCommittedError: If the invoice is committed in the store.
        """
        self.session.flush()
        self.session.refresh(invoice)
        require_draft(invoice.state, str(invoice.id))

        items = self.line_items_of(invoice)
        self.session.expire(invoice, ["line_items"])

        invoice.gross_total = sum_amounts(item.calculated_gross_total for item in items)
        invoice.net_total = sum_amounts(item.calculated_net_total for item in items)
        self.session.flush()

        logger.debug(
            "invoice_totals_recalculated",
            extra={
                "invoice_id": str(invoice.id),
                "item_count": len(items),
                "gross_total": str(invoice.gross_total),
                "net_total": str(invoice.net_total),
            },
        )
        return invoice

    def require_stored_draft(self, invoice: Invoice) -> None:
        """
        Raise AlreadyCommittedError unless the invoice is a draft in the store.

        Reloads committed_at and number first: another session may have
        committed the invoice since this one loaded it.
        """
        if inspect(invoice).has_identity:
            self.session.refresh(invoice, ["committed_at", "number"])
        require_draft(invoice.state, str(invoice.id))

    def line_items_of(self, invoice: Invoice) -> list[LineItem]:
        """The invoice's items as currently stored, in line order."""
        return self._invoices.line_items(invoice.id)

    def _next_line_no(self, invoice: Invoice) -> int:
        current = self.session.execute(
            select(func.coalesce(func.max(LineItem.line_no), 0)).where(
                LineItem.invoice_id == invoice.id
            )
        ).scalar_one()
        return int(current) + 1
