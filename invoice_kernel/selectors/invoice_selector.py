"""
InvoiceSelector -- read-side queries over invoices.

Used by the commit protocol for the in-lock count of committed invoices,
and by callers to inspect numbering and cancellations.
"""

from uuid import UUID

from sqlalchemy import func, select

from invoice_kernel.exceptions import InvoiceNotFoundError
from invoice_kernel.models.invoice import Invoice, LineItem
from invoice_kernel.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector[Invoice]):
    """Read-only invoice queries."""

    def get(self, invoice_id: UUID) -> Invoice | None:
        return self.session.get(Invoice, invoice_id)

    def get_or_raise(self, invoice_id: UUID) -> Invoice:
        """
        Load an invoice by id.

        Raises:
            InvoiceNotFoundError: If no invoice has this id.
        """
        invoice = self.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def count_committed(self, register_id: UUID) -> int:
        """Number of committed invoices in a register.

        Only stable while the caller holds the register lock.
        """
        return self.session.execute(
            select(func.count())
            .select_from(Invoice)
            .where(
                Invoice.register_id == register_id,
                Invoice.committed_at.is_not(None),
            )
        ).scalar_one()

    def committed_numbers(self, register_id: UUID) -> list[int]:
        """Invoice numbers of a register in ascending order."""
        return list(
            self.session.execute(
                select(Invoice.number)
                .where(
                    Invoice.register_id == register_id,
                    Invoice.committed_at.is_not(None),
                )
                .order_by(Invoice.number)
            ).scalars()
        )

    def cancellations_of(self, invoice_id: UUID) -> list[Invoice]:
        """Invoices that reference ``invoice_id`` as the invoice they cancel."""
        return list(
            self.session.execute(
                select(Invoice).where(Invoice.cancels_invoice_id == invoice_id)
            ).scalars()
        )

    def line_items(self, invoice_id: UUID) -> list[LineItem]:
        """Line items of an invoice as stored, in line order.

        Overwrites any in-memory state of already loaded items.
        """
        return list(
            self.session.execute(
                select(LineItem)
                .where(LineItem.invoice_id == invoice_id)
                .order_by(LineItem.line_no)
                .execution_options(populate_existing=True)
            ).scalars()
        )
