"""
CancellationService -- reverses a committed invoice with a new invoice.

Responsibility:
    Builds a cancellation invoice whose line items mirror the original's
    with negated gross amounts, so that once committed it nets the original
    to zero in every total and tax bucket.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes LineItemLedger.

Invariants enforced:
    - The original invoice is never modified; the link is the new invoice's
      cancels_invoice_id.
    - Every mirrored line goes through the ledger, so the cancellation's
      totals are computed exactly like any other invoice's.

Failure modes:
    - InvalidStateError: the original is not committed.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from invoice_kernel.domain.invoice_state import require_committed
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.invoice import Invoice, LineItem
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.services.base import BaseService
from invoice_kernel.services.line_item_ledger import LineItemLedger

logger = get_logger("services.cancellation")


class CancellationService(BaseService[Invoice]):
    """
    Creates cancellation invoices.

    Contract:
        ``cancel(invoice)`` returns a new, uncommitted draft.  The caller
        commits it through the regular commit protocol, which numbers it in
        the same register and reverses the original's balance movement.

    Non-goals:
        - Does NOT commit the cancellation.
        - Does NOT prevent a second cancellation of the same invoice.
    """

    def __init__(
        self,
        session: Session,
        ledger: LineItemLedger | None = None,
        settings: KernelSettings = DEFAULT_SETTINGS,
    ):
        super().__init__(session)
        self._settings = settings
        self._ledger = ledger or LineItemLedger(session, settings)
        self._invoices = InvoiceSelector(session)

    def cancel(self, invoice: Invoice) -> Invoice:
        """
        Create the cancellation invoice for a committed invoice.

        Postconditions:
            - The returned invoice is a draft in the original's register with
              cancels_invoice_id set to the original.
            - Its gross_total is the negated gross_total of the original.

        Raises:
            InvalidStateError: If the invoice is not committed.
        """
        require_committed(invoice.state, str(invoice.id))

        cancellation = Invoice(
            company_id=invoice.company_id,
            user_id=invoice.user_id,
            register_id=invoice.register_id,
            customer_id=invoice.customer_id,
            manual_receipt_number=invoice.manual_receipt_number,
            manual_receipt_date=invoice.manual_receipt_date,
            test_receipt=invoice.test_receipt,
            payment_method=invoice.payment_method,
            cancels_invoice_id=invoice.id,
        )
        self.session.add(cancellation)
        self.session.flush()

        labels = self._settings.labels
        for original_item in self._invoices.line_items(invoice.id):
            self._ledger.add_line_item(
                cancellation,
                LineItem(
                    name=labels.cancellation_label(original_item.name),
                    quantity=original_item.quantity,
                    tax_percentage=original_item.tax_percentage,
                    gross_amount_per_item=-original_item.gross_amount_per_item,
                    product_description=original_item.product_description,
                ),
            )

        logger.info(
            "invoice_cancellation_created",
            extra={
                "invoice_id": str(cancellation.id),
                "cancels_invoice_id": str(invoice.id),
                "register_id": str(invoice.register_id),
                "gross_total": str(cancellation.gross_total),
            },
        )
        return cancellation
