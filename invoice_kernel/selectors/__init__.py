"""Read-only query selectors for invoices and registers."""

from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.selectors.register_selector import RegisterSelector

__all__ = [
    "InvoiceSelector",
    "RegisterSelector",
]
