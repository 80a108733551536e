"""ORM models for the invoice kernel."""

from invoice_kernel.models.invoice import Invoice, LineItem, PaymentMethod
from invoice_kernel.models.register import Register

__all__ = [
    "Invoice",
    "LineItem",
    "PaymentMethod",
    "Register",
]
