"""Services for the invoice kernel (write side)."""

from invoice_kernel.services.cancellation_service import CancellationService
from invoice_kernel.services.commit_service import (
    CommitOptions,
    CommitResult,
    InvoiceCommitService,
)
from invoice_kernel.services.invoice_service import InvoiceService
from invoice_kernel.services.line_item_ledger import LineItemLedger
from invoice_kernel.services.register_lock import (
    InProcessRegisterLock,
    RegisterLock,
    RowLevelRegisterLock,
    default_register_lock,
)

__all__ = [
    "CancellationService",
    "CommitOptions",
    "CommitResult",
    "InProcessRegisterLock",
    "InvoiceCommitService",
    "InvoiceService",
    "LineItemLedger",
    "RegisterLock",
    "RowLevelRegisterLock",
    "default_register_lock",
]
