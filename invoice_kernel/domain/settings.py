"""
Kernel settings -- the runtime knobs the services read.

Built by ``invoice_config`` from YAML; the kernel never reads files or
environment variables itself.  ``DEFAULT_SETTINGS`` mirrors the shipped
default configuration set so the kernel is usable without it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Mapping

from invoice_kernel.domain.tax import DEFAULT_TAX_BUCKET_RATES, TaxBucket


@dataclass(frozen=True)
class Labels:
    """Line item names the kernel generates."""

    manual_receipt: str = "Manual receipt {number} on {date}"
    cancellation_prefix: str = "Cancellation "
    cash_deposit: str = "Cash deposit {note}"
    cash_withdrawal: str = "Cash withdrawal {note}"
    date_format: str = "%d.%m.%Y"

    def manual_receipt_label(self, number: str, receipt_date: date | None) -> str:
        formatted = receipt_date.strftime(self.date_format) if receipt_date else ""
        return self.manual_receipt.format(number=number, date=formatted)

    def cancellation_label(self, original_name: str) -> str:
        return f"{self.cancellation_prefix}{original_name}"


@dataclass(frozen=True)
class LockPolicy:
    """Register lock behaviour.

    timeout_ms bounds the wait for the register row lock on PostgreSQL
    (``SET LOCAL lock_timeout``).  None leaves the server default.
    """

    timeout_ms: int | None = None


@dataclass(frozen=True)
class KernelSettings:
    """Settings consumed by the invoice services."""

    tax_bucket_rates: Mapping[TaxBucket, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_TAX_BUCKET_RATES)
    )
    strict_tax_rates: bool = True
    labels: Labels = field(default_factory=Labels)
    lock: LockPolicy = field(default_factory=LockPolicy)


DEFAULT_SETTINGS = KernelSettings()
