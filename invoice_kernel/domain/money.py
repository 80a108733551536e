"""
Money -- exact decimal arithmetic for invoice amounts.

Responsibility:
    The arithmetic every other component uses to derive line and invoice
    amounts: net/gross conversion at a tax percentage and exact summation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal only.  Floats are rejected at the boundary (to_decimal).
    - Sums start from Decimal("0") so an empty invoice totals exactly zero.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from invoice_kernel.db.types import ZERO, to_decimal

HUNDRED = Decimal("100")


def gross_from_net(net_amount: Decimal, tax_percentage: Decimal) -> Decimal:
    """
    Convert a net amount to gross at the given tax percentage.

    ``gross = net * (100 + tax_percentage) / 100``

    This is the single conversion used for net-input registers.
    """
    net_amount = to_decimal(net_amount)
    tax_percentage = to_decimal(tax_percentage)
    return net_amount * (HUNDRED + tax_percentage) / HUNDRED


def net_from_gross(gross_amount: Decimal, tax_percentage: Decimal) -> Decimal:
    """
    Strip tax from a gross amount.

    ``net = gross / (1 + tax_percentage / 100)``
    """
    gross_amount = to_decimal(gross_amount)
    tax_percentage = to_decimal(tax_percentage)
    return gross_amount / (Decimal("1") + tax_percentage / HUNDRED)


def line_gross_total(gross_amount_per_item: Decimal, quantity: Decimal) -> Decimal:
    """Gross total of a line: unit gross times quantity."""
    return to_decimal(gross_amount_per_item) * to_decimal(quantity)


def line_net_total(
    gross_amount_per_item: Decimal,
    quantity: Decimal,
    tax_percentage: Decimal,
) -> Decimal:
    """Net total of a line, derived from its gross total."""
    return net_from_gross(
        line_gross_total(gross_amount_per_item, quantity), tax_percentage
    )


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    """Exact decimal sum; zero for an empty iterable."""
    total = ZERO
    for amount in amounts:
        total += to_decimal(amount)
    return total
