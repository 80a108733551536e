"""
JournalPosition -- a cash movement into or out of a register.

Recorded as a ledger-paid invoice with a single 0 % line so that deposits
and withdrawals flow through the same numbering and balance path as sales.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from invoice_kernel.db.types import to_decimal


class JournalDirection(str, Enum):
    IN = "in"
    OUT = "out"


@dataclass(frozen=True)
class JournalPosition:
    """
    A deposit (IN) or withdrawal (OUT) of ``amount``.

    ``amount`` is the magnitude; the direction decides the sign of the
    resulting line.
    """

    direction: JournalDirection
    amount: Decimal
    note: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "direction", JournalDirection(self.direction))
        object.__setattr__(self, "amount", to_decimal(self.amount))

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction is JournalDirection.IN else -self.amount
