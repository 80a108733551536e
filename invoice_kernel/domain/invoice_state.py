"""
Invoice state -- explicit two-state variant.

An invoice is either a ``Draft`` (no number, line items may change) or
``Committed`` (permanent number and timestamp, frozen).  Services obtain
the state through ``Invoice.state`` and narrow it with ``require_draft`` /
``require_committed`` before doing anything state-dependent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from invoice_kernel.exceptions import AlreadyCommittedError, InvalidStateError


@dataclass(frozen=True)
class Draft:
    """Uncommitted: identified by its provisional row id only."""


@dataclass(frozen=True)
class Committed:
    """Committed: numbered within its register and immutable."""

    number: int
    committed_at: datetime


InvoiceState = Union[Draft, Committed]


def state_from_columns(number: int | None, committed_at: datetime | None) -> InvoiceState:
    """Build the variant from the persisted columns.

    ``committed_at`` is the discriminant; a committed row always has a number.
    """
    if committed_at is None:
        return Draft()
    if number is None:
        raise ValueError("committed invoice without a number")
    return Committed(number=number, committed_at=committed_at)


def require_draft(state: InvoiceState, invoice_id: str) -> Draft:
    """Narrow to Draft or raise AlreadyCommittedError."""
    if isinstance(state, Committed):
        raise AlreadyCommittedError(invoice_id=invoice_id, number=state.number)
    return state


def require_committed(state: InvoiceState, invoice_id: str) -> Committed:
    """Narrow to Committed or raise InvalidStateError."""
    if not isinstance(state, Committed):
        raise InvalidStateError(
            entity_type="Invoice",
            entity_id=invoice_id,
            reason="invoice must be committed",
        )
    return state
