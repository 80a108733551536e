"""
RegisterSelector -- read-side queries over registers.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from invoice_kernel.domain.money import sum_amounts
from invoice_kernel.exceptions import RegisterNotFoundError
from invoice_kernel.models.invoice import Invoice
from invoice_kernel.models.register import Register
from invoice_kernel.selectors.base import BaseSelector


class RegisterSelector(BaseSelector[Register]):
    """Read-only register queries."""

    def get_or_raise(self, register_id: UUID) -> Register:
        """
        Load a register by id.

        Raises:
            RegisterNotFoundError: If no register has this id.
        """
        register = self.session.get(Register, register_id)
        if register is None:
            raise RegisterNotFoundError(str(register_id))
        return register

    def journal_delta_sum(self, register_id: UUID) -> Decimal:
        """
        Sum of register_journal_delta over committed invoices.

        Equals Register.balance when every balance movement went through the
        commit protocol.  Summed in Python: amounts are stored as decimal
        strings on SQLite, where SQL SUM would go through floats.
        """
        deltas = self.session.execute(
            select(Invoice.register_journal_delta).where(
                Invoice.register_id == register_id,
                Invoice.committed_at.is_not(None),
                Invoice.register_journal_delta.is_not(None),
            )
        ).scalars()
        return sum_amounts(deltas)
