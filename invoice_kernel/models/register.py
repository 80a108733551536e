"""
Module: invoice_kernel.models.register
Responsibility: ORM persistence for point-of-sale registers -- the
    serialization point for invoice commits.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - commit_ticket only ever increases.  It is bumped once per commit while
      the register row is exclusively locked; its value is a lock token and
      carries no meaning beyond forcing commits through one serialized write.
      It is NOT the invoice number.
    - balance is only modified inside the locked section of a commit.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import Base, UUIDString
from invoice_kernel.db.types import ExactDecimal


class Register(Base):
    """
    A cash register belonging to a company.

    Contract:
        Invoice numbers are allocated per register.  Commits against
        different registers never contend with each other.
    """

    __tablename__ = "registers"

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="",
    )

    # Prices are typed in as net amounts and converted to gross on entry
    net_amount_input: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Lock token bumped by every commit (historically "invoice_number_ticket")
    commit_ticket: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Running balance of cash and ledger movements
    balance: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        default=Decimal("0"),
    )

    def __repr__(self) -> str:
        return f"<Register {self.id} {self.name!r} ticket={self.commit_ticket}>"
