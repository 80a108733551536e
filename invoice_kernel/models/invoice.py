"""
Module: invoice_kernel.models.invoice
Responsibility: ORM persistence for fiscal invoices and their line items.
Architecture position: Kernel > Models.  May import from db/ and domain/
    value modules only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - (register_id, number) is unique among committed invoices.
    - committed_at is set exactly once and never cleared; once set, no
      column of the invoice or its line items may change (ORM listeners in
      db/immutability.py).
    - net_total, gross_total and the tax-bucket amounts are derived by the
      services; callers never set them directly.

Failure modes:
    - IntegrityError on a duplicate (register_id, number).
    - ImmutabilityViolationError on UPDATE/DELETE of committed rows.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from invoice_kernel.db.base import Base, UUIDString
from invoice_kernel.db.types import ZERO, ExactDecimal
from invoice_kernel.domain.invoice_state import InvoiceState, state_from_columns
from invoice_kernel.domain.money import line_gross_total, line_net_total
from invoice_kernel.domain.tax import TaxBucket, TaxBucketTotals
from invoice_kernel.models.register import Register


class PaymentMethod(str, Enum):
    """How an invoice was paid.

    Only CASH and LEDGER move the register balance.
    """

    CASH = "cash"
    CREDIT_CARD = "credit_card"
    TRANSFER = "transfer"
    LEDGER = "ledger"

    @property
    def moves_register_balance(self) -> bool:
        return self in (PaymentMethod.CASH, PaymentMethod.LEDGER)


class Invoice(Base):
    """
    Fiscal invoice header.

    Contract:
        Created as a draft without a number.  Line items are attached and
        removed through the LineItemLedger.  The commit protocol runs once,
        assigning the number and freezing every amount.

    Guarantees:
        - number is contiguous per register among committed invoices.
        - A cancellation references its original via cancels_invoice_id.

    Non-goals:
        - Customer data is held by an external directory; only its id lives
          here.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("register_id", "number", name="uq_invoice_register_number"),
        Index("idx_invoice_register_committed", "register_id", "committed_at"),
        Index("idx_invoice_cancels", "cancels_invoice_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    register_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("registers.id"),
        nullable=False,
    )

    customer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Sequential number within the register, assigned at commit
    number: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )

    # Commit discriminant: NULL while draft
    committed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    net_total: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )
    gross_total: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )

    # Gross amount per tax bucket, written at commit
    gross_amount_tax_normal: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )
    gross_amount_tax_reduced_1: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )
    gross_amount_tax_reduced_2: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )
    gross_amount_tax_zero: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )
    gross_amount_tax_special: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=ZERO
    )

    manual_receipt_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    manual_receipt_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    test_receipt: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # If this is a cancellation, points to the invoice it reverses
    cancels_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    # Amount applied to the register balance (cash and ledger only)
    register_journal_delta: Mapped[Decimal | None] = mapped_column(
        ExactDecimal(),
        nullable=True,
    )

    register: Mapped[Register] = relationship(Register)

    cancels_invoice: Mapped["Invoice | None"] = relationship(
        "Invoice",
        remote_side="Invoice.id",
    )

    line_items: Mapped[list["LineItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="LineItem.line_no",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.id} register={self.register_id} number={self.number}>"

    @validates("payment_method")
    def _validate_payment_method(self, key, value):
        return PaymentMethod(value)

    @property
    def state(self) -> InvoiceState:
        """Draft or Committed(number, committed_at)."""
        return state_from_columns(self.number, self.committed_at)

    @property
    def is_committed(self) -> bool:
        return self.committed_at is not None

    @property
    def is_cancellation(self) -> bool:
        return self.cancels_invoice_id is not None

    @property
    def tax_buckets(self) -> TaxBucketTotals:
        """Persisted gross amount per tax bucket."""
        return TaxBucketTotals(
            **{bucket.value: getattr(self, bucket.invoice_field) for bucket in TaxBucket}
        )


class LineItem(Base):
    """
    One line of an invoice.

    Contract:
        Exclusively owned by one invoice.  Created and deleted only while the
        invoice is a draft.  The stored gross_amount_per_item is canonical;
        net amounts are always derived.
    """

    __tablename__ = "invoice_line_items"

    __table_args__ = (
        Index("idx_line_item_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
    )

    # Position within the invoice, assigned by the ledger
    line_no: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        default=Decimal("1"),
    )

    tax_percentage: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
    )

    gross_amount_per_item: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
    )

    product_description: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
        default="",
    )

    invoice: Mapped[Invoice] = relationship(back_populates="line_items")

    def __repr__(self) -> str:
        return (
            f"<LineItem {self.name!r} qty={self.quantity} "
            f"tax={self.tax_percentage} gross={self.gross_amount_per_item}>"
        )

    @property
    def calculated_gross_total(self) -> Decimal:
        return line_gross_total(self.gross_amount_per_item, self.quantity)

    @property
    def calculated_net_total(self) -> Decimal:
        return line_net_total(
            self.gross_amount_per_item, self.quantity, self.tax_percentage
        )
