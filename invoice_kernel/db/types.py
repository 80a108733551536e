"""
Module: invoice_kernel.db.types
Responsibility: Column types and helpers for exact monetary values.  Centralizes
    precision and rounding so that every model and service uses identical
    definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the invoice kernel.  Every monetary amount,
      quantity, and tax percentage is a Decimal with explicit precision.
    - ExactDecimal stores values as Numeric(38, 9) on PostgreSQL and as
      decimal strings on SQLite (which has no exact numeric storage), so
      a value read back is always the value written.
    - round_money() is the ONLY sanctioned rounding function.

Failure modes:
    - decimal.InvalidOperation when a non-numeric value is bound to an
      ExactDecimal column.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

# Rounding constants
MONEY_DECIMAL_PLACES = 9
DISPLAY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = DISPLAY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for monetary values in
    the kernel.  All other code MUST delegate rounding here.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str, or Decimal into a Decimal.

    Floats are rejected: a float has already lost the exact value the
    caller meant.

    Raises:
        TypeError: If value is a float.
    """
    if isinstance(value, float):
        raise TypeError(f"Float amounts are not accepted: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


class ExactDecimal(TypeDecorator):
    """
    Exact decimal column type portable across PostgreSQL and SQLite.

    Contract:
        Values are quantized to MONEY_DECIMAL_PLACES on the way in and
        always come back as Decimal.

    Guarantees:
        - PostgreSQL: NUMERIC(38, 9).
        - SQLite: VARCHAR(64) holding the canonical decimal string.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = Numeric(38, MONEY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(
            Numeric(38, MONEY_DECIMAL_PLACES, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = round_money(to_decimal(value), MONEY_DECIMAL_PLACES)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))
