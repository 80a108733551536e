"""
Tax bucketing -- group line amounts by tax rate.

Responsibility:
    Maps line items onto the five fixed tax buckets reported on every
    committed invoice (normal, reduced-1, reduced-2, zero, special) and
    computes per-rate net and gross totals.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Operates on any
    object exposing ``tax_percentage``, ``calculated_gross_total`` and
    ``calculated_net_total`` (the LineItem model satisfies this).

Invariants enforced:
    - Every bucket is present in the result; a bucket with no items is
      exactly zero.
    - Unknown tax rates raise UnknownTaxRateError in strict mode.  In
      lenient mode they contribute to no bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Protocol

from invoice_kernel.db.types import ZERO, to_decimal
from invoice_kernel.exceptions import UnknownTaxRateError


class TaxBucket(str, Enum):
    """The five reported tax-rate groups."""

    NORMAL = "normal"
    REDUCED_1 = "reduced_1"
    REDUCED_2 = "reduced_2"
    ZERO = "zero"
    SPECIAL = "special"

    @property
    def invoice_field(self) -> str:
        """Name of the Invoice column holding this bucket's gross amount."""
        return f"gross_amount_tax_{self.value}"


DEFAULT_TAX_BUCKET_RATES: Mapping[TaxBucket, Decimal] = {
    TaxBucket.NORMAL: Decimal("20"),
    TaxBucket.REDUCED_1: Decimal("10"),
    TaxBucket.REDUCED_2: Decimal("13"),
    TaxBucket.ZERO: Decimal("0"),
    TaxBucket.SPECIAL: Decimal("19"),
}


class TaxedLine(Protocol):
    tax_percentage: Decimal

    @property
    def calculated_gross_total(self) -> Decimal: ...

    @property
    def calculated_net_total(self) -> Decimal: ...


@dataclass(frozen=True)
class TaxGroupTotals:
    """Net and gross totals of all lines sharing one tax percentage."""

    tax_percentage: Decimal
    net_total: Decimal
    gross_total: Decimal
    line_count: int


@dataclass(frozen=True)
class TaxBucketTotals:
    """Gross amount per tax bucket.  Every bucket is always present."""

    normal: Decimal = ZERO
    reduced_1: Decimal = ZERO
    reduced_2: Decimal = ZERO
    zero: Decimal = ZERO
    special: Decimal = ZERO

    def get(self, bucket: TaxBucket) -> Decimal:
        return getattr(self, bucket.value)

    def as_dict(self) -> dict[TaxBucket, Decimal]:
        return {bucket: self.get(bucket) for bucket in TaxBucket}

    def negated(self) -> TaxBucketTotals:
        return TaxBucketTotals(
            **{bucket.value: -self.get(bucket) for bucket in TaxBucket}
        )

    @property
    def total(self) -> Decimal:
        return sum(self.as_dict().values(), ZERO)


def bucket_for_rate(
    tax_percentage: Decimal,
    bucket_rates: Mapping[TaxBucket, Decimal] = DEFAULT_TAX_BUCKET_RATES,
) -> TaxBucket | None:
    """Return the bucket whose rate equals ``tax_percentage``, or None."""
    rate = to_decimal(tax_percentage)
    for bucket, bucket_rate in bucket_rates.items():
        if bucket_rate == rate:
            return bucket
    return None


def validate_tax_rate(
    tax_percentage: Decimal,
    bucket_rates: Mapping[TaxBucket, Decimal] = DEFAULT_TAX_BUCKET_RATES,
) -> TaxBucket:
    """
    Resolve a tax percentage to its bucket.

    Raises:
        UnknownTaxRateError: If no configured bucket carries this rate.
    """
    bucket = bucket_for_rate(tax_percentage, bucket_rates)
    if bucket is None:
        raise UnknownTaxRateError(
            tax_percentage=str(tax_percentage),
            known_rates=sorted(str(rate) for rate in bucket_rates.values()),
        )
    return bucket


def totals_per_tax_group(lines: Iterable[TaxedLine]) -> dict[Decimal, TaxGroupTotals]:
    """
    Group lines by tax percentage and sum their net and gross totals.

    Keys are the tax percentages as they appear on the lines (Decimal
    equality, so 20 and 20.000 fall in the same group).
    """
    net: dict[Decimal, Decimal] = {}
    gross: dict[Decimal, Decimal] = {}
    counts: dict[Decimal, int] = {}

    for line in lines:
        rate = to_decimal(line.tax_percentage)
        net[rate] = net.get(rate, ZERO) + line.calculated_net_total
        gross[rate] = gross.get(rate, ZERO) + line.calculated_gross_total
        counts[rate] = counts.get(rate, 0) + 1

    return {
        rate: TaxGroupTotals(
            tax_percentage=rate,
            net_total=net[rate],
            gross_total=gross[rate],
            line_count=counts[rate],
        )
        for rate in counts
    }


def bucket_gross_by_tax(
    lines: Iterable[TaxedLine],
    bucket_rates: Mapping[TaxBucket, Decimal] = DEFAULT_TAX_BUCKET_RATES,
    strict: bool = True,
) -> TaxBucketTotals:
    """
    Sum gross totals per tax bucket.

    Args:
        lines: Line items of one invoice.
        bucket_rates: Bucket -> tax percentage mapping.
        strict: If True, a line with an unknown rate raises
            UnknownTaxRateError.  If False, it contributes to no bucket.

    Returns:
        TaxBucketTotals with every bucket populated (zero when empty).
    """
    amounts: dict[str, Decimal] = {}
    for rate, group in totals_per_tax_group(lines).items():
        if strict:
            bucket = validate_tax_rate(rate, bucket_rates)
        else:
            bucket = bucket_for_rate(rate, bucket_rates)
            if bucket is None:
                continue
        amounts[bucket.value] = amounts.get(bucket.value, ZERO) + group.gross_total
    return TaxBucketTotals(**amounts)
