"""
Invoice Kernel

Fiscal invoice issuing for point-of-sale registers with:
- Gap-free, per-register invoice numbering under concurrent commits
- Immutable committed invoices
- Cancellation invoices as the only correction path
- Deterministic per-tax-rate gross totals
"""

__version__ = "0.1.0"
