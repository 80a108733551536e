"""Database layer - engine, base classes, column types, immutability."""

from invoice_kernel.db.base import UUID, Base, UUIDString
from invoice_kernel.db.engine import create_tables, get_engine, get_session
from invoice_kernel.db.types import ExactDecimal

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
    "ExactDecimal",
]
