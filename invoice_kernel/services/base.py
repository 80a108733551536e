"""
BaseService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services in the kernel layer.  Services receive a SQLAlchemy ``Session``
    and persist through ``session.flush()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The two exceptions are the
    commit protocol (which must end its transaction to release the register
    lock) and the InvoiceService facade, both only when constructed with
    ``auto_commit=True``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from invoice_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
