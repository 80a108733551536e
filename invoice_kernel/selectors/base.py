"""
Module: invoice_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - Session ownership: the caller owns the session and its transaction,
      so a selector called inside the commit protocol's locked section sees
      exactly what the lock holder sees.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from invoice_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session
