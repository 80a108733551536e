"""
RegisterLock -- exclusive per-register lock for the commit protocol.

Responsibility:
    Names the single serialization point of invoice numbering: while a
    commit holds the lock on a register, no other commit on that register
    can count committed invoices or bump the register's commit ticket.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Consumed by
    InvoiceCommitService.

Strategies:
    RowLevelRegisterLock  -- ``SELECT ... FOR UPDATE`` on the register row.
        The lock lives in the database and is released when the enclosing
        transaction commits or rolls back.  Required whenever more than one
        process commits against the same database.
    InProcessRegisterLock -- a ``threading.Lock`` per register id.  For
        stores without row locks (SQLite) and for tests.  Released when the
        ``exclusive()`` block exits, so the holder must end its transaction
        inside the block: InvoiceCommitService accepts it only with
        auto_commit=True.  One instance must be shared by every service that
        commits against the same database.

Failure modes:
    - RegisterNotFoundError: no register row with that id.
    - RegisterLockError: the store aborted the lock wait (lock_timeout,
      deadlock detection) or the in-process wait exceeded its timeout.
      Nothing has been applied; the whole commit may be retried.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from invoice_kernel.db.engine import is_postgres
from invoice_kernel.domain.settings import LockPolicy
from invoice_kernel.exceptions import RegisterLockError, RegisterNotFoundError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.register import Register

logger = get_logger("services.register_lock")


def _load_register(session: Session, register_id: UUID, for_update: bool) -> Register:
    stmt = select(Register).where(Register.id == register_id)
    if for_update:
        stmt = stmt.with_for_update()
    register = session.execute(
        stmt.execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if register is None:
        raise RegisterNotFoundError(str(register_id))
    return register


class RegisterLock(ABC):
    """
    Exclusive lock on one register for the duration of a commit.

    Contract:
        ``exclusive(session, register_id)`` is a context manager that blocks
        until the caller is the only commit on that register and yields the
        freshly loaded Register row.
    """

    @abstractmethod
    def exclusive(self, session: Session, register_id: UUID):
        """Acquire the register exclusively; yields the Register."""
        ...


class RowLevelRegisterLock(RegisterLock):
    """
    Database row lock via ``SELECT ... FOR UPDATE``.

    Guarantees:
        - Concurrent commits on the same register block at the SELECT until
          the holder's transaction ends.
        - Commits on different registers never contend.
    """

    def __init__(self, policy: LockPolicy | None = None):
        self._policy = policy or LockPolicy()

    @contextmanager
    def exclusive(self, session: Session, register_id: UUID) -> Iterator[Register]:
        dialect = session.get_bind().dialect.name
        try:
            if self._policy.timeout_ms and dialect == "postgresql":
                # SET does not take bind parameters
                session.execute(
                    text(f"SET LOCAL lock_timeout = {int(self._policy.timeout_ms)}")
                )
            register = _load_register(session, register_id, for_update=True)
        except OperationalError as exc:
            logger.warning(
                "register_lock_failed",
                extra={"register_id": str(register_id), "dialect": dialect},
            )
            raise RegisterLockError(
                register_id=str(register_id),
                reason=str(exc.orig) if exc.orig is not None else str(exc),
            ) from exc

        logger.debug(
            "register_locked",
            extra={"register_id": str(register_id), "strategy": "row_level"},
        )
        yield register


class InProcessRegisterLock(RegisterLock):
    """
    Per-register mutex held in process memory.

    Guarantees:
        - At most one ``exclusive()`` block per register id runs at a time
          among all threads sharing this instance.
        - Different register ids use different mutexes.

    Non-goals:
        - Does NOT serialize across processes.
    """

    def __init__(self, policy: LockPolicy | None = None):
        self._policy = policy or LockPolicy()
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}

    def _mutex_for(self, register_id: UUID) -> threading.Lock:
        with self._guard:
            mutex = self._locks.get(register_id)
            if mutex is None:
                mutex = threading.Lock()
                self._locks[register_id] = mutex
            return mutex

    @contextmanager
    def exclusive(self, session: Session, register_id: UUID) -> Iterator[Register]:
        mutex = self._mutex_for(register_id)
        timeout = self._policy.timeout_ms / 1000 if self._policy.timeout_ms else -1
        if not mutex.acquire(timeout=timeout):
            logger.warning(
                "register_lock_failed",
                extra={"register_id": str(register_id), "strategy": "in_process"},
            )
            raise RegisterLockError(
                register_id=str(register_id),
                reason=f"timed out after {self._policy.timeout_ms} ms",
            )
        try:
            register = _load_register(session, register_id, for_update=False)
            logger.debug(
                "register_locked",
                extra={"register_id": str(register_id), "strategy": "in_process"},
            )
            yield register
        finally:
            mutex.release()


def default_register_lock(session: Session, policy: LockPolicy | None = None) -> RegisterLock:
    """
    Row-level register lock for a session bound to PostgreSQL.

    Other stores have no row locks.  A mutex only serializes commits that
    share one instance, so callers construct an InProcessRegisterLock with
    their lock policy and hand the same instance to every service.

    Raises:
        ValueError: If the session is not bound to PostgreSQL.
    """
    bind = session.get_bind()
    if not is_postgres(bind):
        raise ValueError(
            f"No default register lock for dialect {bind.dialect.name!r}; "
            "pass a shared InProcessRegisterLock"
        )
    return RowLevelRegisterLock(policy)
