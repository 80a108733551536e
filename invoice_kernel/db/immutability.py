"""
ORM-level immutability enforcement for committed invoices.

===============================================================================
WHY THIS EXISTS
===============================================================================

A committed invoice is a fiscal document.  Its number and amounts must never
change; corrections go through a cancellation invoice.  The services already
refuse to mutate committed invoices, but any other code holding a session
could still assign to a column.  These listeners intercept such writes
before the SQL reaches the database:

    session.flush()
         |
         v
    [before_update / before_delete / before_insert]
         |
         +--> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity     | When Immutable                      | Operations blocked
-----------|-------------------------------------|--------------------------
Invoice    | After committed_at has been flushed | UPDATE of any column, DELETE
LineItem   | When the owning invoice is committed| INSERT, UPDATE, DELETE

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY CHECK "WAS COMMITTED" NOT "IS COMMITTED"?
   The commit protocol itself sets committed_at together with the number,
   tax buckets and journal delta.  We allow the NULL -> timestamp
   transition and block every change after it, using attribute history.

2. WHY QUERY THE PARENT THROUGH THE CONNECTION FOR LINE ITEMS?
   Mapper events run mid-flush.  Reading committed_at with the flush's own
   connection avoids lazy-loading relationships during the flush.

===============================================================================
USAGE
===============================================================================

    from invoice_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from invoice_kernel.exceptions import ImmutabilityViolationError
from invoice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _was_committed_before(target) -> bool:
    history = get_history(target, "committed_at")
    if history.deleted:
        return history.deleted[0] is not None
    if not history.added:
        return target.committed_at is not None
    return False


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_invoice_immutability(mapper, connection, target):
    """
    Prevent updates to committed Invoice records.

    Allows the DRAFT -> COMMITTED transition (committed_at NULL -> value)
    and blocks any column change once committed_at was already set.
    """
    from invoice_kernel.models.invoice import Invoice

    if not isinstance(target, Invoice):
        return

    if not _was_committed_before(target):
        return

    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        hist = insp.attrs[attr.key].history
        if hist.has_changes():
            _blocked(
                "Invoice",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on committed invoice",
                field=attr.key,
            )


def _check_invoice_delete(mapper, connection, target):
    """Prevent deletion of committed invoices."""
    from invoice_kernel.models.invoice import Invoice

    if not isinstance(target, Invoice):
        return

    if target.committed_at is not None:
        _blocked("Invoice", target.id, "DELETE", "Committed invoices cannot be deleted")


def _parent_is_committed(connection, invoice_id) -> bool:
    from invoice_kernel.models.invoice import Invoice

    committed_at = connection.execute(
        select(Invoice.committed_at).where(Invoice.id == invoice_id)
    ).scalar_one_or_none()
    return committed_at is not None


def _check_line_item_insert(mapper, connection, target):
    """Prevent adding line items to a committed invoice."""
    if target.invoice_id is not None and _parent_is_committed(connection, target.invoice_id):
        _blocked(
            "LineItem",
            target.id,
            "INSERT",
            "Line items cannot be added to a committed invoice",
        )


def _check_line_item_immutability(mapper, connection, target):
    """Prevent updates to line items of a committed invoice."""
    if _parent_is_committed(connection, target.invoice_id):
        _blocked(
            "LineItem",
            target.id,
            "UPDATE",
            "Line items cannot be modified after the invoice is committed",
        )


def _check_line_item_delete(mapper, connection, target):
    """Prevent deletion of line items of a committed invoice."""
    if _parent_is_committed(connection, target.invoice_id):
        _blocked(
            "LineItem",
            target.id,
            "DELETE",
            "Line items cannot be deleted after the invoice is committed",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.
    """
    from invoice_kernel.models.invoice import Invoice, LineItem

    event.listen(Invoice, "before_update", _check_invoice_immutability)
    event.listen(Invoice, "before_delete", _check_invoice_delete)

    event.listen(LineItem, "before_insert", _check_line_item_insert)
    event.listen(LineItem, "before_update", _check_line_item_immutability)
    event.listen(LineItem, "before_delete", _check_line_item_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    from invoice_kernel.models.invoice import Invoice, LineItem

    _safe_remove_listener(Invoice, "before_update", _check_invoice_immutability)
    _safe_remove_listener(Invoice, "before_delete", _check_invoice_delete)

    _safe_remove_listener(LineItem, "before_insert", _check_line_item_insert)
    _safe_remove_listener(LineItem, "before_update", _check_line_item_immutability)
    _safe_remove_listener(LineItem, "before_delete", _check_line_item_delete)
