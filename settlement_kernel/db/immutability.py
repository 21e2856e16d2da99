"""
ORM-level append-only enforcement for the financial ledger (layer 1 of 2).

Layer 1 (this module) intercepts UPDATE and DELETE of FinancialLedgerEntry
issued through the ORM, before any SQL reaches the store:

    session.flush()
         |
         v
    [before_update] --> _check_ledger_entry_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_ledger_entry_delete() --> ImmutabilityViolationError

Layer 2 (db/sql/01_financial_ledger.sql) rejects the same statements inside
PostgreSQL, covering raw SQL and bulk statements that bypass the ORM.

Corrections are new entries; nothing already written is ever changed.

Usage:
    init_engine_from_url() registers the listeners.  Code that builds its
    own engine calls register_immutability_listeners() once at startup.

In tests that must tamper with the ledger to prove detection:
    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event

from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_ledger_entry_update(mapper, connection, target):
    """Prevent any update to a ledger entry."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "FinancialLedgerEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="FinancialLedgerEntry",
        entity_id=str(target.id),
        reason="Ledger entries are append-only and cannot be modified",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    """Prevent deletion of a ledger entry."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "FinancialLedgerEntry",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="FinancialLedgerEntry",
        entity_id=str(target.id),
        reason="Ledger entries cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register the ledger append-only listeners.

    Idempotent: listeners already registered are not added twice.
    """
    from settlement_kernel.models.ledger_entry import FinancialLedgerEntry

    if not event.contains(FinancialLedgerEntry, "before_update", _check_ledger_entry_update):
        event.listen(FinancialLedgerEntry, "before_update", _check_ledger_entry_update)
    if not event.contains(FinancialLedgerEntry, "before_delete", _check_ledger_entry_delete):
        event.listen(FinancialLedgerEntry, "before_delete", _check_ledger_entry_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the ledger append-only listeners.

    WARNING: Only use this in tests that deliberately corrupt the ledger.
    """
    from settlement_kernel.models.ledger_entry import FinancialLedgerEntry

    _safe_remove_listener(FinancialLedgerEntry, "before_update", _check_ledger_entry_update)
    _safe_remove_listener(FinancialLedgerEntry, "before_delete", _check_ledger_entry_delete)
