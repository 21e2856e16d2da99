"""
Module: settlement_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the financial ledger: newest-first
    listings, counts per operation, and the replay that rebuilds every
    order's paid amount from its entries.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Replay walks entries in seq order.  For each order, an entry's
      before_paid_amount must equal the previous entry's after_paid_amount,
      and after_paid_amount must equal before_paid_amount + applied_amount.

Failure modes:
    - LedgerReplayError from replay_paid_amounts() when the chain is broken
      (a row was altered or removed behind the ORM's back).

Audit relevance:
    replay_paid_amounts() lets an auditor recompute each order's
    commission_paid_amount without trusting the orders table.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from settlement_kernel.db.base import coerce_uuid
from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.domain.enums import LedgerOperation
from settlement_kernel.exceptions import LedgerReplayError
from settlement_kernel.models.ledger_entry import FinancialLedgerEntry
from settlement_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector):
    """Queries over FinancialLedgerEntry."""

    def _scoped(self, stmt, pharmacy_id: Any):
        if pharmacy_id is None:
            return stmt
        return stmt.where(FinancialLedgerEntry.pharmacy_id == coerce_uuid(pharmacy_id))

    def list_entries(
        self,
        pharmacy_id: Any = None,
        limit: int | None = None,
    ) -> list[LedgerEntryInfo]:
        """
        Newest entries first.

        Args:
            pharmacy_id: Only entries of this pharmacy; None for all.
            limit: Maximum rows; defaults to ``ledger_default_limit``.
        """
        if limit is None:
            limit = self.settings.ledger_default_limit
        if pharmacy_id is not None and coerce_uuid(pharmacy_id) is None:
            return []
        stmt = self._scoped(
            select(FinancialLedgerEntry).order_by(FinancialLedgerEntry.seq.desc()),
            pharmacy_id,
        ).limit(max(0, int(limit)))
        return [
            LedgerEntryInfo.from_model(e)
            for e in self.session.execute(stmt).scalars()
        ]

    def entries_for_order(self, order_id: UUID) -> list[LedgerEntryInfo]:
        """All entries of one order, oldest first."""
        stmt = (
            select(FinancialLedgerEntry)
            .where(FinancialLedgerEntry.order_id == coerce_uuid(order_id))
            .order_by(FinancialLedgerEntry.seq)
        )
        return [
            LedgerEntryInfo.from_model(e)
            for e in self.session.execute(stmt).scalars()
        ]

    def count_entries(self, pharmacy_id: Any = None) -> int:
        stmt = self._scoped(select(func.count(FinancialLedgerEntry.id)), pharmacy_id)
        return self.session.execute(stmt).scalar_one()

    def counts_by_operation(self, pharmacy_id: Any = None) -> dict[LedgerOperation, int]:
        """Number of entries per operation type (every type present, zero if none)."""
        stmt = self._scoped(
            select(FinancialLedgerEntry.operation_type, func.count(FinancialLedgerEntry.id))
            .group_by(FinancialLedgerEntry.operation_type),
            pharmacy_id,
        )
        counts = {op: 0 for op in LedgerOperation}
        for operation_type, count in self.session.execute(stmt):
            counts[LedgerOperation(operation_type)] = count
        return counts

    def replay_paid_amounts(self, pharmacy_id: Any = None) -> dict[UUID, Decimal]:
        """
        Rebuild each order's paid amount by replaying entries in seq order.

        The first entry of an order supplies its starting balance (orders
        may carry a paid amount from before the ledger existed).

        Raises:
            LedgerReplayError: on the first entry that breaks the chain.
        """
        stmt = self._scoped(
            select(FinancialLedgerEntry).order_by(FinancialLedgerEntry.seq),
            pharmacy_id,
        )
        balances: dict[UUID, Decimal] = {}
        for row in self.session.execute(stmt).scalars():
            entry = LedgerEntryInfo.from_model(row)
            if entry.order_id is None:
                continue
            running = balances.get(entry.order_id)
            if running is not None and entry.before_paid_amount != running:
                raise LedgerReplayError(
                    str(entry.order_id), entry.seq,
                    str(running), str(entry.before_paid_amount),
                )
            expected_after = entry.before_paid_amount + entry.applied_amount
            if entry.after_paid_amount != expected_after:
                raise LedgerReplayError(
                    str(entry.order_id), entry.seq,
                    str(expected_after), str(entry.after_paid_amount),
                )
            balances[entry.order_id] = entry.after_paid_amount
        return balances
