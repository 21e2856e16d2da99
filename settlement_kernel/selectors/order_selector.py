"""
Module: settlement_kernel.selectors.order_selector
Responsibility: Read paths over orders: commission snapshots and the pending
    periods of a pharmacy.
Architecture position: Kernel > Selectors.

Failure modes:
    - Store errors propagate; the gateway degrades them to empty results.
"""

from typing import Any

from sqlalchemy import select

from settlement_kernel.domain.aggregator import build_pending_by_pharmacy, build_period_summaries
from settlement_kernel.domain.dtos import OrderSnapshot, PeriodSummary
from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.models.order import Order
from settlement_kernel.selectors.base import BaseSelector
from settlement_kernel.db.base import coerce_uuid


class OrderSelector(BaseSelector):
    """Order snapshots and the period views derived from them."""

    def all_orders(self, pharmacy_id: Any = None) -> list[OrderSnapshot]:
        """Every order (optionally of one pharmacy), oldest first."""
        stmt = select(Order).order_by(Order.created_at, Order.id)
        if pharmacy_id is not None:
            pid = coerce_uuid(pharmacy_id)
            if pid is None:
                return []
            stmt = stmt.where(Order.pharmacy_id == pid)
        return [OrderSnapshot.from_model(o) for o in self.session.execute(stmt).scalars()]

    def completed_orders(self, pharmacy_id: Any = None) -> list[OrderSnapshot]:
        """Orders whose status is a locale spelling of "completed"."""
        return [o for o in self.all_orders(pharmacy_id) if o.is_completed]

    def period_summaries(self, pharmacy_id: Any, cycle: SettlementCycle) -> list[PeriodSummary]:
        """All periods of a pharmacy, newest first, settled ones included."""
        return build_period_summaries(self.completed_orders(pharmacy_id), cycle)

    def pending_periods(self, pharmacy_id: Any, cycle: SettlementCycle) -> list[PeriodSummary]:
        """Periods of a pharmacy with something outstanding, oldest first."""
        pid = coerce_uuid(pharmacy_id)
        if pid is None:
            return []
        pending = build_pending_by_pharmacy(self.completed_orders(pid), cycle)
        return pending.get(pid, [])
