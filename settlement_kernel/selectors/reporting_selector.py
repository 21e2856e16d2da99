"""
Module: settlement_kernel.selectors.reporting_selector
Responsibility: The pharmacy-facing and admin-facing financial views, and
    the per-pharmacy financial report.  Pure recomputation over current
    rows: nothing is cached between calls.
Architecture position: Kernel > Selectors.  Composes OrderSelector and
    LedgerSelector over the same session.

Invariants enforced:
    - Admin ranking: outstanding descending, ties broken alphabetically by
      pharmacy name (then id) so the order is stable.
    - Ledger listings are newest first and capped by the
      ``pharmacy_ledger_limit`` / ``admin_ledger_limit`` settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from settlement_kernel.db.base import coerce_uuid
from settlement_kernel.db.types import ZERO
from settlement_kernel.domain.aggregator import (
    build_pending_by_pharmacy,
    build_period_summaries,
    summarize_pharmacy_financials,
    total_outstanding,
)
from settlement_kernel.domain.dtos import (
    LedgerEntryInfo,
    PeriodSummary,
    PharmacyFinancials,
    PharmacyRef,
)
from settlement_kernel.domain.enums import LedgerOperation, SettlementCycle
from settlement_kernel.domain.period_key import period_key
from settlement_kernel.models.pharmacy import Pharmacy
from settlement_kernel.selectors.base import BaseSelector
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.order_selector import OrderSelector


@dataclass(frozen=True)
class PharmacyView:
    """What a pharmacy sees on its finance page."""

    pharmacy: PharmacyRef
    cycle: SettlementCycle
    current_period_key: str | None
    current_period_outstanding: Decimal
    total_outstanding: Decimal
    periods: tuple[PeriodSummary, ...]
    ledger: tuple[LedgerEntryInfo, ...]
    financials: PharmacyFinancials


@dataclass(frozen=True)
class PharmacyDebt:
    """One row of the admin ranking."""

    pharmacy_id: Any
    name: str
    outstanding: Decimal
    pending_periods: int


@dataclass(frozen=True)
class AdminView:
    """What the platform admin sees on the settlement page."""

    cycle: SettlementCycle
    ranking: tuple[PharmacyDebt, ...]
    total_outstanding: Decimal
    selected_pharmacy_id: Any
    selected_pending: tuple[PeriodSummary, ...]
    ledger: tuple[LedgerEntryInfo, ...]
    operation_counts: dict[LedgerOperation, int]


class ReportingSelector(BaseSelector):
    """Financial views recomputed from orders and the ledger."""

    def __init__(self, session, settings=None):
        super().__init__(session, settings)
        self._orders = OrderSelector(session, self.settings)
        self._ledger = LedgerSelector(session, self.settings)

    def _pharmacies(self) -> dict[Any, PharmacyRef]:
        rows = self.session.execute(select(Pharmacy).order_by(Pharmacy.name)).scalars()
        return {p.id: PharmacyRef.from_model(p) for p in rows}

    def _pharmacy(self, pharmacy_id: Any) -> PharmacyRef | None:
        pid = coerce_uuid(pharmacy_id)
        row = self.session.get(Pharmacy, pid) if pid is not None else None
        return PharmacyRef.from_model(row) if row is not None else None

    def pharmacy_view(
        self,
        pharmacy_id: Any,
        cycle: SettlementCycle,
        as_of: datetime,
    ) -> PharmacyView | None:
        """
        Finance page of one pharmacy, or None if it does not exist.

        ``as_of`` picks the current period (normally ``clock.now()``).
        """
        pharmacy = self._pharmacy(pharmacy_id)
        if pharmacy is None:
            return None

        orders = self._orders.all_orders(pharmacy.id)
        periods = build_period_summaries(orders, cycle)
        current_key = period_key(as_of, cycle)
        current = next((p for p in periods if p.period_key == current_key), None)

        return PharmacyView(
            pharmacy=pharmacy,
            cycle=SettlementCycle(cycle),
            current_period_key=current_key,
            current_period_outstanding=current.outstanding if current else ZERO,
            total_outstanding=total_outstanding(periods),
            periods=tuple(periods),
            ledger=tuple(
                self._ledger.list_entries(pharmacy.id, self.settings.pharmacy_ledger_limit)
            ),
            financials=summarize_pharmacy_financials(pharmacy, orders),
        )

    def admin_view(
        self,
        cycle: SettlementCycle,
        selected_pharmacy_id: Any = None,
    ) -> AdminView:
        """Debt ranking of all pharmacies plus the selected one's pending periods."""
        pharmacies = self._pharmacies()
        pending = build_pending_by_pharmacy(self._orders.completed_orders(), cycle)

        ranking = sorted(
            (
                PharmacyDebt(
                    pharmacy_id=pid,
                    name=pharmacies[pid].name if pid in pharmacies else str(pid),
                    outstanding=total_outstanding(periods),
                    pending_periods=len(periods),
                )
                for pid, periods in pending.items()
            ),
            key=lambda row: (-row.outstanding, row.name.casefold(), str(row.pharmacy_id)),
        )

        selected = coerce_uuid(selected_pharmacy_id)
        return AdminView(
            cycle=SettlementCycle(cycle),
            ranking=tuple(ranking),
            total_outstanding=sum((row.outstanding for row in ranking), ZERO),
            selected_pharmacy_id=selected,
            selected_pending=tuple(pending.get(selected, ())) if selected else (),
            ledger=tuple(self._ledger.list_entries(None, self.settings.admin_ledger_limit)),
            operation_counts=self._ledger.counts_by_operation(),
        )

    def financial_report(self) -> list[PharmacyFinancials]:
        """Headline figures for every pharmacy, by name."""
        orders = self._orders.all_orders()
        return [
            summarize_pharmacy_financials(pharmacy, orders)
            for pharmacy in self._pharmacies().values()
        ]
