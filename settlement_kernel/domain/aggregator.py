"""
Module: settlement_kernel.domain.aggregator
Responsibility:
    Groups completed orders into settlement periods and derives the totals
    of each bucket: commission, effective paid, outstanding and status.
    Also derives the per-pharmacy headline figures of the financial report.

Architecture position:
    Kernel > Domain -- pure calculation layer, zero I/O.  Recomputed on
    every read; nothing here is cached or persisted.

Invariants enforced:
    - Only orders accepted by ``is_completed`` contribute to a bucket.
    - Paid amounts are read exclusively through ``effective_paid_amount``.
    - ``outstanding = max(0, commission - paid)`` for every bucket.
    - Deterministic: identical inputs produce identical summaries.

Failure modes:
    - Never raises on bad rows.  Orders whose created_at cannot be turned
      into a period key are skipped; per-pharmacy views also skip orders
      without a pharmacy reference.

Usage:
    from settlement_kernel.domain.aggregator import build_period_summaries

    summaries = build_period_summaries(snapshots, SettlementCycle.MONTHLY)
    newest = summaries[0]
"""

from __future__ import annotations

from collections import defaultdict
from datetime import tzinfo
from decimal import Decimal
from typing import Any, Iterable

from settlement_kernel.db.types import ZERO
from settlement_kernel.domain.dtos import OrderSnapshot, PeriodSummary, PharmacyFinancials, PharmacyRef
from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.domain.order_status import is_cancelled
from settlement_kernel.domain.period_key import period_key, sort_period_keys
from settlement_kernel.domain.reconciliation import derive_status


def summarize_period(
    key: str,
    cycle: SettlementCycle,
    orders: Iterable[OrderSnapshot],
    pharmacy_id: Any = None,
) -> PeriodSummary:
    """Totals of one bucket.  ``orders`` are assumed to belong to ``key``."""
    order_ids: list[Any] = []
    sales = commission = paid = ZERO
    for order in orders:
        order_ids.append(order.id)
        sales += order.total
        commission += order.commission_amount
        paid += order.effective_paid_amount
    outstanding = max(ZERO, commission - paid)
    return PeriodSummary(
        period_key=key,
        cycle=SettlementCycle(cycle),
        order_ids=tuple(order_ids),
        sales_total=sales,
        commission_total=commission,
        paid_total=paid,
        outstanding=outstanding,
        status=derive_status(paid, outstanding),
        pharmacy_id=pharmacy_id,
    )


def _group_by_period(
    orders: Iterable[OrderSnapshot],
    cycle: SettlementCycle,
    tz: tzinfo | str | None,
) -> dict[str, list[OrderSnapshot]]:
    buckets: dict[str, list[OrderSnapshot]] = defaultdict(list)
    for order in orders:
        if not order.is_completed:
            continue
        key = period_key(order.created_at, cycle, tz)
        if key is None:
            continue
        buckets[key].append(order)
    return buckets


def build_period_summaries(
    orders: Iterable[OrderSnapshot],
    cycle: SettlementCycle,
    tz: tzinfo | str | None = None,
) -> list[PeriodSummary]:
    """
    One summary per period present in ``orders``, newest period first.

    Summaries with nothing outstanding are included (history view).
    """
    cycle = SettlementCycle(cycle)
    buckets = _group_by_period(orders, cycle, tz)
    return [
        summarize_period(key, cycle, buckets[key])
        for key in sort_period_keys(buckets, cycle, newest_first=True)
    ]


def build_pending_by_pharmacy(
    orders: Iterable[OrderSnapshot],
    cycle: SettlementCycle,
    tz: tzinfo | str | None = None,
) -> dict[Any, list[PeriodSummary]]:
    """
    Outstanding periods per pharmacy, oldest period first.

    Pharmacies without any outstanding period are absent from the result,
    and so are orders with no pharmacy reference (None or empty).
    """
    cycle = SettlementCycle(cycle)
    by_pharmacy: dict[Any, list[OrderSnapshot]] = defaultdict(list)
    for order in orders:
        if not order.pharmacy_id:
            continue
        by_pharmacy[order.pharmacy_id].append(order)

    result: dict[Any, list[PeriodSummary]] = {}
    for pharmacy_id, pharmacy_orders in by_pharmacy.items():
        buckets = _group_by_period(pharmacy_orders, cycle, tz)
        pending = [
            summary
            for summary in (
                summarize_period(key, cycle, buckets[key], pharmacy_id)
                for key in sort_period_keys(buckets, cycle)
            )
            if summary.outstanding > ZERO
        ]
        if pending:
            result[pharmacy_id] = pending
    return result


def total_outstanding(summaries: Iterable[PeriodSummary]) -> Decimal:
    return sum((s.outstanding for s in summaries), ZERO)


def summarize_pharmacy_financials(
    pharmacy: PharmacyRef,
    orders: Iterable[OrderSnapshot],
) -> PharmacyFinancials:
    """
    Headline figures of one pharmacy over all its orders.

    Completed orders feed sales and fees.  Orders still in progress (neither
    completed nor cancelled/rejected) count as pending clearance.
    """
    sales = fees = paid = ZERO
    pending_clearance = ZERO
    for order in orders:
        if order.pharmacy_id != pharmacy.id:
            continue
        if order.is_completed:
            sales += order.total
            fees += order.commission_amount
            paid += order.effective_paid_amount
        elif not is_cancelled(order.status):
            pending_clearance += order.total
    return PharmacyFinancials(
        pharmacy_id=pharmacy.id,
        name=pharmacy.name,
        commission_rate=pharmacy.commission_rate,
        total_sales=sales,
        platform_fees=fees,
        paid_fees=paid,
        unpaid_fees=max(ZERO, fees - paid),
        net_earnings=sales - fees,
        pending_clearance=pending_clearance,
    )
