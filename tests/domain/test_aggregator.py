"""
Commission aggregation into settlement periods.

Verifies:
- Only completed orders contribute
- Period summaries are newest first; pending lists are oldest first
- Bad rows (unparseable date, no pharmacy) are skipped, never fatal
- Outstanding is floored at zero and status follows the paid amounts
- Financial report figures per pharmacy
"""

from datetime import datetime, timezone
from decimal import Decimal

from settlement_kernel.domain.aggregator import (
    build_pending_by_pharmacy,
    build_period_summaries,
    summarize_pharmacy_financials,
    total_outstanding,
)
from settlement_kernel.domain.dtos import OrderSnapshot, PharmacyRef
from settlement_kernel.domain.enums import CommissionStatus, SettlementCycle

MONTHLY = SettlementCycle.MONTHLY
WEEKLY = SettlementCycle.WEEKLY

P1 = "pharmacy-1"
P2 = "pharmacy-2"


def order(oid, pharmacy, when, commission, paid="0", status="Concluído", legacy=None, total=None):
    return OrderSnapshot(
        id=oid,
        pharmacy_id=pharmacy,
        total=total if total is not None else Decimal(commission) * 10,
        status=status,
        created_at=when,
        commission_amount=commission,
        commission_paid_amount=paid,
        commission_status=legacy,
    )


def utc(y, m, d):
    return datetime(y, m, d, 12, 0, tzinfo=timezone.utc)


class TestBuildPeriodSummaries:

    def test_groups_by_month_newest_first(self):
        orders = [
            order(1, P1, utc(2025, 1, 5), "100"),
            order(2, P1, utc(2025, 3, 5), "50"),
            order(3, P1, utc(2025, 1, 20), "25", paid="25"),
        ]
        summaries = build_period_summaries(orders, MONTHLY)

        assert [s.period_key for s in summaries] == ["03/2025", "01/2025"]
        january = summaries[1]
        assert january.order_ids == (1, 3)
        assert january.orders_count == 2
        assert january.commission_total == Decimal("125")
        assert january.paid_total == Decimal("25")
        assert january.outstanding == Decimal("100")
        assert january.status is CommissionStatus.PARTIAL
        assert january.sales_total == Decimal("1250")

    def test_ignores_non_completed_orders(self):
        orders = [
            order(1, P1, utc(2025, 1, 5), "100", status="Pendente"),
            order(2, P1, utc(2025, 1, 6), "40"),
        ]
        [summary] = build_period_summaries(orders, MONTHLY)
        assert summary.order_ids == (2,)

    def test_skips_unparseable_dates(self):
        orders = [
            order(1, P1, "not-a-date", "100"),
            order(2, P1, None, "100"),
            order(3, P1, utc(2025, 2, 1), "10"),
        ]
        [summary] = build_period_summaries(orders, MONTHLY)
        assert summary.order_ids == (3,)

    def test_weekly_ordering_is_numeric(self):
        orders = [
            order(1, P1, utc(2025, 2, 26), "10"),  # W09
            order(2, P1, utc(2025, 3, 5), "10"),   # W10
        ]
        keys = [s.period_key for s in build_period_summaries(orders, WEEKLY)]
        assert keys == ["2025-W10", "2025-W09"]

    def test_legacy_paid_orders_count_as_paid(self):
        orders = [order(1, P1, utc(2025, 4, 1), "80", legacy="PAID")]
        [summary] = build_period_summaries(orders, MONTHLY)
        assert summary.paid_total == Decimal("80")
        assert summary.outstanding == Decimal("0")
        assert summary.status is CommissionStatus.PAID

    def test_overpaid_order_never_gives_negative_outstanding(self):
        orders = [order(1, P1, utc(2025, 4, 1), "80", paid="200")]
        [summary] = build_period_summaries(orders, MONTHLY)
        assert summary.outstanding == Decimal("0")

    def test_empty_input(self):
        assert build_period_summaries([], MONTHLY) == []


class TestBuildPendingByPharmacy:

    def test_oldest_first_and_only_outstanding(self):
        orders = [
            order(1, P1, utc(2025, 3, 5), "30"),
            order(2, P1, utc(2025, 1, 5), "10"),
            order(3, P1, utc(2025, 2, 5), "20", paid="20"),
            order(4, P2, utc(2025, 2, 5), "5"),
        ]
        pending = build_pending_by_pharmacy(orders, MONTHLY)

        assert [s.period_key for s in pending[P1]] == ["01/2025", "03/2025"]
        assert [s.period_key for s in pending[P2]] == ["02/2025"]
        assert pending[P1][0].pharmacy_id == P1

    def test_skips_orders_without_pharmacy(self):
        orders = [order(1, None, utc(2025, 3, 5), "30")]
        assert build_pending_by_pharmacy(orders, MONTHLY) == {}

    def test_skips_orders_with_empty_pharmacy_reference(self):
        orders = [
            order(1, "", utc(2025, 3, 5), "30"),
            order(2, P1, utc(2025, 3, 5), "10"),
        ]
        pending = build_pending_by_pharmacy(orders, MONTHLY)

        assert list(pending) == [P1]
        assert total_outstanding(pending[P1]) == Decimal("10")

    def test_fully_paid_pharmacy_is_absent(self):
        orders = [order(1, P1, utc(2025, 3, 5), "30", paid="30")]
        assert P1 not in build_pending_by_pharmacy(orders, MONTHLY)

    def test_total_outstanding(self):
        orders = [
            order(1, P1, utc(2025, 1, 5), "10"),
            order(2, P1, utc(2025, 2, 5), "20", paid="5"),
        ]
        assert total_outstanding(build_pending_by_pharmacy(orders, MONTHLY)[P1]) == Decimal("25")


class TestPharmacyFinancials:

    def test_report_figures(self):
        pharmacy = PharmacyRef(id=P1, name="Central", commission_rate=Decimal("10"))
        orders = [
            order(1, P1, utc(2025, 1, 5), "10", paid="4", total="100"),
            order(2, P1, utc(2025, 1, 6), "20", legacy="PAID", total="200"),
            order(3, P1, utc(2025, 1, 7), "5", status="Em preparo", total="50"),
            order(4, P1, utc(2025, 1, 8), "7", status="Cancelado", total="70"),
            order(5, P2, utc(2025, 1, 8), "9", total="90"),
        ]
        report = summarize_pharmacy_financials(pharmacy, orders)

        assert report.total_sales == Decimal("300")
        assert report.platform_fees == Decimal("30")
        assert report.paid_fees == Decimal("24")
        assert report.unpaid_fees == Decimal("6")
        assert report.net_earnings == Decimal("270")
        assert report.pending_clearance == Decimal("50")
