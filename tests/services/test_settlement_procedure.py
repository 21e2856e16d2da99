"""
Commission settlement procedure: payment by period and debt reset.

Verifies:
- Full settlement of a period when no amount is given
- Greedy distribution of a partial payment, oldest order first
- Unapplied remainder when the payment exceeds the outstanding
- Legacy PAID orders are never charged again
- Invalid input raises before any write
- Reset clears every outstanding commission and leaves a RESET trail
- One ledger entry per touched order, replayable to the paid amounts
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.domain.enums import CommissionStatus, LedgerOperation
from settlement_kernel.exceptions import (
    InvalidCycleError,
    InvalidPaymentAmountError,
    InvalidPeriodKeyError,
    PharmacyNotFoundError,
    SettlementInputError,
)
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.order_selector import OrderSelector
from settlement_kernel.services.settlement_procedure import validate_payment_amount


def utc(y, m, d, h=12):
    return datetime(y, m, d, h, 0, tzinfo=timezone.utc)


class TestValidatePaymentAmount:

    def test_none_means_full_settlement(self):
        assert validate_payment_amount(None) is None

    def test_accepts_positive_values(self):
        assert validate_payment_amount("700") == Decimal("700")
        assert validate_payment_amount(12.5) == Decimal("12.5")

    @pytest.mark.parametrize("bad", [0, "0", -5, "-0.01", "abc", True, float("nan")])
    def test_rejects_non_positive_or_garbage(self, bad):
        with pytest.raises(InvalidPaymentAmountError):
            validate_payment_amount(bad)


class TestApplyPaymentByPeriod:

    def test_full_settlement_without_amount(self, session, procedure, make_pharmacy, make_order, reload, monthly, test_actor_id):
        pharmacy = make_pharmacy()
        order = make_order(pharmacy, "1000")

        outcome = procedure.apply_payment_by_period(
            pharmacy.id, "06/2025", monthly, actor_id=test_actor_id,
        )

        assert outcome.updated_count == 1
        assert outcome.applied_amount == Decimal("1000")
        assert outcome.remaining_amount == Decimal("0")
        assert reload(order).commission_paid_amount == Decimal("1000")

        [entry] = LedgerSelector(session).list_entries(pharmacy.id)
        assert entry.operation_type == LedgerOperation.SETTLEMENT.value
        assert entry.period_key == "06/2025"
        assert entry.cycle == "MONTHLY"
        assert entry.before_paid_amount == Decimal("0")
        assert entry.after_paid_amount == Decimal("1000")
        assert entry.before_status == CommissionStatus.PENDING.value
        assert entry.after_status == CommissionStatus.PAID.value
        assert entry.created_by == test_actor_id
        assert outcome.entry_ids == (entry.id,)

    def test_partial_payment_is_greedy_oldest_first(self, session, procedure, make_pharmacy, make_order, reload, monthly):
        pharmacy = make_pharmacy()
        first = make_order(pharmacy, "600", created_at=utc(2025, 6, 2))
        second = make_order(pharmacy, "400", created_at=utc(2025, 6, 20))

        outcome = procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly, "700")

        assert outcome.updated_count == 2
        assert outcome.applied_amount == Decimal("700")
        assert outcome.remaining_amount == Decimal("0")
        assert reload(first).commission_paid_amount == Decimal("600")
        assert reload(second).commission_paid_amount == Decimal("100")

        [summary] = OrderSelector(session).pending_periods(pharmacy.id, monthly)
        assert summary.outstanding == Decimal("300")
        assert summary.status is CommissionStatus.PARTIAL

    def test_payment_larger_than_outstanding_leaves_remainder(self, procedure, make_pharmacy, make_order, reload, monthly):
        pharmacy = make_pharmacy()
        order = make_order(pharmacy, "300", paid="100")

        outcome = procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly, Decimal("500"))

        assert outcome.applied_amount == Decimal("200")
        assert outcome.remaining_amount == Decimal("300")
        assert reload(order).commission_paid_amount == Decimal("300")

    def test_only_the_requested_period_is_touched(self, procedure, make_pharmacy, make_order, reload, monthly):
        pharmacy = make_pharmacy()
        may = make_order(pharmacy, "50", created_at=utc(2025, 5, 31, 23))
        june = make_order(pharmacy, "70", created_at=utc(2025, 6, 1, 0))
        july = make_order(pharmacy, "90", created_at=utc(2025, 7, 1, 0))

        outcome = procedure.apply_payment_by_period(pharmacy.id, "6/2025", monthly)

        assert outcome.updated_count == 1
        assert reload(may).commission_paid_amount == Decimal("0")
        assert reload(june).commission_paid_amount == Decimal("70")
        assert reload(july).commission_paid_amount == Decimal("0")

    def test_weekly_period(self, procedure, make_pharmacy, make_order, reload, weekly):
        pharmacy = make_pharmacy()
        in_week = make_order(pharmacy, "40", created_at=utc(2025, 3, 5))   # 2025-W10
        next_week = make_order(pharmacy, "40", created_at=utc(2025, 3, 10))  # 2025-W11

        outcome = procedure.apply_payment_by_period(pharmacy.id, "2025-w10", weekly)

        assert outcome.updated_count == 1
        assert reload(in_week).commission_paid_amount == Decimal("40")
        assert reload(next_week).commission_paid_amount == Decimal("0")

    def test_skips_legacy_paid_and_incomplete_orders(self, session, procedure, make_pharmacy, make_order, reload, monthly):
        pharmacy = make_pharmacy()
        legacy = make_order(pharmacy, "80", created_at=utc(2025, 6, 1), commission_status="PAID")
        open_order = make_order(pharmacy, "30", created_at=utc(2025, 6, 2), status="Em preparo")
        due = make_order(pharmacy, "20", created_at=utc(2025, 6, 3))

        outcome = procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly, "100")

        assert outcome.updated_count == 1
        assert outcome.applied_amount == Decimal("20")
        assert outcome.remaining_amount == Decimal("80")
        assert reload(legacy).commission_paid_amount == Decimal("0")
        assert reload(legacy).commission_status == "PAID"
        assert reload(open_order).commission_paid_amount == Decimal("0")
        assert reload(due).commission_paid_amount == Decimal("20")

    def test_nothing_outstanding_is_a_no_op(self, session, procedure, make_pharmacy, make_order, monthly):
        pharmacy = make_pharmacy()
        make_order(pharmacy, "20", paid="20")

        outcome = procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly)

        assert outcome.updated_count == 0
        assert outcome.applied_amount == Decimal("0")
        assert LedgerSelector(session).count_entries() == 0

    def test_other_pharmacies_are_untouched(self, procedure, make_pharmacy, make_order, reload, monthly):
        ours = make_pharmacy("Alpha")
        theirs = make_pharmacy("Beta")
        make_order(ours, "10")
        other = make_order(theirs, "10")

        procedure.apply_payment_by_period(ours.id, "06/2025", monthly)

        assert reload(other).commission_paid_amount == Decimal("0")

    def test_logs_payment(self, procedure, make_pharmacy, make_order, monthly, captured_logs):
        pharmacy = make_pharmacy()
        make_order(pharmacy, "10")

        procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly)

        [record] = [r for r in captured_logs() if r["message"] == "commission_payment_applied"]
        assert record["period_key"] == "06/2025"
        assert record["updated_count"] == 1


class TestInvalidInput:

    @pytest.fixture
    def seeded(self, make_pharmacy, make_order):
        pharmacy = make_pharmacy()
        order = make_order(pharmacy, "100")
        return pharmacy, order

    @pytest.mark.parametrize(
        "kwargs, error",
        [
            ({"period_key": "13/2025"}, InvalidPeriodKeyError),
            ({"period_key": "2025-W10"}, InvalidPeriodKeyError),
            ({"payment_amount": 0}, InvalidPaymentAmountError),
            ({"payment_amount": "-5"}, InvalidPaymentAmountError),
            ({"cycle": "DAILY"}, InvalidCycleError),
        ],
    )
    def test_rejected_before_any_write(self, session, procedure, seeded, reload, kwargs, error):
        pharmacy, order = seeded
        call = {"period_key": "06/2025", "cycle": "MONTHLY", "payment_amount": None}
        call.update(kwargs)

        with pytest.raises(error):
            procedure.apply_payment_by_period(pharmacy.id, **call)

        assert reload(order).commission_paid_amount == Decimal("0")
        assert LedgerSelector(session).count_entries() == 0

    @pytest.mark.parametrize("pharmacy_id", [uuid4(), "not-a-uuid", None])
    def test_unknown_pharmacy(self, procedure, seeded, pharmacy_id, monthly):
        with pytest.raises(PharmacyNotFoundError) as exc_info:
            procedure.apply_payment_by_period(pharmacy_id, "06/2025", monthly)
        assert isinstance(exc_info.value, SettlementInputError)
        assert exc_info.value.code == "PHARMACY_NOT_FOUND"


class TestResetDebt:

    def test_reset_clears_every_period(self, session, procedure, make_pharmacy, make_order, reload, monthly, test_actor_id):
        pharmacy = make_pharmacy()
        may = make_order(pharmacy, "250", created_at=utc(2025, 5, 10), paid="50")
        june = make_order(pharmacy, "250", created_at=utc(2025, 6, 10))

        outcome = procedure.reset_debt(pharmacy.id, actor_id=test_actor_id)

        assert outcome.updated_count == 2
        assert outcome.cleared_amount == Decimal("450")
        assert reload(may).commission_paid_amount == Decimal("250")
        assert reload(june).commission_paid_amount == Decimal("250")
        assert OrderSelector(session).pending_periods(pharmacy.id, monthly) == []

        entries = LedgerSelector(session).list_entries(pharmacy.id)
        assert all(e.operation_type is LedgerOperation.RESET for e in entries)
        assert sorted(e.period_key for e in entries) == ["05/2025", "06/2025"]
        assert all(e.note == "Commission debt reset by admin" for e in entries)

    def test_reset_all_pharmacies(self, procedure, make_pharmacy, make_order, reload):
        a = make_order(make_pharmacy("Alpha"), "10")
        b = make_order(make_pharmacy("Beta"), "20")
        orphan = make_order(None, "5")

        outcome = procedure.reset_debt()

        assert outcome.updated_count == 3
        assert outcome.cleared_amount == Decimal("35")
        for order in (a, b, orphan):
            assert reload(order).commission_paid_amount == reload(order).commission_amount

    def test_reset_scoped_to_one_pharmacy(self, procedure, make_pharmacy, make_order, reload):
        ours = make_pharmacy("Alpha")
        other = make_order(make_pharmacy("Beta"), "20")
        make_order(ours, "10")

        procedure.reset_debt(ours.id)

        assert reload(other).commission_paid_amount == Decimal("0")

    def test_reset_uses_weekly_keys_when_asked(self, session, procedure, make_pharmacy, make_order, weekly):
        pharmacy = make_pharmacy()
        make_order(pharmacy, "10", created_at=utc(2024, 12, 31))

        procedure.reset_debt(pharmacy.id, cycle=weekly)

        [entry] = LedgerSelector(session).list_entries(pharmacy.id)
        assert entry.period_key == "2025-W01"
        assert entry.cycle == "WEEKLY"

    def test_reset_unknown_pharmacy(self, procedure):
        with pytest.raises(PharmacyNotFoundError):
            procedure.reset_debt(uuid4())

    def test_reset_leaves_legacy_paid_alone(self, session, procedure, make_pharmacy, make_order):
        pharmacy = make_pharmacy()
        make_order(pharmacy, "80", commission_status="PAID")

        outcome = procedure.reset_debt(pharmacy.id)

        assert outcome.updated_count == 0
        assert LedgerSelector(session).count_entries() == 0


class TestLedgerTrail:

    def test_one_entry_per_touched_order_with_increasing_seq(self, session, procedure, make_pharmacy, make_order, monthly):
        pharmacy = make_pharmacy()
        for day in (1, 2, 3):
            make_order(pharmacy, "10", created_at=utc(2025, 6, day))

        procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly, "15")
        procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly)

        selector = LedgerSelector(session)
        entries = selector.list_entries(pharmacy.id)
        assert len(entries) == 4
        seqs = [e.seq for e in entries]
        assert seqs == sorted(seqs, reverse=True)
        assert len(set(seqs)) == 4

    def test_replay_matches_paid_amounts(self, session, procedure, make_pharmacy, make_order, reload, monthly):
        pharmacy = make_pharmacy()
        orders = [
            make_order(pharmacy, "100", created_at=utc(2025, 6, 1)),
            make_order(pharmacy, "100", created_at=utc(2025, 6, 2), paid="30"),
            make_order(pharmacy, "100", created_at=utc(2025, 7, 1)),
        ]

        procedure.apply_payment_by_period(pharmacy.id, "06/2025", monthly, "120")
        procedure.apply_payment_by_period(pharmacy.id, "07/2025", monthly, "10")
        procedure.reset_debt(pharmacy.id)

        replayed = LedgerSelector(session).replay_paid_amounts(pharmacy.id)
        for order in orders:
            assert replayed[order.id] == reload(order).commission_paid_amount
