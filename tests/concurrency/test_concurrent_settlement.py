"""
Concurrent settlement against PostgreSQL.

Verifies:
- Two admins settling the same period at once never pay an order twice
- Concurrent partial payments add up exactly; the accumulator never
  exceeds the commission
- Ledger sequence numbers stay unique under contention

Requires DATABASE_URL pointing at PostgreSQL (row locks are real there).
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from settlement_kernel.db.engine import session_scope
from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.models.order import Order
from settlement_kernel.models.pharmacy import Pharmacy
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.services.settlement_gateway import SettlementGateway

pytestmark = pytest.mark.postgres

THREADS = 8


@pytest.fixture
def seeded(committed_session_factory):
    """One pharmacy with two June orders (600 and 400), committed."""
    with session_scope(committed_session_factory) as session:
        pharmacy = Pharmacy(name="Concorrente", commission_rate=Decimal("10"))
        session.add(pharmacy)
        session.flush()
        for day, commission in ((2, "600"), (20, "400")):
            session.add(Order(
                pharmacy_id=pharmacy.id,
                total=Decimal(commission) * 10,
                status="Concluído",
                created_at=datetime(2025, 6, day, 12, tzinfo=timezone.utc),
                commission_amount=Decimal(commission),
                commission_paid_amount=Decimal("0"),
                commission_status="PENDING",
            ))
        pharmacy_id = pharmacy.id
    return pharmacy_id


def _run_concurrently(fn, count=THREADS):
    barrier = threading.Barrier(count)

    def _task(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_task, range(count)))


def _paid_amounts(factory, pharmacy_id):
    with session_scope(factory) as session:
        orders = session.query(Order).filter(Order.pharmacy_id == pharmacy_id).all()
        return sorted((o.commission_amount, o.commission_paid_amount) for o in orders)


def test_full_settlement_races_pay_once(committed_session_factory, seeded, deterministic_clock):
    gateway = SettlementGateway(committed_session_factory, deterministic_clock)

    results = _run_concurrently(
        lambda _: gateway.apply_commission_payment_by_period_by_admin(
            seeded, "06/2025", SettlementCycle.MONTHLY,
        )
    )

    assert all(r.success for r in results)
    assert sum((r.applied_amount for r in results), Decimal("0")) == Decimal("1000")
    for commission, paid in _paid_amounts(committed_session_factory, seeded):
        assert paid == commission

    with session_scope(committed_session_factory) as session:
        assert LedgerSelector(session).count_entries(seeded) == 2


def test_partial_payments_accumulate_exactly(committed_session_factory, seeded, deterministic_clock):
    gateway = SettlementGateway(committed_session_factory, deterministic_clock)

    results = _run_concurrently(
        lambda _: gateway.apply_commission_payment_by_period_by_admin(
            seeded, "06/2025", SettlementCycle.MONTHLY, Decimal("150"),
        )
    )

    applied = sum((r.applied_amount for r in results), Decimal("0"))
    remaining = sum((r.remaining_amount for r in results), Decimal("0"))
    assert all(r.success for r in results)
    assert applied == Decimal("1000")
    assert remaining == Decimal("150") * THREADS - applied

    paid = _paid_amounts(committed_session_factory, seeded)
    assert sum(p for _, p in paid) == Decimal("1000")

    with session_scope(committed_session_factory) as session:
        selector = LedgerSelector(session)
        seqs = [e.seq for e in selector.list_entries(seeded, limit=100)]
        assert len(seqs) == len(set(seqs))
        replayed = selector.replay_paid_amounts(seeded)
        assert sum(replayed.values(), Decimal("0")) == Decimal("1000")
