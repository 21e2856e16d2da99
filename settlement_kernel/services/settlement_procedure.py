"""
CommissionSettlementProcedure -- the settlement ledger engine.

Responsibility:
    Applies commission payments against the orders of one settlement
    period and performs the administrative debt reset.  Each call locks the
    affected orders, moves their paid-amount accumulators and appends one
    ledger entry per touched order.

Architecture position:
    Kernel > Services -- imperative shell.  Runs inside ONE transaction
    owned by the caller (SettlementGateway through session_scope).  Flushes,
    never commits.

Invariants enforced:
    - All-or-nothing: order updates and ledger entries of one call share
      the caller's transaction.  Any error rolls all of them back.
    - Input is validated before the first write (pharmacy exists, period
      key well-formed for the cycle, explicit amount > 0).  A
      SettlementInputError therefore means the store was not touched.
    - 0 <= commission_paid_amount <= commission_amount after every write;
      the accumulator only moves up.
    - Only the numeric accumulator is written.  The legacy commission_status
      is read through domain.reconciliation and never updated.
    - Greedy, oldest-created first (tie-break by id): an earlier order is
      fully covered before a later one receives anything.
    - One ledger entry per touched order, seq from the locked counter row,
      before_paid_amount equal to the effective paid amount the
      distribution started from.

Failure modes:
    - PharmacyNotFoundError, InvalidPeriodKeyError, InvalidPaymentAmountError,
      InvalidCycleError: raised before any write.
    - SQLAlchemyError from the store propagates unchanged; the gateway maps
      it to a result status.

Audit relevance:
    Not idempotent: every call is a new money movement and leaves its own
    ledger trail.  Callers that lost the outcome of a call must re-read the
    period summaries before retrying.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.db.base import coerce_uuid
from settlement_kernel.db.types import ZERO, to_money
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import OrderSnapshot, ResetOutcome, SettlementOutcome
from settlement_kernel.domain.enums import LedgerOperation, SettlementCycle
from settlement_kernel.domain.period_key import normalize_period_key, period_bounds
from settlement_kernel.domain.period_key import period_key as compute_period_key
from settlement_kernel.domain.reconciliation import derive_status
from settlement_kernel.exceptions import (
    InvalidCycleError,
    InvalidPaymentAmountError,
    PharmacyNotFoundError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.ledger_entry import FinancialLedgerEntry
from settlement_kernel.models.order import Order
from settlement_kernel.models.pharmacy import Pharmacy
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.cycle_config_service import CycleConfigService, parse_cycle
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.settings import KernelSettings, get_settings

logger = get_logger("services.settlement_procedure")


def validate_payment_amount(payment_amount: Any) -> Decimal | None:
    """
    None (settle everything outstanding) or a strictly positive Decimal.

    Raises:
        InvalidPaymentAmountError: zero, negative, non-numeric or boolean.
    """
    if payment_amount is None:
        return None
    if isinstance(payment_amount, bool):
        raise InvalidPaymentAmountError(str(payment_amount))
    amount = to_money(payment_amount)
    if amount <= ZERO:
        raise InvalidPaymentAmountError(str(payment_amount))
    return amount


def validate_cycle(cycle: Any) -> SettlementCycle:
    parsed = parse_cycle(cycle)
    if parsed is None:
        raise InvalidCycleError(str(cycle))
    return parsed


class CommissionSettlementProcedure(BaseService):
    """
    Operation A (apply_payment_by_period) and operation B (reset_debt).

    Contract:
        Accepts a session already inside the caller's transaction.  Every
        public method either completes all its writes (flushed) or raises.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()
        self._sequences = sequence_service or SequenceService(session)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _require_pharmacy(self, pharmacy_id: Any) -> Pharmacy:
        pid = coerce_uuid(pharmacy_id)
        pharmacy = self.session.get(Pharmacy, pid) if pid is not None else None
        if pharmacy is None:
            raise PharmacyNotFoundError(str(pharmacy_id))
        return pharmacy

    # ------------------------------------------------------------------
    # Locking reads
    # ------------------------------------------------------------------

    def _lock_period_orders(
        self,
        pharmacy_id: UUID,
        key: str,
        cycle: SettlementCycle,
    ) -> list[Order]:
        """
        Lock the pharmacy's orders of one period, oldest first.

        The date-range filter is widened by a day on each side so that the
        local-timezone shift can never drop an order; the exact match is
        made on the computed period key.
        """
        start, end = period_bounds(key, cycle)
        lower = datetime.combine(start - timedelta(days=1), time.min, tzinfo=timezone.utc)
        upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        candidates = self.session.execute(
            select(Order)
            .where(
                Order.pharmacy_id == pharmacy_id,
                Order.created_at >= lower,
                Order.created_at < upper,
            )
            .order_by(Order.created_at, Order.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [
            order
            for order in candidates
            if compute_period_key(OrderSnapshot.from_model(order).created_at, cycle) == key
        ]

    def _lock_outstanding_orders(self, pharmacy_id: UUID | None) -> list[Order]:
        stmt = (
            select(Order)
            .order_by(Order.created_at, Order.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if pharmacy_id is not None:
            stmt = stmt.where(Order.pharmacy_id == pharmacy_id)
        return list(self.session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _append_entry(
        self,
        order: Order,
        snapshot: OrderSnapshot,
        applied: Decimal,
        after_paid: Decimal,
        operation: LedgerOperation,
        key: str | None,
        cycle: SettlementCycle,
        actor_id: UUID | None,
        note: str,
    ) -> FinancialLedgerEntry:
        after_outstanding = max(ZERO, snapshot.commission_amount - after_paid)
        entry = FinancialLedgerEntry(
            id=uuid4(),
            seq=self._sequences.next_value(SequenceService.FINANCIAL_LEDGER),
            order_id=order.id,
            pharmacy_id=order.pharmacy_id,
            period_key=key,
            cycle=cycle.value,
            operation_type=operation.value,
            note=note,
            applied_amount=applied,
            before_paid_amount=snapshot.effective_paid_amount,
            after_paid_amount=after_paid,
            before_status=snapshot.effective_status.value,
            after_status=derive_status(after_paid, after_outstanding).value,
            created_by=actor_id,
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        logger.debug(
            "ledger_entry_appended",
            extra={
                "seq": entry.seq,
                "order_id": str(order.id),
                "operation_type": operation.value,
                "applied_amount": applied,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Operation A
    # ------------------------------------------------------------------

    def apply_payment_by_period(
        self,
        pharmacy_id: Any,
        period_key: str,
        cycle: Any,
        payment_amount: Any = None,
        actor_id: Any = None,
        note: str | None = None,
    ) -> SettlementOutcome:
        """
        Distribute a payment over one period's outstanding orders.

        Args:
            pharmacy_id: Pharmacy whose commission is being paid.
            period_key: Key of the period, in the format of ``cycle``.
            cycle: MONTHLY or WEEKLY.
            payment_amount: Amount received.  None settles everything
                outstanding in the period.
            actor_id: Admin recording the payment.
            note: Ledger note; defaults to the ``settlement_note`` setting.

        Returns:
            SettlementOutcome with the number of orders touched, the amount
            applied, and the unapplied remainder (0 when no amount given).

        Raises:
            SettlementInputError subclasses, before any write.
        """
        cycle = validate_cycle(cycle)
        key = normalize_period_key(period_key, cycle)
        amount = validate_payment_amount(payment_amount)
        pharmacy = self._require_pharmacy(pharmacy_id)
        actor = coerce_uuid(actor_id)
        note = note or self._settings.settlement_note

        with LogContext.bind(
            pharmacy_id=pharmacy.id,
            period_key=key,
            cycle=cycle,
            actor_id=actor,
            operation="apply_payment_by_period",
        ):
            orders = self._lock_period_orders(pharmacy.id, key, cycle)

            remaining = amount
            applied_total = ZERO
            entry_ids: list[UUID] = []
            for order in orders:
                if remaining is not None and remaining <= ZERO:
                    break
                snapshot = OrderSnapshot.from_model(order)
                if not snapshot.is_completed:
                    continue
                outstanding = snapshot.outstanding_amount
                if outstanding <= ZERO:
                    continue

                applied = outstanding if remaining is None else min(outstanding, remaining)
                after_paid = snapshot.effective_paid_amount + applied
                order.commission_paid_amount = after_paid
                entry = self._append_entry(
                    order, snapshot, applied, after_paid,
                    LedgerOperation.SETTLEMENT, key, cycle, actor, note,
                )
                entry_ids.append(entry.id)
                applied_total += applied
                if remaining is not None:
                    remaining -= applied

            self.session.flush()

            outcome = SettlementOutcome(
                updated_count=len(entry_ids),
                applied_amount=applied_total,
                remaining_amount=remaining if remaining is not None else ZERO,
                entry_ids=tuple(entry_ids),
            )
            logger.info(
                "commission_payment_applied",
                extra={
                    "cycle": cycle.value,
                    "payment_amount": amount,
                    "updated_count": outcome.updated_count,
                    "applied_amount": outcome.applied_amount,
                    "remaining_amount": outcome.remaining_amount,
                },
            )
            return outcome

    # ------------------------------------------------------------------
    # Operation B
    # ------------------------------------------------------------------

    def reset_debt(
        self,
        pharmacy_id: Any = None,
        actor_id: Any = None,
        note: str | None = None,
        cycle: Any = None,
    ) -> ResetOutcome:
        """
        Mark every outstanding completed commission as paid.

        Args:
            pharmacy_id: Limit the reset to one pharmacy; None resets all.
            actor_id: Admin performing the reset.
            note: Ledger note; defaults to the ``reset_note`` setting.
            cycle: Cycle used for the entries' period keys; defaults to the
                configured cycle.

        Raises:
            PharmacyNotFoundError, InvalidCycleError: before any write.
        """
        pharmacy = self._require_pharmacy(pharmacy_id) if pharmacy_id is not None else None
        if cycle is None:
            cycle = CycleConfigService(self.session, self._clock, self._settings).get_cycle()
        else:
            cycle = validate_cycle(cycle)
        actor = coerce_uuid(actor_id)
        note = note or self._settings.reset_note

        with LogContext.bind(
            pharmacy_id=pharmacy.id if pharmacy else None,
            actor_id=actor,
            operation="reset_debt",
        ):
            orders = self._lock_outstanding_orders(pharmacy.id if pharmacy else None)

            cleared = ZERO
            entry_ids: list[UUID] = []
            for order in orders:
                snapshot = OrderSnapshot.from_model(order)
                if not snapshot.is_completed:
                    continue
                outstanding = snapshot.outstanding_amount
                if outstanding <= ZERO:
                    continue

                order.commission_paid_amount = snapshot.commission_amount
                entry = self._append_entry(
                    order, snapshot, outstanding, snapshot.commission_amount,
                    LedgerOperation.RESET,
                    compute_period_key(snapshot.created_at, cycle), cycle, actor, note,
                )
                entry_ids.append(entry.id)
                cleared += outstanding

            self.session.flush()

            outcome = ResetOutcome(
                updated_count=len(entry_ids),
                cleared_amount=cleared,
                entry_ids=tuple(entry_ids),
            )
            logger.info(
                "commission_debt_reset",
                extra={
                    "cycle": cycle.value,
                    "updated_count": outcome.updated_count,
                    "cleared_amount": outcome.cleared_amount,
                },
            )
            return outcome

