"""
SequentialSettlementWorkflow -- settle several periods, oldest first.

Responsibility:
    Drives the gateway period by period: settle everything a pharmacy owes,
    settle a chosen subset of periods, or spread one partial payment over
    periods carrying the remainder forward.

Architecture position:
    Kernel > Services -- facade over SettlementGateway.  Each period is its
    own transaction; nothing here spans two periods.

Invariants enforced:
    - Periods are processed in chronological order, oldest first.
    - Stops at the first failed period and reports it.  Periods settled
      before the failure stay committed.
    - A period whose outstanding does not shrink after a successful call
      aborts the run (STALLED) instead of looping forever.
    - ``should_continue`` is checked before each period; returning False
      stops the run (CANCELLED) with earlier periods committed.

Failure modes:
    - Never raises on store errors: reading pending periods or settling
      one is reported through SequentialSettlementResult.status.
    - An unknown cycle or a bad amount is reported as INVALID_INPUT before
      any period is touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from settlement_kernel.db.engine import session_scope
from settlement_kernel.db.types import ZERO
from settlement_kernel.domain.dtos import PeriodSummary
from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.domain.period_key import is_valid_period_key, normalize_period_key, sort_period_keys
from settlement_kernel.exceptions import InvalidPaymentAmountError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.selectors.order_selector import OrderSelector
from settlement_kernel.services.cycle_config_service import parse_cycle
from settlement_kernel.services.settlement_gateway import PaymentResult, SettlementGateway
from settlement_kernel.services.settlement_procedure import validate_payment_amount

logger = get_logger("services.sequential_settlement")


class SequentialStatus(str, Enum):
    """How a sequential run ended."""

    COMPLETED = "COMPLETED"
    NOTHING_PENDING = "NOTHING_PENDING"
    CANCELLED = "CANCELLED"
    STALLED = "STALLED"
    FAILED = "FAILED"
    INVALID_INPUT = "INVALID_INPUT"


@dataclass(frozen=True)
class SequentialSettlementResult:
    """Outcome of a sequential run."""

    status: SequentialStatus
    pharmacy_id: Any
    cycle: SettlementCycle | None
    results: tuple[PaymentResult, ...] = ()
    failed_period_key: str | None = None
    error: str | None = None
    remaining_amount: Decimal = ZERO

    @property
    def success(self) -> bool:
        return self.status in (SequentialStatus.COMPLETED, SequentialStatus.NOTHING_PENDING)

    @property
    def settled_period_keys(self) -> tuple[str, ...]:
        return tuple(r.period_key for r in self.results if r.success)

    @property
    def applied_amount(self) -> Decimal:
        return sum((r.applied_amount for r in self.results if r.success), ZERO)


class SequentialSettlementWorkflow:
    """
    Multi-period settlement on top of SettlementGateway.

    Usage:
        workflow = SequentialSettlementWorkflow(gateway)
        result = workflow.settle_all(pharmacy_id, actor_id=admin_id)
        if not result.success:
            show(result.failed_period_key, result.error)
    """

    def __init__(self, gateway: SettlementGateway):
        self._gateway = gateway

    def _load_pending(self, pharmacy_id: Any, cycle: SettlementCycle) -> list[PeriodSummary]:
        with session_scope(self._gateway.session_factory) as session:
            return OrderSelector(session, self._gateway.settings).pending_periods(pharmacy_id, cycle)

    def _resolve_cycle(self, cycle: Any) -> SettlementCycle | None:
        if cycle is None:
            return self._gateway.fetch_financial_settlement_cycle()
        return parse_cycle(cycle)

    def _invalid_cycle(self, pharmacy_id: Any, cycle: Any) -> SequentialSettlementResult:
        return self._finish(
            SequentialStatus.INVALID_INPUT, pharmacy_id, None, [],
            error=f"Invalid settlement cycle '{cycle}'",
        )

    def _finish(
        self,
        status: SequentialStatus,
        pharmacy_id: Any,
        cycle: SettlementCycle | None,
        results: list[PaymentResult],
        failed_period_key: str | None = None,
        error: str | None = None,
        remaining_amount: Decimal = ZERO,
    ) -> SequentialSettlementResult:
        result = SequentialSettlementResult(
            status=status,
            pharmacy_id=pharmacy_id,
            cycle=cycle,
            results=tuple(results),
            failed_period_key=failed_period_key,
            error=error,
            remaining_amount=remaining_amount,
        )
        log = logger.info if result.success else logger.warning
        log(
            "sequential_settlement_finished",
            extra={
                "status": status.value,
                "settled_periods": list(result.settled_period_keys),
                "applied_amount": result.applied_amount,
                "failed_period_key": failed_period_key,
                "remaining_amount": remaining_amount,
            },
        )
        return result

    def _read_failed(self, pharmacy_id, cycle, results, exc, remaining=ZERO):
        logger.error("pending_periods_read_failed", exc_info=True)
        return self._finish(
            SequentialStatus.FAILED, pharmacy_id, cycle, results,
            error=f"Could not read pending periods: {exc}",
            remaining_amount=remaining,
        )

    def settle_all(
        self,
        pharmacy_id: Any,
        actor_id: Any = None,
        cycle: Any = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> SequentialSettlementResult:
        """
        Settle every pending period of a pharmacy, oldest first, until none
        remain.  Pending periods are re-read after each settlement.
        """
        resolved = self._resolve_cycle(cycle)
        if resolved is None:
            return self._invalid_cycle(pharmacy_id, cycle)
        cycle = resolved
        results: list[PaymentResult] = []
        last: PeriodSummary | None = None

        with LogContext.bind(pharmacy_id=pharmacy_id, cycle=cycle, operation="settle_all"):
            while True:
                if should_continue is not None and not should_continue():
                    return self._finish(SequentialStatus.CANCELLED, pharmacy_id, cycle, results)
                try:
                    pending = self._load_pending(pharmacy_id, cycle)
                except SQLAlchemyError as exc:
                    return self._read_failed(pharmacy_id, cycle, results, exc)
                if not pending:
                    status = SequentialStatus.COMPLETED if results else SequentialStatus.NOTHING_PENDING
                    return self._finish(status, pharmacy_id, cycle, results)

                oldest = pending[0]
                if (
                    last is not None
                    and oldest.period_key == last.period_key
                    and oldest.outstanding >= last.outstanding
                ):
                    return self._finish(
                        SequentialStatus.STALLED, pharmacy_id, cycle, results,
                        failed_period_key=oldest.period_key,
                        error=f"Period {oldest.period_key} did not shrink after settlement",
                    )

                result = self._gateway.apply_commission_payment_by_period_by_admin(
                    pharmacy_id, oldest.period_key, cycle, None, actor_id=actor_id,
                )
                results.append(result)
                if not result.success:
                    return self._finish(
                        SequentialStatus.FAILED, pharmacy_id, cycle, results,
                        failed_period_key=oldest.period_key, error=result.error,
                    )
                logger.info(
                    "sequential_period_settled",
                    extra={"period_key": oldest.period_key, "applied_amount": result.applied_amount},
                )
                last = oldest

    def _select_periods(
        self,
        pending: list[PeriodSummary],
        period_keys: Iterable[str] | None,
        cycle: SettlementCycle,
    ) -> list[PeriodSummary]:
        if period_keys is None:
            return pending
        wanted = {
            normalize_period_key(k, cycle) for k in period_keys if is_valid_period_key(k, cycle)
        }
        return [p for p in pending if p.period_key in wanted]

    def settle_periods(
        self,
        pharmacy_id: Any,
        period_keys: Iterable[str],
        actor_id: Any = None,
        cycle: Any = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> SequentialSettlementResult:
        """
        Fully settle a chosen subset of periods, oldest first.

        Keys are settled in chronological order whatever order they were
        given in.  A malformed key fails the run at that key.
        """
        resolved = self._resolve_cycle(cycle)
        if resolved is None:
            return self._invalid_cycle(pharmacy_id, cycle)
        cycle = resolved
        keys = sort_period_keys(dict.fromkeys(period_keys), cycle)
        results: list[PaymentResult] = []

        with LogContext.bind(pharmacy_id=pharmacy_id, cycle=cycle, operation="settle_periods"):
            for key in keys:
                if should_continue is not None and not should_continue():
                    return self._finish(SequentialStatus.CANCELLED, pharmacy_id, cycle, results)
                result = self._gateway.apply_commission_payment_by_period_by_admin(
                    pharmacy_id, key, cycle, None, actor_id=actor_id,
                )
                results.append(result)
                if not result.success:
                    return self._finish(
                        SequentialStatus.FAILED, pharmacy_id, cycle, results,
                        failed_period_key=key, error=result.error,
                    )

            status = SequentialStatus.COMPLETED if results else SequentialStatus.NOTHING_PENDING
            return self._finish(status, pharmacy_id, cycle, results)

    def apply_partial_payment(
        self,
        pharmacy_id: Any,
        amount: Any,
        period_keys: Iterable[str] | None = None,
        actor_id: Any = None,
        cycle: Any = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> SequentialSettlementResult:
        """
        Spread one payment over pending periods, oldest first.

        Each period receives at most its outstanding amount; what it does not
        absorb is carried to the next period.  Stops when the payment is
        exhausted.  ``period_keys`` limits the run to those periods.
        """
        resolved = self._resolve_cycle(cycle)
        if resolved is None:
            return self._invalid_cycle(pharmacy_id, cycle)
        cycle = resolved
        try:
            remaining = validate_payment_amount(amount)
        except InvalidPaymentAmountError as exc:
            return self._finish(
                SequentialStatus.INVALID_INPUT, pharmacy_id, cycle, [], error=str(exc),
            )
        if remaining is None:
            return self._finish(
                SequentialStatus.INVALID_INPUT, pharmacy_id, cycle, [],
                error="A partial payment needs an amount",
            )

        results: list[PaymentResult] = []
        with LogContext.bind(pharmacy_id=pharmacy_id, cycle=cycle, operation="apply_partial_payment"):
            try:
                pending = self._load_pending(pharmacy_id, cycle)
            except SQLAlchemyError as exc:
                return self._read_failed(pharmacy_id, cycle, results, exc, remaining)

            selected = self._select_periods(pending, period_keys, cycle)
            if not selected:
                return self._finish(
                    SequentialStatus.NOTHING_PENDING, pharmacy_id, cycle, results,
                    remaining_amount=remaining,
                )

            for period in selected:
                if remaining <= ZERO:
                    break
                if should_continue is not None and not should_continue():
                    return self._finish(
                        SequentialStatus.CANCELLED, pharmacy_id, cycle, results,
                        remaining_amount=remaining,
                    )
                chunk = min(remaining, period.outstanding)
                result = self._gateway.apply_commission_payment_by_period_by_admin(
                    pharmacy_id, period.period_key, cycle, chunk, actor_id=actor_id,
                )
                results.append(result)
                if not result.success:
                    return self._finish(
                        SequentialStatus.FAILED, pharmacy_id, cycle, results,
                        failed_period_key=period.period_key, error=result.error,
                        remaining_amount=remaining,
                    )
                remaining -= result.applied_amount

            return self._finish(
                SequentialStatus.COMPLETED, pharmacy_id, cycle, results,
                remaining_amount=remaining,
            )
