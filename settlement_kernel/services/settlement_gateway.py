"""
SettlementGateway -- the admin and UI surface of the settlement kernel.

Responsibility:
    Owns one database transaction per call, runs the settlement procedure
    or a selector inside it, and turns every failure into a frozen result
    object with a machine-readable status.  Callers never see a raw store
    exception.

Architecture position:
    Kernel > Services -- facade.  The only component that commits.

Status mapping:
    SettlementInputError             -> INVALID_INPUT (no writes happened)
    missing table/column/function    -> PROCEDURE_MISSING
        (SQLSTATE 42P01, 42703, 42883 or SQLite "no such table/column")
    timeout or dropped connection    -> UNKNOWN_OUTCOME
        (re-read period summaries before retrying)
    any other store or kernel error  -> FAILED (transaction rolled back)

Failure modes:
    - Read methods degrade to the default, None, an empty list or an empty
      view on store errors and log the failure.  An unknown cycle passed
      to a read yields the same empty result.
    - Programming errors (TypeError, AttributeError, ...) propagate.

Audit relevance:
    Every failure is logged with the pharmacy, period key and attempted
    amount so an operator can reconcile before retrying.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from settlement_kernel.db.base import coerce_uuid
from settlement_kernel.db.engine import get_session_factory, session_scope
from settlement_kernel.db.types import ZERO
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import LedgerEntryInfo, PeriodSummary
from settlement_kernel.domain.enums import LedgerOperation, SettlementCycle
from settlement_kernel.exceptions import (
    SettlementInputError,
    SettlementKernelError,
    SettlementOutcomeUnknownError,
    SettlementProcedureMissingError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.order_selector import OrderSelector
from settlement_kernel.selectors.reporting_selector import AdminView, PharmacyView, ReportingSelector
from settlement_kernel.services.cycle_config_service import CycleConfigService, parse_cycle
from settlement_kernel.services.settlement_procedure import CommissionSettlementProcedure
from settlement_kernel.settings import KernelSettings, get_settings

logger = get_logger("services.settlement_gateway")

APPLY_PAYMENT_PROCEDURE = "apply_commission_payment_by_period_by_admin"
RESET_DEBT_PROCEDURE = "reset_commission_debt_by_admin"

# SQLSTATEs meaning the schema or function is not deployed
_MISSING_OBJECT_SQLSTATES = frozenset({"42P01", "42703", "42883"})
_MISSING_OBJECT_MESSAGES = ("no such table", "no such column", "no such function")

_UNKNOWN_OUTCOME_MESSAGES = (
    "timeout",
    "timed out",
    "server closed the connection",
    "connection reset",
    "connection refused",
    "could not receive data",
    "terminating connection",
    "ssl syscall error",
)


class SettlementResultStatus(str, Enum):
    """Outcome of a gateway write."""

    APPLIED = "APPLIED"
    INVALID_INPUT = "INVALID_INPUT"
    PROCEDURE_MISSING = "PROCEDURE_MISSING"
    UNKNOWN_OUTCOME = "UNKNOWN_OUTCOME"
    FAILED = "FAILED"


@dataclass(frozen=True)
class PaymentResult:
    """Result of apply_commission_payment_by_period_by_admin."""

    status: SettlementResultStatus
    pharmacy_id: Any
    period_key: str | None
    cycle: str | None
    payment_amount: Any = None
    updated_count: int = 0
    applied_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.status is SettlementResultStatus.APPLIED


@dataclass(frozen=True)
class ResetResult:
    """Result of reset_commission_debt_by_admin."""

    status: SettlementResultStatus
    pharmacy_id: Any = None
    updated_count: int = 0
    cleared_amount: Decimal = ZERO
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.status is SettlementResultStatus.APPLIED


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def classify_store_error(procedure: str, exc: SQLAlchemyError) -> SettlementKernelError | None:
    """
    Typed kernel error for a store failure, or None for a plain failure.

    Returns SettlementProcedureMissingError for schema drift and
    SettlementOutcomeUnknownError when the commit may or may not have
    happened.
    """
    message = str(getattr(exc, "orig", None) or exc)
    lowered = message.lower()
    if _sqlstate(exc) in _MISSING_OBJECT_SQLSTATES or any(
        m in lowered for m in _MISSING_OBJECT_MESSAGES
    ):
        return SettlementProcedureMissingError(procedure, message.strip())
    invalidated = isinstance(exc, DBAPIError) and exc.connection_invalidated
    if invalidated or (
        isinstance(exc, OperationalError)
        and any(m in lowered for m in _UNKNOWN_OUTCOME_MESSAGES)
    ):
        return SettlementOutcomeUnknownError(procedure, message.strip())
    return None


def _status_for(error: SettlementKernelError | None) -> SettlementResultStatus:
    if isinstance(error, SettlementInputError):
        return SettlementResultStatus.INVALID_INPUT
    if isinstance(error, SettlementProcedureMissingError):
        return SettlementResultStatus.PROCEDURE_MISSING
    if isinstance(error, SettlementOutcomeUnknownError):
        return SettlementResultStatus.UNKNOWN_OUTCOME
    return SettlementResultStatus.FAILED


class SettlementGateway:
    """
    Transaction-owning facade over the settlement procedure, the cycle
    configuration and the ledger.

    Contract:
        Every write runs in its own session_scope: committed on success,
        rolled back on any error.  Writes return PaymentResult/ResetResult;
        reads return plain values.  Nothing here raises on store errors.

    Usage:
        gateway = SettlementGateway()
        result = gateway.apply_commission_payment_by_period_by_admin(
            pharmacy_id, "06/2025", SettlementCycle.MONTHLY, Decimal("700"),
            actor_id=admin_id,
        )
        if not result.success:
            show(result.error)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> KernelSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Settlement cycle
    # ------------------------------------------------------------------

    def fetch_financial_settlement_cycle(self) -> SettlementCycle:
        """Configured cycle; the default on any failure."""
        try:
            with session_scope(self._session_factory) as session:
                return CycleConfigService(session, self._clock, self._settings).get_cycle()
        except SQLAlchemyError:
            logger.warning(
                "settlement_cycle_fetch_failed",
                extra={"fallback": self._settings.default_cycle.value},
                exc_info=True,
            )
            return self._settings.default_cycle

    def save_financial_settlement_cycle(self, cycle: Any) -> bool:
        """Store the cycle.  False on invalid value or store failure."""
        try:
            with session_scope(self._session_factory) as session:
                return CycleConfigService(session, self._clock, self._settings).set_cycle(cycle)
        except SQLAlchemyError:
            logger.error(
                "settlement_cycle_save_failed",
                extra={"cycle": str(cycle)},
                exc_info=True,
            )
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_financial_ledger_entries(
        self,
        pharmacy_id: Any = None,
        limit: int | None = None,
    ) -> list[LedgerEntryInfo]:
        """Newest ledger entries; [] on store failure."""
        try:
            with session_scope(self._session_factory) as session:
                return LedgerSelector(session, self._settings).list_entries(pharmacy_id, limit)
        except SQLAlchemyError:
            logger.warning(
                "ledger_fetch_failed",
                extra={"pharmacy_id": str(pharmacy_id) if pharmacy_id else None},
                exc_info=True,
            )
            return []

    def fetch_pending_periods(
        self,
        pharmacy_id: Any,
        cycle: Any = None,
    ) -> list[PeriodSummary]:
        """Outstanding periods of a pharmacy, oldest first; [] on store failure."""
        try:
            with session_scope(self._session_factory) as session:
                resolved = self._read_cycle(session, cycle)
                if resolved is None:
                    return []
                return OrderSelector(session, self._settings).pending_periods(
                    pharmacy_id, resolved
                )
        except SQLAlchemyError:
            logger.warning(
                "pending_periods_fetch_failed",
                extra={"pharmacy_id": str(pharmacy_id)},
                exc_info=True,
            )
            return []

    def fetch_pharmacy_view(
        self,
        pharmacy_id: Any,
        cycle: Any = None,
    ) -> PharmacyView | None:
        """Finance page of one pharmacy as of now; None if unknown or unreadable."""
        try:
            with session_scope(self._session_factory) as session:
                resolved = self._read_cycle(session, cycle)
                if resolved is None:
                    return None
                return ReportingSelector(session, self._settings).pharmacy_view(
                    pharmacy_id, resolved, self._clock.now()
                )
        except SQLAlchemyError:
            logger.warning(
                "pharmacy_view_fetch_failed",
                extra={"pharmacy_id": str(pharmacy_id)},
                exc_info=True,
            )
            return None

    def fetch_admin_view(
        self,
        selected_pharmacy_id: Any = None,
        cycle: Any = None,
    ) -> AdminView:
        """Admin settlement page; an empty view on store failure."""
        try:
            with session_scope(self._session_factory) as session:
                resolved = self._read_cycle(session, cycle)
                if resolved is not None:
                    return ReportingSelector(session, self._settings).admin_view(
                        resolved, selected_pharmacy_id
                    )
        except SQLAlchemyError:
            logger.warning(
                "admin_view_fetch_failed",
                extra={"selected_pharmacy_id": str(selected_pharmacy_id)},
                exc_info=True,
            )
        return AdminView(
            cycle=parse_cycle(cycle) or self._settings.default_cycle,
            ranking=(),
            total_outstanding=ZERO,
            selected_pharmacy_id=coerce_uuid(selected_pharmacy_id),
            selected_pending=(),
            ledger=(),
            operation_counts={op: 0 for op in LedgerOperation},
        )

    def _read_cycle(self, session: Session, cycle: Any) -> SettlementCycle | None:
        """Explicit cycle, or the configured one when None.  None if unknown."""
        if cycle is None:
            return CycleConfigService(session, self._clock, self._settings).get_cycle()
        parsed = parse_cycle(cycle)
        if parsed is None:
            logger.warning("unknown_settlement_cycle", extra={"cycle": str(cycle)})
        return parsed

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_commission_payment_by_period_by_admin(
        self,
        pharmacy_id: Any,
        period_key: str,
        cycle: Any,
        payment_amount: Any = None,
        actor_id: Any = None,
        note: str | None = None,
    ) -> PaymentResult:
        """
        Apply a payment to one period of one pharmacy in a single transaction.

        ``payment_amount=None`` settles everything outstanding in the period.
        """
        cycle_value = getattr(cycle, "value", cycle)
        try:
            with session_scope(self._session_factory) as session:
                outcome = CommissionSettlementProcedure(
                    session, self._clock, self._settings
                ).apply_payment_by_period(
                    pharmacy_id=pharmacy_id,
                    period_key=period_key,
                    cycle=cycle,
                    payment_amount=payment_amount,
                    actor_id=actor_id,
                    note=note,
                )
        except SettlementKernelError as exc:
            error: SettlementKernelError | None = exc
            cause: Exception = exc
        except SQLAlchemyError as exc:
            error = classify_store_error(APPLY_PAYMENT_PROCEDURE, exc)
            cause = exc
        else:
            return PaymentResult(
                status=SettlementResultStatus.APPLIED,
                pharmacy_id=pharmacy_id,
                period_key=period_key,
                cycle=cycle_value,
                payment_amount=payment_amount,
                updated_count=outcome.updated_count,
                applied_amount=outcome.applied_amount,
                remaining_amount=outcome.remaining_amount,
            )

        status = _status_for(error)
        message = (
            f"{error or cause} "
            f"(pharmacy={pharmacy_id}, period={period_key}, amount={payment_amount})"
        )
        logger.error(
            "commission_payment_failed",
            extra={
                "status": status.value,
                "pharmacy_id": str(pharmacy_id),
                "period_key": period_key,
                "cycle": cycle_value,
                "payment_amount": str(payment_amount),
                "error_code": getattr(error, "code", None),
                "detail": str(cause),
            },
        )
        return PaymentResult(
            status=status,
            pharmacy_id=pharmacy_id,
            period_key=period_key,
            cycle=cycle_value,
            payment_amount=payment_amount,
            error=message,
            error_code=getattr(error, "code", None),
        )

    def reset_commission_debt_by_admin(
        self,
        pharmacy_id: Any = None,
        actor_id: Any = None,
        note: str | None = None,
    ) -> ResetResult:
        """Force every outstanding commission (of one pharmacy, or all) to paid."""
        try:
            with session_scope(self._session_factory) as session:
                outcome = CommissionSettlementProcedure(
                    session, self._clock, self._settings
                ).reset_debt(pharmacy_id=pharmacy_id, actor_id=actor_id, note=note)
        except SettlementKernelError as exc:
            error: SettlementKernelError | None = exc
            cause: Exception = exc
        except SQLAlchemyError as exc:
            error = classify_store_error(RESET_DEBT_PROCEDURE, exc)
            cause = exc
        else:
            return ResetResult(
                status=SettlementResultStatus.APPLIED,
                pharmacy_id=pharmacy_id,
                updated_count=outcome.updated_count,
                cleared_amount=outcome.cleared_amount,
            )

        status = _status_for(error)
        logger.error(
            "commission_reset_failed",
            extra={
                "status": status.value,
                "pharmacy_id": str(pharmacy_id) if pharmacy_id else None,
                "error_code": getattr(error, "code", None),
                "detail": str(cause),
            },
        )
        return ResetResult(
            status=status,
            pharmacy_id=pharmacy_id,
            error=f"{error or cause} (pharmacy={pharmacy_id or 'all'})",
            error_code=getattr(error, "code", None),
        )
