"""
CycleConfigService -- the configured settlement cycle.

Responsibility:
    Reads and writes the ``financial_settlement_cycle`` row of the
    ``system_config`` table.  The cycle decides how orders are bucketed
    into periods (MONTHLY or WEEKLY).

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - Changing the cycle never rewrites existing ledger rows: each entry
      keeps the cycle that was active when it was written.

Failure modes:
    - get_cycle() never raises.  A missing row, an unknown value or a store
      error yields the configured default (MONTHLY unless overridden).
    - set_cycle() never raises.  An invalid cycle or a store error returns
      False.  Store work runs inside a savepoint so a failure leaves the
      caller's transaction usable.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.system_config import SETTLEMENT_CYCLE_KEY, SystemConfig
from settlement_kernel.services.base import BaseService
from settlement_kernel.settings import KernelSettings, get_settings

logger = get_logger("services.cycle_config")


def parse_cycle(value: object) -> SettlementCycle | None:
    """MONTHLY/WEEKLY in any case and spacing, else None."""
    raw = getattr(value, "value", value)
    if not isinstance(raw, str):
        return None
    try:
        return SettlementCycle(raw.strip().upper())
    except ValueError:
        return None


class CycleConfigService(BaseService):
    """Get and set the settlement cycle."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()

    def _load_row(self, lock: bool = False) -> SystemConfig | None:
        stmt = select(SystemConfig).where(SystemConfig.config_key == SETTLEMENT_CYCLE_KEY)
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def get_cycle(self) -> SettlementCycle:
        """The configured cycle, or the default when unset, unknown or unreadable."""
        default = self._settings.default_cycle
        try:
            with self.session.begin_nested():
                row = self._load_row()
        except SQLAlchemyError:
            logger.warning(
                "settlement_cycle_read_failed",
                extra={"fallback": default.value},
                exc_info=True,
            )
            return default

        if row is None:
            return default
        cycle = parse_cycle(row.config_value)
        if cycle is None:
            logger.warning(
                "settlement_cycle_unknown_value",
                extra={"stored_value": row.config_value, "fallback": default.value},
            )
            return default
        return cycle

    def set_cycle(self, cycle: object) -> bool:
        """Upsert the cycle.  Returns True when the value was stored."""
        parsed = parse_cycle(cycle)
        if parsed is None:
            logger.warning("settlement_cycle_rejected", extra={"cycle": str(cycle)})
            return False

        try:
            with self.session.begin_nested():
                row = self._load_row(lock=True)
                if row is None:
                    row = SystemConfig(
                        config_key=SETTLEMENT_CYCLE_KEY,
                        description="Settlement cycle used to bucket commissions",
                    )
                    self.session.add(row)
                row.config_value = parsed.value
                row.updated_at = self._clock.now()
                self.session.flush()
        except SQLAlchemyError:
            logger.error(
                "settlement_cycle_save_failed",
                extra={"cycle": parsed.value},
                exc_info=True,
            )
            return False

        logger.info("settlement_cycle_saved", extra={"cycle": parsed.value})
        return True
