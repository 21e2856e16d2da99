"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for financial ledger
    entries.  A dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) guarantees uniqueness and ordering under
    concurrent settlements.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by CommissionSettlementProcedure for every appended entry.

Invariants enforced:
    - The locked counter row is the sole source of the next value.  The SQL
      max-plus-one pattern is never used: two concurrent transactions would
      read the same max.
    - Transactional: an increment is only visible after the caller commits;
      a rollback returns the value.

Failure modes:
    - IntegrityError on concurrent counter creation (handled via savepoint
      rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from settlement_kernel.db.base import Base
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Named counter row.

    Row-level locking on this row serialises allocation for its sequence.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Allocates the next value of a named sequence inside the caller's
    transaction.

    Non-goals:
        - Does NOT call ``session.commit()``.

    Usage:
        with session_scope() as session:
            seq = SequenceService(session).next_value(SequenceService.FINANCIAL_LEDGER)
    """

    FINANCIAL_LEDGER = "financial_ledger"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment it and
        return the new value.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for ``sequence_name``.
            - The counter row stays locked until the transaction ends.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the row concurrently;
            # the savepoint keeps the rest of the caller's work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never allocated."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
