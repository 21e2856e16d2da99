"""
Module: settlement_kernel.models.ledger_entry
Responsibility: ORM persistence for the financial ledger, the append-only
    audit trail of every commission settlement and administrative reset.
Architecture position: Kernel > Models.  May import from db/ and
    domain/enums.py only.

Invariants enforced:
    - Append-only: rows are never updated or deleted.  Enforced by ORM
      listeners (db/immutability.py) and, on PostgreSQL, by the triggers
      in db/sql/01_financial_ledger.sql.
    - seq is strictly monotonic, allocated from the locked
      ``financial_ledger`` counter row (services/sequence_service.py).
    - Replaying entries of one order in seq order reproduces its
      commission_paid_amount: every entry's before_paid_amount equals the
      after_paid_amount of the previous entry for that order.
    - cycle records the cycle active when the entry was written; changing
      the configured cycle never rewrites it.

Failure modes:
    - IntegrityError on duplicate seq (uq_financial_ledger_seq).
    - ImmutabilityViolationError on any UPDATE or DELETE through the ORM.

Audit relevance:
    The ledger answers "who paid what, when, against which period" without
    consulting any other table.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base
from settlement_kernel.domain.enums import LedgerOperation, SettlementCycle


class FinancialLedgerEntry(Base):
    """One money movement against one order's commission."""

    __tablename__ = "financial_ledger"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_financial_ledger_seq"),
        Index("idx_financial_ledger_pharmacy", "pharmacy_id", "seq"),
        Index("idx_financial_ledger_order", "order_id", "seq"),
        Index("idx_financial_ledger_period", "period_key"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # No foreign keys: the ledger outlives order and pharmacy rows
    order_id: Mapped[UUID | None] = mapped_column(
        nullable=True,
    )

    pharmacy_id: Mapped[UUID | None] = mapped_column(
        nullable=True,
    )

    period_key: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    cycle: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SettlementCycle.MONTHLY.value,
    )

    operation_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LedgerOperation.SETTLEMENT.value,
    )

    note: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    applied_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    before_paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    after_paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    before_status: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )

    after_status: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )

    created_by: Mapped[UUID | None] = mapped_column(
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FinancialLedgerEntry #{self.seq} {self.operation_type} "
            f"order={self.order_id} applied={self.applied_amount}>"
        )
