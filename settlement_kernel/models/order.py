"""
Module: settlement_kernel.models.order
Responsibility: ORM persistence for orders.  Order management owns the row;
    after acceptance the commission fields are mutated exclusively by the
    settlement procedure.
Architecture position: Kernel > Models.  May import from db/ and
    domain/enums.py only.

Invariants enforced:
    - commission_amount is a snapshot taken at acceptance, never recomputed.
    - commission_paid_amount is a monotonic accumulator with
      0 <= commission_paid_amount <= commission_amount for every write the
      settlement procedure performs.
    - commission_status is a legacy field.  The kernel reads it through
      domain.reconciliation and never writes it.

Failure modes:
    - Rows with a null or unreadable created_at are tolerated; aggregation
      skips them.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base
from settlement_kernel.domain.enums import CommissionStatus


class Order(Base):
    """A customer order placed with a pharmacy."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_pharmacy_created", "pharmacy_id", "created_at"),
        Index("idx_order_status", "status"),
    )

    pharmacy_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pharmacies.id"),
        nullable=True,
    )

    total: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    # Free text from order management ("Concluído", "COMPLETED", ...)
    status: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    created_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    commission_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    commission_paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    # Legacy status; see domain.reconciliation
    commission_status: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
        default=CommissionStatus.PENDING.value,
    )

    def __repr__(self) -> str:
        return (
            f"<Order {self.id} {self.status} "
            f"commission={self.commission_amount} paid={self.commission_paid_amount}>"
        )
