"""
Module: settlement_kernel.models.pharmacy
Responsibility: ORM persistence for the pharmacy directory.  The kernel reads
    it for display names, existence checks and the commission rate used when
    an order is accepted.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - commission_rate is a percentage (10 means 10%).  Changing it never
      alters the commission snapshot of orders already accepted.
"""

from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base


class Pharmacy(Base):
    """A pharmacy that owes commission to the platform."""

    __tablename__ = "pharmacies"

    __table_args__ = (
        Index("idx_pharmacy_name", "name"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Percent of each completed order total owed to the platform
    commission_rate: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("10"),
    )

    def __repr__(self) -> str:
        return f"<Pharmacy {self.name} ({self.commission_rate}%)>"
