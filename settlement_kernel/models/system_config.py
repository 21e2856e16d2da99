"""
Module: settlement_kernel.models.system_config
Responsibility: Key/value table for runtime settings administered from the
    admin panel (currently only the settlement cycle).
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import datetime

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base

SETTLEMENT_CYCLE_KEY = "financial_settlement_cycle"


class SystemConfig(Base):
    """One administrable setting."""

    __tablename__ = "system_config"

    __table_args__ = (
        UniqueConstraint("config_key", name="uq_system_config_key"),
    )

    config_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    config_value: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<SystemConfig {self.config_key}={self.config_value}>"
