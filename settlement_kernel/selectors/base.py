"""
Module: settlement_kernel.selectors.base
Responsibility: Abstract base class for the read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never call session.add(), delete(), flush() or
      commit().
    - Selectors return DTOs from domain/dtos.py, not ORM instances.
    - No stored aggregates: every figure is recomputed from current rows.
"""

from abc import ABC

from sqlalchemy.orm import Session

from settlement_kernel.settings import KernelSettings, get_settings


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session, settings: KernelSettings | None = None):
        self.session = session
        self.settings = settings or get_settings()
