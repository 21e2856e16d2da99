"""
BaseService -- abstract base for the kernel's write services.

Services receive a SQLAlchemy ``Session`` from their caller and persist
changes with ``session.flush()``, never ``session.commit()``.  The caller
(SettlementGateway via session_scope, or a test) owns commit and rollback,
which is what lets one settlement update orders, the sequence counter and
the ledger atomically.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``settlement_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
