"""
Enumerations shared by the domain, the ORM models and the services.

Zero imports from the rest of the kernel, so models/ may depend on this
module without pulling in domain logic.
"""

from enum import Enum


class SettlementCycle(str, Enum):
    """Bucketing mode for settlement periods.

    MONTHLY keys look like ``06/2025``; WEEKLY keys like ``2025-W01``.
    """

    MONTHLY = "MONTHLY"
    WEEKLY = "WEEKLY"


class CommissionStatus(str, Enum):
    """Commission status of an order or a period bucket.

    WAITING_APPROVAL only appears on legacy rows; the kernel never derives it.
    """

    PENDING = "PENDING"
    WAITING_APPROVAL = "WAITING_APPROVAL"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class LedgerOperation(str, Enum):
    """Operation recorded by a ledger entry."""

    SETTLEMENT = "SETTLEMENT"
    RESET = "RESET"
