"""ORM models for the settlement kernel."""

from settlement_kernel.models.ledger_entry import FinancialLedgerEntry
from settlement_kernel.models.order import Order
from settlement_kernel.models.pharmacy import Pharmacy
from settlement_kernel.models.system_config import SETTLEMENT_CYCLE_KEY, SystemConfig

__all__ = [
    "FinancialLedgerEntry",
    "Order",
    "Pharmacy",
    "SETTLEMENT_CYCLE_KEY",
    "SystemConfig",
]
