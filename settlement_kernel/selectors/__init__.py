"""Read-only selectors: orders, ledger and reporting views."""

from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.order_selector import OrderSelector
from settlement_kernel.selectors.reporting_selector import (
    AdminView,
    PharmacyDebt,
    PharmacyView,
    ReportingSelector,
)

__all__ = [
    "AdminView",
    "LedgerSelector",
    "OrderSelector",
    "PharmacyDebt",
    "PharmacyView",
    "ReportingSelector",
]
