"""
Paid-amount reconciliation between the legacy status and the accumulator.

Orders written before the ledger existed carry ``commission_status = PAID``
with ``commission_paid_amount = 0``.  Those orders count as fully paid.
This module is the only place that rule lives: every read of a paid amount
in the kernel goes through ``effective_paid_amount``.  Writes never touch
the legacy status; they only move the numeric accumulator.
"""

from decimal import Decimal
from typing import Any

from settlement_kernel.db.types import ZERO, to_money
from settlement_kernel.domain.enums import CommissionStatus


def _is_legacy_paid(legacy_status: Any) -> bool:
    value = getattr(legacy_status, "value", legacy_status)
    return isinstance(value, str) and value.strip().upper() == CommissionStatus.PAID.value


def effective_paid_amount(
    commission_amount: Any,
    paid_amount: Any,
    legacy_status: Any = None,
) -> Decimal:
    """
    Paid amount after applying the legacy-status rule.

    Postconditions:
        0 <= result <= commission_amount (for non-negative commission).
    """
    commission = to_money(commission_amount)
    paid = to_money(paid_amount)
    from_legacy = commission if _is_legacy_paid(legacy_status) and paid <= ZERO else ZERO
    return min(commission, max(ZERO, paid + from_legacy))


def outstanding_amount(commission_amount: Any, effective_paid: Decimal) -> Decimal:
    """Commission not yet covered, floored at zero."""
    return max(ZERO, to_money(commission_amount) - effective_paid)


def derive_status(paid: Decimal, outstanding: Decimal) -> CommissionStatus:
    """PAID when nothing is outstanding, PARTIAL when something was paid, else PENDING."""
    if outstanding <= ZERO:
        return CommissionStatus.PAID
    if paid > ZERO:
        return CommissionStatus.PARTIAL
    return CommissionStatus.PENDING
