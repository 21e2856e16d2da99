"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that flow between the selectors, the pure
    aggregator and the services: OrderSnapshot (input), PeriodSummary and
    PharmacyFinancials (derived), LedgerEntryInfo (audit read model) and the
    outcomes of the settlement procedure.

Architecture position:
    Kernel > Domain -- zero I/O.  from_model() class methods are boundary
    converters invoked only from selectors and services.

Invariants enforced:
    - OrderSnapshot coerces every amount to Decimal on construction, so
      downstream arithmetic never sees None, str or float.
    - Effective paid/outstanding/status of an order are derived through
      ``domain.reconciliation`` and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from settlement_kernel.db.types import ZERO, to_money
from settlement_kernel.domain.enums import CommissionStatus, LedgerOperation, SettlementCycle
from settlement_kernel.domain.order_status import is_completed
from settlement_kernel.domain.reconciliation import (
    derive_status,
    effective_paid_amount,
    outstanding_amount,
)

if TYPE_CHECKING:
    from settlement_kernel.models.ledger_entry import FinancialLedgerEntry
    from settlement_kernel.models.order import Order
    from settlement_kernel.models.pharmacy import Pharmacy


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class OrderSnapshot:
    """
    Commission-relevant view of one order.

    ``created_at`` may be a datetime, a date, an ISO string or garbage; the
    period key calculator decides whether it is usable.
    """

    id: Any
    pharmacy_id: Any
    total: Decimal = ZERO
    status: str | None = None
    created_at: Any = None
    commission_amount: Decimal = ZERO
    commission_paid_amount: Decimal = ZERO
    commission_status: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "total", to_money(self.total))
        object.__setattr__(self, "commission_amount", to_money(self.commission_amount))
        object.__setattr__(self, "commission_paid_amount", to_money(self.commission_paid_amount))

    @property
    def is_completed(self) -> bool:
        return is_completed(self.status)

    @property
    def effective_paid_amount(self) -> Decimal:
        return effective_paid_amount(
            self.commission_amount, self.commission_paid_amount, self.commission_status
        )

    @property
    def outstanding_amount(self) -> Decimal:
        return outstanding_amount(self.commission_amount, self.effective_paid_amount)

    @property
    def effective_status(self) -> CommissionStatus:
        return derive_status(self.effective_paid_amount, self.outstanding_amount)

    @classmethod
    def from_model(cls, order: Order) -> OrderSnapshot:
        status = order.commission_status
        return cls(
            id=order.id,
            pharmacy_id=order.pharmacy_id,
            total=order.total,
            status=order.status,
            created_at=as_utc(order.created_at),
            commission_amount=order.commission_amount,
            commission_paid_amount=order.commission_paid_amount,
            commission_status=getattr(status, "value", status),
        )


@dataclass(frozen=True)
class PeriodSummary:
    """Derived totals of one settlement bucket. Never persisted."""

    period_key: str
    cycle: SettlementCycle
    order_ids: tuple[Any, ...]
    sales_total: Decimal
    commission_total: Decimal
    paid_total: Decimal
    outstanding: Decimal
    status: CommissionStatus
    pharmacy_id: Any = None

    @property
    def orders_count(self) -> int:
        return len(self.order_ids)


@dataclass(frozen=True)
class PharmacyRef:
    """Pharmacy directory entry as seen by the kernel."""

    id: Any
    name: str
    commission_rate: Decimal = Decimal("10")

    @classmethod
    def from_model(cls, pharmacy: Pharmacy) -> PharmacyRef:
        return cls(
            id=pharmacy.id,
            name=pharmacy.name,
            commission_rate=to_money(pharmacy.commission_rate),
        )


@dataclass(frozen=True)
class PharmacyFinancials:
    """Headline figures of one pharmacy (the admin financial report)."""

    pharmacy_id: Any
    name: str
    commission_rate: Decimal
    total_sales: Decimal
    platform_fees: Decimal
    paid_fees: Decimal
    unpaid_fees: Decimal
    net_earnings: Decimal
    pending_clearance: Decimal


@dataclass(frozen=True)
class LedgerEntryInfo:
    """Read model of one append-only ledger row."""

    id: UUID
    seq: int
    order_id: UUID | None
    pharmacy_id: UUID | None
    period_key: str | None
    cycle: SettlementCycle
    operation_type: LedgerOperation
    note: str | None
    applied_amount: Decimal
    before_paid_amount: Decimal
    after_paid_amount: Decimal
    before_status: str | None
    after_status: str | None
    created_by: UUID | None
    created_at: datetime | date | None

    @classmethod
    def from_model(cls, entry: FinancialLedgerEntry) -> LedgerEntryInfo:
        return cls(
            id=entry.id,
            seq=entry.seq,
            order_id=entry.order_id,
            pharmacy_id=entry.pharmacy_id,
            period_key=entry.period_key,
            cycle=SettlementCycle(entry.cycle or SettlementCycle.MONTHLY.value),
            operation_type=LedgerOperation(entry.operation_type or LedgerOperation.SETTLEMENT.value),
            note=entry.note,
            applied_amount=to_money(entry.applied_amount),
            before_paid_amount=to_money(entry.before_paid_amount),
            after_paid_amount=to_money(entry.after_paid_amount),
            before_status=entry.before_status,
            after_status=entry.after_status,
            created_by=entry.created_by,
            created_at=as_utc(entry.created_at),
        )


@dataclass(frozen=True)
class SettlementOutcome:
    """What one period settlement distributed."""

    updated_count: int
    applied_amount: Decimal
    remaining_amount: Decimal
    entry_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ResetOutcome:
    """What one administrative reset forced to paid."""

    updated_count: int
    cleared_amount: Decimal
    entry_ids: tuple[UUID, ...] = field(default_factory=tuple)
