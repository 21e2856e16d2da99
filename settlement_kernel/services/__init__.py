"""Services for the settlement kernel (write side)."""

from settlement_kernel.services.cycle_config_service import CycleConfigService
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.services.sequential_settlement import (
    SequentialSettlementResult,
    SequentialSettlementWorkflow,
    SequentialStatus,
)
from settlement_kernel.services.settlement_gateway import (
    PaymentResult,
    ResetResult,
    SettlementGateway,
    SettlementResultStatus,
)
from settlement_kernel.services.settlement_procedure import CommissionSettlementProcedure

__all__ = [
    "CommissionSettlementProcedure",
    "CycleConfigService",
    "PaymentResult",
    "ResetResult",
    "SequenceService",
    "SequentialSettlementResult",
    "SequentialSettlementWorkflow",
    "SequentialStatus",
    "SettlementGateway",
    "SettlementResultStatus",
]
