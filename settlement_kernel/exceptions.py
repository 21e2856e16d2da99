"""
Typed exception hierarchy for the settlement kernel.

Every error has a TYPED class (catch by type, not message), a class-level
``code`` (machine-readable, API-safe) and structured attributes carrying the
context an operator needs to retry safely (pharmacy, period key, attempted
amount).

    SettlementKernelError (base)
    |
    +-- SettlementInputError
    |   +-- PharmacyNotFoundError
    |   +-- InvalidPeriodKeyError
    |   +-- InvalidPaymentAmountError
    |   +-- InvalidCycleError
    |
    +-- SettlementStoreError
    |   +-- SettlementProcedureMissingError
    |   +-- SettlementOutcomeUnknownError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- LedgerReplayError

Handling pattern (what SettlementGateway does):

    try:
        outcome = procedure.apply_payment_by_period(...)
    except SettlementInputError as e:
        return PaymentResult.rejected(e)        # no writes happened
    except SettlementProcedureMissingError as e:
        return PaymentResult.not_deployed(e)    # infrastructure gap

Input errors are raised BEFORE any write, so a caller catching them knows
the store was not touched.
"""


class SettlementKernelError(Exception):
    """Base exception for all settlement kernel errors."""

    code: str = "SETTLEMENT_KERNEL_ERROR"


# Input validation


class SettlementInputError(SettlementKernelError):
    """Base exception for rejected input. Raised before any write."""

    code: str = "INVALID_INPUT"


class PharmacyNotFoundError(SettlementInputError):
    """Pharmacy reference does not exist in the directory."""

    code: str = "PHARMACY_NOT_FOUND"

    def __init__(self, pharmacy_id: str):
        self.pharmacy_id = pharmacy_id
        super().__init__(f"Pharmacy not found: {pharmacy_id}")


class InvalidPeriodKeyError(SettlementInputError):
    """Period key is not well-formed for the requested cycle."""

    code: str = "INVALID_PERIOD_KEY"

    def __init__(self, period_key: str, cycle: str):
        self.period_key = period_key
        self.cycle = cycle
        super().__init__(
            f"Invalid period key '{period_key}' for {cycle} cycle"
        )


class InvalidPaymentAmountError(SettlementInputError):
    """Explicit payment amount is zero, negative or not a number."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(
            f"Payment amount must be a positive number, got {amount}"
        )


class InvalidCycleError(SettlementInputError):
    """Settlement cycle is neither MONTHLY nor WEEKLY."""

    code: str = "INVALID_CYCLE"

    def __init__(self, cycle: str):
        self.cycle = cycle
        super().__init__(f"Unknown settlement cycle: {cycle}")


# Backing store


class SettlementStoreError(SettlementKernelError):
    """Base exception for backing-store failures during settlement."""

    code: str = "SETTLEMENT_STORE_ERROR"


class SettlementProcedureMissingError(SettlementStoreError):
    """
    The settlement procedure or its schema is absent from the store.

    Deployment drift, not a business failure: the operator must run the
    schema setup before retrying.
    """

    code: str = "SETTLEMENT_PROCEDURE_MISSING"

    def __init__(self, procedure: str, detail: str):
        self.procedure = procedure
        self.detail = detail
        super().__init__(
            f"Settlement function not deployed ({procedure}): {detail}"
        )


class SettlementOutcomeUnknownError(SettlementStoreError):
    """
    The store did not confirm commit or rollback (timeout, dropped link).

    The caller must re-read period summaries before retrying; a blind retry
    risks applying the same payment twice.
    """

    code: str = "SETTLEMENT_OUTCOME_UNKNOWN"

    def __init__(self, procedure: str, detail: str):
        self.procedure = procedure
        self.detail = detail
        super().__init__(
            f"Outcome of {procedure} unknown, re-read balances before retrying: {detail}"
        )


# Immutability


class ImmutabilityError(SettlementKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditError(SettlementKernelError):
    """Base exception for audit-trail errors."""

    code: str = "AUDIT_ERROR"


class LedgerReplayError(AuditError):
    """
    Replaying the ledger does not reproduce a continuous balance.

    Raised when an entry's before_paid_amount differs from the running
    balance of its order, or its after_paid_amount differs from
    before_paid_amount + applied_amount.
    """

    code: str = "LEDGER_REPLAY_BROKEN"

    def __init__(self, order_id: str, seq: int, expected: str, actual: str):
        self.order_id = order_id
        self.seq = seq
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Ledger replay broken for order {order_id} at seq {seq}: "
            f"expected {expected}, found {actual}"
        )
