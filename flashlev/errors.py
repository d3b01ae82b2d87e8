"""Error taxonomy for the execution engine.

Every error carries a human readable ``reason`` and a stable ``code`` so
callers (API, audit trail, operation store) can report aborts without parsing
messages.
"""

from __future__ import annotations


class FlashLoanError(Exception):
    """Base exception for all engine errors."""

    code = "flash_loan_error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
        # Last callback stage reached before the failure, when known.
        self.stage: str | None = None


# ---------------------------------------------------------------------------
# Pre-flight rejections (non-fatal, no side effects)
# ---------------------------------------------------------------------------


class PreflightRejection(FlashLoanError):
    code = "preflight_rejected"


class AmountExceedsLimit(PreflightRejection):
    code = "amount_exceeds_limit"


class InsufficientFunds(PreflightRejection):
    code = "insufficient_funds"


class InvalidAmount(PreflightRejection):
    code = "invalid_amount"


# ---------------------------------------------------------------------------
# Callback failures (fatal, fully unwound)
# ---------------------------------------------------------------------------


class Unauthorized(FlashLoanError):
    code = "unauthorized"


class InvalidCallback(FlashLoanError):
    """Callback arguments do not describe the loan this engine requested."""

    code = "invalid_callback"


class StageFailure(FlashLoanError):
    """A mid-callback stage failed after authorization."""

    code = "stage_failed"
    default_reason = "stage failed"

    def __init__(self, reason: str | None = None):
        super().__init__(reason or self.default_reason)


class InvestmentFailed(StageFailure):
    code = "investment_failed"
    default_reason = "liquidity provision failed"


class BorrowingFailed(StageFailure):
    code = "borrowing_failed"
    default_reason = "collateral borrow failed"


class RepaymentFailed(StageFailure):
    code = "repayment_failed"
    default_reason = "repayment approval failed"


class CompensationFailed(FlashLoanError):
    """One or more undo steps failed while unwinding an aborted operation."""

    code = "compensation_failed"

    def __init__(self, reason: str, failures: list[str], original: BaseException | None = None):
        super().__init__(reason)
        self.failures = failures
        self.original = original


# ---------------------------------------------------------------------------
# External collaborators and runtime guards
# ---------------------------------------------------------------------------


class ProtocolError(FlashLoanError):
    """Raised by a lending pool, router or ledger adapter with the upstream reason."""

    code = "protocol_error"


class TransientProtocolError(ProtocolError):
    """Retry-able failure of a read-only query (network hiccup, rate limit)."""

    code = "transient_protocol_error"


class OracleUnavailable(FlashLoanError):
    code = "oracle_unavailable"


class OperationInFlight(FlashLoanError):
    code = "operation_in_flight"


class OperationTimeout(FlashLoanError):
    code = "operation_timeout"


# ---------------------------------------------------------------------------
# Startup configuration
# ---------------------------------------------------------------------------


class ConfigError(FlashLoanError):
    code = "config_error"


class InvalidAddress(ConfigError):
    code = "invalid_address"
