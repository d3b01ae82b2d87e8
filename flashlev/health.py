"""Health check logic for the engine's runtime dependencies."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Literal, Optional

from flashlev.errors import FlashLoanError
from flashlev.execution.initiator import LoanInitiator


@dataclass
class HealthStatus:
    """Health status for a component."""

    status: Literal["ok", "degraded", "error"]
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    details: Optional[dict] = None


class HealthChecker:
    """Health checker for one wired engine."""

    def __init__(self, initiator: LoanInitiator):
        self.initiator = initiator

    def check_oracle(self) -> HealthStatus:
        """Read the gas price feed and validate freshness."""
        start_time = time.time()
        try:
            reading = self.initiator.fee_estimator.read_gas_price(self.initiator.oracle)
        except FlashLoanError as exc:
            return HealthStatus(status="error", message=exc.reason, details={"code": exc.code})
        latency_ms = (time.time() - start_time) * 1000
        return HealthStatus(
            status="ok",
            latency_ms=round(latency_ms, 2),
            message="Gas price feed fresh",
            details={"round_id": reading.round_id, "answer": reading.answer, "updated_at": reading.updated_at},
        )

    def check_scope(self) -> HealthStatus:
        """Report whether an operation currently holds the engine's scope."""
        scope = self.initiator.config.scope
        busy = self.initiator.locks.is_busy(scope)
        return HealthStatus(
            status="degraded" if busy else "ok",
            message="Operation in flight" if busy else "Idle",
            details={"asset": scope[0], "pool": scope[1], "busy": busy},
        )

    def check_all(self) -> dict[str, HealthStatus]:
        return {"oracle": self.check_oracle(), "scope": self.check_scope()}
