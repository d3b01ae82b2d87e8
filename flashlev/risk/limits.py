"""Pre-flight risk gate.

Combines the position-size limit with the affordability check. The gate is a
pure function of its inputs and must pass before any external call that moves
value is made.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flashlev.errors import AmountExceedsLimit, InsufficientFunds, InvalidAmount
from flashlev.types import FeeEstimate


@dataclass(frozen=True)
class GateResult:
    ok: bool
    reason: str
    code: Optional[str] = None


@dataclass(frozen=True)
class RiskGate:
    """Limit and affordability gate.

    Attributes:
        limit_ratio: Largest share of the available balance one loan may request
    """

    limit_ratio: Decimal = Decimal("0.67")

    def check_limit(self, balance: int, amount: int) -> GateResult:
        limit = Decimal(balance) * self.limit_ratio
        if Decimal(amount) > limit:
            return GateResult(
                ok=False,
                reason=f"Requested amount {amount} exceeds limit {limit.normalize():f} "
                f"({self.limit_ratio} of balance {balance})",
                code=AmountExceedsLimit.code,
            )
        return GateResult(ok=True, reason="Amount within limit")

    def check_affordability(self, balance: int, amount: int, fees: FeeEstimate) -> GateResult:
        required = amount + fees.protocol_fee + fees.execution_cost
        if balance < required:
            return GateResult(
                ok=False,
                reason=f"Insufficient funds: balance {balance} < {required} "
                f"(amount {amount} + protocol fee {fees.protocol_fee} + execution cost {fees.execution_cost})",
                code=InsufficientFunds.code,
            )
        return GateResult(ok=True, reason="Balance covers amount and fees")

    def check(self, balance: int, amount: int, fee_estimate: FeeEstimate) -> GateResult:
        """Run all checks; the limit check runs first and ignores fees."""
        if amount <= 0:
            return GateResult(ok=False, reason=f"Amount must be positive, got {amount}", code=InvalidAmount.code)

        for result in (
            self.check_limit(balance, amount),
            self.check_affordability(balance, amount, fee_estimate),
        ):
            if not result.ok:
                return result

        return GateResult(ok=True, reason="ok")
