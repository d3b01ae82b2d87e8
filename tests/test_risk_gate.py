"""Tests for the pre-flight risk gate."""

from __future__ import annotations

from decimal import Decimal

import pytest

from flashlev.risk import GateResult, RiskGate
from flashlev.types import FeeEstimate

NO_FEES = FeeEstimate(protocol_fee=0, execution_cost=0)


# ========== Limit Tests ==========


class TestLimitCheck:
    """Tests for the position-size limit."""

    def test_within_limit(self) -> None:
        """500,000 of 1,000,000 is within the 670,000 limit."""
        result = RiskGate().check_limit(1_000_000, 500_000)
        assert result.ok is True

    def test_exactly_at_limit(self) -> None:
        """The limit is inclusive."""
        assert RiskGate().check_limit(1_000, 670).ok is True

    def test_above_limit(self) -> None:
        """700 of 1,000 exceeds the 670 limit."""
        result = RiskGate().check_limit(1_000, 700)

        assert result.ok is False
        assert result.code == "amount_exceeds_limit"
        assert "670" in result.reason

    def test_fractional_limit_is_exact(self) -> None:
        """0.67 * 1,001 = 670.67, so 671 is rejected and 670 accepted."""
        gate = RiskGate()
        assert gate.check_limit(1_001, 670).ok is True
        assert gate.check_limit(1_001, 671).ok is False

    def test_custom_ratio(self) -> None:
        gate = RiskGate(limit_ratio=Decimal("0.5"))
        assert gate.check_limit(1_000, 500).ok is True
        assert gate.check_limit(1_000, 501).ok is False

    def test_zero_balance(self) -> None:
        assert RiskGate().check_limit(0, 1).ok is False


# ========== Affordability Tests ==========


class TestAffordability:
    """Tests for the balance-covers-fees check."""

    def test_balance_covers_amount_and_fees(self) -> None:
        fees = FeeEstimate(protocol_fee=450, execution_cost=100)
        assert RiskGate().check_affordability(1_000_000, 500_000, fees).ok is True

    def test_exact_balance_is_enough(self) -> None:
        fees = FeeEstimate(protocol_fee=0, execution_cost=400)
        assert RiskGate().check_affordability(1_000, 600, fees).ok is True

    def test_one_short(self) -> None:
        fees = FeeEstimate(protocol_fee=1, execution_cost=400)
        result = RiskGate().check_affordability(1_000, 600, fees)

        assert result.ok is False
        assert result.code == "insufficient_funds"
        assert "1001" in result.reason


# ========== Full Gate Tests ==========


class TestRiskGate:
    """Tests for the combined gate."""

    def test_scenario_proceeds(self) -> None:
        """Balance 1,000,000, amount 500,000, fees 450 + 100: proceed."""
        result = RiskGate().check(1_000_000, 500_000, FeeEstimate(protocol_fee=450, execution_cost=100))
        assert result == GateResult(ok=True, reason="ok")

    def test_limit_checked_before_affordability(self) -> None:
        """An oversized amount is reported as a limit breach even if fees are unaffordable."""
        result = RiskGate().check(1_000, 700, FeeEstimate(protocol_fee=0, execution_cost=10_000))
        assert result.code == "amount_exceeds_limit"

    def test_within_limit_but_unaffordable(self) -> None:
        result = RiskGate().check(1_000, 600, FeeEstimate(protocol_fee=0, execution_cost=500))
        assert result.code == "insufficient_funds"

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount(self, amount: int) -> None:
        result = RiskGate().check(1_000, amount, NO_FEES)
        assert result.ok is False
        assert result.code == "invalid_amount"

    def test_accepted_amounts_satisfy_both_bounds(self) -> None:
        """Whatever the gate accepts is within the limit and affordable."""
        gate = RiskGate()
        for balance in (0, 1, 999, 1_000, 10_007, 1_000_000):
            for amount in (1, 100, 669, 670, 671, 6_700, 500_000, 700_000):
                for cost in (0, 100, 5_000):
                    fees = FeeEstimate(protocol_fee=amount * 9 // 10_000, execution_cost=cost)
                    if gate.check(balance, amount, fees).ok:
                        assert Decimal(amount) <= Decimal(balance) * Decimal("0.67")
                        assert amount + fees.total <= balance
