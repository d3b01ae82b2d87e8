from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from flashlev.errors import OperationTimeout, OracleUnavailable, TransientProtocolError
from flashlev.execution.interfaces import PriceOracle
from flashlev.types import FeeEstimate, RoundData

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
DEFAULT_FEE_BPS = 9
CLOCK_SKEW_SECONDS = 30


def protocol_fee(amount: int, fee_bps: int = DEFAULT_FEE_BPS) -> int:
    """Flash loan premium: ``floor(amount * fee_bps / 10000)``."""
    if amount < 0:
        raise ValueError("amount must not be negative")
    return amount * fee_bps // BPS_DENOMINATOR


@dataclass(frozen=True)
class FeeEstimator:
    """Protocol fee and execution-cost estimate for a prospective loan.

    The gas price feed quotes in gwei; ``gas_price_scale`` converts the
    reading to the ledger's base unit.
    """

    fee_bps: int = DEFAULT_FEE_BPS
    gas_price_scale: int = 10**9
    max_age_seconds: int = 3600
    clock: Callable[[], float] = field(default=time.time, compare=False)

    def protocol_fee(self, amount: int) -> int:
        return protocol_fee(amount, self.fee_bps)

    def read_gas_price(self, feed: PriceOracle) -> RoundData:
        """Read and validate the latest feed round.

        Transient failures propagate unchanged so the caller may retry them.

        Raises:
            OracleUnavailable: If the reading is non-positive, stale,
                incomplete, or the feed failed permanently.
        """
        try:
            raw = feed.latest_round_data()
        except (TransientProtocolError, OperationTimeout):
            raise
        except Exception as exc:
            raise OracleUnavailable(f"price feed call failed: {exc}") from exc

        try:
            data = RoundData.from_tuple(raw)
        except (TypeError, ValueError) as exc:
            raise OracleUnavailable(f"malformed round data: {raw!r}") from exc

        if data.answer <= 0:
            raise OracleUnavailable(f"non-positive gas price reading {data.answer} in round {data.round_id}")
        if data.updated_at <= 0:
            raise OracleUnavailable(f"round {data.round_id} is incomplete")
        if data.answered_in_round < data.round_id:
            raise OracleUnavailable(
                f"stale round: answered in {data.answered_in_round}, current round {data.round_id}"
            )

        now = self.clock()
        if data.updated_at > now + CLOCK_SKEW_SECONDS:
            raise OracleUnavailable(f"round {data.round_id} is timestamped in the future")
        age = now - data.updated_at
        if age > self.max_age_seconds:
            raise OracleUnavailable(f"gas price is {int(age)}s old (max {self.max_age_seconds}s)")

        return data

    def estimate(self, amount: int, gas_price_feed: PriceOracle, gas_estimate: int) -> FeeEstimate:
        """Estimate protocol fee and execution cost for ``amount``."""
        if amount < 0:
            raise ValueError("amount must not be negative")
        if gas_estimate <= 0:
            raise ValueError("gas_estimate must be positive")

        reading = self.read_gas_price(gas_price_feed)
        execution_cost = reading.answer * self.gas_price_scale * gas_estimate
        estimate = FeeEstimate(protocol_fee=self.protocol_fee(amount), execution_cost=execution_cost)
        logger.debug(
            "Fee estimate for %d: protocol_fee=%d execution_cost=%d (round %d)",
            amount,
            estimate.protocol_fee,
            estimate.execution_cost,
            reading.round_id,
        )
        return estimate
