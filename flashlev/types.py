from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

DebtMode = Literal["none", "stable", "variable"]

# Interest rate modes understood by the lending pool.
DEBT_MODE_CODES: dict[str, int] = {"none": 0, "stable": 1, "variable": 2}

CallbackStage = Literal[
    "entered",
    "authorized",
    "invested",
    "leveraged",
    "repaid",
    "completed",
    "aborted",
]


@dataclass(frozen=True)
class LoanRequest:
    """Single flash loan request handed to the lending pool."""

    asset: str
    amount: int
    debt_mode: DebtMode = "none"

    @property
    def mode_code(self) -> int:
        return DEBT_MODE_CODES[self.debt_mode]


@dataclass(frozen=True)
class FeeEstimate:
    protocol_fee: int
    execution_cost: int

    @property
    def total(self) -> int:
        return self.protocol_fee + self.execution_cost


@dataclass(frozen=True)
class RoundData:
    """Latest price feed reading (timestamps are unix seconds)."""

    round_id: int
    answer: int
    started_at: int
    updated_at: int
    answered_in_round: int

    @classmethod
    def from_tuple(cls, raw: tuple[int, int, int, int, int]) -> RoundData:
        round_id, answer, started_at, updated_at, answered_in_round = raw
        return cls(
            round_id=int(round_id),
            answer=int(answer),
            started_at=int(started_at),
            updated_at=int(updated_at),
            answered_in_round=int(answered_in_round),
        )


@dataclass(frozen=True)
class Position:
    """Liquidity position minted by the invest stage."""

    liquidity: int
    pool_token_balance: int
    amount_a: int = 0
    amount_b: int = 0


@dataclass(frozen=True)
class CollateralLoan:
    """Loan taken against the liquidity position by the leverage stage."""

    borrowed: int
    debt: int


@dataclass
class OperationContext:
    """Per-invocation state of one callback run.

    Never shared between invocations.
    """

    operation_id: str
    initiator: str
    caller: str
    asset: str
    amount: int = 0
    premium: int = 0
    stage: CallbackStage = "entered"
    history: list[CallbackStage] = field(default_factory=lambda: ["entered"])
    position: Optional[Position] = None
    collateral_loan: Optional[CollateralLoan] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def repayment(self) -> int:
        return self.amount + self.premium

    def advance(self, stage: CallbackStage) -> None:
        self.stage = stage
        self.history.append(stage)


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one `LoanInitiator.initiate()` call."""

    accepted: bool
    reason: str
    amount: int
    code: Optional[str] = None
    stage: Optional[CallbackStage] = None
    fee_estimate: Optional[FeeEstimate] = None
    operation_id: Optional[str] = None
