from __future__ import annotations

from typing import Protocol, Sequence


class AssetLedger(Protocol):
    """Fungible token ledger as seen by one account (the engine)."""

    def balance_of(self, account: str) -> int:
        """Return the balance of ``account`` in base units."""

    def allowance(self, owner: str, spender: str) -> int:
        """Return how much ``spender`` may pull from ``owner``."""

    def approve(self, spender: str, amount: int) -> bool:
        """Allow ``spender`` to pull up to ``amount`` from the engine."""


class PriceOracle(Protocol):
    def latest_round_data(self) -> tuple[int, int, int, int, int]:
        """Return (round_id, answer, started_at, updated_at, answered_in_round)."""


class FlashLoanReceiver(Protocol):
    @property
    def address(self) -> str:
        """Account that receives the borrowed funds."""

    def execute_operation(
        self,
        assets: Sequence[str],
        amounts: Sequence[int],
        premiums: Sequence[int],
        initiator: str,
        params: bytes,
        *,
        caller: str,
    ) -> bool:
        """Handle granted funds; must leave amount+premium approved to the pool.

        Raising or returning False makes the lending pool undo the loan.
        """


class LendingPool(Protocol):
    def flash_loan(
        self,
        receiver: FlashLoanReceiver,
        assets: Sequence[str],
        amounts: Sequence[int],
        modes: Sequence[int],
        on_behalf_of: str,
        params: bytes,
        referral_code: int,
    ) -> None:
        """Grant the loan, invoke ``receiver`` synchronously, then pull repayment.

        Implementations may perform blocking I/O; the engine wraps this call
        in a timeout and never retries it.
        """


class LiquidityRouter(Protocol):
    def add_liquidity(
        self,
        token_a: str,
        token_b: str,
        fee: int,
        tick_lower: int,
        tick_upper: int,
        amount_desired: int,
        amount_min: int,
        amount_max: int,
        recipient: str,
        deadline: int,
    ) -> tuple[int, int, int]:
        """Mint a liquidity position; return (amount_a, amount_b, liquidity)."""

    def borrow(
        self,
        token_a: str,
        token_b: str,
        pool: str,
        liquidity: int,
        amount_requested: int,
        amount_min: int,
        recipient: str,
        deadline: int,
    ) -> tuple[int, int]:
        """Borrow against a pledged position; return (amount0, amount1)."""

    def remove_liquidity(
        self,
        token_a: str,
        token_b: str,
        liquidity: int,
        recipient: str,
        deadline: int,
    ) -> tuple[int, int]:
        """Burn liquidity and return the underlying tokens to ``recipient``."""

    def repay(
        self,
        token_a: str,
        token_b: str,
        pool: str,
        amount: int,
        recipient: str,
    ) -> None:
        """Repay a collateral loan and release the pledged position."""
