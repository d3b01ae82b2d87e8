"""In-memory collaborators for paper mode.

These never touch a chain. They implement just enough ledger, lending pool,
router and price feed behaviour to drive the engine end to end:

- PaperLedger: balances and allowances for one token
- PaperPriceFeed: a settable gas price round
- PaperLendingPool: grants flash loans, calls the receiver, pulls repayment,
  and restores every tracked ledger snapshot if anything fails
- PaperLiquidityRouter: single-sided liquidity positions and loans against them

Failures are injected by setting ``fail_reason`` style attributes; they are
raised as ``ProtocolError`` exactly like a live adapter would surface a revert.
"""

from __future__ import annotations

import logging
import time
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence

from flashlev.audit import AuditLogger
from flashlev.config import EngineConfig, ProtocolAddresses
from flashlev.errors import ProtocolError
from flashlev.execution.callback import CallbackExecutor
from flashlev.execution.interfaces import FlashLoanReceiver
from flashlev.execution.initiator import LoanInitiator, OperationRecorder
from flashlev.execution.locks import ScopeLocks
from flashlev.fees.model import protocol_fee

logger = logging.getLogger(__name__)

FLASH_LOAN_MODE = 0


def paper_address(n: int) -> str:
    """Deterministic digit-only address (valid without a checksum)."""
    return f"0x{n}{'0' * 38}{n}"


PAPER_ADDRESSES = ProtocolAddresses(
    engine=paper_address(1),
    asset=paper_address(2),
    paired_token=paper_address(3),
    lending_pool=paper_address(4),
    router=paper_address(5),
    pool=paper_address(6),
    oracle=paper_address(7),
)


class Snapshotting(Protocol):
    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


class PaperLedger:
    """Token ledger; ``approve`` acts on behalf of ``account``."""

    def __init__(self, symbol: str, *, account: str, balances: Optional[dict[str, int]] = None) -> None:
        self.symbol = symbol
        self.account = account
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self.refuse_approvals = False
        self.approval_calls: list[tuple[str, int]] = []
        for holder, amount in (balances or {}).items():
            self.mint(holder, amount)

    def balance_of(self, account: str) -> int:
        return self._balances.get(account.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner.lower(), spender.lower()), 0)

    def approve(self, spender: str, amount: int) -> bool:
        self.approval_calls.append((spender, amount))
        if self.refuse_approvals:
            return False
        return self.approve_from(self.account, spender, amount)

    def approve_from(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise ProtocolError("approve: negative amount")
        self._allowances[(owner.lower(), spender.lower())] = amount
        return True

    def mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ProtocolError("mint: negative amount")
        key = account.lower()
        self._balances[key] = self._balances.get(key, 0) + amount

    def burn(self, account: str, amount: int) -> None:
        key = account.lower()
        if self._balances.get(key, 0) < amount:
            raise ProtocolError(f"{self.symbol}: burn amount exceeds balance")
        self._balances[key] -= amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ProtocolError("transfer: negative amount")
        src = sender.lower()
        if self._balances.get(src, 0) < amount:
            raise ProtocolError(f"{self.symbol}: transfer amount exceeds balance")
        self._balances[src] -= amount
        dst = recipient.lower()
        self._balances[dst] = self._balances.get(dst, 0) + amount

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        key = (owner.lower(), spender.lower())
        allowed = self._allowances.get(key, 0)
        if allowed < amount:
            raise ProtocolError(f"{self.symbol}: transfer amount exceeds allowance")
        self.transfer(owner, recipient, amount)
        self._allowances[key] = allowed - amount

    def snapshot(self) -> tuple[dict[str, int], dict[tuple[str, str], int]]:
        return deepcopy(self._balances), deepcopy(self._allowances)

    def restore(self, snapshot: tuple[dict[str, int], dict[tuple[str, str], int]]) -> None:
        balances, allowances = snapshot
        self._balances = deepcopy(balances)
        self._allowances = deepcopy(allowances)


@dataclass
class PaperPriceFeed:
    """Gas price feed quoting ``answer`` (gwei) in the current round."""

    answer: int = 20
    round_id: int = 1
    updated_at: Optional[int] = None
    answered_in_round: Optional[int] = None
    error: Optional[Exception] = None
    clock: Callable[[], float] = field(default=time.time, repr=False)
    calls: int = 0

    def latest_round_data(self) -> tuple[int, int, int, int, int]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        updated_at = self.updated_at if self.updated_at is not None else int(self.clock())
        answered = self.answered_in_round if self.answered_in_round is not None else self.round_id
        return (self.round_id, self.answer, updated_at, updated_at, answered)

    def push(self, answer: int) -> None:
        """Publish a new round."""
        self.round_id += 1
        self.answer = answer
        self.updated_at = None
        self.answered_in_round = None


class PaperLiquidityRouter:
    """Single-sided liquidity router with loans against pledged positions.

    Liquidity is minted 1:1 with the deposited asset and receipted in pool
    tokens. Pledged positions support borrowing up to
    ``collateral_factor_bps`` of their liquidity.
    """

    def __init__(
        self,
        *,
        address: str,
        ledgers: dict[str, PaperLedger],
        pool_token: PaperLedger,
        collateral_factor_bps: int = 10_050,
    ) -> None:
        self.address = address
        self.ledgers = {token.lower(): ledger for token, ledger in ledgers.items()}
        self.pool_token = pool_token
        self.collateral_factor_bps = collateral_factor_bps
        self.add_liquidity_fail_reason: Optional[str] = None
        self.borrow_fail_reason: Optional[str] = None
        self.borrow_shortfall = 0
        self.calls: list[str] = []
        self._liquidity: dict[str, int] = {}
        self._pledged: dict[str, int] = {}
        self._debt: dict[str, int] = {}

    def _ledger(self, token: str) -> PaperLedger:
        ledger = self.ledgers.get(token.lower())
        if ledger is None:
            raise ProtocolError(f"unknown token {token}")
        return ledger

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
        self.calls.append("add_liquidity")
        if self.add_liquidity_fail_reason:
            raise ProtocolError(self.add_liquidity_fail_reason)
        if tick_lower >= tick_upper:
            raise ProtocolError("invalid tick range")
        if amount_max and amount_desired > amount_max:
            raise ProtocolError("amount exceeds max")

        liquidity = amount_desired
        if amount_min and liquidity < amount_min:
            raise ProtocolError("slippage")

        self._ledger(token_a).transfer_from(self.address, recipient, self.address, amount_desired)
        self.pool_token.mint(recipient, liquidity)
        key = recipient.lower()
        self._liquidity[key] = self._liquidity.get(key, 0) + liquidity
        return amount_desired, 0, liquidity

    def remove_liquidity(
        self,
        token_a: str,
        token_b: str,
        liquidity: int,
        recipient: str,
        deadline: int,
    ) -> tuple[int, int]:
        self.calls.append("remove_liquidity")
        key = recipient.lower()
        if self._liquidity.get(key, 0) < liquidity:
            raise ProtocolError("remove amount exceeds position")
        self.pool_token.burn(recipient, liquidity)
        self._liquidity[key] -= liquidity
        self._ledger(token_a).transfer(self.address, recipient, liquidity)
        return liquidity, 0

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
        self.calls.append("borrow")
        if self.borrow_fail_reason:
            raise ProtocolError(self.borrow_fail_reason)

        capacity = liquidity * self.collateral_factor_bps // 10_000
        if amount_requested > capacity:
            raise ProtocolError("insufficient collateral")

        paid_out = amount_requested - self.borrow_shortfall
        if amount_min and paid_out < amount_min:
            raise ProtocolError("slippage")

        self.pool_token.transfer_from(self.address, recipient, self.address, liquidity)
        self._ledger(token_a).transfer(self.address, recipient, paid_out)

        key = recipient.lower()
        self._pledged[key] = self._pledged.get(key, 0) + liquidity
        self._debt[key] = self._debt.get(key, 0) + paid_out

        if token_a.lower() < token_b.lower():
            return paid_out, 0
        return 0, paid_out

    def repay(self, token_a: str, token_b: str, pool: str, amount: int, recipient: str) -> None:
        self.calls.append("repay")
        key = recipient.lower()
        debt = self._debt.get(key, 0)
        if amount > debt:
            raise ProtocolError("repay amount exceeds debt")
        self._ledger(token_a).transfer_from(self.address, recipient, self.address, amount)
        self._debt[key] = debt - amount
        if self._debt[key] == 0:
            pledged = self._pledged.pop(key, 0)
            self.pool_token.transfer(self.address, recipient, pledged)

    def debt_of(self, account: str) -> int:
        return self._debt.get(account.lower(), 0)

    def pledged_by(self, account: str) -> int:
        return self._pledged.get(account.lower(), 0)

    def snapshot(self) -> tuple[dict[str, int], dict[str, int], dict[str, int]]:
        return deepcopy(self._liquidity), deepcopy(self._pledged), deepcopy(self._debt)

    def restore(self, snapshot: tuple[dict[str, int], dict[str, int], dict[str, int]]) -> None:
        liquidity, pledged, debt = snapshot
        self._liquidity = deepcopy(liquidity)
        self._pledged = deepcopy(pledged)
        self._debt = deepcopy(debt)


class PaperLendingPool:
    """Flash loan pool with all-or-nothing semantics.

    Every tracked object is snapshotted before funds move; any failure
    (raising or False callback, failed pull-back) restores them all.
    """

    def __init__(
        self,
        *,
        address: str,
        ledgers: dict[str, PaperLedger],
        fee_bps: int = 9,
        tracked: Sequence[Snapshotting] = (),
    ) -> None:
        self.address = address
        self.ledgers = {token.lower(): ledger for token, ledger in ledgers.items()}
        self.fee_bps = fee_bps
        self.tracked: list[Snapshotting] = list(tracked)
        self.loans_granted = 0
        self.loans_reverted = 0

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
        if not (len(assets) == len(amounts) == len(modes)):
            raise ProtocolError("inconsistent flash loan params")
        if any(mode != FLASH_LOAN_MODE for mode in modes):
            raise ProtocolError("only flash loans without debt are supported")

        participants = list(self.ledgers.values()) + [t for t in self.tracked if t not in self.ledgers.values()]
        snapshots = [(obj, obj.snapshot()) for obj in participants]
        premiums = [protocol_fee(amount, self.fee_bps) for amount in amounts]
        target = receiver.address

        try:
            for asset, amount in zip(assets, amounts):
                self._ledger(asset).transfer(self.address, target, amount)

            ok = receiver.execute_operation(
                list(assets), list(amounts), premiums, on_behalf_of, params, caller=self.address
            )
            if not ok:
                raise ProtocolError("flash loan callback returned false")

            for asset, amount, premium in zip(assets, amounts, premiums):
                self._ledger(asset).transfer_from(self.address, target, self.address, amount + premium)
        except Exception:
            for obj, snap in snapshots:
                obj.restore(snap)
            self.loans_reverted += 1
            logger.warning("Flash loan reverted; %d participant(s) restored", len(snapshots))
            raise

        self.loans_granted += 1

    def _ledger(self, asset: str) -> PaperLedger:
        ledger = self.ledgers.get(asset.lower())
        if ledger is None:
            raise ProtocolError(f"asset {asset} not listed")
        return ledger


@dataclass
class PaperEnvironment:
    """A fully wired paper engine and the collaborators behind it."""

    config: EngineConfig
    asset: PaperLedger
    paired: PaperLedger
    pool_token: PaperLedger
    feed: PaperPriceFeed
    router: PaperLiquidityRouter
    lending_pool: PaperLendingPool
    executor: CallbackExecutor
    initiator: LoanInitiator
    audit_logger: AuditLogger


def build_paper_environment(
    *,
    config: Optional[EngineConfig] = None,
    engine_balance: int = 1_000_000,
    pool_liquidity: int = 10_000_000,
    router_reserve: int = 1_000_000,
    gas_price: int = 20,
    locks: Optional[ScopeLocks] = None,
    audit_logger: Optional[AuditLogger] = None,
    recorder: Optional[OperationRecorder] = None,
) -> PaperEnvironment:
    """Wire a paper engine around freshly funded in-memory collaborators.

    The default config quotes gas in base units with a small gas estimate so
    that execution costs stay comparable to the paper balances.
    """
    config = config or EngineConfig(addresses=PAPER_ADDRESSES, gas_price_scale=1, gas_estimate=5)
    addresses = config.addresses
    audit_logger = audit_logger or AuditLogger()

    asset = PaperLedger(
        "ASSET",
        account=addresses.engine,
        balances={
            addresses.engine: engine_balance,
            addresses.lending_pool: pool_liquidity,
            addresses.router: router_reserve,
        },
    )
    paired = PaperLedger("PAIRED", account=addresses.engine)
    pool_token = PaperLedger("POOL", account=addresses.engine)
    feed = PaperPriceFeed(answer=gas_price)

    router = PaperLiquidityRouter(
        address=addresses.router,
        ledgers={addresses.asset: asset, addresses.paired_token: paired},
        pool_token=pool_token,
    )
    lending_pool = PaperLendingPool(
        address=addresses.lending_pool,
        ledgers={addresses.asset: asset},
        fee_bps=config.fee_bps,
        tracked=[paired, pool_token, router],
    )
    executor = CallbackExecutor(
        config=config,
        ledger=asset,
        pool_token=pool_token,
        router=router,
        audit_logger=audit_logger,
    )
    initiator = LoanInitiator(
        config=config,
        ledger=asset,
        lending_pool=lending_pool,
        oracle=feed,
        receiver=executor,
        locks=locks,
        audit_logger=audit_logger,
        recorder=recorder,
    )
    return PaperEnvironment(
        config=config,
        asset=asset,
        paired=paired,
        pool_token=pool_token,
        feed=feed,
        router=router,
        lending_pool=lending_pool,
        executor=executor,
        initiator=initiator,
        audit_logger=audit_logger,
    )
