"""Flash loan callback stage machine.

The lending pool calls :meth:`CallbackExecutor.execute_operation` after
granting the funds. Stages run strictly in order::

    entered -> authorized -> invested -> leveraged -> repaid -> completed

with ``aborted`` reachable from every non-terminal stage. Each applied effect
records its inverse in a :class:`CompensationLog`; an abort unwinds that log
before the error is raised back to the pool, which then undoes the loan.
"""

from __future__ import annotations

import logging
import time
import uuid
from threading import Lock
from typing import Callable, Optional, Sequence, TypeVar

from flashlev.addresses import same_address
from flashlev.audit import AuditLogger
from flashlev.config import EngineConfig
from flashlev.errors import (
    BorrowingFailed,
    CompensationFailed,
    FlashLoanError,
    InvalidCallback,
    InvestmentFailed,
    RepaymentFailed,
    StageFailure,
    Unauthorized,
)
from flashlev.execution.interfaces import AssetLedger, LiquidityRouter
from flashlev.execution.saga import CompensationLog
from flashlev.execution.timeouts import call_with_timeout
from flashlev.types import CallbackStage, CollateralLoan, OperationContext, Position

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_REMEMBERED_CONTEXTS = 256


class CallbackExecutor:
    """Runs invest, leverage and repay for one granted flash loan.

    Collaborators are passed in explicitly so tests and paper mode can
    substitute fakes.
    """

    def __init__(
        self,
        *,
        config: EngineConfig,
        ledger: AssetLedger,
        pool_token: AssetLedger,
        router: LiquidityRouter,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the executor.

        Args:
            config: Engine configuration (addresses, slippage limits, timeouts)
            ledger: Ledger of the borrowed asset
            pool_token: Ledger of the liquidity pool's position token
            router: Liquidity router used to mint and borrow
            audit_logger: Optional audit trail shared with the initiator
            clock: Unix time source used for router deadlines
        """
        self.config = config
        self.ledger = ledger
        self.pool_token = pool_token
        self.router = router
        self.audit_logger = audit_logger or AuditLogger()
        self.clock = clock
        self._contexts: dict[str, OperationContext] = {}
        self._contexts_lock = Lock()

    @property
    def address(self) -> str:
        return self.config.addresses.engine

    # ------------------------------------------------------------------
    # Entry point called by the lending pool
    # ------------------------------------------------------------------

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
        """Handle the granted loan.

        Returns:
            True once amount + premium is approved for pull-back.

        Raises:
            Unauthorized: Caller is not the lending pool or initiator is not us.
            InvalidCallback: Loan arguments do not match the configured asset.
            InvestmentFailed, BorrowingFailed, RepaymentFailed: A stage failed;
                every prior effect has been unwound.
            CompensationFailed: A stage failed and unwinding was incomplete.
        """
        operation_id = params.decode("utf-8", errors="replace") if params else uuid.uuid4().hex
        context = OperationContext(
            operation_id=operation_id,
            initiator=initiator,
            caller=caller,
            asset=assets[0] if assets else "",
        )
        self._remember(context)

        try:
            self._authorize(context, assets, amounts, premiums)
        except FlashLoanError as exc:
            exc.stage = context.stage
            self._transition(context, "aborted")
            self.audit_logger.log_aborted(operation_id, "entered", exc.code, exc.reason)
            logger.warning("Callback %s rejected before any effect: %s", operation_id, exc.reason)
            raise

        compensation = CompensationLog()
        try:
            position = self._invest(context, compensation)
            context.position = position
            self._transition(context, "invested", liquidity=position.liquidity)

            loan = self._leverage(context, position, compensation)
            context.collateral_loan = loan
            self._transition(context, "leveraged", borrowed=loan.borrowed)

            self._repay(context, compensation)
            self._transition(context, "repaid", repayment=context.repayment)
        except Exception as exc:
            self._abort(context, compensation, exc)
            raise

        compensation.discard()
        self._transition(context, "completed")
        logger.info(
            "Operation %s completed: borrowed %d, repaying %d",
            operation_id,
            context.amount,
            context.repayment,
        )
        return True

    def context_for(self, operation_id: str) -> Optional[OperationContext]:
        with self._contexts_lock:
            return self._contexts.get(operation_id)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _authorize(
        self,
        context: OperationContext,
        assets: Sequence[str],
        amounts: Sequence[int],
        premiums: Sequence[int],
    ) -> None:
        addresses = self.config.addresses
        if not same_address(context.caller, addresses.lending_pool):
            raise Unauthorized(f"callback caller {context.caller} is not the lending pool")
        if not same_address(context.initiator, addresses.engine):
            raise Unauthorized(f"loan initiator {context.initiator} is not this engine")

        if not (len(assets) == len(amounts) == len(premiums) == 1):
            raise InvalidCallback("expected exactly one asset, amount and premium")
        if not same_address(assets[0], addresses.asset):
            raise InvalidCallback(f"unexpected asset {assets[0]}")
        if amounts[0] <= 0 or premiums[0] < 0:
            raise InvalidCallback(f"invalid amount {amounts[0]} / premium {premiums[0]}")

        context.amount = int(amounts[0])
        context.premium = int(premiums[0])
        self._transition(context, "authorized", amount=context.amount, premium=context.premium)

    def _invest(self, context: OperationContext, compensation: CompensationLog) -> Position:
        addresses = self.config.addresses
        limits = self.config.slippage
        deadline = self._deadline()

        self._approve(
            self.ledger,
            addresses.router,
            context.amount,
            compensation,
            "asset allowance to router",
            InvestmentFailed,
        )

        amount_a, amount_b, liquidity = self._stage_call(
            lambda: self.router.add_liquidity(
                addresses.asset,
                addresses.paired_token,
                self.config.pool_fee_tier,
                self.config.tick_lower,
                self.config.tick_upper,
                context.amount,
                limits.liquidity_amount_min,
                limits.liquidity_amount_max,
                addresses.engine,
                deadline,
            ),
            label="add_liquidity",
            failure=InvestmentFailed,
        )
        compensation.record(
            f"remove {liquidity} liquidity",
            lambda: self._call(
                lambda: self.router.remove_liquidity(
                    addresses.asset, addresses.paired_token, liquidity, addresses.engine, self._deadline()
                ),
                label="remove_liquidity",
            ),
        )

        if liquidity <= 0:
            raise InvestmentFailed("router minted no liquidity")

        pool_token_balance = self._stage_call(
            lambda: self.pool_token.balance_of(addresses.engine),
            label="pool_token.balance_of",
            failure=InvestmentFailed,
        )
        # The reported liquidity is trusted as-is; only logged next to the token balance.
        logger.info(
            "Operation %s invested %d: liquidity=%d pool_tokens=%d",
            context.operation_id,
            context.amount,
            liquidity,
            pool_token_balance,
        )
        return Position(
            liquidity=liquidity,
            pool_token_balance=pool_token_balance,
            amount_a=amount_a,
            amount_b=amount_b,
        )

    def _leverage(
        self, context: OperationContext, position: Position, compensation: CompensationLog
    ) -> CollateralLoan:
        addresses = self.config.addresses
        if position.liquidity <= 0 or position.pool_token_balance <= 0:
            raise BorrowingFailed("no liquidity position to pledge")

        self._approve(
            self.pool_token,
            addresses.router,
            position.pool_token_balance,
            compensation,
            "pool token allowance to router",
            BorrowingFailed,
        )

        requested = context.repayment
        amount0, amount1 = self._stage_call(
            lambda: self.router.borrow(
                addresses.asset,
                addresses.paired_token,
                addresses.pool,
                position.liquidity,
                requested,
                self.config.slippage.borrow_amount_min,
                addresses.engine,
                self._deadline(),
            ),
            label="borrow",
            failure=BorrowingFailed,
        )
        borrowed = amount0 if self._asset_is_token0() else amount1
        compensation.record(f"repay {borrowed} collateral loan", lambda: self._repay_collateral(borrowed))

        if borrowed < requested:
            raise BorrowingFailed(f"collateral loan {borrowed} does not cover repayment {requested}")

        remaining = self._stage_call(
            lambda: self.pool_token.balance_of(addresses.engine), label="pool_token.balance_of", failure=BorrowingFailed
        )
        if remaining > 0:
            raise BorrowingFailed(f"position not fully pledged: {remaining} pool tokens remain")

        return CollateralLoan(borrowed=borrowed, debt=requested)

    def _repay(self, context: OperationContext, compensation: CompensationLog) -> None:
        addresses = self.config.addresses
        repayment = context.repayment
        available = self._stage_call(
            lambda: self.ledger.balance_of(addresses.engine), label="balance_of", failure=RepaymentFailed
        )
        if available < repayment:
            raise RepaymentFailed(f"balance {available} cannot cover repayment {repayment}")

        self._approve(
            self.ledger,
            addresses.lending_pool,
            repayment,
            compensation,
            "repayment allowance to lending pool",
            RepaymentFailed,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _approve(
        self,
        ledger: AssetLedger,
        spender: str,
        amount: int,
        compensation: CompensationLog,
        label: str,
        failure: type[StageFailure],
    ) -> None:
        engine = self.config.addresses.engine
        previous = self._stage_call(lambda: ledger.allowance(engine, spender), label="allowance", failure=failure)
        approved = self._stage_call(lambda: ledger.approve(spender, amount), label="approve", failure=failure)
        if not approved:
            raise failure(f"{label} of {amount} was refused")
        compensation.record(
            f"reset {label} to {previous}",
            lambda: self._call(lambda: ledger.approve(spender, previous), label="approve"),
        )

    def _repay_collateral(self, amount: int) -> None:
        addresses = self.config.addresses
        self._call(lambda: self.ledger.approve(addresses.router, amount), label="approve")
        self._call(
            lambda: self.router.repay(
                addresses.asset, addresses.paired_token, addresses.pool, amount, addresses.engine
            ),
            label="repay",
        )
        self._call(lambda: self.ledger.approve(addresses.router, 0), label="approve")

    def _stage_call(self, fn: Callable[[], T], *, label: str, failure: type[StageFailure]) -> T:
        """Run a collaborator call, mapping its failure to the stage error."""
        try:
            return self._call(fn, label=label)
        except StageFailure:
            raise
        except FlashLoanError as exc:
            raise failure(exc.reason) from exc
        except Exception as exc:
            logger.exception("%s failed unexpectedly", label)
            raise failure(str(exc) or None) from exc

    def _call(self, fn: Callable[[], T], *, label: str) -> T:
        return call_with_timeout(fn, timeout=self.config.call_timeout_seconds, label=label)

    def _abort(self, context: OperationContext, compensation: CompensationLog, exc: Exception) -> None:
        stage = context.stage
        steps = compensation.descriptions()
        code = getattr(exc, "code", "unexpected_error")
        reason = getattr(exc, "reason", str(exc))
        logger.error("Operation %s aborted at '%s': %s", context.operation_id, stage, reason)

        if isinstance(exc, FlashLoanError):
            exc.stage = stage
        self._transition(context, "aborted")
        self.audit_logger.log_aborted(context.operation_id, stage, code, reason)

        try:
            compensation.unwind(cause=exc)
        except CompensationFailed as failed:
            failed.stage = stage
            self.audit_logger.log_error(
                f"Operation {context.operation_id} unwind incomplete",
                context={"operation_id": context.operation_id, "failures": failed.failures},
            )
            raise failed from exc
        finally:
            if steps:
                self.audit_logger.log_compensation(context.operation_id, list(reversed(steps)))

    def _transition(self, context: OperationContext, stage: CallbackStage, **details: int) -> None:
        context.advance(stage)
        self.audit_logger.log_stage(context.operation_id, stage, context=dict(details))
        logger.info("Operation %s -> %s %s", context.operation_id, stage, details or "")

    def _remember(self, context: OperationContext) -> None:
        with self._contexts_lock:
            if len(self._contexts) >= MAX_REMEMBERED_CONTEXTS:
                self._contexts.pop(next(iter(self._contexts)))
            self._contexts[context.operation_id] = context

    def _asset_is_token0(self) -> bool:
        addresses = self.config.addresses
        return addresses.asset.lower() < addresses.paired_token.lower()

    def _deadline(self) -> int:
        return int(self.clock()) + self.config.deadline_seconds
