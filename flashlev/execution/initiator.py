"""Loan initiation: pre-flight gate, then hand control to the lending pool."""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import Future
from typing import Callable, Optional, Protocol

from flashlev.audit import AuditLogger
from flashlev.config import EngineConfig
from flashlev.errors import (
    FlashLoanError,
    OperationInFlight,
    OperationTimeout,
    OracleUnavailable,
    TransientProtocolError,
)
from flashlev.execution.callback import CallbackExecutor
from flashlev.execution.interfaces import AssetLedger, LendingPool, PriceOracle
from flashlev.execution.locks import ScopeLocks
from flashlev.execution.timeouts import call_with_timeout, retry_read
from flashlev.fees.model import FeeEstimator
from flashlev.risk.limits import GateResult, RiskGate
from flashlev.types import FeeEstimate, LoanRequest, OperationResult

logger = logging.getLogger(__name__)

REFERRAL_CODE = 0


class OperationRecorder(Protocol):
    def record(self, result: OperationResult, *, asset: str) -> None:
        """Persist the outcome of one initiation."""


class LoanInitiator:
    """Gates and starts leveraged flash loan operations.

    Coordinates between:
    - FeeEstimator (protocol fee and execution cost)
    - RiskGate (limit and affordability)
    - ScopeLocks (one operation per asset/pool)
    - LendingPool (grants the loan and drives the callback)
    - AuditLogger / OperationRecorder (records every outcome)
    """

    def __init__(
        self,
        *,
        config: EngineConfig,
        ledger: AssetLedger,
        lending_pool: LendingPool,
        oracle: PriceOracle,
        receiver: CallbackExecutor,
        fee_estimator: Optional[FeeEstimator] = None,
        risk_gate: Optional[RiskGate] = None,
        locks: Optional[ScopeLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        recorder: Optional[OperationRecorder] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.lending_pool = lending_pool
        self.oracle = oracle
        self.receiver = receiver
        self.fee_estimator = fee_estimator or FeeEstimator(
            fee_bps=config.fee_bps,
            gas_price_scale=config.gas_price_scale,
            max_age_seconds=config.oracle_max_age_seconds,
        )
        self.risk_gate = risk_gate or RiskGate(limit_ratio=config.limit_ratio)
        self.locks = locks or ScopeLocks()
        self.audit_logger = audit_logger or receiver.audit_logger
        self.recorder = recorder
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Read-only pre-flight
    # ------------------------------------------------------------------

    def read_balance(self) -> int:
        engine = self.config.addresses.engine
        return retry_read(
            lambda: self._guarded(lambda: self.ledger.balance_of(engine), label="balance_of"),
            label="balance_of",
            max_retries=self.config.read_retries,
            base_delay=self.config.retry_base_delay,
            sleep=self._sleep,
        )

    def estimate_fees(self, amount: int) -> FeeEstimate:
        try:
            return retry_read(
                lambda: self._guarded(
                    lambda: self.fee_estimator.estimate(amount, self.oracle, self.config.gas_estimate),
                    label="latest_round_data",
                ),
                label="latest_round_data",
                max_retries=self.config.read_retries,
                base_delay=self.config.retry_base_delay,
                sleep=self._sleep,
            )
        except (TransientProtocolError, OperationTimeout) as exc:
            raise OracleUnavailable(f"price feed unavailable: {exc.reason}") from exc

    def preflight(self, amount: int) -> tuple[GateResult, Optional[FeeEstimate]]:
        """Run the risk gate without taking the scope lock or calling the pool.

        The limit check needs no fee estimate, so the oracle is only queried
        once it has passed.

        Raises:
            OracleUnavailable: If the gas price feed cannot be trusted.
        """
        if amount <= 0:
            return self.risk_gate.check(0, amount, FeeEstimate(0, 0)), None

        balance = self.read_balance()
        limit = self.risk_gate.check_limit(balance, amount)
        if not limit.ok:
            return limit, None

        fees = self.estimate_fees(amount)
        return self.risk_gate.check(balance, amount, fees), fees

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate(self, amount: int) -> OperationResult:
        """Check and, if allowed, run one leveraged flash loan operation.

        Blocks until the lending pool has invoked and resolved the callback
        (or the call guard expires). Never retries the loan request.
        """
        asset = self.config.addresses.asset
        scope = self.config.scope

        try:
            lock = self.locks.acquire(scope, wait_seconds=self.config.lock_wait_seconds)
        except OperationInFlight as exc:
            logger.warning("Initiation of %d %s refused: %s", amount, asset, exc.reason)
            return self._finish(OperationResult(accepted=False, reason=exc.reason, amount=amount, code=exc.code))

        release_on_exit = True

        def hold_until_done(future: Future) -> None:
            nonlocal release_on_exit
            release_on_exit = False
            future.add_done_callback(lambda _: lock.release())

        try:
            try:
                gate, fees = self.preflight(amount)
            except FlashLoanError as exc:
                logger.warning("Pre-flight for %d %s failed: %s", amount, asset, exc.reason)
                self.audit_logger.log_preflight(asset, amount, False, exc.reason, context={"code": exc.code})
                return self._finish(OperationResult(accepted=False, reason=exc.reason, amount=amount, code=exc.code))

            self.audit_logger.log_preflight(asset, amount, gate.ok, gate.reason)
            if not gate.ok:
                logger.warning("Pre-flight rejected %d %s: %s", amount, asset, gate.reason)
                return self._finish(
                    OperationResult(
                        accepted=False, reason=gate.reason, amount=amount, code=gate.code, fee_estimate=fees
                    )
                )

            request = LoanRequest(asset=asset, amount=amount, debt_mode="none")
            operation_id = uuid.uuid4().hex
            return self._finish(self._submit(request, operation_id, fees, on_timeout=hold_until_done))
        finally:
            if release_on_exit:
                lock.release()

    def _submit(
        self,
        request: LoanRequest,
        operation_id: str,
        fees: Optional[FeeEstimate],
        *,
        on_timeout: Callable[[Future], None],
    ) -> OperationResult:
        engine = self.config.addresses.engine
        self.audit_logger.log_started(
            operation_id,
            request.asset,
            request.amount,
            context={"protocol_fee": fees.protocol_fee if fees else None},
        )
        logger.info("Operation %s: requesting flash loan of %d %s", operation_id, request.amount, request.asset)

        try:
            call_with_timeout(
                lambda: self.lending_pool.flash_loan(
                    self.receiver,
                    [request.asset],
                    [request.amount],
                    [request.mode_code],
                    engine,
                    operation_id.encode("utf-8"),
                    REFERRAL_CODE,
                ),
                timeout=self.config.call_timeout_seconds,
                label="flash_loan",
                on_timeout=on_timeout,
            )
        except OperationTimeout as exc:
            # Ambiguous outcome: a retry could duplicate a loan that moved value.
            self.audit_logger.log_aborted(operation_id, "unknown", exc.code, exc.reason)
            return OperationResult(
                accepted=False,
                reason=exc.reason,
                amount=request.amount,
                code=exc.code,
                fee_estimate=fees,
                operation_id=operation_id,
            )
        except FlashLoanError as exc:
            logger.error("Operation %s failed: %s", operation_id, exc.reason)
            return OperationResult(
                accepted=False,
                reason=exc.reason,
                amount=request.amount,
                code=exc.code,
                stage=exc.stage or "aborted",
                fee_estimate=fees,
                operation_id=operation_id,
            )
        except Exception as exc:
            logger.exception("Operation %s failed unexpectedly", operation_id)
            self.audit_logger.log_error(
                f"Operation {operation_id} failed unexpectedly: {exc}", context={"operation_id": operation_id}
            )
            return OperationResult(
                accepted=False,
                reason=f"unexpected error: {exc}",
                amount=request.amount,
                code="unexpected_error",
                stage="aborted",
                fee_estimate=fees,
                operation_id=operation_id,
            )

        self.audit_logger.log_completed(operation_id, request.asset, request.amount)
        return OperationResult(
            accepted=True,
            reason="completed",
            amount=request.amount,
            stage="completed",
            fee_estimate=fees,
            operation_id=operation_id,
        )

    def _finish(self, result: OperationResult) -> OperationResult:
        if not result.accepted and result.operation_id is None:
            self.audit_logger.log_rejected(self.config.addresses.asset, result.amount, result.code or "", result.reason)
        if self.recorder is not None:
            try:
                self.recorder.record(result, asset=self.config.addresses.asset)
            except Exception as exc:
                logger.exception("Failed to record operation outcome")
                self.audit_logger.log_error(f"Failed to record operation outcome: {exc}")
        return result

    def _guarded(self, fn: Callable[[], object], *, label: str):
        return call_with_timeout(fn, timeout=self.config.call_timeout_seconds, label=label)
