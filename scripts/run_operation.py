#!/usr/bin/env python3
"""Run one leveraged flash loan operation in paper mode.

Usage:
    python scripts/run_operation.py --amount 500000
    python scripts/run_operation.py --amount 500000 --preflight-only
    python scripts/run_operation.py --amount 500000 --fail-stage invest

Environment:
    DATABASE_URL - Optional. Records the outcome when set.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from flashlev.errors import FlashLoanError  # noqa: E402
from flashlev.execution.paper import build_paper_environment  # noqa: E402
from flashlev.storage import OperationStore, StorageConfig  # noqa: E402

logger = logging.getLogger("run_operation")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a paper flash loan operation")
    parser.add_argument("--amount", type=int, required=True, help="Amount to borrow in base units")
    parser.add_argument("--balance", type=int, default=1_000_000, help="Engine balance (default: 1000000)")
    parser.add_argument("--gas-price", type=int, default=20, help="Gas price feed answer (default: 20)")
    parser.add_argument("--preflight-only", action="store_true", help="Only run the risk gate")
    parser.add_argument(
        "--fail-stage",
        choices=["invest", "leverage"],
        help="Inject a router failure to exercise the abort path",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every stage transition")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    store = None
    storage_config = StorageConfig.from_env()
    if storage_config is not None:
        store = OperationStore(config=storage_config)
        store.create_schema()
        logger.info("Recording outcomes to the database")

    env = build_paper_environment(engine_balance=args.balance, gas_price=args.gas_price, recorder=store)
    if args.fail_stage == "invest":
        env.router.add_liquidity_fail_reason = "slippage"
    elif args.fail_stage == "leverage":
        env.router.borrow_fail_reason = "insufficient collateral"

    if args.preflight_only:
        try:
            gate, fees = env.initiator.preflight(args.amount)
        except FlashLoanError as exc:
            print(json.dumps({"ok": False, "code": exc.code, "reason": exc.reason}, indent=2))
            return 1
        output = {"ok": gate.ok, "code": gate.code, "reason": gate.reason}
        if fees is not None:
            output["fee_estimate"] = {"protocol_fee": fees.protocol_fee, "execution_cost": fees.execution_cost}
        print(json.dumps(output, indent=2))
        return 0 if gate.ok else 1

    result = env.initiator.initiate(args.amount)
    output = {
        "accepted": result.accepted,
        "reason": result.reason,
        "code": result.code,
        "stage": result.stage,
        "operation_id": result.operation_id,
        "engine_balance": env.asset.balance_of(env.config.addresses.engine),
    }
    print(json.dumps(output, indent=2))
    return 0 if result.accepted else 1


if __name__ == "__main__":
    sys.exit(main())
