"""Flash loan operation endpoints.

- POST /operations/preflight - Run the risk gate without borrowing
- POST /operations - Gate and run one leveraged flash loan
- GET /operations - Recorded outcomes (requires DATABASE_URL)
- GET /operations/audit - Audit trail of the running engine
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from api.state import get_environment, get_store
from flashlev.errors import FlashLoanError, OperationInFlight
from flashlev.types import FeeEstimate, OperationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/operations", tags=["operations"])


class OperationRequest(BaseModel):
    """Request body for pre-flight checks and initiation."""

    amount: int = Field(..., description="Amount to borrow, in the asset's base units")


class FeeEstimateResponse(BaseModel):
    protocol_fee: int
    execution_cost: int
    total: int


class PreflightResponse(BaseModel):
    """Risk gate decision for a prospective loan."""

    ok: bool
    reason: str
    code: Optional[str] = None
    balance: int
    fee_estimate: Optional[FeeEstimateResponse] = None


class OperationResponse(BaseModel):
    """Outcome of one initiation."""

    accepted: bool
    reason: str
    amount: int
    code: Optional[str] = None
    stage: Optional[str] = None
    operation_id: Optional[str] = None
    fee_estimate: Optional[FeeEstimateResponse] = None


def _fees_to_response(fees: Optional[FeeEstimate]) -> Optional[dict[str, int]]:
    if fees is None:
        return None
    return {"protocol_fee": fees.protocol_fee, "execution_cost": fees.execution_cost, "total": fees.total}


def _result_to_response(result: OperationResult) -> dict[str, Any]:
    return {
        "accepted": result.accepted,
        "reason": result.reason,
        "amount": result.amount,
        "code": result.code,
        "stage": result.stage,
        "operation_id": result.operation_id,
        "fee_estimate": _fees_to_response(result.fee_estimate),
    }


@router.post("/preflight", response_model=PreflightResponse)
async def preflight(request: OperationRequest) -> dict[str, Any]:
    """Check whether an operation of ``amount`` would be allowed.

    Raises:
        HTTPException: 503 if the gas price feed or balance cannot be read.
    """
    initiator = get_environment().initiator
    try:
        balance = await asyncio.to_thread(initiator.read_balance)
        gate, fees = await asyncio.to_thread(initiator.preflight, request.amount)
    except FlashLoanError as exc:
        raise HTTPException(status_code=503, detail={"error": exc.code, "message": exc.reason})

    return {
        "ok": gate.ok,
        "reason": gate.reason,
        "code": gate.code,
        "balance": balance,
        "fee_estimate": _fees_to_response(fees),
    }


@router.post("", response_model=OperationResponse)
async def initiate(request: OperationRequest) -> dict[str, Any]:
    """Gate and, if allowed, run one leveraged flash loan.

    Rejections and aborts are reported in the body. A concurrent operation on
    the same scope is reported as 409.
    """
    initiator = get_environment().initiator
    result = await asyncio.to_thread(initiator.initiate, request.amount)
    if result.code == OperationInFlight.code:
        raise HTTPException(status_code=409, detail={"error": result.code, "message": result.reason})
    return _result_to_response(result)


@router.get("")
async def list_operations(
    limit: int = Query(50, ge=1, le=500, description="Maximum records to return"),
) -> dict[str, Any]:
    """List recorded operation outcomes, newest first."""
    store = get_store()
    if store is None:
        raise HTTPException(
            status_code=503,
            detail={"error": "storage_unavailable", "message": "DATABASE_URL is not configured"},
        )
    asset = get_environment().config.addresses.asset
    records = await asyncio.to_thread(store.list_recent, limit=limit, asset=asset)
    return {"operations": records, "count": len(records)}


@router.get("/audit")
async def audit_trail(
    operation_id: Optional[str] = Query(None, description="Only events of this operation"),
    event_type: Optional[str] = Query(None, description="Only events of this type"),
    limit: int = Query(100, ge=1, le=1000),
) -> dict[str, Any]:
    """Return recent audit events of the running engine."""
    audit_logger = get_environment().audit_logger
    events = audit_logger.get_events(event_type=event_type, operation_id=operation_id)
    events = events[-limit:]
    return {"events": [event.to_dict() for event in events], "count": len(events)}
