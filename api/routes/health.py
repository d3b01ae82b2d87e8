"""Health check API endpoint."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from api.state import get_environment
from flashlev.health import HealthChecker

router = APIRouter(prefix="/system/health", tags=["health"])

# Track API start time
_api_start_time = time.time()


class ComponentHealth(BaseModel):
    """Health status for a single component."""

    status: Literal["ok", "degraded", "error"]
    message: str
    latency_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None


@router.get("")
async def health_check() -> dict[str, Any]:
    """Get system health status.

    Returns health status for:
    - Gas price feed freshness
    - Scope lock (idle or operation in flight)
    - API uptime
    """
    checker = HealthChecker(get_environment().initiator)

    # Oracle reads block; keep them off the event loop
    checks = await asyncio.to_thread(checker.check_all)

    uptime_seconds = int(time.time() - _api_start_time)

    result: dict[str, Any] = {
        "api": {
            "status": "ok",
            "uptime_seconds": uptime_seconds,
            "message": "API running",
        }
    }

    for component, status in checks.items():
        result[component] = ComponentHealth(
            status=status.status,
            message=status.message or "",
            latency_ms=status.latency_ms,
            details=status.details,
        ).model_dump(exclude_none=True)

    # Overall status is worst of all components
    all_statuses = [result["api"]["status"]] + [v.status for v in checks.values()]
    if "error" in all_statuses:
        overall_status = "error"
    elif "degraded" in all_statuses:
        overall_status = "degraded"
    else:
        overall_status = "ok"

    result["overall"] = {"status": overall_status}
    return result
