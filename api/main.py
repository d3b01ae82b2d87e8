"""FastAPI application for the flash loan engine.

This module provides a minimal HTTP API service for:
- POST /operations/preflight - Risk gate decision for an amount
- POST /operations - Run one leveraged flash loan (paper mode)
- GET /operations - Recorded outcomes (requires DATABASE_URL)
- GET /operations/audit - Audit trail
- GET /system/health - Gas price feed and scope lock status

Requirements:
- DATABASE_URL is optional; without it outcomes are only audited in memory
- No authentication (local network only)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from api.routes import health, operations

logger = logging.getLogger(__name__)

app = FastAPI(
    title="flashlev API",
    description="API for pre-flight checks, paper flash loan operations, audit trail and health",
    version="1.0.0",
)

app.include_router(operations.router)
app.include_router(health.router)


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.error("Unhandled API error: %s", exc, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
