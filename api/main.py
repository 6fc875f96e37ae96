"""FastAPI application exposing a read-only view of one deployment.

This module provides a minimal HTTP API service for:
- GET /system/health - Audit database and ledger invariant checks
- GET /vault - Ledger totals and share price
- GET /vault/strategies - Active strategies with adapter metrics
- GET /vault/accounts/{account} - Share balance and redemption value
- GET /router/bridges - Registered bridges
- GET /router/quotes - Quotes for a chain pair with composite scores
- GET /router/optimal - Bridge selected for a chain pair
- GET /audit/events - Recorded audit events

The administrative surface is not exposed over HTTP.

Configuration:
- MELURI_* settings and DATABASE_URL from the environment (see meluri.config)
- No authentication (local network only)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes import audit, bridges, health, vault
from meluri.errors import MeluriError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Meluri API",
    description="Read-only API for the vault ledger, bridge router and audit log",
    version="0.1.0",
)

app.include_router(health.router)
app.include_router(vault.router)
app.include_router(bridges.router)
app.include_router(audit.router)


@app.exception_handler(MeluriError)
async def meluri_error_handler(request: Request, exc: MeluriError) -> JSONResponse:
    """Map core errors that escape a route to a 400 with the error class name."""
    logger.warning("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": type(exc).__name__})
