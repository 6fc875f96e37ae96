"""Health check API endpoint."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import APIRouter

from api import state
from meluri.health import HealthChecker, HealthStatus

router = APIRouter(prefix="/system/health", tags=["health"])

_started_at = time.time()

# Worst status wins when combining components
_SEVERITY = {"ok": 0, "degraded": 1, "error": 2}


def _component(status: HealthStatus) -> dict[str, Any]:
    body: dict[str, Any] = {"status": status.status, "message": status.message}
    if status.latency_ms is not None:
        body["latency_ms"] = status.latency_ms
    if status.details:
        body["details"] = status.details
    return body


@router.get("")
async def health_check() -> dict[str, Any]:
    """Report audit database connectivity, ledger invariants and API uptime."""
    deployment = state.get_deployment()
    checker = HealthChecker(database_url=deployment.settings.database_url, vault=deployment.vault)

    # check_database blocks on I/O
    checks = await asyncio.to_thread(checker.check_all)

    result: dict[str, Any] = {
        "api": {
            "status": "ok",
            "uptime_seconds": int(time.time() - _started_at),
            "message": f"Serving chain {deployment.chain_id}",
        }
    }
    result.update({name: _component(status) for name, status in checks.items()})

    worst = max((s.status for s in checks.values()), key=_SEVERITY.__getitem__, default="ok")
    result["overall"] = {"status": worst}
    return result
