"""Audit event endpoints."""

from __future__ import annotations

from typing import Any, Literal, Optional, get_args

from fastapi import APIRouter, HTTPException, Query

from api import state
from meluri.audit import EventType

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/events")
async def list_events(
    event_type: Optional[str] = Query(None, description="Filter by event type"),
    severity: Optional[Literal["debug", "info", "warning", "error"]] = Query(None),
    contract: Optional[str] = Query(None, description="Filter by emitting contract address"),
    limit: int = Query(100, ge=1, le=1000),
) -> list[dict[str, Any]]:
    """Most recent audit events first."""
    if event_type is not None and event_type not in get_args(EventType):
        raise HTTPException(status_code=400, detail=f"Unknown event type: {event_type}")

    audit = state.get_deployment().audit
    events = audit.get_events(event_type=event_type, severity=severity, contract=contract)  # type: ignore[arg-type]
    return [e.to_dict() for e in reversed(events[-limit:])]
