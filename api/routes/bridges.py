"""Read-only router endpoints: bridge registry, quotes and selection."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from api import state
from meluri.errors import NoBridgeAvailable, UnsupportedChain
from meluri.router import score_quote
from meluri.units import from_units

router = APIRouter(prefix="/router", tags=["router"])


class BridgesResponse(BaseModel):
    chain_id: int
    address: str
    max_bridges: int
    bridges: list[str]


class QuoteResponse(BaseModel):
    bridge: str
    estimated_cost: int
    estimated_cost_display: str
    estimated_time_seconds: int
    security_score: int
    score: int


class OptimalBridgeResponse(BaseModel):
    src_chain: int
    dst_chain: int
    bridge: str
    cost: int


@router.get("/bridges", response_model=BridgesResponse)
async def list_bridges() -> BridgesResponse:
    """Registered bridges in registration order."""
    r = state.get_deployment().router
    return BridgesResponse(
        chain_id=r.chain_id,
        address=r.address,
        max_bridges=r.config.max_bridges,
        bridges=list(r.supported_bridges),
    )


@router.get("/quotes", response_model=list[QuoteResponse])
async def list_quotes(
    src: int = Query(..., gt=0, description="Source chain id"),
    dst: int = Query(..., gt=0, description="Destination chain id"),
) -> list[QuoteResponse]:
    """Quotes configured for a chain pair, with their composite scores."""
    r = state.get_deployment().router
    decimals = r.config.native_decimals
    return [
        QuoteResponse(
            bridge=q.bridge,
            estimated_cost=q.estimated_cost,
            estimated_cost_display=str(from_units(q.estimated_cost, decimals)),
            estimated_time_seconds=q.estimated_time_seconds,
            security_score=q.security_score,
            score=score_quote(q, native_decimals=decimals),
        )
        for q in r.quotes(src, dst)
    ]


@router.get("/optimal", response_model=OptimalBridgeResponse)
async def optimal_bridge(
    src: int = Query(..., description="Source chain id"),
    dst: int = Query(..., description="Destination chain id"),
) -> OptimalBridgeResponse:
    """Bridge the router would select for a chain pair."""
    r = state.get_deployment().router
    try:
        choice = r.get_optimal_bridge(src, dst)
    except UnsupportedChain as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NoBridgeAvailable as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return OptimalBridgeResponse(src_chain=src, dst_chain=dst, bridge=choice.bridge, cost=choice.cost)
