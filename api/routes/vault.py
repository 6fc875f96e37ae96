"""Read-only ledger endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel

from api import state
from meluri.errors import UnknownContract
from meluri.strategies import StrategyAdapter
from meluri.units import from_units

router = APIRouter(prefix="/vault", tags=["vault"])


class VaultResponse(BaseModel):
    chain_id: int
    address: str
    asset: str
    admin: str
    router: str
    paused: bool
    total_assets: int
    total_shares: int
    idle_balance: int
    share_price: int
    share_price_display: str
    supported_assets: list[str]


class StrategyResponse(BaseModel):
    address: str
    kind: str
    asset: Optional[str] = None
    allocation: int
    tvl: Optional[int] = None
    apy_bps: Optional[int] = None
    utilization_bps: Optional[int] = None
    liquidation_risk_bps: Optional[int] = None
    oracle_deviation_bps: Optional[int] = None


class AccountResponse(BaseModel):
    account: str
    shares: int
    value: int


@router.get("", response_model=VaultResponse)
async def get_vault() -> VaultResponse:
    """Ledger totals, share price and configuration."""
    vault = state.get_deployment().vault
    snapshot = vault.snapshot()
    return VaultResponse(
        chain_id=vault.env.chain_id,
        address=vault.address,
        asset=snapshot.asset,
        admin=vault.admin,
        router=vault.router,
        paused=snapshot.paused,
        total_assets=snapshot.total_assets,
        total_shares=snapshot.total_shares,
        idle_balance=snapshot.idle_balance,
        share_price=snapshot.share_price,
        share_price_display=str(from_units(snapshot.share_price, 18)),
        supported_assets=sorted(vault.supported_assets),
    )


@router.get("/strategies", response_model=list[StrategyResponse])
async def list_strategies() -> list[StrategyResponse]:
    """Active strategies in registration order, with adapter metrics."""
    vault = state.get_deployment().vault
    results: list[StrategyResponse] = []
    for allocation in vault.snapshot().allocations:
        try:
            adapter = vault.env.contract(allocation.strategy)
        except UnknownContract:
            results.append(
                StrategyResponse(address=allocation.strategy, kind="unknown", allocation=allocation.allocation)
            )
            continue
        if not isinstance(adapter, StrategyAdapter):
            results.append(
                StrategyResponse(address=allocation.strategy, kind=type(adapter).__name__, allocation=allocation.allocation)
            )
            continue
        risk = adapter.get_risk_metrics()
        results.append(
            StrategyResponse(
                address=allocation.strategy,
                kind=type(adapter).__name__,
                asset=adapter.asset,
                allocation=allocation.allocation,
                tvl=adapter.get_tvl(),
                apy_bps=adapter.get_current_apy(),
                utilization_bps=risk.utilization_bps,
                liquidation_risk_bps=risk.liquidation_risk_bps,
                oracle_deviation_bps=risk.oracle_deviation_bps,
            )
        )
    return results


@router.get("/accounts/{account}", response_model=AccountResponse)
async def get_account(account: str = Path(..., min_length=1, description="Depositor address")) -> AccountResponse:
    """Share balance of an account and its current redemption value."""
    vault = state.get_deployment().vault
    shares = vault.share_balance(account)
    if shares == 0:
        raise HTTPException(status_code=404, detail=f"No shares held by {account}")
    return AccountResponse(account=account, shares=shares, value=vault.preview_withdraw(shares))
