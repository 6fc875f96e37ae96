"""Adapter for pooled lending markets (supply/withdraw with accruing balances)."""

from __future__ import annotations

from typing import Optional, Protocol, cast

from meluri.audit import AuditLogger
from meluri.chain import Environment, require_address
from meluri.errors import InvalidAsset
from meluri.types import Address, Amount, RiskMetrics

from .base import StrategyAdapter


class LendingMarket(Protocol):
    """Protocol-facing interface of a lending market (Aave/Compound style)."""

    address: Address

    @property
    def asset(self) -> str: ...

    def supply(self, amount: Amount, *, sender: Address) -> None:
        """Pull ``amount`` from sender and credit its supplied balance."""

    def withdraw(self, amount: Amount, *, sender: Address) -> Amount:
        """Debit sender's supplied balance and send the asset back; return amount sent."""

    def balance_of(self, account: Address) -> Amount:
        """Supplied balance including accrued interest."""

    def supply_rate_bps(self) -> int: ...

    def utilization_bps(self) -> int: ...

    def liquidation_risk_bps(self) -> int: ...

    def oracle_deviation_bps(self) -> int: ...


class LendingAdapter(StrategyAdapter):
    """Wraps one lending market.

    Adapter shares track the position pro-rata: the first deposit mints 1:1, later
    deposits mint against the current (interest-bearing) position value.
    """

    def __init__(
        self,
        env: Environment,
        *,
        market: Address,
        asset: str,
        vault: Address,
        admin: Address,
        audit: Optional[AuditLogger] = None,
        label: str = "lending-adapter",
    ) -> None:
        require_address(market, "market")
        super().__init__(env, asset=asset, vault=vault, admin=admin, audit=audit, label=label)
        self._market_address = market
        if self._market.asset != asset:
            raise InvalidAsset(f"market asset {self._market.asset} does not match adapter asset {asset}")

    @property
    def market(self) -> Address:
        return self._market_address

    @property
    def _market(self) -> LendingMarket:
        return cast(LendingMarket, self.env.contract(self._market_address))

    def _deposit_to_protocol(self, amount: Amount) -> int:
        position = self._market.balance_of(self.address)
        if self.total_shares == 0 or position == 0:
            shares = amount
        else:
            shares = amount * self.total_shares // position
        self._market.supply(amount, sender=self.address)
        return shares

    def _preview_redeem(self, shares: int) -> Amount:
        return shares * self._market.balance_of(self.address) // self.total_shares

    def _withdraw_from_protocol(self, shares: int, assets: Amount) -> Amount:
        if assets == 0:
            return 0
        return self._market.withdraw(assets, sender=self.address)

    def _protocol_apy(self) -> int:
        return self._market.supply_rate_bps()

    def _protocol_tvl(self) -> Amount:
        return self._market.balance_of(self.address)

    def _protocol_risk_metrics(self) -> RiskMetrics:
        market = self._market
        return RiskMetrics(
            utilization_bps=market.utilization_bps(),
            liquidation_risk_bps=market.liquidation_risk_bps(),
            oracle_deviation_bps=market.oracle_deviation_bps(),
        )

    def _emergency_withdraw_from_protocol(self) -> Amount:
        position = self._market.balance_of(self.address)
        if position == 0:
            return 0
        return self._market.withdraw(position, sender=self.address)
