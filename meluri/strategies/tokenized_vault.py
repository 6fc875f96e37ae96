"""Adapter for ERC-4626 style tokenized vaults."""

from __future__ import annotations

from typing import Optional, Protocol, cast

from meluri.audit import AuditLogger
from meluri.chain import Environment, require_address
from meluri.errors import InvalidAsset
from meluri.types import Address, Amount, RiskMetrics

from .base import StrategyAdapter


class TokenizedVault(Protocol):
    """Subset of the ERC-4626 surface the adapter needs, plus risk reporting."""

    address: Address

    @property
    def asset(self) -> str: ...

    def deposit(self, assets: Amount, *, receiver: Address, sender: Address) -> int: ...

    def redeem(self, shares: int, *, receiver: Address, owner: Address, sender: Address) -> Amount: ...

    def balance_of(self, owner: Address) -> int: ...

    def convert_to_assets(self, shares: int) -> Amount: ...

    def apy_bps(self) -> int: ...

    def utilization_bps(self) -> int: ...

    def liquidation_risk_bps(self) -> int: ...

    def oracle_deviation_bps(self) -> int: ...


class TokenizedVaultAdapter(StrategyAdapter):
    """Wraps one tokenized vault; adapter shares are the vault's own shares."""

    def __init__(
        self,
        env: Environment,
        *,
        target: Address,
        asset: str,
        vault: Address,
        admin: Address,
        audit: Optional[AuditLogger] = None,
        label: str = "tokenized-vault-adapter",
    ) -> None:
        require_address(target, "target")
        super().__init__(env, asset=asset, vault=vault, admin=admin, audit=audit, label=label)
        self._target_address = target
        if self._target.asset != asset:
            raise InvalidAsset(f"target asset {self._target.asset} does not match adapter asset {asset}")

    @property
    def target(self) -> Address:
        return self._target_address

    @property
    def _target(self) -> TokenizedVault:
        return cast(TokenizedVault, self.env.contract(self._target_address))

    def _deposit_to_protocol(self, amount: Amount) -> int:
        return self._target.deposit(amount, receiver=self.address, sender=self.address)

    def _preview_redeem(self, shares: int) -> Amount:
        return self._target.convert_to_assets(shares)

    def _withdraw_from_protocol(self, shares: int, assets: Amount) -> Amount:
        return self._target.redeem(shares, receiver=self.address, owner=self.address, sender=self.address)

    def _protocol_apy(self) -> int:
        return self._target.apy_bps()

    def _protocol_tvl(self) -> Amount:
        target = self._target
        return target.convert_to_assets(target.balance_of(self.address))

    def _protocol_risk_metrics(self) -> RiskMetrics:
        target = self._target
        return RiskMetrics(
            utilization_bps=target.utilization_bps(),
            liquidation_risk_bps=target.liquidation_risk_bps(),
            oracle_deviation_bps=target.oracle_deviation_bps(),
        )

    def _emergency_withdraw_from_protocol(self) -> Amount:
        target = self._target
        shares = target.balance_of(self.address)
        if shares == 0:
            return 0
        return target.redeem(shares, receiver=self.address, owner=self.address, sender=self.address)
