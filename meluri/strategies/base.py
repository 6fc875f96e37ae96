"""Strategy adapter contract.

Each integrated yield protocol gets one concrete adapter. The adapter exposes a
uniform capability set to the ledger and delegates to five protocol-binding
primitives supplied by the subclass.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from meluri.audit import AuditLogger
from meluri.chain import Administered, Environment, guarded, require_address
from meluri.errors import InsufficientBalance, InvalidAsset, Unauthorized, ZeroAmount
from meluri.types import Address, Amount, RiskMetrics

logger = logging.getLogger(__name__)


class StrategyAdapter(Administered, ABC):
    """Abstract base class for all strategy adapters.

    The ledger is the only caller allowed to deposit and withdraw. Emergency
    withdrawal is restricted to the adapter's administrator.

    ``total_deposited`` and ``total_shares`` are adapter-local trackers; the shares
    are denominated by the adapter and unrelated to ledger shares.
    """

    _state_fields = ("_admin", "total_deposited", "total_shares")

    def __init__(
        self,
        env: Environment,
        *,
        asset: str,
        vault: Address,
        admin: Address,
        audit: Optional[AuditLogger] = None,
        label: str = "strategy",
    ) -> None:
        require_address(vault, "vault")
        if not asset:
            raise InvalidAsset("adapter asset must be set")
        super().__init__(env, admin=admin, label=label)
        self._asset = asset
        self._vault = vault
        self._audit = audit or AuditLogger()
        env.attach_journal(self._audit)
        self.total_deposited: Amount = 0
        self.total_shares: int = 0

    @property
    def asset(self) -> str:
        return self._asset

    @property
    def vault(self) -> Address:
        return self._vault

    def _only_vault(self, sender: Address) -> None:
        if sender != self._vault:
            raise Unauthorized(f"{sender} is not the vault of this adapter")

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    @guarded
    def deposit(self, asset: str, amount: Amount, *, sender: Address) -> int:
        """Pull ``amount`` of ``asset`` from the vault and put it to work.

        Returns:
            Adapter shares minted for the deposit

        Raises:
            Unauthorized: If sender is not the vault
            InvalidAsset: If asset differs from the adapter's bound asset
            ZeroAmount: If amount is zero
        """
        self._only_vault(sender)
        if asset != self._asset:
            raise InvalidAsset(f"adapter is bound to {self._asset}, got {asset}")
        if amount <= 0:
            raise ZeroAmount("deposit amount must be positive")

        self.env.balances.transfer(asset, sender, self.address, amount)
        shares = self._deposit_to_protocol(amount)
        self.total_deposited += amount
        self.total_shares += shares

        self._audit.record(
            "adapter_deposit",
            f"{type(self).__name__} deposited {amount} {asset} for {shares} shares",
            contract=self.address,
            asset=asset,
            amount=amount,
            shares=shares,
        )
        return shares

    @guarded
    def withdraw(self, shares: int, *, sender: Address) -> Amount:
        """Redeem adapter shares and send the proceeds to the vault.

        Returns:
            Asset amount transferred to the vault

        Raises:
            Unauthorized: If sender is not the vault
            ZeroAmount: If shares is zero
            InsufficientBalance: If shares exceed total_shares
        """
        self._only_vault(sender)
        if shares <= 0:
            raise ZeroAmount("withdraw shares must be positive")
        if shares > self.total_shares:
            raise InsufficientBalance(f"requested {shares} shares, adapter holds {self.total_shares}")

        # Trackers are settled against the quote before the protocol is called.
        expected = self._preview_redeem(shares)
        self.total_shares -= shares
        # Proceeds above the recorded deposit are realized yield.
        self.total_deposited = max(0, self.total_deposited - expected)
        amount = self._withdraw_from_protocol(shares, expected)
        self.env.balances.transfer(self._asset, self.address, self._vault, amount)

        self._audit.record(
            "adapter_withdraw",
            f"{type(self).__name__} redeemed {shares} shares for {amount} {self._asset}",
            contract=self.address,
            asset=self._asset,
            amount=amount,
            shares=shares,
        )
        return amount

    @guarded
    def emergency_withdraw(self, *, sender: Address) -> Amount:
        """Drain the protocol position and forward everything to the vault.

        Returns:
            Recovered amount (may be zero)
        """
        self._only_admin(sender)

        self.total_deposited = 0
        self.total_shares = 0
        recovered = self._emergency_withdraw_from_protocol()
        self.env.balances.transfer(self._asset, self.address, self._vault, recovered)

        self._audit.record(
            "adapter_emergency_withdraw",
            f"{type(self).__name__} emergency withdrew {recovered} {self._asset}",
            severity="warning",
            contract=self.address,
            asset=self._asset,
            recovered=recovered,
        )
        return recovered

    def get_current_apy(self) -> int:
        """Current protocol APY in basis points."""
        return self._protocol_apy()

    def get_tvl(self) -> Amount:
        """Value of this adapter's protocol position, in asset base units."""
        return self._protocol_tvl()

    def get_risk_metrics(self) -> RiskMetrics:
        return self._protocol_risk_metrics()

    def convert_to_shares(self, amount: Amount) -> int:
        """Adapter shares needed to withdraw ``amount`` (rounded up, capped at total_shares)."""
        if amount <= 0 or self.total_shares == 0:
            return 0
        tvl = self.get_tvl()
        if tvl <= 0:
            return self.total_shares
        shares = -(-amount * self.total_shares // tvl)
        return min(shares, self.total_shares)

    # ------------------------------------------------------------------
    # Protocol-binding primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _deposit_to_protocol(self, amount: Amount) -> int:
        """Supply ``amount`` (already held by the adapter) and return shares minted."""

    @abstractmethod
    def _preview_redeem(self, shares: int) -> Amount:
        """Asset amount ``shares`` redeem for right now (``total_shares`` not yet reduced)."""

    @abstractmethod
    def _withdraw_from_protocol(self, shares: int, assets: Amount) -> Amount:
        """Redeem ``shares`` (quoted at ``assets``) into the adapter and return the amount received."""

    @abstractmethod
    def _protocol_apy(self) -> int:
        """Current APY in basis points."""

    @abstractmethod
    def _protocol_tvl(self) -> Amount:
        """Value of the adapter's position."""

    @abstractmethod
    def _protocol_risk_metrics(self) -> RiskMetrics:
        """Utilization, liquidation risk and oracle deviation (basis points)."""

    @abstractmethod
    def _emergency_withdraw_from_protocol(self) -> Amount:
        """Pull everything out of the protocol into the adapter; return amount recovered."""
