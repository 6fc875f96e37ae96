"""Pooled ledger with share-based proportional accounting.

Depositors pool an asset and receive shares; the administrator (or the registered
router) allocates idle custody into strategy adapters. Shares are always priced
against ``total_assets = idle custody + recorded strategy allocations``.
"""

from __future__ import annotations

import logging
from typing import Optional

from meluri.audit import AuditLogger
from meluri.chain import Administered, Environment, JournaledDict, guarded, require_address
from meluri.config import VaultConfig
from meluri.errors import (
    CapacityExceeded,
    InsolventVault,
    InsufficientBalance,
    InsufficientShares,
    InvalidAmount,
    InvalidStrategy,
    Unauthorized,
    UnsupportedAsset,
    VaultNotPaused,
    VaultPaused,
    ZeroAddress,
)
from meluri.strategies.base import StrategyAdapter
from meluri.types import (
    ZERO_ADDRESS,
    Address,
    Amount,
    StrategyAllocation,
    VaultSnapshot,
)

logger = logging.getLogger(__name__)

PRECISION = 10**18


class Vault(Administered):
    """Custodial ledger for one pooled asset.

    Invariants:
    - sum of all share balances == total_shares
    - allocation records are never negative
    - a strategy, once registered, stays in active_strategies (in entry order)

    Thread-safety: Not thread-safe; every mutator runs as one atomic step of the
    environment and rejects re-entrant calls.
    """

    _state_fields = (
        "_admin",
        "_router",
        "_paused",
        "_supported_assets",
        "_shares",
        "_total_shares",
        "_active_strategies",
        "_allocations",
    )

    def __init__(
        self,
        env: Environment,
        *,
        asset: str,
        admin: Address,
        config: Optional[VaultConfig] = None,
        audit: Optional[AuditLogger] = None,
        label: str = "vault",
    ) -> None:
        """Initialize the ledger.

        Args:
            env: Execution environment of the domain the vault lives on
            asset: Base asset; always supported, used for allocation and default payouts
            admin: Administrator identity
            config: Ledger limits
            audit: Shared audit log (a private one is created if omitted)
        """
        if not asset:
            raise UnsupportedAsset("base asset must be set")
        super().__init__(env, admin=admin, label=label)
        self._config = config or VaultConfig()
        self._audit = audit or AuditLogger()
        env.attach_journal(self._audit)

        self._asset = asset
        self._router: Address = ZERO_ADDRESS
        self._paused = False
        self._supported_assets: set[str] = {asset}
        self._shares: JournaledDict[Address, int] = self.journaled_dict()
        self._total_shares = 0
        self._active_strategies: list[Address] = []
        self._allocations: JournaledDict[Address, Amount] = self.journaled_dict()

    # ========== Views ==========

    @property
    def asset(self) -> str:
        return self._asset

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def router(self) -> Address:
        return self._router

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def total_shares(self) -> int:
        return self._total_shares

    @property
    def supported_assets(self) -> frozenset[str]:
        return frozenset(self._supported_assets)

    @property
    def active_strategies(self) -> tuple[Address, ...]:
        return tuple(self._active_strategies)

    def share_balance(self, account: Address) -> int:
        return self._shares.get(account, 0)

    def share_holders(self) -> dict[Address, int]:
        return {account: shares for account, shares in self._shares.items() if shares > 0}

    def allocation(self, strategy: Address) -> Amount:
        return self._allocations.get(strategy, 0)

    def idle_balance(self, asset: Optional[str] = None) -> Amount:
        """Custody held directly by the vault (one asset, or all supported assets)."""
        balances = self.env.balances
        if asset is not None:
            return balances.balance_of(asset, self.address)
        return sum(balances.balance_of(a, self.address) for a in self._supported_assets)

    def total_allocated(self) -> Amount:
        return sum(self._allocations.values())

    def total_assets(self) -> Amount:
        """Idle custody plus recorded strategy allocations."""
        return self.idle_balance() + self.total_allocated()

    def share_price(self) -> int:
        """Assets per share scaled by PRECISION (PRECISION when no shares exist)."""
        if self._total_shares == 0:
            return PRECISION
        return self.total_assets() * PRECISION // self._total_shares

    def preview_deposit(self, amount: Amount) -> int:
        """Shares a deposit of ``amount`` would mint right now."""
        if self._total_shares == 0:
            return amount
        total_assets = self.total_assets()
        if total_assets == 0:
            raise InsolventVault("vault has outstanding shares but no assets")
        return amount * self._total_shares // total_assets

    def preview_withdraw(self, shares: int) -> Amount:
        """Assets a redemption of ``shares`` would pay out right now."""
        if self._total_shares == 0:
            return 0
        return shares * self.total_assets() // self._total_shares

    def snapshot(self) -> VaultSnapshot:
        return VaultSnapshot(
            asset=self._asset,
            total_assets=self.total_assets(),
            total_shares=self._total_shares,
            share_price=self.share_price(),
            idle_balance=self.idle_balance(),
            paused=self._paused,
            allocations=tuple(
                StrategyAllocation(strategy=s, allocation=self._allocations.get(s, 0))
                for s in self._active_strategies
            ),
        )

    # ========== Guards ==========

    def _when_not_paused(self) -> None:
        if self._paused:
            raise VaultPaused("vault is paused")

    def _only_admin_or_router(self, sender: Address) -> None:
        if sender == self._admin:
            return
        if self._router != ZERO_ADDRESS and sender == self._router:
            return
        raise Unauthorized(f"{sender} may not move vault allocations")

    def _adapter(self, strategy: Address) -> StrategyAdapter:
        """Resolve a strategy address to an adapter bound to this vault.

        Raises:
            UnknownContract: If nothing is deployed at the address
            InvalidStrategy: If the contract is not an adapter or serves another vault
        """
        adapter = self.env.contract(strategy)
        if not isinstance(adapter, StrategyAdapter):
            raise InvalidStrategy(f"{strategy} is not a strategy adapter")
        if adapter.vault != self.address:
            raise InvalidStrategy(f"strategy {strategy} is bound to vault {adapter.vault}")
        return adapter

    # ========== Depositor operations ==========

    @guarded
    def deposit(self, asset: str, amount: Amount, *, sender: Address) -> int:
        """Pool ``amount`` of a supported asset and mint shares to the sender.

        The first deposit into an empty ledger mints 1:1; later deposits mint
        ``amount * total_shares // total_assets``.

        Returns:
            Shares minted

        Raises:
            UnsupportedAsset: If asset is not supported
            InvalidAmount: If amount is zero or too small to mint a share
            VaultPaused: While paused
            InsolventVault: If shares exist but total assets are zero
        """
        if asset not in self._supported_assets:
            raise UnsupportedAsset(f"{asset} is not supported by this vault")
        if amount <= 0:
            raise InvalidAmount("deposit amount must be positive")
        self._when_not_paused()

        shares = self.preview_deposit(amount)
        if shares == 0:
            raise InvalidAmount(f"deposit of {amount} is too small to mint a share")

        self._shares[sender] = self._shares.get(sender, 0) + shares
        self._total_shares += shares
        self.env.balances.transfer(asset, sender, self.address, amount)

        self._audit.record(
            "deposit",
            f"{sender} deposited {amount} {asset} for {shares} shares",
            contract=self.address,
            account=sender,
            asset=asset,
            amount=amount,
            shares=shares,
        )
        return shares

    @guarded
    def withdraw(self, shares: int, *, sender: Address, asset: Optional[str] = None) -> Amount:
        """Burn ``shares`` and pay out their proportional value.

        If idle custody of the payout asset is short, the shortfall is pulled from
        active strategies in registration order, tolerating failing adapters.

        Args:
            shares: Shares to burn
            sender: Share owner
            asset: Payout asset (defaults to the base asset)

        Returns:
            Amount paid out

        Raises:
            InvalidAmount: If shares is zero
            UnsupportedAsset: If the payout asset is not supported
            VaultPaused: While paused
            InsufficientShares: If sender holds fewer shares
            InsufficientBalance: If custody cannot cover the payout even after the strategy walk
        """
        if shares <= 0:
            raise InvalidAmount("withdraw shares must be positive")
        payout_asset = asset or self._asset
        if payout_asset not in self._supported_assets:
            raise UnsupportedAsset(f"{payout_asset} is not supported by this vault")
        self._when_not_paused()
        balance = self._shares.get(sender, 0)
        if shares > balance:
            raise InsufficientShares(f"{sender} holds {balance} shares, requested {shares}")
        if self._total_shares == 0:
            raise InsolventVault("share supply is zero")

        amount = shares * self.total_assets() // self._total_shares

        self._shares[sender] = balance - shares
        self._total_shares -= shares

        idle = self.idle_balance(payout_asset)
        if idle < amount:
            self._withdraw_from_strategies(amount - idle, payout_asset)

        self.env.balances.transfer(payout_asset, self.address, sender, amount)

        self._audit.record(
            "withdraw",
            f"{sender} redeemed {shares} shares for {amount} {payout_asset}",
            contract=self.address,
            account=sender,
            asset=payout_asset,
            amount=amount,
            shares=shares,
        )
        return amount

    def _withdraw_from_strategies(self, shortfall: Amount, asset: str) -> Amount:
        """Best-effort walk over active strategies to cover ``shortfall``.

        Each strategy's allocation is debited by the amount requested from it; the
        shortfall is reduced by what the adapter actually returned. A failing
        adapter is skipped and its allocation left untouched.

        Returns:
            Total amount returned by adapters
        """
        recovered = 0
        for strategy in list(self._active_strategies):
            if shortfall == 0:
                break
            allocated = self._allocations.get(strategy, 0)
            if allocated == 0:
                continue
            adapter = self._adapter(strategy)
            if adapter.asset != asset:
                continue

            requested = min(shortfall, allocated)
            self._allocations[strategy] = allocated - requested
            try:
                returned = adapter.withdraw(adapter.convert_to_shares(requested), sender=self.address)
            except Exception as exc:
                self._allocations[strategy] = allocated
                logger.warning("Strategy %s withdrawal of %s failed: %s", strategy, requested, exc)
                self._audit.record(
                    "strategy_withdraw_failed",
                    f"Strategy {strategy} failed to return {requested}: {exc.__class__.__name__}: {exc}",
                    severity="warning",
                    contract=self.address,
                    strategy=strategy,
                    requested=requested,
                    error=str(exc),
                )
                continue

            recovered += returned
            shortfall -= min(returned, shortfall)
        return recovered

    # ========== Allocation ==========

    @guarded
    def allocate(self, strategy: Address, amount: Amount, *, sender: Address) -> int:
        """Push ``amount`` of idle base asset into a strategy adapter.

        Registers the strategy on first use. Adapter failures propagate and the
        whole allocation is reverted.

        Returns:
            Adapter shares received

        Raises:
            InvalidAmount / ZeroAddress: On zero amount or strategy
            Unauthorized: If sender is neither the administrator nor the router
            UnknownContract / InvalidStrategy: If strategy is not an adapter bound to this vault
            VaultPaused: While paused
            CapacityExceeded: If a new strategy would exceed max_strategies
        """
        if strategy == ZERO_ADDRESS or not strategy:
            raise ZeroAddress("strategy must be a non-zero address")
        if amount <= 0:
            raise InvalidAmount("allocation amount must be positive")
        self._only_admin_or_router(sender)
        adapter = self._adapter(strategy)
        self._when_not_paused()

        if strategy not in self._active_strategies:
            if len(self._active_strategies) >= self._config.max_strategies:
                raise CapacityExceeded(f"strategy cap of {self._config.max_strategies} reached")
            self._active_strategies.append(strategy)
        self._allocations[strategy] = self._allocations.get(strategy, 0) + amount

        shares = adapter.deposit(self._asset, amount, sender=self.address)

        self._audit.record(
            "allocate",
            f"Allocated {amount} {self._asset} to {strategy}",
            contract=self.address,
            strategy=strategy,
            amount=amount,
            shares=shares,
            caller=sender,
        )
        return shares

    @guarded
    def deallocate(self, strategy: Address, amount: Amount, *, sender: Address) -> Amount:
        """Pull ``amount`` back from one strategy into idle custody.

        Returns:
            Amount the adapter returned

        Raises:
            InsufficientBalance: If the recorded allocation is below amount
        """
        if strategy == ZERO_ADDRESS or not strategy:
            raise ZeroAddress("strategy must be a non-zero address")
        if amount <= 0:
            raise InvalidAmount("deallocation amount must be positive")
        self._only_admin_or_router(sender)
        self._when_not_paused()
        allocated = self._allocations.get(strategy, 0)
        if amount > allocated:
            raise InsufficientBalance(f"strategy {strategy} has {allocated} allocated, requested {amount}")
        adapter = self._adapter(strategy)

        self._allocations[strategy] = allocated - amount
        returned = adapter.withdraw(adapter.convert_to_shares(amount), sender=self.address)

        self._audit.record(
            "deallocate",
            f"Deallocated {amount} from {strategy} (returned {returned})",
            contract=self.address,
            strategy=strategy,
            amount=amount,
            returned=returned,
            caller=sender,
        )
        return returned

    @guarded
    def emergency_exit(self, *, sender: Address) -> Amount:
        """Unwind every strategy with a recorded allocation, ignoring pause state.

        Allocation records are zeroed before each adapter call so a failing adapter
        cannot leave stale accounting. Failures are logged and skipped.

        Returns:
            Total amount recovered
        """
        self._only_admin(sender)

        recovered = 0
        failed: list[Address] = []
        for strategy in list(self._active_strategies):
            if self._allocations.get(strategy, 0) == 0:
                continue
            self._allocations[strategy] = 0
            try:
                recovered += self._adapter(strategy).emergency_withdraw(sender=self.address)
            except Exception as exc:
                failed.append(strategy)
                logger.error("Emergency withdraw from %s failed: %s", strategy, exc)
                self._audit.record(
                    "emergency_withdraw_failed",
                    f"Emergency withdraw from {strategy} failed: {exc.__class__.__name__}: {exc}",
                    severity="error",
                    contract=self.address,
                    strategy=strategy,
                    error=str(exc),
                )

        self._audit.record(
            "emergency_exit",
            f"Emergency exit recovered {recovered} {self._asset}",
            severity="warning",
            contract=self.address,
            recovered=recovered,
            failed=failed,
        )
        return recovered

    # ========== Administration ==========

    @guarded
    def pause(self, *, sender: Address) -> None:
        self._only_admin(sender)
        if self._paused:
            raise VaultPaused("vault is already paused")
        self._paused = True
        self._audit.record("pause", "Vault paused", severity="warning", contract=self.address, caller=sender)

    @guarded
    def unpause(self, *, sender: Address) -> None:
        self._only_admin(sender)
        if not self._paused:
            raise VaultNotPaused("vault is not paused")
        self._paused = False
        self._audit.record("unpause", "Vault unpaused", contract=self.address, caller=sender)

    @guarded
    def add_supported_asset(self, asset: str, *, sender: Address) -> None:
        """Accept deposits of another asset, valued 1:1 with the base asset."""
        self._only_admin(sender)
        if not asset:
            raise UnsupportedAsset("asset must be set")
        if asset in self._supported_assets:
            return
        self._supported_assets.add(asset)
        self._audit.record("asset_added", f"Asset {asset} supported", contract=self.address, asset=asset)

    @guarded
    def remove_supported_asset(self, asset: str, *, sender: Address) -> None:
        """Stop accepting an asset. The base asset and assets still in custody cannot be removed."""
        self._only_admin(sender)
        if asset not in self._supported_assets:
            raise UnsupportedAsset(f"{asset} is not supported by this vault")
        if asset == self._asset:
            raise UnsupportedAsset("the base asset cannot be removed")
        held = self.idle_balance(asset)
        if held > 0:
            raise InsufficientBalance(f"vault still holds {held} {asset}; sweep or pay it out first")
        self._supported_assets.discard(asset)
        self._audit.record("asset_removed", f"Asset {asset} removed", contract=self.address, asset=asset)

    @guarded
    def set_router(self, router: Address, *, sender: Address) -> None:
        """Authorize a router to allocate and deallocate (ZERO_ADDRESS revokes)."""
        self._only_admin(sender)
        self._router = router or ZERO_ADDRESS
        self._audit.record("router_set", f"Router set to {self._router}", contract=self.address, router=self._router)

    @guarded
    def rescue_token(self, asset: str, amount: Amount, to: Address, *, sender: Address) -> None:
        """Emergency sweep of an asset sent to the vault by mistake.

        Pooled (supported) assets back outstanding shares and cannot be swept.
        """
        self._only_admin(sender)
        require_address(to, "to")
        if asset in self._supported_assets:
            raise UnsupportedAsset(f"{asset} is pooled and cannot be swept")
        if amount <= 0:
            raise InvalidAmount("sweep amount must be positive")
        self.env.balances.transfer(asset, self.address, to, amount)
        self._audit.record(
            "token_swept",
            f"Swept {amount} {asset} to {to}",
            severity="warning",
            contract=self.address,
            asset=asset,
            amount=amount,
            to=to,
        )
