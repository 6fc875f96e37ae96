"""In-memory yield protocols.

Stand-ins for the external protocols behind each adapter, used for local
deployments, demos and tests. They hold real balances in the environment's
custody table so value conservation can be checked end to end.
"""

from __future__ import annotations

from meluri.chain import Contract, Environment, JournaledDict, guarded
from meluri.errors import InsufficientBalance, InvalidAmount, StateError, Unauthorized
from meluri.types import Address, Amount

BPS = 10_000


class ProtocolFrozen(StateError):
    """Raised by a simulated protocol that has been frozen (models an outage)."""


class SimulatedLendingMarket(Contract):
    """Lending market with pro-rata interest accrual and simulated borrowing.

    Borrowed liquidity leaves the market (held by a borrower sink address), which
    raises utilization and can make withdrawals fail for lack of liquidity.
    """

    _state_fields = ("_supplied", "_borrowed", "frozen", "rate_bps", "liquidation_bps", "oracle_bps")

    def __init__(
        self,
        env: Environment,
        *,
        asset: str,
        rate_bps: int = 400,
        liquidation_bps: int = 0,
        oracle_bps: int = 0,
        label: str = "lending-market",
    ) -> None:
        super().__init__(env, label=label)
        self._asset = asset
        self._borrower_sink = env.new_address(f"{label}-borrowers")
        self._supplied: dict[Address, Amount] = {}
        self._borrowed: Amount = 0
        self.frozen = False
        self.rate_bps = rate_bps
        self.liquidation_bps = liquidation_bps
        self.oracle_bps = oracle_bps

    @property
    def asset(self) -> str:
        return self._asset

    def _check_live(self) -> None:
        if self.frozen:
            raise ProtocolFrozen(f"lending market {self.address} is frozen")

    @guarded
    def supply(self, amount: Amount, *, sender: Address) -> None:
        self._check_live()
        if amount <= 0:
            raise InvalidAmount("supply amount must be positive")
        self._supplied[sender] = self._supplied.get(sender, 0) + amount
        self.env.balances.transfer(self._asset, sender, self.address, amount)

    @guarded
    def withdraw(self, amount: Amount, *, sender: Address) -> Amount:
        self._check_live()
        if amount <= 0:
            raise InvalidAmount("withdraw amount must be positive")
        balance = self._supplied.get(sender, 0)
        if amount > balance:
            raise InsufficientBalance(f"{sender} supplied {balance}, requested {amount}")
        self._supplied[sender] = balance - amount
        self.env.balances.transfer(self._asset, self.address, sender, amount)
        return amount

    def balance_of(self, account: Address) -> Amount:
        return self._supplied.get(account, 0)

    def total_supplied(self) -> Amount:
        return sum(self._supplied.values())

    @guarded
    def borrow(self, amount: Amount) -> None:
        """Move liquidity out to borrowers."""
        if amount <= 0:
            raise InvalidAmount("borrow amount must be positive")
        self.env.balances.transfer(self._asset, self.address, self._borrower_sink, amount)
        self._borrowed += amount

    @guarded
    def accrue_interest(self, amount: Amount) -> None:
        """Credit ``amount`` of interest to suppliers pro-rata (remainder to the largest)."""
        total = self.total_supplied()
        if amount <= 0 or total == 0:
            raise InvalidAmount("nothing to accrue")
        self.env.balances.mint(self._asset, self.address, amount)
        distributed = 0
        for account, balance in self._supplied.items():
            share = amount * balance // total
            self._supplied[account] = balance + share
            distributed += share
        largest = max(self._supplied, key=lambda a: self._supplied[a])
        self._supplied[largest] += amount - distributed

    def supply_rate_bps(self) -> int:
        return self.rate_bps

    def utilization_bps(self) -> int:
        total = self.total_supplied()
        if total == 0:
            return 0
        return min(BPS, self._borrowed * BPS // total)

    def liquidation_risk_bps(self) -> int:
        return self.liquidation_bps

    def oracle_deviation_bps(self) -> int:
        return self.oracle_bps


class SimulatedTokenizedVault(Contract):
    """ERC-4626 style vault: share price = held assets / share supply."""

    _state_fields = ("_shares", "_total_shares", "frozen", "apy", "oracle_bps")

    def __init__(
        self,
        env: Environment,
        *,
        asset: str,
        apy: int = 600,
        oracle_bps: int = 0,
        label: str = "tokenized-vault",
    ) -> None:
        super().__init__(env, label=label)
        self._asset = asset
        self._shares: JournaledDict[Address, int] = self.journaled_dict()
        self._total_shares = 0
        self.frozen = False
        self.apy = apy
        self.oracle_bps = oracle_bps

    @property
    def asset(self) -> str:
        return self._asset

    def total_assets(self) -> Amount:
        return self.env.balances.balance_of(self._asset, self.address)

    def convert_to_shares(self, assets: Amount) -> int:
        total_assets = self.total_assets()
        if self._total_shares == 0 or total_assets == 0:
            return assets
        return assets * self._total_shares // total_assets

    def convert_to_assets(self, shares: int) -> Amount:
        if self._total_shares == 0:
            return 0
        return shares * self.total_assets() // self._total_shares

    def balance_of(self, owner: Address) -> int:
        return self._shares.get(owner, 0)

    @guarded
    def deposit(self, assets: Amount, *, receiver: Address, sender: Address) -> int:
        if self.frozen:
            raise ProtocolFrozen(f"tokenized vault {self.address} is frozen")
        if assets <= 0:
            raise InvalidAmount("deposit amount must be positive")
        shares = self.convert_to_shares(assets)
        if shares == 0:
            raise InvalidAmount("deposit too small to mint shares")
        self._shares[receiver] = self._shares.get(receiver, 0) + shares
        self._total_shares += shares
        self.env.balances.transfer(self._asset, sender, self.address, assets)
        return shares

    @guarded
    def redeem(self, shares: int, *, receiver: Address, owner: Address, sender: Address) -> Amount:
        if self.frozen:
            raise ProtocolFrozen(f"tokenized vault {self.address} is frozen")
        if sender != owner:
            raise Unauthorized("redeem on behalf of another owner is not supported")
        held = self._shares.get(owner, 0)
        if shares <= 0 or shares > held:
            raise InsufficientBalance(f"{owner} holds {held} shares, requested {shares}")
        assets = self.convert_to_assets(shares)
        self._shares[owner] = held - shares
        self._total_shares -= shares
        self.env.balances.transfer(self._asset, self.address, receiver, assets)
        return assets

    def accrue_yield(self, amount: Amount) -> None:
        """Grow held assets without minting shares (share price rises)."""
        self.env.balances.mint(self._asset, self.address, amount)

    def realize_loss(self, amount: Amount) -> None:
        """Shrink held assets without burning shares (share price falls)."""
        self.env.balances.burn(self._asset, self.address, amount)

    def apy_bps(self) -> int:
        return self.apy

    def utilization_bps(self) -> int:
        return 0

    def liquidation_risk_bps(self) -> int:
        return 0

    def oracle_deviation_bps(self) -> int:
        return self.oracle_bps
