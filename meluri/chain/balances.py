"""Token custody table.

Tracks balances per (asset, holder) in integer base units.
"""

from __future__ import annotations

from typing import Callable, Optional

from meluri.errors import InsufficientBalance, InvalidAmount
from meluri.types import Address, Amount

ReceiveHook = Callable[[str, Address, Amount], None]


class TokenBalances:
    """Manages balances for multiple assets and holders.

    Supports:
    - Mint/burn (value entering or leaving the simulated domain)
    - Transfers between holders
    - Receive hooks, invoked after a transfer lands (untrusted callbacks)
    - Per-key undo entries for savepoints (see ``bind_undo``)
    - Snapshot/restore for tests and tooling
    """

    def __init__(self, initial_balances: Optional[dict[tuple[str, Address], Amount]] = None) -> None:
        """Initialize the balance table.

        Args:
            initial_balances: Optional dict of (asset, holder) -> initial balance
        """
        self._balances: dict[tuple[str, Address], Amount] = {}
        self._hooks: dict[Address, ReceiveHook] = {}
        self._record: Optional[Callable[[Callable[[], None]], None]] = None
        if initial_balances:
            for key, amount in initial_balances.items():
                if amount < 0:
                    raise InvalidAmount("Initial balance must be >= 0")
                self._balances[key] = amount

    def balance_of(self, asset: str, holder: Address) -> Amount:
        return self._balances.get((asset, holder), 0)

    def holders(self, asset: str) -> list[Address]:
        """Get all holders with a non-zero balance of an asset."""
        return [holder for (a, holder), amount in self._balances.items() if a == asset and amount > 0]

    def mint(self, asset: str, holder: Address, amount: Amount) -> Amount:
        """Create new units of an asset for a holder.

        Returns:
            Updated balance

        Raises:
            InvalidAmount: If amount <= 0
        """
        if amount <= 0:
            raise InvalidAmount("Mint amount must be positive")
        key = (asset, holder)
        self._set(key, self._balances.get(key, 0) + amount)
        return self._balances[key]

    def burn(self, asset: str, holder: Address, amount: Amount) -> Amount:
        """Destroy units of an asset held by a holder.

        Raises:
            InvalidAmount: If amount <= 0
            InsufficientBalance: If the holder has less than amount
        """
        if amount <= 0:
            raise InvalidAmount("Burn amount must be positive")
        key = (asset, holder)
        balance = self._balances.get(key, 0)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient {asset} balance for {holder}: have {balance}, need {amount}")
        self._set(key, balance - amount)
        return self._balances[key]

    def transfer(self, asset: str, sender: Address, recipient: Address, amount: Amount) -> None:
        """Move funds between holders, then notify the recipient's receive hook.

        A zero-amount transfer is a no-op (the hook is not invoked).

        Raises:
            InvalidAmount: If amount < 0
            InsufficientBalance: If sender has less than amount
        """
        if amount < 0:
            raise InvalidAmount("Transfer amount must be >= 0")
        if amount == 0:
            return

        src = (asset, sender)
        balance = self._balances.get(src, 0)
        if balance < amount:
            raise InsufficientBalance(
                f"Insufficient {asset} balance for {sender}: have {balance}, need {amount}"
            )
        dst = (asset, recipient)
        self._set(src, balance - amount)
        self._set(dst, self._balances.get(dst, 0) + amount)

        hook = self._hooks.get(recipient)
        if hook is not None:
            hook(asset, sender, amount)

    def set_receive_hook(self, holder: Address, hook: Optional[ReceiveHook]) -> None:
        """Install (or with None, remove) the callback run when holder receives funds."""
        if hook is None:
            self._hooks.pop(holder, None)
        else:
            self._hooks[holder] = hook

    def snapshot(self) -> dict[tuple[str, Address], Amount]:
        return dict(self._balances)

    def restore(self, snapshot: dict[tuple[str, Address], Amount]) -> None:
        self._balances.clear()
        self._balances.update(snapshot)

    def bind_undo(self, record: Optional[Callable[[Callable[[], None]], None]]) -> None:
        """Route the inverse of every balance write to ``record`` (an undo log)."""
        self._record = record

    def _set(self, key: tuple[str, Address], amount: Amount) -> None:
        if self._record is not None:
            balances = self._balances
            if key in balances:
                old = balances[key]
                self._record(lambda: balances.__setitem__(key, old))
            else:
                self._record(lambda: balances.pop(key, None))
        self._balances[key] = amount
