"""In-memory execution environment for one domain.

Provides what the core consumes but does not implement: asset custody, a timestamp
source, address derivation, a contract registry, a collision-resistant hash and
atomic state transitions.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional, Protocol

from meluri.chain.balances import TokenBalances
from meluri.errors import UnknownContract
from meluri.types import ZERO_ADDRESS, Address, ChainId

if TYPE_CHECKING:
    from meluri.chain.contract import Contract

logger = logging.getLogger(__name__)

NATIVE_ASSET = "native"


class ManualClock:
    """Deterministic timestamp source (seconds)."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = start

    def __call__(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += seconds
        return self._now


def _wall_clock() -> int:
    return int(time.time())


class Journal(Protocol):
    """Append-only side log that follows transaction boundaries (e.g. the audit log)."""

    def mark(self) -> int:
        """Return a position to roll back to."""

    def rollback(self, mark: int) -> None:
        """Discard entries recorded after ``mark``."""

    def commit(self) -> None:
        """Called when the outermost transaction completes successfully."""


class Environment:
    """Execution environment for a single domain ("chain").

    Thread-safety: Not thread-safe. Every mutation is expected to run inside
    ``atomic()`` on a single thread, which is the single-writer model of the core.
    """

    def __init__(
        self,
        *,
        chain_id: ChainId,
        clock: Optional[Callable[[], int]] = None,
        balances: Optional[TokenBalances] = None,
    ) -> None:
        if chain_id <= 0:
            raise ValueError("chain_id must be positive")
        self.chain_id = chain_id
        self.balances = balances or TokenBalances()
        self.balances.bind_undo(self.record_undo)
        self._clock = clock or _wall_clock
        self._contracts: dict[Address, Contract] = {}
        self._journals: list[Journal] = []
        self._undo: list[Callable[[], None]] = []
        self._depth = 0
        self._nonce = itertools.count(1)

    # ========== Time / identity ==========

    def now(self) -> int:
        """Current timestamp in seconds."""
        return self._clock()

    def new_address(self, label: str) -> Address:
        """Derive a fresh, deterministic address for a named entity."""
        seed = f"{self.chain_id}:{label}:{next(self._nonce)}".encode()
        return "0x" + hashlib.sha256(seed).hexdigest()[:40]

    @staticmethod
    def hash(*parts: Any) -> str:
        """SHA-256 over a canonical JSON encoding of ``parts`` (bytes are hex-encoded)."""
        encoded = json.dumps(
            [p.hex() if isinstance(p, (bytes, bytearray)) else p for p in parts],
            sort_keys=True,
            separators=(",", ":"),
        ).encode()
        return "0x" + hashlib.sha256(encoded).hexdigest()

    # ========== Contract registry ==========

    def register(self, contract: Contract) -> None:
        if contract.address in self._contracts:
            raise ValueError(f"address already registered: {contract.address}")
        self._contracts[contract.address] = contract

    def contract(self, address: Address) -> Contract:
        """Resolve an address to the contract deployed there.

        Raises:
            UnknownContract: If nothing is deployed at the address
        """
        if address == ZERO_ADDRESS or address not in self._contracts:
            raise UnknownContract(f"no contract at {address} on chain {self.chain_id}")
        return self._contracts[address]

    def has_contract(self, address: Address) -> bool:
        return address in self._contracts

    # ========== Atomicity ==========

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Savepoint: undo every write made inside the block if it raises.

        Writes register their inverse in an undo log (balances, journaled contract
        tables, and a per-entry copy of a contract's scalar fields taken by
        ``guarded``). Rolling back replays the log in reverse down to the
        savepoint's mark, so the cost follows what the block touched rather than
        the size of the state. Nested blocks are independent savepoints, so a
        failing sub-call that the caller catches only rolls back its own writes.
        """
        undo_mark = len(self._undo)
        marks = [journal.mark() for journal in self._journals]
        self._depth += 1
        try:
            yield
        except BaseException:
            while len(self._undo) > undo_mark:
                self._undo.pop()()
            for journal, mark in zip(self._journals, marks):
                journal.rollback(mark)
            logger.debug("chain %s: rolled back to savepoint", self.chain_id)
            raise
        else:
            if self._depth == 1:
                self._undo.clear()
                for journal in self._journals:
                    journal.commit()
        finally:
            self._depth -= 1

    def record_undo(self, undo: Callable[[], None]) -> None:
        """Register the inverse of a write; ignored outside a transaction."""
        if self._depth > 0:
            self._undo.append(undo)

    def checkpoint(self, contract: Contract) -> None:
        """Save a contract's scalar fields so the current savepoint can restore them."""
        if self._depth == 0:
            return
        state = contract.snapshot_state()
        self._undo.append(lambda: contract.restore_state(state))

    def attach_journal(self, journal: Journal) -> None:
        """Make a side log follow this environment's transaction boundaries."""
        if journal not in self._journals:
            self._journals.append(journal)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0
