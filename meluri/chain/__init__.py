"""In-memory execution environment.

Asset custody, timestamps, address derivation, contract registry, hashing and
atomic savepoints for one domain.
"""

from .balances import TokenBalances
from .contract import Administered, Contract, guarded, require_address
from .environment import NATIVE_ASSET, Environment, ManualClock
from .state import Journaled, JournaledDict, JournaledSet

__all__ = [
    "Administered",
    "Contract",
    "Environment",
    "Journaled",
    "JournaledDict",
    "JournaledSet",
    "ManualClock",
    "NATIVE_ASSET",
    "TokenBalances",
    "guarded",
    "require_address",
]
