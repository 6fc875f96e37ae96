"""Journaled containers for contract state that grows with usage.

Per-holder tables (share balances, allocation records, processed message ids)
record the inverse of each write into the environment's undo log instead of being
copied whole at every savepoint. Contracts must mutate these in place and never
reassign the attribute holding one.
"""

from __future__ import annotations

from collections.abc import MutableMapping, MutableSet
from typing import Any, Callable, Generic, Hashable, Iterator, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

UndoRecorder = Callable[[Callable[[], None]], None]

_MISSING = object()


class Journaled:
    """Marker for containers that restore themselves through the undo log."""

    _record: Optional[UndoRecorder] = None

    def _remember(self, undo: Callable[[], None]) -> None:
        if self._record is not None:
            self._record(undo)


class JournaledDict(Journaled, MutableMapping, Generic[K, V]):
    """Dict whose writes are undone key by key when a savepoint rolls back."""

    def __init__(self, record: Optional[UndoRecorder] = None, initial: Optional[dict[K, V]] = None) -> None:
        self._data: dict[K, V] = dict(initial or {})
        self._record = record

    def __getitem__(self, key: K) -> V:
        return self._data[key]

    def __setitem__(self, key: K, value: V) -> None:
        self._remember_key(key)
        self._data[key] = value

    def __delitem__(self, key: K) -> None:
        if key not in self._data:
            raise KeyError(key)
        self._remember_key(key)
        del self._data[key]

    def __iter__(self) -> Iterator[K]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def get(self, key: K, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, JournaledDict):
            return self._data == other._data
        return self._data == other

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    def _remember_key(self, key: K) -> None:
        old = self._data.get(key, _MISSING)
        data = self._data

        def undo() -> None:
            if old is _MISSING:
                data.pop(key, None)
            else:
                data[key] = old  # type: ignore[assignment]

        self._remember(undo)


class JournaledSet(Journaled, MutableSet, Generic[K]):
    """Set whose insertions and removals are undone when a savepoint rolls back."""

    def __init__(self, record: Optional[UndoRecorder] = None, initial: Optional[set[K]] = None) -> None:
        self._data: set[K] = set(initial or ())
        self._record = record

    def __contains__(self, item: object) -> bool:
        return item in self._data

    def __iter__(self) -> Iterator[K]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def add(self, item: K) -> None:
        if item in self._data:
            return
        data = self._data
        self._remember(lambda: data.discard(item))
        data.add(item)

    def discard(self, item: K) -> None:
        if item not in self._data:
            return
        data = self._data
        self._remember(lambda: data.add(item))
        data.discard(item)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"
