"""Base class for stateful entities living in an Environment."""

from __future__ import annotations

import copy
import functools
from typing import Any, Callable, TypeVar

from meluri.chain.environment import Environment
from meluri.chain.state import Journaled, JournaledDict, JournaledSet
from meluri.errors import ReentrantCall, Unauthorized, ZeroAddress
from meluri.types import ZERO_ADDRESS, Address

F = TypeVar("F", bound=Callable[..., Any])


class Contract:
    """A registered entity with an address and declared, restorable state.

    Subclasses list the attributes that make up their persistent state in
    ``_state_fields``. Scalar and small fields are copied when a guarded method is
    entered; per-holder tables should be ``JournaledDict`` / ``JournaledSet`` built
    with ``journaled_dict()`` / ``journaled_set()``, which undo their own writes and
    are skipped by the copy.
    """

    _state_fields: tuple[str, ...] = ()

    def __init__(self, env: Environment, *, label: str) -> None:
        self.env = env
        self.address: Address = env.new_address(label)
        self._entered = False
        env.register(self)

    def snapshot_state(self) -> dict[str, Any]:
        state: dict[str, Any] = {}
        for name in self._state_fields:
            value = getattr(self, name)
            if not isinstance(value, Journaled):
                state[name] = copy.deepcopy(value)
        return state

    def restore_state(self, state: dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)

    def journaled_dict(self) -> JournaledDict:
        return JournaledDict(self.env.record_undo)

    def journaled_set(self) -> JournaledSet:
        return JournaledSet(self.env.record_undo)


def guarded(method: F) -> F:
    """Mark an externally callable mutator.

    Rejects nested entry into any guarded method of the same contract and runs the
    body inside an atomic savepoint, so a failure leaves no partial writes.
    """

    @functools.wraps(method)
    def wrapper(self: Contract, *args: Any, **kwargs: Any) -> Any:
        if self._entered:
            raise ReentrantCall(f"{type(self).__name__}.{method.__name__}: re-entrant call rejected")
        self._entered = True
        try:
            with self.env.atomic():
                self.env.checkpoint(self)
                return method(self, *args, **kwargs)
        finally:
            self._entered = False

    return wrapper  # type: ignore[return-value]


def require_address(address: Address, name: str) -> None:
    if not address or address == ZERO_ADDRESS:
        raise ZeroAddress(f"{name} must be a non-zero address")


class Administered(Contract):
    """Contract with a single designated administrator identity."""

    def __init__(self, env: Environment, *, admin: Address, label: str) -> None:
        require_address(admin, "admin")
        super().__init__(env, label=label)
        self._admin = admin

    @property
    def admin(self) -> Address:
        return self._admin

    def _only_admin(self, sender: Address) -> None:
        if sender != self._admin:
            raise Unauthorized(f"{sender} is not the administrator of {type(self).__name__}")

    @guarded
    def transfer_admin(self, new_admin: Address, *, sender: Address) -> None:
        """Hand the administrator role to another identity."""
        self._only_admin(sender)
        require_address(new_admin, "new_admin")
        self._admin = new_admin
