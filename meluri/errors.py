"""Exception taxonomy for the ledger, router and strategy adapters.

Three families, checked in this order by every mutator:

- ValidationError: malformed input (zero amount, zero address, unsupported asset...)
- AuthorizationError: caller lacks the required role
- StateError: input is well-formed but current state forbids the operation

Validation errors also subclass ``ValueError`` and authorization errors subclass
``PermissionError`` so callers can use the builtin hierarchy.
"""

from __future__ import annotations


class MeluriError(Exception):
    """Root of all core errors."""


class ValidationError(MeluriError, ValueError):
    pass


class AuthorizationError(MeluriError, PermissionError):
    pass


class StateError(MeluriError):
    pass


# ========== Validation ==========


class ZeroAmount(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class ZeroAddress(ValidationError):
    pass


class LengthMismatch(ValidationError):
    pass


class UnsupportedAsset(ValidationError):
    pass


class InvalidAsset(ValidationError):
    pass


class UnsupportedChain(ValidationError):
    pass


class UnsupportedBridge(ValidationError):
    pass


class InvalidQuote(ValidationError):
    pass


class InsufficientFee(ValidationError):
    pass


class MalformedPayload(ValidationError):
    pass


class UnknownContract(ValidationError):
    pass


class InvalidStrategy(ValidationError):
    pass


# ========== Authorization ==========


class Unauthorized(AuthorizationError):
    pass


# ========== State ==========


class InsufficientShares(StateError):
    pass


class InsufficientBalance(StateError):
    pass


class DuplicateMessage(StateError):
    pass


class CapacityExceeded(StateError):
    pass


class VaultPaused(StateError):
    pass


class VaultNotPaused(StateError):
    pass


class NoBridgeAvailable(StateError):
    pass


class BridgeAlreadySupported(StateError):
    pass


class InsolventVault(StateError):
    pass


class ReentrantCall(StateError):
    pass
