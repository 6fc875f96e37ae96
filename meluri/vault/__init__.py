"""Pooled ledger (vault) with share-based accounting."""

from .ledger import PRECISION, Vault

__all__ = [
    "PRECISION",
    "Vault",
]
