"""Configuration for the ledger, router and deployment.

Defaults match the reference deployment; every value can be overridden from the
environment via ``Settings.from_env``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, get_args

from meluri.types import MessageIdScheme

DEFAULT_MAX_STRATEGIES = 20
DEFAULT_MAX_BRIDGES = 10
DEFAULT_NATIVE_DECIMALS = 18


@dataclass(frozen=True)
class VaultConfig:
    """Ledger limits."""

    max_strategies: int = DEFAULT_MAX_STRATEGIES

    def __post_init__(self) -> None:
        if self.max_strategies <= 0:
            raise ValueError("max_strategies must be positive")


@dataclass(frozen=True)
class RouterConfig:
    """Router limits and message identifier derivation.

    Attributes:
        max_bridges: Cap on globally registered bridges (and on quotes per chain pair)
        native_decimals: Decimals of the native fee asset; bridge costs are scored per whole unit
        message_id_scheme: "timestamp" binds the reception time into the inbound message id
            (reference behaviour), "sequence" binds the bridge's per-route sequence number
    """

    max_bridges: int = DEFAULT_MAX_BRIDGES
    native_decimals: int = DEFAULT_NATIVE_DECIMALS
    message_id_scheme: MessageIdScheme = "timestamp"

    def __post_init__(self) -> None:
        if self.max_bridges <= 0:
            raise ValueError("max_bridges must be positive")
        if self.native_decimals < 0:
            raise ValueError("native_decimals must be >= 0")
        if self.message_id_scheme not in get_args(MessageIdScheme):
            raise ValueError(f"unknown message_id_scheme: {self.message_id_scheme}")


@dataclass(frozen=True)
class Settings:
    """Process-level settings for a deployment."""

    chain_id: int = 1
    database_url: Optional[str] = None
    log_level: str = "INFO"
    vault: VaultConfig = field(default_factory=VaultConfig)
    router: RouterConfig = field(default_factory=RouterConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from environment variables.

        Recognised variables: MELURI_CHAIN_ID, MELURI_MAX_STRATEGIES, MELURI_MAX_BRIDGES,
        MELURI_NATIVE_DECIMALS, MELURI_MESSAGE_ID_SCHEME, DATABASE_URL, LOG_LEVEL.

        Raises:
            ValueError: If a variable is present but malformed
        """
        env = os.environ if environ is None else environ

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None

        chain_id = _int("MELURI_CHAIN_ID", 1)
        if chain_id <= 0:
            raise ValueError("MELURI_CHAIN_ID must be positive")

        vault = VaultConfig(max_strategies=_int("MELURI_MAX_STRATEGIES", DEFAULT_MAX_STRATEGIES))
        router = RouterConfig(
            max_bridges=_int("MELURI_MAX_BRIDGES", DEFAULT_MAX_BRIDGES),
            native_decimals=_int("MELURI_NATIVE_DECIMALS", DEFAULT_NATIVE_DECIMALS),
            message_id_scheme=env.get("MELURI_MESSAGE_ID_SCHEME", "timestamp"),  # type: ignore[arg-type]
        )

        return cls(
            chain_id=chain_id,
            database_url=env.get("DATABASE_URL") or None,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            vault=vault,
            router=router,
        )
