"""Health check logic for system components."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Literal, Optional

from sqlalchemy import create_engine, inspect, text

from meluri.vault import Vault

# Module-level engine singleton to avoid creating engines on every request
_engine_cache: dict[str, Any] = {}


@dataclass
class HealthStatus:
    """Health status for a component."""

    status: Literal["ok", "degraded", "error"]
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    details: Optional[dict] = None


class HealthChecker:
    """Health checker for the audit database and the ledger invariants."""

    def __init__(self, database_url: Optional[str] = None, vault: Optional[Vault] = None):
        """Initialize health checker.

        Args:
            database_url: Database connection URL. If not provided, reads from DATABASE_URL env var.
            vault: Ledger whose invariants are checked
        """
        self.database_url = database_url or os.environ.get("DATABASE_URL")
        self.vault = vault

    def _get_engine(self):
        """Get or create a cached database engine."""
        if not self.database_url:
            return None

        if self.database_url not in _engine_cache:
            _engine_cache[self.database_url] = create_engine(self.database_url, echo=False, pool_pre_ping=True)
        return _engine_cache[self.database_url]

    def check_database(self) -> HealthStatus:
        """Check audit database connectivity, latency and the audit_events table.

        The database only backs the optional audit store, so a missing URL or a
        missing table is reported as degraded rather than an error.
        """
        if not self.database_url:
            return HealthStatus(
                status="degraded",
                message="DATABASE_URL not configured (audit events kept in memory)",
            )

        try:
            engine = self._get_engine()
            if not engine:
                return HealthStatus(status="error", message="Failed to create database engine")

            started = time.perf_counter()
            with engine.begin() as conn:
                conn.execute(text("SELECT 1"))
            latency_ms = round((time.perf_counter() - started) * 1000, 2)

            if not inspect(engine).has_table("audit_events"):
                return HealthStatus(
                    status="degraded",
                    latency_ms=latency_ms,
                    message="Database connected but audit_events table is missing",
                )
            with engine.begin() as conn:
                persisted = conn.execute(text("SELECT COUNT(*) FROM audit_events")).scalar()
        except Exception as exc:
            return HealthStatus(
                status="error",
                message=f"Database error: {type(exc).__name__}",
                details={"error": str(exc)},
            )

        return HealthStatus(
            status="ok",
            latency_ms=latency_ms,
            message="Database connected",
            details={"audit_events": persisted},
        )

    def check_ledger(self) -> HealthStatus:
        """Check share conservation, allocation sign and pause state."""
        if self.vault is None:
            return HealthStatus(status="error", message="No ledger deployed")

        vault = self.vault
        share_sum = sum(vault.share_holders().values())
        negative = [s for s in vault.active_strategies if vault.allocation(s) < 0]
        details = {
            "total_shares": vault.total_shares,
            "share_sum": share_sum,
            "total_assets": vault.total_assets(),
            "active_strategies": len(vault.active_strategies),
            "paused": vault.paused,
        }

        if share_sum != vault.total_shares:
            return HealthStatus(status="error", message="Share balances do not sum to total shares", details=details)
        if negative:
            details["negative_allocations"] = negative
            return HealthStatus(status="error", message="Negative strategy allocation recorded", details=details)
        if vault.total_shares > 0 and vault.total_assets() == 0:
            return HealthStatus(status="error", message="Outstanding shares with no assets", details=details)
        if vault.paused:
            return HealthStatus(status="degraded", message="Vault is paused", details=details)
        return HealthStatus(status="ok", message="Ledger invariants hold", details=details)

    def check_all(self) -> dict[str, HealthStatus]:
        """Check all system components."""
        return {
            "database": self.check_database(),
            "ledger": self.check_ledger(),
        }
