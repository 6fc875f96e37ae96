from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from meluri.persistence.interfaces import AuditEventStore


@dataclass(frozen=True)
class SqlConfig:
    """Connection configuration.

    `database_url` should come from environment (e.g. DATABASE_URL).
    Do not log it.
    """

    database_url: str


class SqlAuditEventStore(AuditEventStore):
    """SQLAlchemy-backed audit event store (PostgreSQL in production, SQLite in tests)."""

    def __init__(self, *, config: SqlConfig) -> None:
        self._config = config
        self._engine: Any | None = None

    def _require_sqlalchemy(self) -> tuple[Any, Any]:
        try:
            from sqlalchemy import create_engine, text  # type: ignore[import-not-found]
        except Exception as exc:  # pragma: no cover
            raise RuntimeError("SQLAlchemy is required for SqlAuditEventStore. Install the project dependencies.") from exc

        return create_engine, text

    def _get_engine(self) -> Any:
        if self._engine is None:
            create_engine, _ = self._require_sqlalchemy()
            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._config.database_url, echo=False, pool_pre_ping=True)
        return self._engine

    def ensure_schema(self) -> None:
        """Create the audit_events table if it does not exist."""
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        stmt = text(
            """
            CREATE TABLE IF NOT EXISTS audit_events (
                event_type VARCHAR(64) NOT NULL,
                message TEXT NOT NULL,
                severity VARCHAR(16) NOT NULL,
                event_time VARCHAR(64) NOT NULL,
                context_json TEXT
            )
            """
        )
        with engine.begin() as conn:
            conn.execute(stmt)

    def log_event(
        self,
        *,
        event_type: str,
        message: str,
        severity: str = "info",
        event_time: datetime | None = None,
        context_json: str | None = None,
    ) -> None:
        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        when = event_time or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)

        stmt = text(
            """
            INSERT INTO audit_events (event_type, message, severity, event_time, context_json)
            VALUES (:event_type, :message, :severity, :event_time, :context_json)
            """
        )
        with engine.begin() as conn:
            conn.execute(
                stmt,
                {
                    "event_type": event_type,
                    "message": message,
                    "severity": severity,
                    "event_time": when.astimezone(timezone.utc).isoformat(),
                    "context_json": context_json,
                },
            )

    def fetch_events(self, *, event_type: str | None = None, limit: int = 100) -> Sequence[dict[str, Any]]:
        if limit <= 0:
            raise ValueError("limit must be positive")

        engine = self._get_engine()
        _, text = self._require_sqlalchemy()

        where = "WHERE event_type = :event_type" if event_type else ""
        stmt = text(
            f"""
            SELECT event_type, message, severity, event_time, context_json
            FROM audit_events
            {where}
            ORDER BY event_time DESC
            LIMIT :limit
            """
        )
        params: dict[str, Any] = {"limit": limit}
        if event_type:
            params["event_type"] = event_type

        with engine.begin() as conn:
            rows = conn.execute(stmt, params).fetchall()

        return [
            {
                "event_type": row[0],
                "message": row[1],
                "severity": row[2],
                "event_time": row[3],
                "context_json": row[4],
            }
            for row in rows
        ]
