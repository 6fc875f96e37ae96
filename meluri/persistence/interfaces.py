from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, Sequence


class AuditEventStore(Protocol):
    def log_event(
        self,
        *,
        event_type: str,
        message: str,
        severity: str = "info",
        event_time: datetime | None = None,
        context_json: str | None = None,
    ) -> None:
        """Persist an audit event (deposits, routing intents, failures, etc.)."""

    def fetch_events(self, *, event_type: str | None = None, limit: int = 100) -> Sequence[dict[str, Any]]:
        """Fetch the most recent persisted events, newest first."""
