"""Audit log for ledger, router and adapter activity.

Provides a structured event format for every externally observable action
(deposits, allocations, routing intents, message receipts, pauses...) carrying the
full parameter set, for off-chain reconciliation.

All timestamps use timezone-aware UTC datetimes for consistency.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal, Optional

if TYPE_CHECKING:
    from meluri.persistence.interfaces import AuditEventStore

logger = logging.getLogger(__name__)


EventType = Literal[
    # Ledger
    "deposit",
    "withdraw",
    "allocate",
    "deallocate",
    "strategy_withdraw_failed",
    "emergency_exit",
    "emergency_withdraw_failed",
    "pause",
    "unpause",
    "asset_added",
    "asset_removed",
    "router_set",
    "token_swept",
    # Router
    "bridge_added",
    "bridge_removed",
    "quote_added",
    "quotes_cleared",
    "bridge_selected",
    "routing_intent",
    "route",
    "message_received",
    "rebalance_exit",
    "rebalance_enter",
    "delivery_failed",
    # Adapter
    "adapter_deposit",
    "adapter_withdraw",
    "adapter_emergency_withdraw",
    "error",
]

Severity = Literal["debug", "info", "warning", "error"]

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: EventType
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: Severity = "info"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEvent:
        """Create from dictionary."""
        data = dict(data)
        timestamp_value = data.get("timestamp")
        if isinstance(timestamp_value, str):
            ts = timestamp_value
            # Normalize common ISO 8601 variant with trailing 'Z' (UTC)
            if ts.endswith("Z"):
                ts = ts[:-1] + "+00:00"
            try:
                data["timestamp"] = datetime.fromisoformat(ts)
            except ValueError:
                data.pop("timestamp", None)
        return cls(**data)


class AuditLogger:
    """In-memory audit log, optionally mirrored to a persistent store.

    The logger follows transaction boundaries when attached to an Environment:
    events recorded by a reverted operation are discarded, and events reach the
    store only once the outermost operation commits. Outside an environment,
    call ``commit()`` to flush to the store.
    """

    def __init__(self, store: Optional[AuditEventStore] = None) -> None:
        self.events: list[AuditEvent] = []
        self._store = store
        self._persisted = 0

    def log(self, event: AuditEvent) -> None:
        """Record an audit event."""
        self.events.append(event)
        logger.log(_LOG_LEVELS[event.severity], "%s: %s", event.event_type, event.message)

    # ========== Journal hooks ==========

    def mark(self) -> int:
        return len(self.events)

    def rollback(self, mark: int) -> None:
        del self.events[max(mark, self._persisted) :]

    def commit(self) -> None:
        """Flush events not yet persisted to the configured store.

        Runs after the operation has already committed, so store failures are
        logged and never raised. Events the store rejected stay pending and are
        retried, in order, on the next commit.
        """
        if self._store is None:
            self._persisted = len(self.events)
            return
        while self._persisted < len(self.events):
            event = self.events[self._persisted]
            try:
                self._store.log_event(
                    event_type=event.event_type,
                    message=event.message,
                    severity=event.severity,
                    event_time=event.timestamp,
                    context_json=json.dumps(event.context, sort_keys=True, default=str),
                )
            except Exception:
                logger.exception(
                    "Failed to persist audit event %s; %d event(s) left pending",
                    event.event_type,
                    len(self.events) - self._persisted,
                )
                return
            self._persisted += 1

    @property
    def pending(self) -> int:
        """Committed events not yet written to the store."""
        return len(self.events) - self._persisted

    def record(
        self,
        event_type: EventType,
        message: str,
        *,
        severity: Severity = "info",
        **context: Any,
    ) -> AuditEvent:
        """Build and record an event from keyword context."""
        event = AuditEvent(event_type=event_type, message=message, severity=severity, context=context)
        self.log(event)
        return event

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        severity: Optional[Severity] = None,
        contract: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Get filtered audit events."""
        return [
            e
            for e in self.events
            if (event_type is None or e.event_type == event_type)
            and (severity is None or e.severity == severity)
            and (contract is None or e.context.get("contract") == contract)
        ]

    def clear(self) -> None:
        """Clear all events (for testing)."""
        self.events.clear()
        self._persisted = 0

    def to_json_list(self) -> list[dict[str, Any]]:
        """Export all events as JSON-serializable list."""
        return [event.to_dict() for event in self.events]
