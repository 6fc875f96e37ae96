"""Structured audit events for off-chain reconciliation."""

from .events import AuditEvent, AuditLogger, EventType, Severity

__all__ = [
    "AuditEvent",
    "AuditLogger",
    "EventType",
    "Severity",
]
