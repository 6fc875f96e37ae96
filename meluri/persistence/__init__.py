"""Optional persistence interfaces.

These protocols define the persistence boundary. Implementations can be backed by
any SQL database supported by SQLAlchemy (see meluri.storage).
"""

from .interfaces import AuditEventStore

__all__ = ["AuditEventStore"]
