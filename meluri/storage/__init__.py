"""Storage implementations of the persistence interfaces.

Keeping implementations separate from the interfaces keeps the core free of a
hard database dependency at import time.
"""

from .sql import SqlAuditEventStore, SqlConfig

__all__ = [
    "SqlAuditEventStore",
    "SqlConfig",
]
