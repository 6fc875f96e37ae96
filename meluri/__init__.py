"""Meluri core: pooled vault accounting and cross-domain fund routing.

This package contains the core building blocks:

- chain: in-memory execution environment (custody table, clock, atomic savepoints)
- strategies: strategy adapter contract and protocol-specific variants
- vault: share-based pooled ledger with strategy allocation bookkeeping
- router: bridge catalog, optimal-bridge scoring, inbound message dedup, rebalancing
- audit: structured audit events for off-chain reconciliation
- persistence / storage: optional audit event persistence (SQLAlchemy)
- health: ledger invariant and database checks
"""
