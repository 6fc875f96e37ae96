#!/usr/bin/env python
"""Simulate a deposit, allocation and cross-domain route between two domains.

Deploys a simulated vault/router pair on two chains joined by one loopback
bridge, then:
  1. deposits on both chains
  2. allocates part of the source pool into its lending strategy
  3. routes an allocation instruction to the destination chain
  4. delivers the bridge message and prints both ledgers

Usage:
    python scripts/simulate_flow.py [--deposit 1000] [--allocate 400] [--route 250] [--json]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from meluri.chain import ManualClock
from meluri.config import Settings
from meluri.deployment import Deployment, bootstrap_simulated, link_domains
from meluri.router import BridgeNetwork
from meluri.units import from_units, to_units

ASSET_DECIMALS = 6


def _summary(deployment: Deployment) -> dict:
    snapshot = deployment.vault.snapshot()
    return {
        "chain_id": deployment.chain_id,
        "total_assets": str(from_units(snapshot.total_assets, ASSET_DECIMALS)),
        "total_shares": snapshot.total_shares,
        "idle": str(from_units(snapshot.idle_balance, ASSET_DECIMALS)),
        "allocations": {a.strategy: str(from_units(a.allocation, ASSET_DECIMALS)) for a in snapshot.allocations},
        "processed_messages": deployment.router.processed_count,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate a two-domain vault and router flow")
    parser.add_argument("--src-chain", type=int, default=1, help="Source chain id (default: 1)")
    parser.add_argument("--dst-chain", type=int, default=2, help="Destination chain id (default: 2)")
    parser.add_argument("--deposit", type=Decimal, default=Decimal("1000"), help="Deposit per chain (default: 1000)")
    parser.add_argument("--allocate", type=Decimal, default=Decimal("400"), help="Local allocation (default: 400)")
    parser.add_argument("--route", type=Decimal, default=Decimal("250"), help="Cross-chain amount (default: 250)")
    parser.add_argument("--fee", type=Decimal, default=Decimal("0.01"), help="Bridge fee in native units")
    parser.add_argument("--json", action="store_true", help="Print audit events as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.src_chain == args.dst_chain:
        print("Error: source and destination chains must differ", file=sys.stderr)
        return 1

    clock = ManualClock()
    network = BridgeNetwork("loopback")
    src = bootstrap_simulated(Settings(chain_id=args.src_chain), network=network, clock=clock)
    dst = bootstrap_simulated(Settings(chain_id=args.dst_chain), network=network, clock=clock)
    fee = to_units(args.fee)
    link_domains(src, dst, network="loopback", estimated_cost=fee, estimated_time_seconds=300, security_score=90)

    depositor = "0x" + "d" * 40
    amount = to_units(args.deposit, ASSET_DECIMALS)
    for deployment in (src, dst):
        deployment.fund(depositor, amount)
        deployment.vault.deposit(deployment.vault.asset, amount, sender=depositor)

    lending = src.strategies["lending"]
    src.vault.allocate(lending.address, to_units(args.allocate, ASSET_DECIMALS), sender=src.admin)

    target = dst.strategies["tokenized"]
    intent = src.router.route(
        src.chain_id,
        dst.chain_id,
        target.address,
        to_units(args.route, ASSET_DECIMALS),
        fee=fee,
        sender=src.admin,
    )
    print(f"Routed via {intent.bridge} (fee {from_units(intent.fee)}), transfer {intent.transfer_id}")

    clock.advance(300)
    for result in network.deliver():
        status = "delivered" if result.delivered else f"failed: {result.error}"
        print(f"  {result.envelope.transfer_id}: {status}")

    print(json.dumps({"source": _summary(src), "destination": _summary(dst)}, indent=2))
    if args.json:
        events = src.audit.to_json_list() + dst.audit.to_json_list()
        print(json.dumps(events, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
