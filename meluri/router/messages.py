"""Cross-domain payload codec and message identifiers."""

from __future__ import annotations

import json
from typing import NamedTuple, Optional

from meluri.chain import Environment
from meluri.errors import MalformedPayload
from meluri.types import ZERO_ADDRESS, Address, Amount, ChainId, MessageIdScheme


class AllocationPayload(NamedTuple):
    strategy: Address
    amount: Amount


def encode_payload(strategy: Address, amount: Amount) -> bytes:
    """Canonical JSON encoding of an allocation instruction."""
    return json.dumps({"amount": amount, "strategy": strategy}, sort_keys=True, separators=(",", ":")).encode()


def decode_payload(payload: bytes) -> AllocationPayload:
    """Decode an allocation instruction.

    Raises:
        MalformedPayload: If the payload is not a JSON object with a non-zero
            ``strategy`` string and a positive integer ``amount``
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise MalformedPayload(f"payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedPayload("payload must be a JSON object")
    strategy = data.get("strategy")
    amount = data.get("amount")
    if not isinstance(strategy, str) or not strategy or strategy == ZERO_ADDRESS:
        raise MalformedPayload("payload strategy must be a non-zero address")
    # bool is an int subclass
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise MalformedPayload("payload amount must be a positive integer")
    return AllocationPayload(strategy=strategy, amount=amount)


def derive_message_id(
    src_chain: ChainId,
    payload: bytes,
    *,
    scheme: MessageIdScheme,
    timestamp: int,
    sequence: Optional[int] = None,
) -> str:
    """Identifier used for at-most-once processing of an inbound message.

    "timestamp" hashes (src_chain, payload, reception time), so identical payloads
    received within the same second collide. "sequence" hashes the sender's
    per-route sequence number instead and falls back to the timestamp when the
    transport does not supply one.
    """
    if scheme == "sequence" and sequence is not None:
        return Environment.hash(src_chain, payload, "seq", sequence)
    return Environment.hash(src_chain, payload, timestamp)
