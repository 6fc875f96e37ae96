"""Cross-domain fund router.

Bridge catalog and scoring, payload codec, bridge transport and the Router
contract itself.
"""

from .catalog import BridgeCatalog
from .messages import AllocationPayload, decode_payload, derive_message_id, encode_payload
from .router import Router
from .scoring import (
    COST_WEIGHT,
    REFERENCE_TIME_SECONDS,
    SCORE_SCALE,
    SECURITY_WEIGHT,
    SPEED_WEIGHT,
    score_quote,
    score_quotes,
    select_best_quote,
)
from .transport import BridgeEndpoint, BridgeNetwork, BridgeTransport, DeliveryResult, Envelope

__all__ = [
    # Router
    "Router",
    "BridgeCatalog",
    # Scoring
    "COST_WEIGHT",
    "SPEED_WEIGHT",
    "SECURITY_WEIGHT",
    "REFERENCE_TIME_SECONDS",
    "SCORE_SCALE",
    "score_quote",
    "score_quotes",
    "select_best_quote",
    # Messages
    "AllocationPayload",
    "encode_payload",
    "decode_payload",
    "derive_message_id",
    # Transport
    "BridgeTransport",
    "BridgeEndpoint",
    "BridgeNetwork",
    "DeliveryResult",
    "Envelope",
]
