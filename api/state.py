"""Process-wide deployment served by the API.

Built lazily from the environment (``Settings.from_env``) on first use. Tests and
embedding processes can install their own with ``set_deployment``.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from meluri.config import Settings
from meluri.deployment import Deployment, bootstrap_simulated

logger = logging.getLogger(__name__)

_deployment: Optional[Deployment] = None
_lock = threading.Lock()


def get_deployment() -> Deployment:
    """Get or initialize the deployment singleton."""
    global _deployment
    with _lock:
        if _deployment is None:
            settings = Settings.from_env()
            logger.info("Bootstrapping simulated deployment on chain %s", settings.chain_id)
            _deployment = bootstrap_simulated(settings)
        return _deployment


def set_deployment(deployment: Optional[Deployment]) -> None:
    """Replace the deployment singleton (None resets it)."""
    global _deployment
    with _lock:
        _deployment = deployment
