#!/usr/bin/env python3
"""Run the FastAPI read-only API server.

This script starts the uvicorn server for the read-only vault/router API. The
deployment it serves is a simulated one, built from the environment on the
first request.

Usage:
    python scripts/run_api.py [--host HOST] [--port PORT] [--reload]

Environment:
    MELURI_CHAIN_ID - Chain id of the served domain (default: 1)
    DATABASE_URL - Optional. Persist audit events via SQLAlchemy.
    LOG_LEVEL - Logging level (default: INFO)

Examples:
    python scripts/run_api.py
    python scripts/run_api.py --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Run the read-only vault/router API server.")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    args = parser.parse_args()

    from meluri.config import Settings

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting FastAPI server on {args.host}:{args.port} (chain {settings.chain_id})")
    print("Endpoints:")
    print(f"  - GET http://{args.host}:{args.port}/system/health")
    print(f"  - GET http://{args.host}:{args.port}/vault")
    print(f"  - GET http://{args.host}:{args.port}/router/bridges")
    print(f"  - GET http://{args.host}:{args.port}/audit/events")
    print()

    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())
