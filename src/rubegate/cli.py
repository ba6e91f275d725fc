# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""``rube-gate`` command — serve the site behind the edge pipeline with uvicorn."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from contextlib import suppress

from .config import GateConfig
from .errors import ConfigError

logger = logging.getLogger("rubegate.cli")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rube-gate", description="Rube Club edge gateway")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit JSON log lines (default when VERCEL_ENV=production)",
    )
    parser.add_argument("--log-level", default="INFO", help="Root log level (default: INFO)")
    args = parser.parse_args(argv)

    # Env var overrides
    env_host = os.environ.get("RUBE_HOST", "").strip()
    if env_host:
        args.host = env_host

    env_port = os.environ.get("RUBE_PORT", "").strip()
    if env_port:
        with suppress(ValueError):
            args.port = int(env_port)

    env_json = os.environ.get("RUBE_JSON_LOGS", "").strip().lower()
    args.json_logs = args.json_logs or env_json in ("1", "true", "yes")

    return args


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``rube-gate`` console script."""
    args = _parse_args(argv if argv is not None else sys.argv[1:])

    try:
        config = GateConfig.from_env()
    except ConfigError as e:
        print(f"rube-gate: {e}", file=sys.stderr)
        sys.exit(2)

    # Configure structlog BEFORE any log output
    from .logging_config import configure as configure_logging

    configure_logging(json_output=args.json_logs or config.is_production, level=args.log_level)

    from .app import create_app

    try:
        app = create_app(config)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)

    logger.info(
        "Starting rube-gate (host=%s, port=%d, canonical=%s, env=%s, blocklist=%s)",
        args.host,
        args.port,
        config.canonical_host,
        config.environment,
        config.blocklist_enabled,
    )

    import uvicorn

    # log_config=None keeps the structlog handlers installed above
    uvicorn.run(app, host=args.host, port=args.port, log_config=None, proxy_headers=False)


if __name__ == "__main__":
    main()
