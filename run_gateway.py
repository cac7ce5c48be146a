#!/usr/bin/env python3
"""
Astro Gateway Runner — starts the HTTP gateway in front of BitShares nodes.

Usage:
    python run_gateway.py --config astro.toml
    python run_gateway.py --host 0.0.0.0 --port 8080 --log-level DEBUG

Environment variables (alternative to flags):
    ASTRO_HOST, ASTRO_PORT, ASTRO_LOG_LEVEL, ASTRO_LOG_FMT, ASTRO_CACHE_DIR,
    ASTRO_BITSHARES_NODES, ASTRO_BITSHARES_TESTNET_NODES
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from astro_core.api import APIServer  # noqa: E402
from astro_core.config import load_config  # noqa: E402
from astro_core.errors import ConfigurationError  # noqa: E402
from astro_core.gateway import Gateway  # noqa: E402
from astro_core.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger("gateway")


def parse_args(argv: list[str] | None = None):
    p = argparse.ArgumentParser(description="Astro BitShares gateway")
    p.add_argument("--config", default=None, help="Path to astro.toml config file")
    p.add_argument("--host", default=None, help="Listen host")
    p.add_argument("--port", type=int, default=None, help="Listen port")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    p.add_argument("--log-format", choices=("human", "json"), default=None)
    p.add_argument("--cache-dir", default=None, help="Directory holding cached chain data")
    return p.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Load config (TOML + env overrides), then CLI flags on top
    cfg = load_config(args.config)
    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    if args.log_format:
        cfg.logging.format = args.log_format
    if args.cache_dir:
        cfg.cache.data_dir = args.cache_dir

    try:
        setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)
        gateway = Gateway(cfg)
    except ConfigurationError as exc:
        logger.critical(f"invalid configuration: {exc}")
        return 2

    for chain in gateway.registry.chains:
        logger.info(f"{chain}: {len(gateway.registry.endpoints(chain))} endpoints, "
                    f"preferred {gateway.registry.current(chain)}")

    api = APIServer(gateway, cfg.server.host, cfg.server.port, server_config=cfg.server)
    await api.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        logger.info("shutting down")
        await api.stop()
    return 0


def main_sync() -> None:
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    main_sync()
