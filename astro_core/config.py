"""
TOML-based configuration for the Astro gateway.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from astro_core.config import load_config
    cfg = load_config("astro.toml")

Example file::

    [server]
    port = 8080
    cors_origins = ["http://localhost:4321"]

    [chains.bitshares]
    nodes = ["wss://node.xbts.io/ws", "wss://api.bitshares.dev/ws"]
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from astro_core.chains import CHAINS
from astro_core.errors import ConfigurationError


@dataclass
class ServerConfig:
    """HTTP listener settings."""
    host: str = "127.0.0.1"
    port: int = 8080
    rate_limit_rpm: int = 120          # max requests per minute per IP (0 = unlimited)
    cors_origins: list[str] = field(default_factory=list)  # allowed CORS origins (empty = no CORS)
    max_body_bytes: int = 1_048_576    # 1 MiB max request body


@dataclass
class RPCConfig:
    """Node session settings."""
    connect_timeout: float = 10.0
    fast_connect_timeout: float = 4.0  # order book / portfolio
    call_timeout: float = 30.0
    chunk_size: int = 50
    expire_seconds: int = 7200


@dataclass
class ChainConfig:
    """Ordered node list for one chain; first entry is preferred."""
    nodes: list[str] = field(default_factory=list)


def _default_chains() -> dict[str, ChainConfig]:
    return {name: ChainConfig(nodes=list(info.default_nodes)) for name, info in CHAINS.items()}


@dataclass
class HistoryConfig:
    """External account-history service."""
    url_template: str = "https://{host}/openexplorer/es/account_history"
    timeout: float = 15.0


@dataclass
class CacheConfig:
    """Pre-computed data files."""
    data_dir: str = "data"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class GatewayConfig:
    """Top-level configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    rpc: RPCConfig = field(default_factory=RPCConfig)
    chains: dict[str, ChainConfig] = field(default_factory=_default_chains)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def endpoints(self) -> dict[str, list[str]]:
        return {name: list(chain.nodes) for name, chain in self.chains.items()}


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def load_config(path: str | None = None) -> GatewayConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        ASTRO_HOST                     -> server.host
        ASTRO_PORT                     -> server.port
        ASTRO_CORS_ORIGINS             -> server.cors_origins  (comma-separated)
        ASTRO_LOG_LEVEL                -> logging.level
        ASTRO_LOG_FMT                  -> logging.format
        ASTRO_CACHE_DIR                -> cache.data_dir
        ASTRO_BITSHARES_NODES          -> chains.bitshares.nodes (comma-separated)
        ASTRO_BITSHARES_TESTNET_NODES  -> chains.bitshares_testnet.nodes
    """
    cfg = GatewayConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("server", cfg.server),
                ("rpc", cfg.rpc),
                ("history", cfg.history),
                ("cache", cfg.cache),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])
            for chain_name, raw in data.get("chains", {}).items():
                if chain_name not in CHAINS:
                    raise ConfigurationError(f"Unknown chain in config: {chain_name}")
                _merge(cfg.chains[chain_name], raw)
                nodes = cfg.chains[chain_name].nodes
                if not isinstance(nodes, list) or not all(
                    isinstance(n, str) and n for n in nodes
                ):
                    raise ConfigurationError(
                        f"chains.{chain_name}.nodes must be an array of endpoint URLs"
                    )

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("ASTRO_HOST"):
        cfg.server.host = v
    if v := os.environ.get("ASTRO_PORT"):
        cfg.server.port = int(v)
    if v := os.environ.get("ASTRO_CORS_ORIGINS"):
        cfg.server.cors_origins = _split(v)
    if v := os.environ.get("ASTRO_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("ASTRO_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("ASTRO_CACHE_DIR"):
        cfg.cache.data_dir = v
    for chain_name in CHAINS:
        if v := os.environ.get(f"ASTRO_{chain_name.upper()}_NODES"):
            cfg.chains[chain_name].nodes = _split(v)

    return cfg
