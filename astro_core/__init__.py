"""
Astro - an HTTP gateway in front of BitShares RPC nodes.

Key features:
- Ranked per-chain node lists with rotate-on-failure
- Request-scoped websocket sessions
- Chunked object fetching
- Unsigned transaction building wrapped in Beet signing deep links
- Compound portfolio queries
"""

__version__ = "0.3.0"
__all__ = [
    "chains",
    "config",
    "logging_config",
    "operations",
    "errors",
    "registry",
    "session",
    "rpc",
    "batch",
    "transaction",
    "composer",
    "queries",
    "history",
    "cache",
    "gateway",
    "api",
]
