"""
Per-chain endpoint registry with rotation.

Each chain owns an ordered list of websocket RPC endpoints; the head is the
preferred node.  When a connection attempt fails the session layer calls
:meth:`EndpointRegistry.rotate`, which moves the head to the back so that
the *next* request tries a different node.  Endpoints are never evicted:
after N rotations of an N-element list the original order is restored.

All reads and rotations for a chain are serialised by a per-chain lock.
Nothing inside the critical section awaits, so the same lock protects
against concurrent asyncio tasks and worker threads alike.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Iterable, Mapping

from astro_core.errors import ConfigurationError, ValidationFailure

logger = logging.getLogger("astro_registry")


class EndpointRegistry:
    """Ordered endpoint lists keyed by chain name."""

    def __init__(self, endpoints: Mapping[str, Iterable[str]]):
        self._lists: dict[str, deque[str]] = {}
        self._locks: dict[str, threading.Lock] = {}
        for chain, urls in endpoints.items():
            ordered = deque(urls)
            if not ordered:
                raise ConfigurationError(f"No RPC endpoints configured for {chain}")
            if len(set(ordered)) != len(ordered):
                raise ConfigurationError(f"Duplicate RPC endpoints configured for {chain}")
            self._lists[chain] = ordered
            self._locks[chain] = threading.Lock()

    @property
    def chains(self) -> list[str]:
        return list(self._lists)

    def _lookup(self, chain: str) -> tuple[deque[str], threading.Lock]:
        try:
            return self._lists[chain], self._locks[chain]
        except KeyError:
            raise ValidationFailure("Invalid chain") from None

    def current(self, chain: str) -> str:
        """Most-preferred endpoint for *chain*."""
        urls, lock = self._lookup(chain)
        with lock:
            return urls[0]

    def rotate(self, chain: str, failed: str | None = None) -> str:
        """
        Treat the current head as failed, move it to the back, return the new head.

        When *failed* is given the rotation only happens if that endpoint is
        still the head: several requests failing against the same node
        rotate the list once, not once per request.
        """
        urls, lock = self._lookup(chain)
        with lock:
            if failed is not None and urls[0] != failed:
                return urls[0]
            dropped = urls[0]
            urls.rotate(-1)
            head = urls[0]
        logger.warning(
            f"rotating away from {dropped}, next endpoint {head}",
            extra={"chain": chain, "endpoint": dropped},
        )
        return head

    def endpoints(self, chain: str) -> list[str]:
        """Snapshot of the current preference order."""
        urls, lock = self._lookup(chain)
        with lock:
            return list(urls)
