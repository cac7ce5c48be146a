"""
Wiring of the gateway's components from a :class:`GatewayConfig`.

One :class:`Gateway` per process.  The endpoint registry inside it is the
only state shared between requests.
"""

from __future__ import annotations

from typing import Optional

from astro_core.batch import BatchObjectFetcher
from astro_core.cache import CacheStore
from astro_core.composer import AggregateQueryComposer
from astro_core.config import GatewayConfig
from astro_core.history import HistoryClient
from astro_core.queries import QueryService
from astro_core.registry import EndpointRegistry
from astro_core.rpc import RPCInvoker
from astro_core.session import Connector, SessionManager
from astro_core.transaction import TransactionOrchestrator


class Gateway:

    def __init__(self, config: GatewayConfig, connector: Optional[Connector] = None):
        self.config = config
        rpc = config.rpc
        self.registry = EndpointRegistry(config.endpoints())
        self.sessions = SessionManager(
            self.registry,
            connector=connector,
            connect_timeout=rpc.connect_timeout,
            call_timeout=rpc.call_timeout,
        )
        self.invoker = RPCInvoker()
        self.fetcher = BatchObjectFetcher(self.invoker, chunk_size=rpc.chunk_size)
        self.transactions = TransactionOrchestrator(
            self.sessions, self.invoker, expire_seconds=rpc.expire_seconds,
        )
        self.queries = QueryService(
            self.sessions, self.invoker, self.fetcher,
            fast_connect_timeout=rpc.fast_connect_timeout,
        )
        self.composer = AggregateQueryComposer(
            self.sessions, self.invoker, fast_connect_timeout=rpc.fast_connect_timeout,
        )
        self.history = HistoryClient(config.history.url_template, config.history.timeout)
        self.cache = CacheStore(config.cache.data_dir)
