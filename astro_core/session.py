"""
Single-request RPC sessions against Graphene websocket nodes.

A :class:`Session` wraps exactly one websocket connection and lives for the
duration of one orchestration call.  :class:`SessionManager` opens sessions
against the registry's current endpoint, performs the Graphene API
handshake, and on any connect or handshake failure rotates the registry
once before reporting :class:`ConnectivityFailure`.  It never loops over
the endpoint list inside one request; the caller's next request benefits
from the rotation instead.

Wire protocol (JSON over websocket)::

    -> {"id": 1, "method": "call", "params": [1, "login", ["", ""]]}
    <- {"id": 1, "jsonrpc": "2.0", "result": true}
    -> {"id": 2, "method": "call", "params": [1, "database", []]}
    <- {"id": 2, "jsonrpc": "2.0", "result": 2}
    -> {"id": 3, "method": "call", "params": [2, "get_objects", [["2.1.0"], false]]}

Usage:
    manager = SessionManager(registry)
    async with manager.session("bitshares") as session:
        ...
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

import aiohttp

from astro_core.errors import ApiUnavailable, ConnectivityFailure, RemoteCallFailure
from astro_core.registry import EndpointRegistry

logger = logging.getLogger("astro_session")

# APIs requested during the handshake; absent ones are simply not granted.
GRAPHENE_APIS = ("database", "network_broadcast", "history", "orders")

# Graphene login API id is fixed by the protocol.
LOGIN_API_ID = 1

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_CALL_TIMEOUT = 30.0

# Full-account replies can be several MiB.
MAX_MSG_BYTES = 16 * 1024 * 1024

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


class Transport(Protocol):
    async def request(self, payload: dict, timeout: float) -> dict: ...

    async def close(self) -> None: ...


Connector = Callable[[str, float], Awaitable[Transport]]


class WebSocketTransport:
    """aiohttp websocket carrying Graphene JSON-RPC frames."""

    def __init__(self, http: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse):
        self._http = http
        self._ws = ws
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, url: str, timeout: float) -> "WebSocketTransport":
        http = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=timeout),
        )
        try:
            ws = await http.ws_connect(url, max_msg_size=MAX_MSG_BYTES)
        except BaseException:
            await http.close()
            raise
        return cls(http, ws)

    async def request(self, payload: dict, timeout: float) -> dict:
        # One frame in flight at a time; replies are matched by id and any
        # subscription notices in between are skipped.
        async with self._lock:
            await self._ws.send_str(json.dumps(payload))
            while True:
                msg = await asyncio.wait_for(self._ws.receive(), timeout)
                if msg.type == aiohttp.WSMsgType.TEXT:
                    reply = json.loads(msg.data)
                    if isinstance(reply, dict) and reply.get("id") == payload["id"]:
                        return reply
                    continue
                if msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                    aiohttp.WSMsgType.ERROR,
                ):
                    raise ConnectionError(f"websocket closed ({msg.type.name})")

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            await self._http.close()


class Session:
    """One open connection to one endpoint, owned by one call."""

    def __init__(
        self,
        chain: str,
        endpoint: str,
        transport: Transport,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
    ):
        self.chain = chain
        self.endpoint = endpoint
        self.call_timeout = call_timeout
        self.apis: dict[str, int] = {}
        self.closed = False
        self._transport = transport
        self._ids = itertools.count(1)

    async def request(self, api_id: int, method: str, params: list) -> Any:
        """Send one ``call`` frame and return its ``result``."""
        if self.closed:
            raise RemoteCallFailure("session is closed", method=method)
        payload = {"id": next(self._ids), "method": "call", "params": [api_id, method, params]}
        try:
            reply = await self._transport.request(payload, self.call_timeout)
        except TRANSPORT_ERRORS as exc:
            raise RemoteCallFailure(
                f"{method}: transport error: {exc or type(exc).__name__}",
                method=method,
                details={"endpoint": self.endpoint},
            ) from exc
        except ValueError as exc:
            # Non-JSON frame, e.g. an HTML error page from a proxy.
            raise RemoteCallFailure(
                f"{method}: malformed reply: {exc}",
                method=method,
                details={"endpoint": self.endpoint},
            ) from exc

        if not isinstance(reply, dict):
            raise RemoteCallFailure(
                f"{method}: malformed reply: {reply!r:.80}",
                method=method,
                details={"endpoint": self.endpoint},
            )
        if reply.get("error") is not None:
            error = reply["error"]
            text = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RemoteCallFailure(f"{method}: {text}", method=method,
                                    details={"endpoint": self.endpoint, "node_error": text})
        return reply.get("result")

    async def handshake(self) -> None:
        """Log in anonymously and collect the API ids the node grants."""
        if not await self.request(LOGIN_API_ID, "login", ["", ""]):
            raise RemoteCallFailure("login rejected", method="login")
        for api in GRAPHENE_APIS:
            try:
                api_id = await self.request(LOGIN_API_ID, api, [])
            except RemoteCallFailure as exc:
                # Only an error frame means "not granted"; anything else is a broken node.
                if "node_error" not in exc.details:
                    raise
                logger.debug(f"{self.endpoint} does not grant the {api} api: {exc}")
                continue
            if isinstance(api_id, int):
                self.apis[api] = api_id

    def api_id(self, api: str, method: str = "") -> int:
        try:
            return self.apis[api]
        except KeyError:
            raise ApiUnavailable(api, method=method) from None

    async def close(self) -> None:
        """Release the connection.  Idempotent; never raises."""
        if self.closed:
            return
        self.closed = True
        try:
            await self._transport.close()
        except Exception as exc:
            logger.debug(f"error closing session to {self.endpoint}: {exc}")


class SessionManager:
    """Opens and closes request-scoped sessions with rotate-once failover."""

    def __init__(
        self,
        registry: EndpointRegistry,
        connector: Optional[Connector] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
    ):
        self.registry = registry
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._connector: Connector = connector or WebSocketTransport.connect

    async def open(self, chain: str, connect_timeout: Optional[float] = None) -> Session:
        """Connect to the current endpoint for *chain* and run the handshake."""
        endpoint = self.registry.current(chain)
        timeout = connect_timeout or self.connect_timeout

        try:
            transport = await asyncio.wait_for(self._connector(endpoint, timeout), timeout)
        except TRANSPORT_ERRORS as exc:
            raise self._fail(chain, endpoint, exc) from exc

        session = Session(chain, endpoint, transport, self.call_timeout)
        try:
            await asyncio.wait_for(session.handshake(), timeout)
        except Exception as exc:
            await session.close()
            raise self._fail(chain, endpoint, exc) from exc
        except BaseException:
            await session.close()
            raise

        logger.debug(f"{chain}: session open on {endpoint} apis={sorted(session.apis)}")
        return session

    def _fail(self, chain: str, endpoint: str, exc: BaseException) -> ConnectivityFailure:
        reason = str(exc) or type(exc).__name__
        logger.warning(
            f"cannot connect: {reason}", extra={"chain": chain, "endpoint": endpoint},
        )
        self.registry.rotate(chain, failed=endpoint)
        return ConnectivityFailure(
            f"Couldn't connect to {endpoint}: {reason}", endpoint=endpoint, cause=exc,
        )

    async def close(self, session: Session) -> None:
        await session.close()

    @contextlib.asynccontextmanager
    async def session(
        self, chain: str, connect_timeout: Optional[float] = None,
    ) -> AsyncIterator[Session]:
        """Open a session for the body of the ``async with`` block, always closing it."""
        sess = await self.open(chain, connect_timeout)
        try:
            yield sess
        except ApiUnavailable:
            # A node without query capability is as useless as an
            # unreachable one for the next request.
            self.registry.rotate(chain, failed=sess.endpoint)
            raise
        finally:
            await self.close(sess)
