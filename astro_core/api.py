"""
REST / HTTP API server for the Astro gateway.

Built on ``aiohttp``.  Every route validates its chain parameter first and
then delegates to exactly one gateway entry point.

Endpoints
---------
GET  /health                                         Liveness + current endpoints
GET  /state/currentNodes/{chain}                     Endpoint preference order
POST /api/deeplink/{chain}/{opType}                  Build a Beet signing request
POST /api/getObjects/{chain}                         Batch object fetch
GET  /api/accountLookup/{chain}/{searchInput}        Account by id or name
GET  /api/blockedAccounts/{chain}                    Committee block list
GET  /api/fullAccount/{chain}/{id}                   Full account details
GET  /api/orderBook/{chain}/{quote}/{base}           Market order book
GET  /api/limitOrders/{chain}/{base}/{quote}         Market limit orders
GET  /api/getAccountBalances/{chain}/{id}            Balances
GET  /api/getAccountLimitOrders/{chain}/{id}         Open orders
GET  /api/getAccountHistory/{chain}/{id}             History (pass-through)
GET  /api/getPortfolio/{chain}/{id}                  Balances + open orders
GET  /api/getMarketHistory/{chain}/{quote}/{base}/{accountID}
GET  /api/getFeaturedMarkets/{chain}                 Top markets
GET  /api/fetchCreditDeals/{chain}/{account}         Credit deals
GET  /cache/...                                      Pre-computed data files

Failures
--------
Every :class:`~astro_core.errors.GatewayError` is rendered as
``{"error": <message>}`` with the exception's HTTP status.

Usage:
    api = APIServer(gateway, host="127.0.0.1", port=8080)
    await api.start()    # call inside existing event loop
    ...
    await api.stop()
"""

from __future__ import annotations

import json
import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from astro_core.chains import validate_chain
from astro_core.errors import GatewayError, ValidationFailure

if TYPE_CHECKING:
    from astro_core.config import ServerConfig
    from astro_core.gateway import Gateway

logger = logging.getLogger("astro_api")


# ═══════════════════════════════════════════════════════════════════
#  Input helpers
# ═══════════════════════════════════════════════════════════════════

def _safe_int(value: Any, name: str = "value") -> int:
    """Convert *value* to int, rejecting non-integer input."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailure(f"{name} must be an integer") from None


async def _json_list(request: web.Request) -> list:
    """
    Read a JSON array body.

    Existing browser clients send the array JSON-encoded a second time
    as a string; both shapes are accepted.
    """
    try:
        body = await request.json()
        if isinstance(body, str):
            body = json.loads(body)
    except ValueError:
        raise ValidationFailure("Invalid JSON body") from None
    if isinstance(body, dict):
        body = list(body.values())
    if not isinstance(body, list) or not body:
        raise ValidationFailure("Missing required fields")
    return body


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Per-IP token-bucket rate limiter."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm  # 0 = unlimited
        # ip -> (tokens, last_refill_timestamp)
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        bucket[0] = min(float(self._rpm), bucket[0] + (now - bucket[1]) * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

def _make_rate_limit_middleware(bucket: _TokenBucket):
    """aiohttp middleware that enforces per-IP rate limits."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler):
        ip = request.remote or "unknown"
        if not bucket.allow(ip):
            raise web.HTTPTooManyRequests(
                text="Rate limit exceeded. Try again later.",
                headers={"Retry-After": "5"},
            )
        return await handler(request)

    return rate_limit_middleware


def _make_cors_middleware(origins: list[str]):
    """aiohttp middleware that adds CORS headers for listed origins only."""

    allowed = set(origins) if origins else set()
    allowed.discard("*")

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        origin = request.headers.get("Origin", "")
        if request.method == "OPTIONS":
            resp = web.Response(status=204)
        else:
            resp = await handler(request)

        if origin in allowed:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
            resp.headers["Access-Control-Max-Age"] = "3600"
        return resp

    return cors_middleware


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Render gateway failures as JSON carrying the failure's message."""
    try:
        return await handler(request)
    except GatewayError as exc:
        if exc.status >= 500:
            logger.error(f"{request.method} {request.path}: {exc}")
        else:
            logger.info(f"{request.method} {request.path}: {exc}")
        body: dict[str, Any] = {"error": str(exc)}
        step = exc.details.get("step")
        if step:
            body["step"] = step
        return web.json_response(body, status=exc.status)


class APIServer:
    """Thin aiohttp wrapper around a :class:`Gateway`."""

    def __init__(
        self,
        gateway: Gateway,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        server_config: ServerConfig | None = None,
    ):
        self.gateway = gateway
        self.host = host
        self.port = port
        self._server_config = server_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        middlewares: list = []
        max_body = 1_048_576

        if self._server_config is not None:
            cfg = self._server_config
            max_body = cfg.max_body_bytes
            if cfg.rate_limit_rpm > 0:
                middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
            if cfg.cors_origins:
                middlewares.append(_make_cors_middleware(cfg.cors_origins))
        middlewares.append(error_middleware)

        app = web.Application(middlewares=middlewares, client_max_size=max_body)
        self._register_routes(app)
        return app

    async def start(self) -> None:
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_get("/state/currentNodes/{chain}", self._current_nodes)
        # Blockchain
        app.router.add_post("/api/deeplink/{chain}/{opType}", self._deeplink)
        app.router.add_post("/api/getObjects/{chain}", self._get_objects)
        app.router.add_get("/api/accountLookup/{chain}/{searchInput}", self._account_lookup)
        app.router.add_get("/api/blockedAccounts/{chain}", self._blocked_accounts)
        app.router.add_get("/api/fullAccount/{chain}/{id}", self._full_account)
        app.router.add_get("/api/orderBook/{chain}/{quote}/{base}", self._order_book)
        app.router.add_get("/api/limitOrders/{chain}/{base}/{quote}", self._market_limit_orders)
        app.router.add_get("/api/getAccountBalances/{chain}/{id}", self._account_balances)
        app.router.add_get("/api/getAccountLimitOrders/{chain}/{id}", self._account_limit_orders)
        app.router.add_get("/api/getAccountHistory/{chain}/{id}", self._account_history)
        app.router.add_get("/api/getPortfolio/{chain}/{id}", self._portfolio)
        app.router.add_get(
            "/api/getMarketHistory/{chain}/{quote}/{base}/{accountID}", self._market_history,
        )
        app.router.add_get("/api/getFeaturedMarkets/{chain}", self._featured_markets)
        app.router.add_get("/api/fetchCreditDeals/{chain}/{account}", self._credit_deals)
        # Cache
        app.router.add_get("/cache/allassets/{chain}", self._cache_all_assets)
        app.router.add_get("/cache/offers/{chain}", self._cache_offers)
        app.router.add_get("/cache/pools/{chain}", self._cache_pools)
        app.router.add_get("/cache/bitassets/{chain}", self._cache_bitassets)
        app.router.add_get("/cache/pool/{chain}/{id}", self._cache_pool)
        app.router.add_get("/cache/dynamic/{chain}/{id}", self._cache_dynamic)
        app.router.add_get("/cache/asset/{chain}/{id}", self._cache_asset)
        app.router.add_post("/cache/assets/{chain}", self._cache_assets)
        app.router.add_get("/cache/feeSchedule/{chain}", self._cache_fee_schedule)
        app.router.add_get("/cache/marketSearch/{chain}", self._cache_market_search)

    @staticmethod
    def _chain(request: web.Request) -> str:
        chain = request.match_info.get("chain", "")
        validate_chain(chain)
        return chain

    # ── state ────────────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        registry = self.gateway.registry
        return web.json_response({
            "ok": True,
            "chains": {chain: registry.current(chain) for chain in registry.chains},
        })

    async def _current_nodes(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(self.gateway.registry.endpoints(chain))

    # ── blockchain handlers ──────────────────────────────────────

    async def _deeplink(self, request: web.Request) -> web.Response:
        """
        POST /api/deeplink/{chain}/{opType}
        Body: JSON array of operation payloads, e.g.
              [{"account": "1.2.1811495", "pool": "1.19.0", ...}]
        """
        chain = self._chain(request)
        op_type = request.match_info["opType"]
        payloads = await _json_list(request)
        link = await self.gateway.transactions.build_signing_request(chain, op_type, payloads)
        return web.json_response({"generatedDeepLink": link})

    async def _get_objects(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        ids = await _json_list(request)
        return web.json_response(await self.gateway.queries.fetch_objects(chain, ids))

    async def _account_lookup(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        search = request.match_info["searchInput"]
        return web.json_response(await self.gateway.queries.account_lookup(chain, search))

    async def _blocked_accounts(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(await self.gateway.queries.blocked_accounts(chain))

    async def _full_account(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(
            await self.gateway.queries.full_account(chain, request.match_info["id"])
        )

    async def _order_book(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        quote = request.match_info["quote"]
        base = request.match_info["base"]
        return web.json_response(await self.gateway.queries.order_book(chain, base, quote))

    async def _market_limit_orders(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        base = request.match_info["base"]
        quote = request.match_info["quote"]
        return web.json_response(
            await self.gateway.queries.market_limit_orders(chain, base, quote)
        )

    async def _account_balances(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(
            await self.gateway.queries.account_balances(chain, request.match_info["id"])
        )

    async def _account_limit_orders(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(
            await self.gateway.queries.account_limit_orders(chain, request.match_info["id"])
        )

    async def _account_history(self, request: web.Request) -> web.Response:
        """GET /api/getAccountHistory/{chain}/{id}?from=0&size=100&from_date=...&sort_by=..."""
        chain = self._chain(request)
        q = request.query
        options: dict[str, Any] = {
            "from_date": q.get("from_date"),
            "to_date": q.get("to_date"),
            "sort_by": q.get("sort_by"),
            "type": q.get("type"),
            "agg_field": q.get("agg_field"),
        }
        if "from" in q:
            options["from_"] = _safe_int(q["from"], "from")
        if "size" in q:
            options["size"] = _safe_int(q["size"], "size")
        history = await self.gateway.history.account_history(
            chain, request.match_info["id"], **options,
        )
        return web.json_response(history)

    async def _portfolio(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(
            await self.gateway.composer.portfolio(chain, request.match_info["id"])
        )

    async def _market_history(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        m = request.match_info
        return web.json_response(
            await self.gateway.queries.market_trades(chain, m["quote"], m["base"], m["accountID"])
        )

    async def _featured_markets(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(await self.gateway.queries.featured_markets(chain))

    async def _credit_deals(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(
            await self.gateway.composer.credit_deals(chain, request.match_info["account"])
        )

    # ── cache handlers ───────────────────────────────────────────

    async def _cache_all_assets(self, request: web.Request) -> web.Response:
        return web.json_response(self.gateway.cache.all_assets(self._chain(request)))

    async def _cache_offers(self, request: web.Request) -> web.Response:
        return web.json_response(self.gateway.cache.offers(self._chain(request)))

    async def _cache_pools(self, request: web.Request) -> web.Response:
        return web.json_response(self.gateway.cache.pools(self._chain(request)))

    async def _cache_bitassets(self, request: web.Request) -> web.Response:
        return web.json_response(self.gateway.cache.min_bitassets(self._chain(request)))

    async def _cache_pool(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(self.gateway.cache.pool(chain, request.match_info["id"]))

    async def _cache_dynamic(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(self.gateway.cache.dynamic_data(chain, request.match_info["id"]))

    async def _cache_asset(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        return web.json_response(self.gateway.cache.asset(chain, request.match_info["id"]))

    async def _cache_assets(self, request: web.Request) -> web.Response:
        chain = self._chain(request)
        ids = await _json_list(request)
        return web.json_response(self.gateway.cache.assets(chain, ids))

    async def _cache_fee_schedule(self, request: web.Request) -> web.Response:
        return web.json_response(self.gateway.cache.fee_schedule(self._chain(request)))

    async def _cache_market_search(self, request: web.Request) -> web.Response:
        return web.json_response(self.gateway.cache.market_search(self._chain(request)))
