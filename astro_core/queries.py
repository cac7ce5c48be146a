"""
Single-session blockchain queries.

Each public coroutine validates its input, opens one session through the
:class:`SessionManager`, issues its call(s) and closes the session before
returning.  An empty answer is turned into :class:`NotFound` where the
query names one specific thing (an account, its balances); list queries
such as market orders may legitimately be empty.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from astro_core.batch import BatchObjectFetcher
from astro_core.chains import BITSHARES, validate_asset_ids, validate_chain
from astro_core.errors import NotFound, ValidationFailure
from astro_core.rpc import RPCInvoker
from astro_core.session import SessionManager

logger = logging.getLogger("astro_queries")

BLOCKLIST_ACCOUNT = "committee-blacklist-manager"
ORDER_BOOK_DEPTH = 50
ORDER_LIMIT = 100
TRADE_HISTORY_LIMIT = 100
TOP_MARKETS_LIMIT = 100
EPOCH = "1970-01-01T00:00:00"


def _require(*values: Any) -> None:
    if not all(values):
        raise ValidationFailure("Missing required fields")


class QueryService:

    def __init__(
        self,
        sessions: SessionManager,
        invoker: Optional[RPCInvoker] = None,
        fetcher: Optional[BatchObjectFetcher] = None,
        fast_connect_timeout: Optional[float] = None,
    ):
        self.sessions = sessions
        self.invoker = invoker or RPCInvoker()
        self.fetcher = fetcher or BatchObjectFetcher(self.invoker)
        # Market views are polled by the UI; fail over sooner on them.
        self.fast_connect_timeout = fast_connect_timeout

    async def _call(
        self, chain: str, method: str, params: list, connect_timeout: Optional[float] = None,
    ) -> Any:
        async with self.sessions.session(chain, connect_timeout) as session:
            return await self.invoker.call(session, method, params)

    # ── objects ──────────────────────────────────────────────────

    async def fetch_objects(self, chain: str, ids: Sequence[str]) -> list[dict]:
        validate_chain(chain)
        if not isinstance(ids, (list, tuple)) or not ids:
            raise ValidationFailure("Missing required fields")
        if not all(isinstance(i, str) and i for i in ids):
            raise ValidationFailure("Object ids must be non-empty strings")
        async with self.sessions.session(chain) as session:
            return await self.fetcher.fetch_objects(session, list(ids))

    # ── accounts ─────────────────────────────────────────────────

    async def account_lookup(self, chain: str, search: str) -> dict:
        """Resolve a ``1.2.x`` id or an account name to its account object."""
        validate_chain(chain)
        _require(search)
        accounts = await self._call(chain, "get_accounts", [[search]])
        if not accounts or accounts[0] is None:
            raise NotFound("Couldn't retrieve account")
        return accounts[0]

    async def blocked_accounts(self, chain: str) -> dict:
        """Committee-maintained list of accounts users should be warned about."""
        validate_chain(chain)
        if chain != BITSHARES:
            raise ValidationFailure("Invalid chain")
        accounts = await self._call(chain, "get_accounts", [[BLOCKLIST_ACCOUNT]])
        if not accounts or accounts[0] is None:
            raise NotFound("Committee account details not found")
        return accounts[0]

    async def full_account(self, chain: str, account_id: str) -> list:
        validate_chain(chain)
        _require(account_id)
        result = await self._call(chain, "get_full_accounts", [[account_id], False])
        if not result:
            raise NotFound("Account details not found")
        return result

    async def account_balances(self, chain: str, account_id: str) -> list:
        validate_chain(chain)
        _require(account_id)
        balances = await self._call(chain, "get_account_balances", [account_id, []])
        if not balances:
            raise NotFound("Account balances not found")
        return balances

    async def account_limit_orders(
        self, chain: str, account_id: str, limit: int = ORDER_LIMIT,
    ) -> list:
        validate_chain(chain)
        _require(account_id)
        orders = await self._call(chain, "get_limit_orders_by_account", [account_id, limit])
        if not orders:
            raise NotFound("Account limit orders not found")
        return orders

    # ── markets ──────────────────────────────────────────────────

    async def order_book(self, chain: str, base: str, quote: str) -> dict:
        validate_chain(chain)
        _require(base, quote)
        validate_asset_ids(base, quote)
        book = await self._call(
            chain, "get_order_book", [base, quote, ORDER_BOOK_DEPTH], self.fast_connect_timeout,
        )
        if not book:
            raise NotFound("Couldn't retrieve orderbook")
        return book

    async def market_limit_orders(self, chain: str, base: str, quote: str) -> list:
        validate_chain(chain)
        _require(base, quote)
        validate_asset_ids(base, quote)
        orders = await self._call(
            chain, "get_limit_orders", [base, quote, ORDER_LIMIT], self.fast_connect_timeout,
        )
        return orders or []

    async def market_trades(
        self, chain: str, quote: str, base: str, account_id: Optional[str] = None,
    ) -> dict:
        """Recent fills in a market, plus the subset involving *account_id*."""
        validate_chain(chain)
        _require(base, quote)
        validate_asset_ids(base, quote)
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        trades = await self._call(
            chain,
            "get_trade_history",
            [base, quote, now, EPOCH, TRADE_HISTORY_LIMIT],
            self.fast_connect_timeout,
        ) or []
        mine = []
        if account_id:
            mine = [
                t for t in trades
                if account_id in (t.get("side1_account_id"), t.get("side2_account_id"))
            ]
        return {"marketHistory": trades, "accountHistory": mine}

    async def featured_markets(self, chain: str) -> list:
        validate_chain(chain)
        markets = await self._call(chain, "get_top_markets", [TOP_MARKETS_LIMIT])
        return markets or []
