"""
Compound queries issued over a single session.

Unlike batch object fetches, partial answers are not acceptable here: a
portfolio with balances but no orders would show the user an inconsistent
snapshot, so the first failing sub-call fails the whole query.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from astro_core.chains import validate_chain
from astro_core.errors import NotFound, ValidationFailure
from astro_core.rpc import RPCInvoker
from astro_core.session import SessionManager

logger = logging.getLogger("astro_composer")

PORTFOLIO_ORDER_LIMIT = 100
CREDIT_DEAL_LIMIT = 100


class AggregateQueryComposer:

    def __init__(
        self,
        sessions: SessionManager,
        invoker: Optional[RPCInvoker] = None,
        fast_connect_timeout: Optional[float] = None,
    ):
        self.sessions = sessions
        self.invoker = invoker or RPCInvoker()
        self.fast_connect_timeout = fast_connect_timeout

    async def portfolio(self, chain: str, account_id: str) -> dict[str, Any]:
        """Balances and open limit orders for *account_id*, both or neither."""
        validate_chain(chain)
        if not account_id:
            raise ValidationFailure("Missing required fields")

        async with self.sessions.session(chain, self.fast_connect_timeout) as session:
            balances = await self.invoker.call(
                session, "get_account_balances", [account_id, []],
            )
            if balances is None:
                raise NotFound("Account balances not found")
            limit_orders = await self.invoker.call(
                session, "get_limit_orders_by_account", [account_id, PORTFOLIO_ORDER_LIMIT],
            )
            if limit_orders is None:
                raise NotFound("Account limit orders not found")

        return {"balances": balances, "limitOrders": limit_orders}

    async def credit_deals(self, chain: str, account: str) -> dict[str, Any]:
        """Credit deals where *account* is the borrower and where it owns the offer."""
        validate_chain(chain)
        if not account:
            raise ValidationFailure("Missing required fields")

        async with self.sessions.session(chain) as session:
            borrower = await self.invoker.call(
                session, "get_credit_deals_by_borrower", [account, CREDIT_DEAL_LIMIT],
            )
            owner = await self.invoker.call(
                session, "get_credit_deals_by_offer_owner", [account, CREDIT_DEAL_LIMIT],
            )

        return {"borrowerDeals": borrower or [], "ownerDeals": owner or []}
