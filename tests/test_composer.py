"""
Tests for astro_core.composer — all-or-nothing compound queries.
"""

from __future__ import annotations

import pytest

from astro_core.composer import AggregateQueryComposer
from astro_core.errors import ConnectivityFailure, NotFound, RemoteCallFailure, ValidationFailure
from fakes import FakeNode, failing, make_sessions

BALANCES = [{"amount": 1000, "asset_id": "1.3.0"}]
ORDERS = [{"id": "1.7.9", "seller": "1.2.100"}]


@pytest.mark.asyncio
class TestPortfolio:
    async def test_merges_both_results(self):
        node = FakeNode({
            "get_account_balances": BALANCES,
            "get_limit_orders_by_account": ORDERS,
        })
        manager, connector = make_sessions(node)
        result = await AggregateQueryComposer(manager).portfolio("bitshares", "1.2.100")

        assert result == {"balances": BALANCES, "limitOrders": ORDERS}
        assert node.calls == [
            ("get_account_balances", ["1.2.100", []]),
            ("get_limit_orders_by_account", ["1.2.100", 100]),
        ]
        # Both sub-calls share one session
        assert len(connector.transports) == 1
        assert connector.close_counts == [1]

    async def test_empty_lists_are_valid(self):
        node = FakeNode({"get_account_balances": [], "get_limit_orders_by_account": []})
        manager, _ = make_sessions(node)
        result = await AggregateQueryComposer(manager).portfolio("bitshares", "1.2.100")
        assert result == {"balances": [], "limitOrders": []}

    async def test_balances_failure_fails_whole_call(self):
        node = FakeNode({
            "get_account_balances": failing("unknown account"),
            "get_limit_orders_by_account": ORDERS,
        })
        manager, connector = make_sessions(node)
        with pytest.raises(RemoteCallFailure):
            await AggregateQueryComposer(manager).portfolio("bitshares", "1.2.100")
        assert "get_limit_orders_by_account" not in node.methods()
        assert connector.close_counts == [1]

    async def test_orders_failure_discards_balances(self):
        node = FakeNode({
            "get_account_balances": BALANCES,
            "get_limit_orders_by_account": failing("timeout"),
        })
        manager, connector = make_sessions(node)
        with pytest.raises(RemoteCallFailure):
            await AggregateQueryComposer(manager).portfolio("bitshares", "1.2.100")
        assert connector.close_counts == [1]

    async def test_null_orders_is_not_found(self):
        node = FakeNode({"get_account_balances": BALANCES, "get_limit_orders_by_account": None})
        manager, _ = make_sessions(node)
        with pytest.raises(NotFound):
            await AggregateQueryComposer(manager).portfolio("bitshares", "1.2.100")

    async def test_connect_failure(self):
        manager, _ = make_sessions(down={"wss://a"})
        with pytest.raises(ConnectivityFailure):
            await AggregateQueryComposer(manager).portfolio("bitshares", "1.2.100")

    async def test_missing_account_never_connects(self):
        manager, connector = make_sessions()
        with pytest.raises(ValidationFailure):
            await AggregateQueryComposer(manager).portfolio("bitshares", "")
        assert connector.attempts == []


@pytest.mark.asyncio
class TestCreditDeals:
    async def test_merges_both_sides(self):
        node = FakeNode({
            "get_credit_deals_by_borrower": [{"id": "1.22.1"}],
            "get_credit_deals_by_offer_owner": None,
        })
        manager, _ = make_sessions(node)
        result = await AggregateQueryComposer(manager).credit_deals("bitshares", "1.2.100")
        assert result == {"borrowerDeals": [{"id": "1.22.1"}], "ownerDeals": []}
        assert node.calls == [
            ("get_credit_deals_by_borrower", ["1.2.100", 100]),
            ("get_credit_deals_by_offer_owner", ["1.2.100", 100]),
        ]

    async def test_either_failure_fails_whole_call(self):
        node = FakeNode({
            "get_credit_deals_by_borrower": [],
            "get_credit_deals_by_offer_owner": failing("no such account"),
        })
        manager, connector = make_sessions(node)
        with pytest.raises(RemoteCallFailure):
            await AggregateQueryComposer(manager).credit_deals("bitshares", "1.2.100")
        assert connector.close_counts == [1]
