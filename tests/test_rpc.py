"""
Tests for astro_core.rpc — single calls, batch calls and chunking.
"""

from __future__ import annotations

import unittest

import pytest

from astro_core.errors import ApiUnavailable, RemoteCallFailure
from astro_core.rpc import RPCInvoker, chunked
from fakes import FakeNode, NodeError, failing, make_sessions


class TestChunked(unittest.TestCase):

    def test_sizes_and_order(self):
        items = list(range(120))
        chunks = chunked(items, 50)
        self.assertEqual([len(c) for c in chunks], [50, 50, 20])
        self.assertEqual([x for c in chunks for x in c], items)

    def test_exact_multiple(self):
        self.assertEqual([len(c) for c in chunked(list(range(100)), 50)], [50, 50])

    def test_empty(self):
        self.assertEqual(chunked([], 50), [])

    def test_rejects_non_positive_size(self):
        with self.assertRaises(ValueError):
            chunked([1, 2], 0)


@pytest.mark.asyncio
class TestCall:
    async def test_returns_result(self):
        node = FakeNode({"get_accounts": [{"id": "1.2.5", "name": "alice"}]})
        manager, _ = make_sessions(node)
        async with manager.session("bitshares") as session:
            result = await RPCInvoker().call(session, "get_accounts", [["alice"]])
        assert result == [{"id": "1.2.5", "name": "alice"}]
        assert node.calls == [("get_accounts", [["alice"]])]

    async def test_empty_result_is_not_an_error(self):
        manager, _ = make_sessions(FakeNode({"get_limit_orders": []}))
        async with manager.session("bitshares") as session:
            assert await RPCInvoker().call(session, "get_limit_orders", ["1.3.0", "1.3.1", 10]) == []

    async def test_null_result_is_not_an_error(self):
        manager, _ = make_sessions(FakeNode({"get_order_book": None}))
        async with manager.session("bitshares") as session:
            assert await RPCInvoker().call(session, "get_order_book", ["1.3.0", "1.3.1", 50]) is None

    async def test_error_frame_is_remote_call_failure(self):
        manager, _ = make_sessions(FakeNode({"get_accounts": failing("Assert Exception")}))
        async with manager.session("bitshares") as session:
            with pytest.raises(RemoteCallFailure) as info:
                await RPCInvoker().call(session, "get_accounts", [["alice"]])
        assert "Assert Exception" in str(info.value)
        assert info.value.method == "get_accounts"

    async def test_broken_transport_is_remote_call_failure(self):
        def drop(params):
            raise ConnectionError("socket reset")

        manager, _ = make_sessions(FakeNode({"get_accounts": drop}))
        async with manager.session("bitshares") as session:
            with pytest.raises(RemoteCallFailure) as info:
                await RPCInvoker().call(session, "get_accounts", [["alice"]])
        assert not isinstance(info.value, ApiUnavailable)

    async def test_missing_api_is_distinct_failure(self):
        manager, _ = make_sessions(FakeNode(apis=("network_broadcast",)))
        with pytest.raises(ApiUnavailable) as info:
            async with manager.session("bitshares") as session:
                await RPCInvoker().call(session, "get_accounts", [["alice"]])
        assert info.value.api == "database"

    async def test_call_uses_requested_api(self):
        node = FakeNode({"get_account_history": []})
        manager, _ = make_sessions(node)
        async with manager.session("bitshares") as session:
            await RPCInvoker().call(session, "get_account_history", ["1.2.5"], api="history")
            assert session.apis["history"] == node.apis["history"]


@pytest.mark.asyncio
class TestCallBatch:
    async def test_failures_are_captured_in_place(self):
        def handler(params):
            if params[0] == "bad":
                raise NodeError("bad chunk")
            return params[0]

        manager, _ = make_sessions(FakeNode({"echo": handler}))
        async with manager.session("bitshares") as session:
            results = await RPCInvoker().call_batch(session, "echo", [["one"], ["bad"], ["three"]])
        assert results[0] == "one"
        assert isinstance(results[1], RemoteCallFailure)
        assert results[2] == "three"

    async def test_missing_api_raises_before_any_call(self):
        node = FakeNode(apis=())
        manager, _ = make_sessions(node)
        with pytest.raises(ApiUnavailable):
            async with manager.session("bitshares") as session:
                await RPCInvoker().call_batch(session, "get_objects", [[["1.2.1"], False]])
        assert node.calls == []
