"""
Tests for astro_core.cache — per-chain JSON files, lazily loaded.
"""

from __future__ import annotations

import json

import pytest

from astro_core.cache import CacheStore
from astro_core.errors import NotFound, ValidationFailure

ASSETS = [
    {"id": "1.3.0", "symbol": "BTS", "precision": 5},
    {"id": "1.3.121", "symbol": "USD", "precision": 4},
]


@pytest.fixture
def data_dir(tmp_path):
    chain_dir = tmp_path / "bitshares"
    chain_dir.mkdir()
    files = {
        "allAssets": ASSETS,
        "allPools": [{"id": "1.19.0", "asset_a": "1.3.0", "asset_b": "1.3.121"}],
        "pools": [{"id": "1.19.0"}],
        "dynamicData": [{"id": "2.3.121", "current_supply": "1000"}],
        "fee_schedule": {"parameters": []},
        "offers": [],
    }
    for name, content in files.items():
        (chain_dir / f"{name}.json").write_text(json.dumps(content), encoding="utf-8")
    return tmp_path


class TestCacheStore:
    def test_whole_file(self, data_dir):
        cache = CacheStore(data_dir)
        assert cache.all_assets("bitshares") == ASSETS
        assert cache.fee_schedule("bitshares") == {"parameters": []}
        assert cache.offers("bitshares") == []

    def test_asset_lookup(self, data_dir):
        cache = CacheStore(data_dir)
        assert cache.asset("bitshares", "1.3.121")["symbol"] == "USD"
        with pytest.raises(NotFound):
            cache.asset("bitshares", "1.3.999")

    def test_assets_skip_unknown_and_keep_order(self, data_dir):
        cache = CacheStore(data_dir)
        found = cache.assets("bitshares", ["1.3.121", "1.3.999", "1.3.0"])
        assert [a["symbol"] for a in found] == ["USD", "BTS"]

    def test_pool_lookup(self, data_dir):
        cache = CacheStore(data_dir)
        assert cache.pool("bitshares", "1.19.0")["asset_b"] == "1.3.121"
        with pytest.raises(NotFound):
            cache.pool("bitshares", "1.19.5")

    def test_dynamic_data_by_asset_id(self, data_dir):
        cache = CacheStore(data_dir)
        assert cache.dynamic_data("bitshares", "1.3.121")["current_supply"] == "1000"
        assert cache.dynamic_data("bitshares", "2.3.121")["id"] == "2.3.121"

    def test_missing_file_is_not_found(self, data_dir):
        with pytest.raises(NotFound):
            CacheStore(data_dir).market_search("bitshares")
        with pytest.raises(NotFound):
            CacheStore(data_dir).all_assets("bitshares_testnet")

    def test_invalid_chain(self, data_dir):
        with pytest.raises(ValidationFailure):
            CacheStore(data_dir).all_assets("../etc")

    def test_file_read_once(self, data_dir):
        cache = CacheStore(data_dir)
        cache.all_assets("bitshares")
        (data_dir / "bitshares" / "allAssets.json").write_text("[]", encoding="utf-8")
        assert cache.all_assets("bitshares") == ASSETS
