"""
Read-only store over pre-computed chain data files.

Files are produced out-of-band and laid out per chain::

    <data_dir>/bitshares/allAssets.json      list of asset objects
    <data_dir>/bitshares/pools.json          pool summaries
    <data_dir>/bitshares/allPools.json       extended pool objects
    <data_dir>/bitshares/dynamicData.json    asset dynamic data (2.3.x)
    <data_dir>/bitshares/fee_schedule.json
    <data_dir>/bitshares/marketSearch.json
    <data_dir>/bitshares/minBitassets.json
    <data_dir>/bitshares/offers.json

Each file is parsed on first use and kept for the process lifetime.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable

from astro_core.chains import validate_chain
from astro_core.errors import NotFound

logger = logging.getLogger("astro_cache")


class CacheStore:

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self._loaded: dict[tuple[str, str], Any] = {}
        self._indexes: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _load(self, chain: str, name: str) -> Any:
        validate_chain(chain)
        key = (chain, name)
        with self._lock:
            if key not in self._loaded:
                path = self.data_dir / chain / f"{name}.json"
                if not path.exists():
                    raise NotFound(f"No cached {name} for {chain}")
                with open(path, encoding="utf-8") as f:
                    self._loaded[key] = json.load(f)
                logger.info(f"loaded {path}")
            return self._loaded[key]

    def _index(self, chain: str, name: str) -> dict[str, Any]:
        items = self._load(chain, name)
        key = (chain, name)
        with self._lock:
            if key not in self._indexes:
                self._indexes[key] = {
                    item["id"]: item for item in items if isinstance(item, dict) and "id" in item
                }
            return self._indexes[key]

    # ── whole files ──────────────────────────────────────────────

    def all_assets(self, chain: str) -> list:
        return self._load(chain, "allAssets")

    def pools(self, chain: str) -> list:
        return self._load(chain, "pools")

    def fee_schedule(self, chain: str) -> Any:
        return self._load(chain, "fee_schedule")

    def market_search(self, chain: str) -> Any:
        return self._load(chain, "marketSearch")

    def min_bitassets(self, chain: str) -> Any:
        return self._load(chain, "minBitassets")

    def offers(self, chain: str) -> Any:
        return self._load(chain, "offers")

    # ── lookups ──────────────────────────────────────────────────

    def asset(self, chain: str, asset_id: str) -> dict:
        found = self._index(chain, "allAssets").get(asset_id)
        if found is None:
            raise NotFound("Asset not found")
        return found

    def assets(self, chain: str, asset_ids: Iterable[str]) -> list[dict]:
        """Known assets among *asset_ids*, in request order; unknown ids are skipped."""
        index = self._index(chain, "allAssets")
        return [index[a] for a in asset_ids if a in index]

    def pool(self, chain: str, pool_id: str) -> dict:
        found = self._index(chain, "allPools").get(pool_id)
        if found is None:
            raise NotFound("Pool not found")
        return found

    def dynamic_data(self, chain: str, object_id: str) -> dict:
        """Dynamic data by its own ``2.3.x`` id or by the owning ``1.3.x`` asset id."""
        if object_id.startswith("1.3."):
            object_id = "2.3." + object_id[len("1.3."):]
        found = self._index(chain, "dynamicData").get(object_id)
        if found is None:
            raise NotFound("Dynamic data not found")
        return found
