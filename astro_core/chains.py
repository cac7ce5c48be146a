"""
Static table of the chains the gateway serves.

Only two chain literals are accepted anywhere in the request surface:
``bitshares`` (production) and ``bitshares_testnet``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from astro_core.errors import ValidationFailure

BITSHARES = "bitshares"
BITSHARES_TESTNET = "bitshares_testnet"


@dataclass(frozen=True)
class ChainInfo:
    """Per-chain constants."""
    name: str
    tag: str                 # chain tag carried in the signing envelope
    history_host: str        # host of the external history service
    core_asset: str = "1.3.0"
    default_nodes: tuple[str, ...] = field(default_factory=tuple)


CHAINS: dict[str, ChainInfo] = {
    BITSHARES: ChainInfo(
        name=BITSHARES,
        tag="BTS",
        history_host="api.bitshares.ws",
        default_nodes=(
            "wss://node.xbts.io/ws",
            "wss://cloud.xbts.io/ws",
            "wss://public.xbts.io/ws",
            "wss://btsws.roelandp.nl/ws",
            "wss://dex.iobanker.com/ws",
            "wss://api.bitshares.dev/ws",
        ),
    ),
    BITSHARES_TESTNET: ChainInfo(
        name=BITSHARES_TESTNET,
        tag="TEST",
        history_host="api.testnet.bitshares.ws",
        default_nodes=(
            "wss://testnet.xbts.io/ws",
            "wss://api-testnet.61bts.com/ws",
            "wss://testnet.dex.trading/",
        ),
    ),
}

_ASSET_ID_RE = re.compile(r"^1\.3\.\d+$")


def validate_chain(chain: str | None) -> ChainInfo:
    """Return the :class:`ChainInfo` for *chain* or raise ``ValidationFailure``."""
    if not chain:
        raise ValidationFailure("Missing required fields")
    info = CHAINS.get(chain)
    if info is None:
        raise ValidationFailure("Invalid chain")
    return info


def is_asset_id(value: str) -> bool:
    return bool(value) and _ASSET_ID_RE.match(value) is not None


def validate_asset_ids(*asset_ids: str) -> None:
    if not all(is_asset_id(a) for a in asset_ids):
        raise ValidationFailure("Invalid asset IDs")
