"""
Unsigned transaction construction and Beet signing envelopes.

A :class:`TransactionDraft` moves through a fixed sequence of states::

    pending -> block_fetched -> fees_set -> expiration_set -> finalized

Each transition checks the state it starts from, so the order
(reference block, then fees, then expiration, then finalize) cannot be
broken by a caller.  A stale reference block or an expiration computed
against the wrong block makes the transaction invalid on chain.

:class:`TransactionOrchestrator` runs the whole protocol for one request
over one session and wraps the frozen result in a URI-encoded signing
envelope for the Beet wallet's ``signAndBroadcast`` injected call.
"""

from __future__ import annotations

import copy
import enum
import json
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence
from urllib.parse import quote

from astro_core.chains import ChainInfo, validate_chain
from astro_core.errors import (
    GatewayError,
    RemoteCallFailure,
    TransactionStepFailure,
    ValidationFailure,
)
from astro_core.operations import operation_id
from astro_core.rpc import RPCInvoker
from astro_core.session import Session, SessionManager

logger = logging.getLogger("astro_transaction")

EXPIRE_SECONDS = 7200
DYNAMIC_GLOBAL_PROPERTIES = "2.1.0"
APP_NAME = "Static Bitshares Astro web app"

# Graphene timestamps: UTC, second precision, no zone suffix.
TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Characters JavaScript's encodeURIComponent leaves untouched.
_URI_SAFE = "-_.!~*'()"


class DraftState(enum.Enum):
    PENDING = "pending"
    BLOCK_FETCHED = "block_fetched"
    FEES_SET = "fees_set"
    EXPIRATION_SET = "expiration_set"
    FINALIZED = "finalized"


class DraftStateError(GatewayError):
    """A draft step was attempted out of order."""


def parse_chain_time(value: str) -> datetime:
    return datetime.strptime(value, TIME_FORMAT).replace(tzinfo=timezone.utc)


def format_chain_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(TIME_FORMAT)


def ref_block_prefix(block_id: str) -> int:
    """Little-endian uint32 taken from bytes 4..8 of the block id."""
    raw = bytes.fromhex(block_id)
    if len(raw) < 8:
        raise ValueError(f"block id too short: {block_id!r}")
    return int.from_bytes(raw[4:8], "little")


@dataclass(frozen=True)
class FinalizedTransaction:
    """Immutable, unsigned transaction ready for an external signer."""
    ref_block_num: int
    ref_block_prefix: int
    expiration: str
    operations: tuple
    extensions: tuple = ()

    def to_object(self) -> dict[str, Any]:
        return {
            "ref_block_num": self.ref_block_num,
            "ref_block_prefix": self.ref_block_prefix,
            "expiration": self.expiration,
            "operations": [[op_id, copy.deepcopy(payload)] for op_id, payload in self.operations],
            "extensions": list(self.extensions),
            "signatures": [],
        }


class TransactionDraft:
    """In-progress transaction; see the module docstring for the state order."""

    def __init__(self) -> None:
        self.state = DraftState.PENDING
        self.operations: list[list] = []
        self.ref_block_num: Optional[int] = None
        self.ref_block_prefix: Optional[int] = None
        self.head_block_time: Optional[datetime] = None
        self.expiration: Optional[datetime] = None

    def _require(self, expected: DraftState, step: str) -> None:
        if self.state is not expected:
            raise DraftStateError(
                f"{step} requires state {expected.value}, draft is {self.state.value}"
            )

    def add_operation(self, op_id: int, payload: dict) -> None:
        self._require(DraftState.PENDING, "add_operation")
        if not isinstance(payload, dict):
            raise ValidationFailure("Operation payloads must be JSON objects")
        self.operations.append([op_id, copy.deepcopy(payload)])

    async def update_head_block(self, invoker: RPCInvoker, session: Session) -> None:
        """Anchor the draft to the chain's current head block."""
        self._require(DraftState.PENDING, "update_head_block")
        if not self.operations:
            raise ValidationFailure("A transaction needs at least one operation")

        props = await invoker.call(session, "get_objects", [[DYNAMIC_GLOBAL_PROPERTIES], False])
        try:
            dgp = props[0]
            self.ref_block_num = int(dgp["head_block_number"]) & 0xFFFF
            self.ref_block_prefix = ref_block_prefix(dgp["head_block_id"])
            self.head_block_time = parse_chain_time(dgp["time"])
        except (IndexError, KeyError, TypeError, ValueError) as exc:
            raise RemoteCallFailure(
                f"malformed dynamic global properties: {exc}", method="get_objects",
            ) from exc
        self.state = DraftState.BLOCK_FETCHED

    async def set_required_fees(
        self, invoker: RPCInvoker, session: Session, default_asset: str = "1.3.0",
    ) -> None:
        """Ask the node for current fees, grouped by each operation's fee asset."""
        self._require(DraftState.BLOCK_FETCHED, "set_required_fees")

        groups: OrderedDict[str, list[int]] = OrderedDict()
        for index, (_op_id, payload) in enumerate(self.operations):
            fee = payload.get("fee")
            asset = (fee.get("asset_id") if isinstance(fee, dict) else None) or default_asset
            groups.setdefault(asset, []).append(index)

        for asset, indices in groups.items():
            ops = [self.operations[i] for i in indices]
            fees = await invoker.call(session, "get_required_fees", [ops, asset])
            if not isinstance(fees, list) or len(fees) != len(indices):
                raise RemoteCallFailure(
                    f"get_required_fees returned {fees!r} for {len(indices)} operations",
                    method="get_required_fees",
                )
            for index, fee in zip(indices, fees):
                # proposal_create answers [fee, [nested fees...]]
                if isinstance(fee, list):
                    fee = fee[0] if fee else None
                try:
                    amount, fee_asset = fee["amount"], fee["asset_id"]
                except (KeyError, TypeError) as exc:
                    raise RemoteCallFailure(
                        f"malformed fee {fee!r}", method="get_required_fees",
                    ) from exc
                self.operations[index][1]["fee"] = {"amount": amount, "asset_id": fee_asset}
        self.state = DraftState.FEES_SET

    def set_expire_seconds(self, seconds: int) -> None:
        self._require(DraftState.FEES_SET, "set_expire_seconds")
        if seconds <= 0:
            raise ValidationFailure("expiration must be in the future")
        self.expiration = self.head_block_time + timedelta(seconds=seconds)
        self.state = DraftState.EXPIRATION_SET

    def finalize(self) -> FinalizedTransaction:
        self._require(DraftState.EXPIRATION_SET, "finalize")
        self.state = DraftState.FINALIZED
        return FinalizedTransaction(
            ref_block_num=self.ref_block_num,
            ref_block_prefix=self.ref_block_prefix,
            expiration=format_chain_time(self.expiration),
            operations=tuple((op_id, copy.deepcopy(payload)) for op_id, payload in self.operations),
        )


def build_envelope(
    chain: ChainInfo,
    tx: FinalizedTransaction,
    request_id: str,
    app_name: str = APP_NAME,
) -> dict[str, Any]:
    return {
        "type": "api",
        "id": request_id,
        "payload": {
            "method": "injectedCall",
            "params": [
                "signAndBroadcast",
                json.dumps(tx.to_object(), separators=(",", ":")),
                [],
            ],
            "appName": app_name,
            "chain": chain.tag,
            "browser": "web browser",
            "origin": "localhost",
        },
    }


def encode_envelope(envelope: dict[str, Any]) -> str:
    return quote(json.dumps(envelope, separators=(",", ":")), safe=_URI_SAFE)


class TransactionOrchestrator:
    """Builds signing requests: one session, fixed step order, all-or-nothing."""

    def __init__(
        self,
        sessions: SessionManager,
        invoker: Optional[RPCInvoker] = None,
        expire_seconds: int = EXPIRE_SECONDS,
        app_name: str = APP_NAME,
        id_factory: Callable[[], Any] = uuid.uuid4,
    ):
        self.sessions = sessions
        self.invoker = invoker or RPCInvoker()
        self.expire_seconds = expire_seconds
        self.app_name = app_name
        self._id_factory = id_factory

    async def build_signing_request(
        self,
        chain: str,
        operation_type: str,
        operation_payloads: Sequence[dict],
    ) -> str:
        """Return the URI-encoded signing envelope for *operation_payloads*."""
        info = validate_chain(chain)
        op_id = operation_id(operation_type)
        if not isinstance(operation_payloads, (list, tuple)) or not operation_payloads:
            raise ValidationFailure("Missing required fields")
        if not all(isinstance(p, dict) for p in operation_payloads):
            raise ValidationFailure("Operation payloads must be JSON objects")

        draft = TransactionDraft()
        step = "connect"
        try:
            async with self.sessions.session(chain) as session:
                step = "add_operations"
                for payload in operation_payloads:
                    draft.add_operation(op_id, payload)
                step = "reference_block"
                await draft.update_head_block(self.invoker, session)
                step = "fees"
                await draft.set_required_fees(self.invoker, session, info.core_asset)
                step = "expiration"
                draft.set_expire_seconds(self.expire_seconds)
                step = "finalize"
                tx = draft.finalize()
        except GatewayError as exc:
            logger.warning(f"{chain} {operation_type}: {step} step failed: {exc}")
            raise TransactionStepFailure(step, exc) from exc
        except Exception as exc:
            logger.exception(f"{chain} {operation_type}: unexpected error in {step} step")
            raise TransactionStepFailure(step, exc) from exc

        envelope = build_envelope(info, tx, str(self._id_factory()), self.app_name)
        logger.info(
            f"{chain}: built {operation_type} signing request "
            f"({len(tx.operations)} ops, expires {tx.expiration})"
        )
        return encode_envelope(envelope)
