"""
Chunked ``get_objects`` fetching.

Nodes cap how many ids one ``get_objects`` call may carry, so large id
lists are split into chunks of :data:`CHUNK_SIZE`.  A failing chunk is
skipped rather than failing the batch; unknown ids come back as ``null``
and are dropped.  Only a batch that yields nothing at all is a failure.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from astro_core.errors import NoObjectsRetrievable, RemoteCallFailure
from astro_core.rpc import RPCInvoker, chunked
from astro_core.session import Session

logger = logging.getLogger("astro_batch")

CHUNK_SIZE = 50


class BatchObjectFetcher:

    def __init__(self, invoker: RPCInvoker | None = None, chunk_size: int = CHUNK_SIZE):
        self.invoker = invoker or RPCInvoker()
        self.chunk_size = chunk_size

    async def fetch_objects(self, session: Session, ids: Sequence[str]) -> list[dict[str, Any]]:
        chunks = chunked(ids, self.chunk_size)
        replies = await self.invoker.call_batch(
            session, "get_objects", [[chunk, False] for chunk in chunks],
        )

        retrieved: list[dict[str, Any]] = []
        for index, reply in enumerate(replies):
            if isinstance(reply, RemoteCallFailure):
                logger.warning(
                    f"get_objects chunk {index + 1}/{len(chunks)} skipped: {reply}"
                )
                continue
            if reply:
                retrieved.extend(obj for obj in reply if obj is not None)

        if not retrieved:
            raise NoObjectsRetrievable()
        return retrieved
