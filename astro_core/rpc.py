"""
One-shot RPC invocation over an open :class:`~astro_core.session.Session`.

The invoker never retries; failover is the session layer's job.  Three
outcomes are kept apart:

* ``ApiUnavailable``     the node did not grant the API the method lives on
* ``RemoteCallFailure``  the node errored, or the transport broke mid-call
* ``None`` / empty       a normal result; callers decide what "empty" means
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence, TypeVar

from astro_core.errors import RemoteCallFailure
from astro_core.session import Session

logger = logging.getLogger("astro_rpc")

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive slices of at most *size* elements."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class RPCInvoker:
    """Issues remote calls; stateless apart from its logger."""

    async def call(
        self,
        session: Session,
        method: str,
        params: list,
        api: str = "database",
    ) -> Any:
        api_id = session.api_id(api, method)
        logger.debug(f"{session.endpoint} {api}.{method}")
        return await session.request(api_id, method, params)

    async def call_batch(
        self,
        session: Session,
        method: str,
        param_sets: Iterable[list],
        api: str = "database",
    ) -> list[Any]:
        """
        Issue *method* once per parameter set, in order.

        Each slot of the returned list holds either that call's result or
        the ``RemoteCallFailure`` it raised; one failing call does not stop
        the rest.  ``ApiUnavailable`` is not captured since no call in the
        batch could succeed.
        """
        session.api_id(api, method)
        results: list[Any] = []
        for params in param_sets:
            try:
                results.append(await self.call(session, method, params, api))
            except RemoteCallFailure as exc:
                logger.warning(f"{session.endpoint} {method} failed: {exc}")
                results.append(exc)
        return results
