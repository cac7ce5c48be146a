"""
Pass-through client for the open-explorer account-history service.

The service is plain HTTP; its JSON answer is returned unmodified.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import aiohttp

from astro_core.chains import validate_chain
from astro_core.errors import NotFound, UpstreamFailure, ValidationFailure

logger = logging.getLogger("astro_history")

DEFAULT_URL_TEMPLATE = "https://{host}/openexplorer/es/account_history"
DEFAULT_TIMEOUT = 15.0

HISTORY_DEFAULTS: dict[str, Any] = {
    "from_": 0,
    "size": 100,
    "from_date": "2015-10-10",
    "to_date": "now",
    "sort_by": "-operation_id_num",
    "type": "data",
    "agg_field": "operation_type",
}


class HistoryClient:

    def __init__(
        self,
        url_template: str = DEFAULT_URL_TEMPLATE,
        timeout: float = DEFAULT_TIMEOUT,
        http: Optional[aiohttp.ClientSession] = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        self._http = http

    def build_url(self, chain: str, account_id: str, **options: Any) -> str:
        info = validate_chain(chain)
        query: dict[str, Any] = {"account_id": account_id}
        for key, default in HISTORY_DEFAULTS.items():
            value = options.get(key)
            query[key] = default if value is None else value
        return f"{self.url_template.format(host=info.history_host)}?{urlencode(query)}"

    async def account_history(self, chain: str, account_id: str, **options: Any) -> Any:
        """
        Fetch an account's operation history.

        Optional keyword options: ``from_``, ``size``, ``from_date``,
        ``to_date``, ``sort_by``, ``type``, ``agg_field``.
        """
        if not account_id:
            raise ValidationFailure("Missing required fields")
        url = self.build_url(chain, account_id, **options)

        own_session = self._http is None
        http = self._http or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        try:
            async with http.get(url) as resp:
                if resp.status >= 400:
                    logger.warning(f"history service answered {resp.status} for {account_id}")
                    raise UpstreamFailure(f"{resp.status} {resp.reason}")
                history = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(f"history service unreachable: {exc}")
            raise UpstreamFailure(f"Couldn't fetch account history: {exc}") from exc
        except ValueError as exc:
            logger.warning(f"history service sent a non-JSON body for {account_id}")
            raise UpstreamFailure("Account history service returned invalid JSON") from exc
        finally:
            if own_session:
                await http.close()

        if not history:
            raise NotFound("Account history not found")
        return history
