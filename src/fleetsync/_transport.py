"""HTTP query transport for the fleet backend."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from fleetsync._constants import USER_AGENT
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetTransportError

_logger = logging.getLogger(__name__)


class QueryTransport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        allow_not_found: bool = False,
    ) -> Any:
        ...


class HttpTransport:
    """GET-only JSON transport with a fixed per-request timeout."""

    def __init__(self, config: FleetConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.query_timeout)

    async def get_json(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        allow_not_found: bool = False,
    ) -> Any:
        """Fetch *endpoint* and decode its JSON body.

        Returns ``None`` for a 404 when *allow_not_found* is set, so callers
        can tell "does not exist" apart from "query failed".
        """
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        headers = {"accept": "application/json", "user-agent": USER_AGENT}

        _logger.debug("GET %s params=%s", url, dict(params) if params else None)

        try:
            async with self._http.get(url, params=params, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status == 404 and allow_not_found:
                    _logger.debug("GET %s -> 404 (not found)", url)
                    return None
                if not 200 <= resp.status < 300:
                    raise FleetTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except FleetTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} timed out after {self._config.query_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            if allow_not_found:
                return None
            raise FleetTransportError(f"Empty response body from {endpoint}", endpoint=endpoint)

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FleetTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc
