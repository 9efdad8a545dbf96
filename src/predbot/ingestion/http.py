"""Shared async HTTP client handling for the upstream API clients."""

from __future__ import annotations

from typing import Any

import httpx

from predbot.errors import UpstreamUnavailable


class HTTPClientMixin:
    """Lazy httpx.AsyncClient creation and cleanup.

    An externally supplied client (tests, connection reuse) is never closed here.
    """

    source_name: str = "upstream"
    _client: httpx.AsyncClient | None = None
    _owns_client: bool = True
    _timeout: float = 30.0

    def _init_client(self, http_client: httpx.AsyncClient | None = None, *, timeout: float | None = None) -> None:
        self._client = http_client
        self._owns_client = http_client is None
        if timeout is not None:
            self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET url and decode JSON; transport and status errors become UpstreamUnavailable."""
        client = await self._get_client()
        try:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                self.source_name, f"HTTP {e.response.status_code} for {url}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(self.source_name, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(self.source_name, f"invalid JSON from {url}") from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
