"""HTTP transport for the model endpoint.

HttpxTransport implements contracts.transport.Transport over an
``httpx.AsyncClient``. It reports every HTTP status as data and raises
NetworkError only when no response was received.

Usage:
    from parley.transport import HttpxTransport

    async with HttpxTransport.from_config(config.transport) as transport:
        response = await transport.post(url, headers, body)
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx

from contracts.transport import TransportResponse
from parley.config import TransportConfig
from parley.errors import NetworkError

logger = logging.getLogger(__name__)


def build_timeout(config: TransportConfig) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout,
        read=config.read_timeout,
        write=config.write_timeout,
        pool=config.connect_timeout,
    )


class HttpxTransport:
    """Async JSON POST over httpx.

    Args:
        client: Client to use. When omitted, one is created and owned by the
            transport and closed by ``aclose``.
        timeout: Timeout for an owned client.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout or build_timeout(TransportConfig()))

    @classmethod
    def from_config(cls, config: TransportConfig) -> HttpxTransport:
        return cls(timeout=build_timeout(config))

    async def post(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
    ) -> TransportResponse:
        try:
            response = await self._client.post(url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            logger.debug("Request to %s timed out: %s", url, e)
            raise NetworkError(
                f"Request timed out: {type(e).__name__}", url=url, timeout=True, cause=e
            ) from e
        except httpx.HTTPError as e:
            logger.debug("Request to %s failed: %s", url, e)
            raise NetworkError(f"Request failed: {e}", url=url, cause=e) from e
        return TransportResponse(status_code=response.status_code, text=response.text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
