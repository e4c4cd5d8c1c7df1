"""Meilisearch connector: HTTP client for the search index."""

from __future__ import annotations

import logging

import httpx

from ironarchive.connectors.base import ServiceConnector
from ironarchive.errors import ProbeError, ProbeTimeoutError
from ironarchive.masking import mask_connection_string

logger = logging.getLogger(__name__)

AVAILABLE = "available"


class MeilisearchConnector(ServiceConnector):
    """Client construction is local; only the probe touches the network.

    Any ``/health`` status other than ``available`` fails the probe.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _ping(self) -> str:
        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProbeTimeoutError(self.name(), f"health check timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProbeError(self.name(), f"failed to check health: {e}") from e

        status = resp.json().get("status")
        if status != AVAILABLE:
            raise ProbeError(self.name(), f"not available, status: {status}")
        return f"status: {status}"

    async def _release(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
        logger.info("Meilisearch connection closed", extra={"service": self.name()})

    def target(self) -> str:
        return mask_connection_string(self._url)

    def name(self) -> str:
        return "meilisearch"
