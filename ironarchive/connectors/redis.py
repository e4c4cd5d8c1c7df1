"""Redis connector: single client for cache and sessions."""

from __future__ import annotations

import logging
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as aioredis

from ironarchive.connectors.base import ServiceConnector
from ironarchive.masking import mask_connection_string

logger = logging.getLogger(__name__)


def normalize_redis_url(url: str) -> str:
    """Treat ``redis://secret@host`` as a password, not a username."""
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    if ":" in userinfo:
        return url
    return urlunsplit(parts._replace(netloc=f":{userinfo}@{hostinfo}"))


class RedisConnector(ServiceConnector):
    def __init__(self, url: str) -> None:
        super().__init__()
        self._url = url
        self._client: aioredis.Redis | None = None

    @property
    def client(self) -> aioredis.Redis | None:
        return self._client

    async def _open(self) -> None:
        # from_url raises ValueError for unknown schemes.
        self._client = aioredis.from_url(normalize_redis_url(self._url))

    async def _ping(self) -> str:
        await self._client.ping()
        return "PONG"

    async def _release(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
            logger.info("Redis connection closed", extra={"service": self.name()})

    def target(self) -> str:
        return mask_connection_string(self._url)

    def name(self) -> str:
        return "redis"
