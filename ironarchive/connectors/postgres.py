"""PostgreSQL connector: pooled asyncpg connection to the primary store."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import asyncpg

from ironarchive.connectors.base import HealthResult, ServiceConnector
from ironarchive.errors import ConnectError
from ironarchive.masking import mask_connection_string

logger = logging.getLogger(__name__)

_SCHEMES = ("postgres", "postgresql")


def check_dsn(dsn: str) -> None:
    """Reject DSNs asyncpg would only fail on at pool init. Raises ValueError."""
    parts = urlsplit(dsn)
    if parts.scheme not in _SCHEMES:
        raise ValueError(f"unsupported scheme {parts.scheme!r}")
    hostinfo = parts.netloc.rpartition("@")[2]
    # asyncpg accepts a comma-separated host list, each with an optional port.
    hosts = hostinfo.split(",")
    for host in hosts:
        if host.startswith("["):
            address, bracket, port = host[1:].partition("]")
            if not bracket or not address:
                raise ValueError(f"invalid host {host!r}")
            port = port.removeprefix(":")
        else:
            address, _, port = host.partition(":")
            if not address and len(hosts) > 1:
                raise ValueError("empty host in host list")
        if port and not (port.isdigit() and 0 < int(port) < 65536):
            raise ValueError(f"invalid port {port!r}")


@dataclass(frozen=True)
class PoolSettings:
    """Pool tuning knobs, durations in seconds. Applied as given, never clamped."""

    max_conns: int = 25
    min_conns: int = 5
    max_conn_lifetime: float = 3600.0
    max_conn_idle_time: float = 1800.0
    health_check_period: float = 60.0

    @classmethod
    def from_config(cls, config) -> PoolSettings:
        return cls(
            max_conns=config.db_max_conns,
            min_conns=config.db_min_conns,
            max_conn_lifetime=config.db_max_conn_lifetime,
            max_conn_idle_time=config.db_max_conn_idle_time,
            health_check_period=config.db_health_check_period,
        )


class PostgresConnector(ServiceConnector):
    """Owns the asyncpg pool.

    ``connect`` only builds the pool object; the first connections are opened
    by the probe, inside its deadline. asyncpg has no notion of connection
    lifetime or background health checks, so after the first successful probe
    a maintenance task pings the pool every ``health_check_period`` and expires
    all connections once ``max_conn_lifetime`` has passed since the last
    recycle.
    """

    def __init__(self, dsn: str, pool: PoolSettings | None = None) -> None:
        super().__init__()
        self._dsn = dsn
        self._settings = pool or PoolSettings()
        self._pool: asyncpg.Pool | None = None
        self._opened = False
        self._maintenance: asyncio.Task | None = None

    @property
    def pool(self) -> asyncpg.Pool | None:
        return self._pool

    async def _open(self) -> None:
        try:
            check_dsn(self._dsn)
        except ValueError as e:
            raise ConnectError(self.name(), f"failed to parse database URL: {e}") from e

        s = self._settings
        try:
            self._pool = asyncpg.create_pool(
                self._dsn,
                min_size=s.min_conns,
                max_size=s.max_conns,
                max_inactive_connection_lifetime=s.max_conn_idle_time,
            )
        except (ValueError, TypeError) as e:
            raise ConnectError(self.name(), f"failed to create connection pool: {e}") from e

        logger.info(
            "PostgreSQL connection pool configured",
            extra={
                "service": self.name(),
                "max_conns": s.max_conns,
                "min_conns": s.min_conns,
                "max_conn_lifetime": s.max_conn_lifetime,
                "max_conn_idle_time": s.max_conn_idle_time,
                "health_check_period": s.health_check_period,
            },
        )

    async def _ping(self) -> str:
        self._opened = True
        await self._pool
        await self._pool.execute("SELECT 1")
        return "SELECT 1 ok"

    async def probe(self, timeout: float) -> HealthResult:
        result = await super().probe(timeout)
        if self._maintenance is None and self._settings.health_check_period > 0:
            self._maintenance = asyncio.create_task(self._maintain(), name="postgres-pool-maintenance")
        return result

    async def _maintain(self) -> None:
        loop = asyncio.get_running_loop()
        period = self._settings.health_check_period
        lifetime = self._settings.max_conn_lifetime
        recycled_at = loop.time()
        while True:
            await asyncio.sleep(period)
            try:
                await self._pool.execute("SELECT 1")
                if lifetime > 0 and loop.time() - recycled_at >= lifetime:
                    await self._pool.expire_connections()
                    recycled_at = loop.time()
                    logger.debug("PostgreSQL pool connections expired", extra={"service": self.name()})
            except Exception as e:
                logger.warning(
                    "PostgreSQL pool health check failed",
                    extra={"service": self.name(), "error": str(e)},
                )

    async def _release(self) -> None:
        if self._maintenance is not None:
            self._maintenance.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._maintenance
            self._maintenance = None
        if self._pool is not None:
            # An un-awaited asyncpg pool refuses close(); it holds no connections.
            if self._opened:
                await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL connection pool closed", extra={"service": self.name()})

    def target(self) -> str:
        return mask_connection_string(self._dsn)

    def name(self) -> str:
        return "postgres"
