"""Lifecycle orchestrator: ordered startup, signal wait, bounded shutdown.

Startup walks the connectors in a fixed order (PostgreSQL, Redis,
Meilisearch). Each one is connected and probed before the next is touched,
and the first failure aborts startup: the process either has all three
dependencies or it does not run.

Shutdown waits for SIGINT/SIGTERM, closes every acquired connector and then
compares the elapsed time against the shutdown deadline. The deadline only
decides which message is logged; cleanup is never cut short.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from ironarchive.config import ServiceConfig
from ironarchive.connectors.base import HealthResult, ServiceConnector
from ironarchive.connectors.meilisearch import MeilisearchConnector
from ironarchive.connectors.postgres import PoolSettings, PostgresConnector
from ironarchive.connectors.redis import RedisConnector
from ironarchive.errors import ConnectorError, StartupError
from ironarchive.observability.health import aggregate_health

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(str, Enum):
    STARTING = "starting"
    CONNECTING = "connecting"
    VALIDATING = "validating"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class ShutdownReport:
    timed_out: bool
    errors: dict[str, str] = field(default_factory=dict)


def build_connectors(config: ServiceConfig) -> list[ServiceConnector]:
    """Connectors in startup order."""
    return [
        PostgresConnector(config.database_url, PoolSettings.from_config(config)),
        RedisConnector(config.redis_url),
        MeilisearchConnector(
            config.meilisearch_url,
            config.meili_master_key,
            timeout=config.meilisearch_timeout,
        ),
    ]


class LifecycleOrchestrator:
    def __init__(self, config: ServiceConfig, connectors: Iterable[ServiceConnector] | None = None) -> None:
        self._config = config
        self._connectors = list(connectors) if connectors is not None else build_connectors(config)
        names = [c.name() for c in self._connectors]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"more than one connector for: {', '.join(duplicates)}")

        self._probe_timeouts = {"meilisearch": config.meilisearch_timeout}
        self._acquired: list[ServiceConnector] = []
        self._state = LifecycleState.STARTING
        self._current: str | None = None
        self._stop = asyncio.Event()
        self._handling_signals = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def current_service(self) -> str | None:
        return self._current

    @property
    def connectors(self) -> list[ServiceConnector]:
        return list(self._connectors)

    def probe_timeout(self, service: str) -> float:
        return self._probe_timeouts.get(service, self._config.probe_timeout)

    async def start(self) -> None:
        """Connect and validate every service in order. Raises StartupError on the first failure."""
        for connector in self._connectors:
            service = connector.name()
            self._current = service

            self._state = LifecycleState.CONNECTING
            logger.info("Connecting to %s...", service, extra={"service": service, "url": connector.target()})
            try:
                await connector.connect()
            except ConnectorError as exc:
                await self._abort(connector, "connect", exc)
                raise StartupError(service, "connect", exc) from exc
            self._acquired.append(connector)

            self._state = LifecycleState.VALIDATING
            try:
                await connector.probe(self.probe_timeout(service))
            except ConnectorError as exc:
                await self._abort(connector, "probe", exc)
                raise StartupError(service, "probe", exc) from exc
            logger.info("%s connection successful", service, extra={"service": service})

        self._current = None
        self._state = LifecycleState.READY
        logger.info("All service connections validated successfully")

    async def _abort(self, connector: ServiceConnector, phase: str, exc: ConnectorError) -> None:
        service = connector.name()
        logger.error(
            "Failed to %s %s",
            phase,
            service,
            extra={"service": service, "url": connector.target(), "error": str(exc)},
        )
        self._state = LifecycleState.FAILED
        await self._release_all()

    async def _release_all(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        for connector in reversed(self._acquired):
            try:
                await connector.close()
            except ConnectorError as exc:
                errors[connector.name()] = str(exc)
                logger.warning(
                    "Failed to close %s connection",
                    connector.name(),
                    extra={"service": connector.name(), "error": str(exc)},
                )
        self._acquired.clear()
        return errors

    def request_stop(self) -> None:
        """Wake ``wait_for_signal`` as if a shutdown signal had arrived."""
        self._stop.set()

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._stop.is_set():
            logger.warning("Received %s during shutdown, ignoring", sig.name, extra={"signal": sig.name})
            return
        logger.info("Received %s", sig.name, extra={"signal": sig.name})
        self._stop.set()

    @contextlib.contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        """Route SIGINT/SIGTERM to ``_on_signal`` while the block runs."""
        if self._handling_signals:
            yield
            return
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self._on_signal, sig)
        self._handling_signals = True
        try:
            yield
        finally:
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)
            self._handling_signals = False

    async def wait_for_signal(self) -> None:
        """Block until SIGINT or SIGTERM (or ``request_stop``)."""
        with self._signal_handlers():
            await self._stop.wait()

    async def shutdown(self) -> ShutdownReport:
        """Close every acquired connector; log whether the deadline held."""
        self._state = LifecycleState.SHUTTING_DOWN
        logger.info("Shutting down server...")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.shutdown_timeout

        errors = await self._release_all()

        timed_out = loop.time() >= deadline
        if timed_out:
            logger.warning("Shutdown timeout exceeded", extra={"shutdown_timeout": self._config.shutdown_timeout})
        else:
            logger.info("Server stopped gracefully")
        self._state = LifecycleState.STOPPED
        return ShutdownReport(timed_out=timed_out, errors=errors)

    async def health(self) -> dict:
        """Re-probe every acquired connector and aggregate the results."""
        results = []
        for connector in self._acquired:
            try:
                result = await connector.probe(self.probe_timeout(connector.name()))
            except ConnectorError as exc:
                result = HealthResult(service=connector.name(), healthy=False, detail=str(exc))
            results.append(result)
        return aggregate_health(results)

    async def run(self) -> ShutdownReport:
        await self.start()
        logger.info(
            "Server is ready on %s:%s",
            self._config.server_host,
            self._config.server_port,
        )
        # Handlers stay installed through cleanup so a repeated signal is absorbed.
        with self._signal_handlers():
            await self.wait_for_signal()
            return await self.shutdown()
