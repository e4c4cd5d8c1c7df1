"""Service connector abstraction.

Every backing service is wrapped in a ``ServiceConnector`` that owns exactly
one client or pool handle. The base class drives the lifecycle
(``UNINITIALIZED -> CONNECTED -> VALIDATED -> CLOSED``) and turns library
failures into ``ConnectorError`` subclasses; subclasses only implement the
service-specific ``_open``, ``_ping`` and ``_release`` steps.
"""

from __future__ import annotations

import abc
import asyncio
from dataclasses import dataclass
from enum import Enum

from ironarchive.errors import (
    ConnectError,
    ConnectorError,
    ConnectorStateError,
    ProbeError,
    ProbeTimeoutError,
)


class ConnectorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    VALIDATED = "validated"
    CLOSED = "closed"


@dataclass(frozen=True)
class HealthResult:
    service: str
    healthy: bool
    detail: str = ""


class ServiceConnector(abc.ABC):
    def __init__(self) -> None:
        self._state = ConnectorState.UNINITIALIZED

    @property
    def state(self) -> ConnectorState:
        return self._state

    @abc.abstractmethod
    def name(self) -> str:
        """Connector identifier."""

    @abc.abstractmethod
    def target(self) -> str:
        """Connection target, masked for logging."""

    @abc.abstractmethod
    async def _open(self) -> None:
        """Build the client or pool handle."""

    @abc.abstractmethod
    async def _ping(self) -> str:
        """One round-trip to the service. Returns a short detail string."""

    @abc.abstractmethod
    async def _release(self) -> None:
        """Release the handle built by ``_open``."""

    async def connect(self) -> None:
        if self._state is not ConnectorState.UNINITIALIZED:
            raise ConnectorStateError(self.name(), f"cannot connect while {self._state.value}")
        try:
            await self._open()
        except ConnectorError:
            raise
        except Exception as e:
            raise ConnectError(self.name(), str(e) or type(e).__name__) from e
        self._state = ConnectorState.CONNECTED

    async def probe(self, timeout: float) -> HealthResult:
        """Run one health round-trip bounded by ``timeout`` seconds."""
        if self._state not in (ConnectorState.CONNECTED, ConnectorState.VALIDATED):
            raise ConnectorStateError(self.name(), f"cannot probe while {self._state.value}")
        try:
            detail = await asyncio.wait_for(self._ping(), timeout)
        except asyncio.TimeoutError:
            raise ProbeTimeoutError(self.name(), f"no response within {timeout:g}s") from None
        except ConnectorError:
            raise
        except Exception as e:
            raise ProbeError(self.name(), str(e) or type(e).__name__) from e
        self._state = ConnectorState.VALIDATED
        return HealthResult(service=self.name(), healthy=True, detail=detail)

    async def close(self) -> None:
        """Release the handle. Idempotent; a connector is unusable afterwards."""
        previous = self._state
        if previous is ConnectorState.CLOSED:
            return
        self._state = ConnectorState.CLOSED
        if previous is ConnectorState.UNINITIALIZED:
            return
        try:
            await self._release()
        except ConnectorError:
            raise
        except Exception as e:
            raise ConnectorError(self.name(), f"close failed: {e}") from e
