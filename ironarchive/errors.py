"""Exception hierarchy shared by the config loader, connectors and orchestrator."""

from __future__ import annotations


class IronArchiveError(Exception):
    """Base class for all IronArchive errors."""


class ConfigError(IronArchiveError):
    """Configuration could not be loaded."""


class LoggingSetupError(IronArchiveError):
    """The logging sink could not be constructed."""


class ConnectorError(IronArchiveError):
    """A backing-service connector failed. The message always names the service."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__(f"{service}: {message}")


class ConnectError(ConnectorError):
    """Building the client or pool for a service failed."""


class ProbeError(ConnectorError):
    """A health probe reached a verdict other than healthy."""


class ProbeTimeoutError(ProbeError):
    """A health probe did not finish before its deadline."""


class ConnectorStateError(ConnectorError):
    """A connector was used out of lifecycle order."""


class StartupError(IronArchiveError):
    """A dependency failed during startup; the process must not serve."""

    def __init__(self, service: str, phase: str, cause: Exception) -> None:
        self.service = service
        self.phase = phase
        self.cause = cause
        super().__init__(f"{service} {phase} failed: {cause}")
