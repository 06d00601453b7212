"""Error types for fleetrun."""

from __future__ import annotations


class FleetRunError(Exception):
    """Base class for all fleetrun errors."""


class ConfigLoadError(FleetRunError):
    """Settings file is missing, unreadable or invalid."""


class FleetReadError(FleetRunError):
    """Fleet file cannot be read."""


class MalformedHostLine(FleetRunError):
    """A fleet line is not of the form ``user@host[:port]``."""

    def __init__(self, line: str, lineno: int | None = None):
        self.line = line
        self.lineno = lineno
        where = f" (line {lineno})" if lineno is not None else ""
        super().__init__(f"Invalid host format{where}: {line}")


class PayloadReadError(FleetRunError):
    """Payload script cannot be read."""


class LogOpenError(FleetRunError):
    """Log file cannot be opened for writing."""


class HostConnectionError(FleetRunError):
    """Transport, authentication or session-open failure for one host."""

    def __init__(self, host_label: str, reason: str):
        self.host_label = host_label
        self.reason = reason
        super().__init__(reason)


class HostExecutionError(FleetRunError):
    """The remote command failed or the channel faulted mid-run."""

    def __init__(self, host_label: str, reason: str, exit_status: int | None = None):
        self.host_label = host_label
        self.reason = reason
        self.exit_status = exit_status
        super().__init__(reason)
