"""fleetrun: Run one script on every host of a fleet over SSH."""

from .config import Settings, load_config, read_payload
from .errors import (
    ConfigLoadError,
    FleetReadError,
    FleetRunError,
    HostConnectionError,
    HostExecutionError,
    LogOpenError,
    MalformedHostLine,
    PayloadReadError,
)
from .executor import Executor
from .fleet import HostDescriptor, parse_host_line, read_fleet
from .session import ExecutionRequest, ResultFrame, SessionRunner, SessionState
from .sink import OutputSink, open_sink, render_frame

__all__ = [
    "Settings",
    "load_config",
    "read_payload",
    "ConfigLoadError",
    "FleetReadError",
    "FleetRunError",
    "HostConnectionError",
    "HostExecutionError",
    "LogOpenError",
    "MalformedHostLine",
    "PayloadReadError",
    "Executor",
    "HostDescriptor",
    "parse_host_line",
    "read_fleet",
    "ExecutionRequest",
    "ResultFrame",
    "SessionRunner",
    "SessionState",
    "OutputSink",
    "open_sink",
    "render_frame",
]
