"""Single-host SSH session lifecycle for fleetrun."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import asyncssh

from .errors import HostConnectionError, HostExecutionError
from .fleet import HostDescriptor

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0


class SessionState(Enum):
    """Lifecycle state of a host's session."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    SESSION_OPEN = "session_open"
    EXECUTED = "executed"
    CLOSED = "closed"


@dataclass(frozen=True)
class ExecutionRequest:
    """Everything a runner needs to run the payload on one host."""

    descriptor: HostDescriptor
    payload: str
    credential: str


@dataclass(frozen=True)
class ResultFrame:
    """Outcome of one host's run, handed to the sink exactly once."""

    host_label: str
    output: bytes = b""
    connection_error: HostConnectionError | None = None
    execution_error: HostExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.connection_error is None and self.execution_error is None


# Type alias for state callback
StateCallback = Callable[[str, SessionState], None]  # (host_label, state) -> None


class SessionRunner:
    """Runs a payload on one host: connect, authenticate, execute, close.

    Per-host failures are returned on the ResultFrame and never raised.
    """

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        on_state: StateCallback | None = None,
    ):
        self.connect_timeout = connect_timeout
        self.on_state = on_state

    def _emit_state(self, host_label: str, state: SessionState) -> None:
        logger.debug("[%s] %s", host_label, state.value)
        if self.on_state:
            self.on_state(host_label, state)

    async def run(self, request: ExecutionRequest) -> ResultFrame:
        """Run the request's payload and return the host's ResultFrame."""
        label = request.descriptor.address
        self._emit_state(label, SessionState.DISCONNECTED)
        try:
            return await self._run(request)
        finally:
            self._emit_state(label, SessionState.CLOSED)

    async def _run(self, request: ExecutionRequest) -> ResultFrame:
        host = request.descriptor
        label = host.address

        try:
            conn = await asyncssh.connect(
                host.host,
                port=int(host.port),
                username=host.username,
                password=request.credential,
                client_keys=None,  # Password authentication only
                known_hosts=None,  # No host key verification
                connect_timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError, asyncssh.Error) as e:
            logger.info("[%s] SSH connection error: %s", label, e)
            return ResultFrame(
                host_label=label,
                connection_error=HostConnectionError(label, _describe(e)),
            )
        except Exception as e:
            logger.warning("[%s] Unexpected connection failure", label, exc_info=True)
            return ResultFrame(
                host_label=label,
                connection_error=HostConnectionError(label, _describe(e)),
            )

        # asyncssh connects and authenticates in one step
        self._emit_state(label, SessionState.CONNECTED)
        self._emit_state(label, SessionState.AUTHENTICATED)

        async with conn:
            try:
                self._emit_state(label, SessionState.SESSION_OPEN)
                result = await conn.run(
                    request.payload, stderr=asyncssh.STDOUT, encoding=None
                )
            except asyncssh.ChannelOpenError as e:
                logger.info("[%s] SSH session error: %s", label, e)
                return ResultFrame(
                    host_label=label,
                    connection_error=HostConnectionError(label, _describe(e)),
                )
            except (OSError, asyncssh.Error) as e:
                logger.info("[%s] Command execution error: %s", label, e)
                return ResultFrame(
                    host_label=label,
                    execution_error=HostExecutionError(label, _describe(e)),
                )
            except Exception as e:
                logger.warning("[%s] Unexpected execution failure", label, exc_info=True)
                return ResultFrame(
                    host_label=label,
                    execution_error=HostExecutionError(label, _describe(e)),
                )

            self._emit_state(label, SessionState.EXECUTED)

        output = result.stdout or b""

        if result.exit_signal:
            signal_name = result.exit_signal[0]
            error = HostExecutionError(
                label, f"Process terminated by signal {signal_name}", result.exit_status
            )
        elif result.exit_status:
            error = HostExecutionError(
                label, f"Process exited with status {result.exit_status}", result.exit_status
            )
        else:
            error = None

        if error is not None:
            logger.info("[%s] Command execution error: %s", label, error)
        return ResultFrame(host_label=label, output=output, execution_error=error)


def _describe(error: Exception) -> str:
    """Human-readable reason for an error, falling back to its type name."""
    return str(error) or type(error).__name__
