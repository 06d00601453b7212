"""Fleet file parsing."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .errors import FleetReadError, MalformedHostLine

DEFAULT_PORT = "22"


@dataclass(frozen=True)
class HostDescriptor:
    """Connection target for a single host."""

    address: str  # always "user@host", port excluded
    username: str
    port: str = DEFAULT_PORT

    @property
    def host(self) -> str:
        return self.address.split("@", 1)[1]


def parse_host_line(line: str) -> HostDescriptor:
    """Parse one ``user@host[:port]`` line into a HostDescriptor.

    Comment and blank lines must be filtered out by the caller.
    """
    line = line.strip()
    parts = line.split("@")
    if len(parts) != 2:
        raise MalformedHostLine(line)

    user, host_part = parts
    host = host_part
    port = DEFAULT_PORT

    if ":" in host_part:
        host, port = host_part.split(":")[:2]

    if not user or not host or not _valid_port(port):
        raise MalformedHostLine(line)

    return HostDescriptor(address=f"{user}@{host}", username=user, port=port)


def _valid_port(port: str) -> bool:
    return port.isascii() and port.isdecimal() and 1 <= int(port) <= 65535


def read_fleet(path: str | Path) -> list[HostDescriptor]:
    """Read a fleet file, one host per line.

    Blank lines and lines starting with ``#`` are ignored.
    """
    try:
        with open(path) as f:
            lines = f.readlines()
    except OSError as e:
        raise FleetReadError(f"Error opening hosts file {path}: {e}") from e

    hosts = []
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            hosts.append(parse_host_line(line))
        except MalformedHostLine as e:
            raise MalformedHostLine(line, lineno) from e

    return hosts
