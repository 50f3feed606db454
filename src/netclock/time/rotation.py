"""Candidate time servers and failover rotation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple


DEFAULT_NTP_PORT = 123


@dataclass(frozen=True)
class Server:
    host: str
    port: int = DEFAULT_NTP_PORT

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise ValueError("Server host must be a non-empty string")
        if not isinstance(self.port, int) or not 0 < self.port <= 65535:
            raise ValueError(f"Invalid port for {self.host}: {self.port!r}")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class ServerRotation:
    """Ordered, immutable server list with a cursor that moves on failure."""

    def __init__(self, servers: Iterable[Server]):
        self._servers: Tuple[Server, ...] = tuple(servers)
        if not self._servers:
            raise ValueError("At least one server is required")
        self._cursor = 0

    @property
    def servers(self) -> Tuple[Server, ...]:
        return self._servers

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._servers)

    def current(self) -> Server:
        return self._servers[self._cursor]

    def advance_on_failure(self) -> Server:
        """Move to the next server and return it. Single-server lists stay put."""
        if len(self._servers) > 1:
            self._cursor = (self._cursor + 1) % len(self._servers)
        return self._servers[self._cursor]
