"""Error taxonomy for network time synchronization."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from netclock.time.rotation import Server


class NetClockError(Exception):
    """Base class for all netclock failures."""


class TransportError(NetClockError):
    """Send or receive failed below the time protocol."""


class ExchangeTimeoutError(TransportError):
    """No response arrived within the sync timeout."""


class MalformedResponseError(NetClockError):
    """Response datagram is too short or otherwise unparsable."""


class SyncError(NetClockError):
    """A sync attempt against ``server`` failed with ``cause``."""

    def __init__(self, cause: BaseException, server: "Server"):
        super().__init__(str(cause) or type(cause).__name__)
        self.cause = cause
        self.server = server

    @property
    def kind(self) -> str:
        return type(self.cause).__name__

    def __repr__(self) -> str:
        return f"SyncError(kind={self.kind!r}, server={self.server!r}, message={str(self)!r})"
