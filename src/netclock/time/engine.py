"""Network time synchronization engine.

Ties together the packet codec, server rotation, history ledger and
scheduler. Each engine owns its own state; nothing is shared between
instances.
"""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from netclock.time.errors import SyncError
from netclock.time.history import ErrorRecord, HistoryLedger, HistoryState
from netclock.time.packet import build_request, parse_response
from netclock.time.rotation import Server, ServerRotation
from netclock.time.scheduler import SyncScheduler
from netclock.transport.udp import Transport, UdpTransport
from netclock.utils.logging_config import get_logger


logger = get_logger(__name__)

DEFAULT_SERVERS = (
    Server("time.google.com", 123),
    Server("time.windows.com", 123),
    Server("time.cloudflare.com", 123),
    Server("0.pool.ntp.org", 123),
    Server("1.pool.ntp.org", 123),
)

HistoryListener = Callable[[HistoryState], None]


def system_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SyncConfig:
    """Configuration for a SyncEngine."""
    servers: List[Server] = field(default_factory=lambda: list(DEFAULT_SERVERS))
    history_capacity: int = 10
    sync_interval_ms: int = 300 * 1000
    sync_timeout_ms: int = 10 * 1000
    sync_on_creation: bool = True
    auto_sync: bool = True
    start_online: bool = True
    # Called with the raw server time (ms) after every successful exchange
    on_server_time: Optional[Callable[[int], None]] = None
    # Called with the DeltaResult after every successful sync_time()
    on_delta: Optional[Callable[["DeltaResult"], None]] = None

    def __post_init__(self) -> None:
        self.servers = list(self.servers)
        if not self.servers:
            raise ValueError("At least one server is required")
        for s in self.servers:
            if not isinstance(s, Server):
                raise ValueError(f"Expected Server, got {type(s).__name__}")
        if self.history_capacity <= 0:
            raise ValueError("history_capacity must be positive")
        if self.sync_interval_ms <= 0:
            raise ValueError("sync_interval_ms must be positive")
        if self.sync_timeout_ms <= 0:
            raise ValueError("sync_timeout_ms must be positive")


@dataclass(frozen=True)
class DeltaResult:
    offset_ms: int
    server: Optional[Server] = None


class Subscription:
    """Handle returned by :meth:`SyncEngine.add_listener`."""

    def __init__(self, engine: "SyncEngine", token: int):
        self._engine = engine
        self.token = token

    @property
    def active(self) -> bool:
        return self._engine._has_listener(self.token)

    def cancel(self) -> bool:
        return self._engine.remove_listener(self)


class SyncEngine:
    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        transport: Optional[Transport] = None,
        clock: Callable[[], int] = system_clock_ms,
    ):
        self.config = config or SyncConfig()
        self.transport = transport or UdpTransport()
        self.clock = clock

        self._rotation = ServerRotation(self.config.servers)
        self._ledger = HistoryLedger(self.config.history_capacity, self._rotation.current())
        self._scheduler = SyncScheduler(self.config.sync_interval_ms, self.sync_time)

        self._online = self.config.start_online
        self._attempt_lock = threading.Lock()
        self._listeners_lock = threading.Lock()
        self._listeners: Dict[int, HistoryListener] = {}
        self._tokens = itertools.count(1)

        if self.config.sync_on_creation and self._online:
            self.sync_time()

        if self.config.auto_sync and self._online:
            self._scheduler.start()

    # -- online state -----------------------------------------------------

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online and not self._online:
            self._online = True
            logger.info("engine_online")
            self.sync_time()
            if self.config.auto_sync:
                self._scheduler.start()
        elif not online and self._online:
            self._scheduler.stop()
            self._online = False
            logger.info("engine_offline")

    # -- scheduler controls -----------------------------------------------

    def start(self) -> None:
        self._scheduler.start()

    def stop(self) -> None:
        self._scheduler.stop()

    @property
    def is_auto_syncing(self) -> bool:
        return self._scheduler.is_running

    def close(self) -> None:
        self._scheduler.stop()

    def __enter__(self) -> "SyncEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- sync -------------------------------------------------------------

    def get_delta(self) -> DeltaResult:
        """Query the current server once and record the observed offset.

        Offline engines return a zero offset without touching the network.
        Raises SyncError when the exchange fails; the rotation has already
        moved on by then, but the failure is not recorded in the history.
        """
        if not self._online:
            return DeltaResult(offset_ms=0)
        with self._attempt_lock:
            return self._attempt()

    def sync_time(self) -> bool:
        """Run one sync attempt. Returns True on success, never raises.

        Listeners and the ``on_delta`` hook run after the attempt lock is
        released, so a listener may itself call ``get_delta`` or
        ``sync_time``. Two successful attempts finishing on different
        threads can therefore notify in either order; each snapshot is
        still consistent on its own.
        """
        if not self._online:
            return False
        if not self._attempt_lock.acquire(blocking=False):
            logger.debug("sync_tick_dropped", reason="attempt in flight")
            return False
        try:
            try:
                result = self._attempt()
            except SyncError as e:
                record = ErrorRecord(
                    kind=e.kind,
                    message=str(e),
                    server=e.server,
                    timestamp_ms=self.clock(),
                )
                self._ledger.record_failure(record)
                logger.warning(
                    "sync_failed",
                    server=str(e.server),
                    kind=record.kind,
                    error=record.message,
                )
                return False
        finally:
            self._attempt_lock.release()

        self._call_hook("on_delta", self.config.on_delta, result)
        self._notify_listeners()
        return True

    def _attempt(self) -> DeltaResult:
        server = self._rotation.current()
        try:
            request = build_request()
            response = self.transport.exchange(server.host, server.port, request, self.config.sync_timeout_ms)
            server_time_ms = round(parse_response(response))
        except Exception as e:
            replacement = self._rotation.advance_on_failure()
            self._ledger.set_current_server(replacement)
            if replacement != server:
                logger.info("server_rotated", failed=str(server), current=str(replacement))
            raise SyncError(e, server) from e

        now_ms = self.clock()
        offset_ms = server_time_ms - now_ms
        self._ledger.record_success(offset_ms, server_time_ms, now_ms)
        logger.info("sync_succeeded", server=str(server), offset_ms=offset_ms)

        self._call_hook("on_server_time", self.config.on_server_time, server_time_ms)
        return DeltaResult(offset_ms=offset_ms, server=server)

    # -- reads ------------------------------------------------------------

    def get_time(self) -> int:
        """Local time in Unix ms corrected by the average observed offset."""
        return self.clock() + self._ledger.estimated_offset_ms()

    def get_history(self) -> HistoryState:
        return self._ledger.snapshot()

    # -- listeners --------------------------------------------------------

    def add_listener(self, handler: HistoryListener) -> Subscription:
        with self._listeners_lock:
            token = next(self._tokens)
            self._listeners[token] = handler
        return Subscription(self, token)

    def remove_listener(self, subscription: Subscription) -> bool:
        with self._listeners_lock:
            return self._listeners.pop(subscription.token, None) is not None

    def _has_listener(self, token: int) -> bool:
        with self._listeners_lock:
            return token in self._listeners

    def _notify_listeners(self) -> None:
        with self._listeners_lock:
            handlers = list(self._listeners.values())
        for handler in handlers:
            try:
                handler(self.get_history())
            except Exception:
                logger.exception("listener_failed", listener=repr(handler))

    def _call_hook(self, name: str, hook, value) -> None:
        if hook is None:
            return
        try:
            hook(value)
        except Exception:
            logger.exception("hook_failed", hook=name)
