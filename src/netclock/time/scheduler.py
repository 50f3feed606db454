"""Cancellable periodic trigger for background syncs."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional

from netclock.utils.logging_config import get_logger


logger = get_logger(__name__)


class SchedulerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class SyncScheduler:
    """Runs ``callback`` every ``interval_ms`` on a daemon thread.

    The scheduler knows nothing about syncing; it only fires ticks. A tick
    that raises is logged and the loop keeps going.
    """

    def __init__(self, interval_ms: int, callback: Callable[[], object], name: str = "netclock-sync"):
        if interval_ms <= 0:
            raise ValueError("Sync interval must be positive")
        self.interval_ms = interval_ms
        self.callback = callback
        self.name = name
        self.lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def state(self) -> SchedulerState:
        with self.lock:
            return SchedulerState.RUNNING if self._stop_event is not None else SchedulerState.STOPPED

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self) -> None:
        with self.lock:
            if self._stop_event is not None:
                return
            stop_event = threading.Event()
            thread = threading.Thread(target=self._run, args=(stop_event,), name=self.name, daemon=True)
            self._stop_event = stop_event
            self._thread = thread
        thread.start()
        logger.debug("scheduler_started", interval_ms=self.interval_ms)

    def stop(self) -> None:
        with self.lock:
            stop_event, thread = self._stop_event, self._thread
            if stop_event is None:
                return
            self._stop_event = None
            self._thread = None
        stop_event.set()
        # A tick may stop its own scheduler (e.g. a listener going offline)
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        logger.debug("scheduler_stopped")

    def _run(self, stop_event: threading.Event) -> None:
        interval = self.interval_ms / 1000.0
        while not stop_event.wait(interval):
            try:
                self.callback()
            except Exception:
                logger.exception("scheduler_tick_failed")
