"""Bounded history of sync outcomes.

The ledger keeps the last ``capacity`` successful deltas and the last
``capacity`` errors in two ring buffers, plus running counters. Readers only
ever see :class:`HistoryState` snapshots, which share nothing mutable with
the ledger.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, Optional, Tuple

from netclock.time.rotation import Server


@dataclass(frozen=True)
class Delta:
    offset_ms: int
    server_time_ms: int


@dataclass(frozen=True)
class ErrorRecord:
    kind: str
    message: str
    server: Server
    timestamp_ms: int


@dataclass(frozen=True)
class HistoryState:
    current_consecutive_error_count: int
    current_server: Server
    deltas: Tuple[Delta, ...]
    errors: Tuple[ErrorRecord, ...]
    is_in_error_state: bool
    last_sync_time_ms: Optional[int]
    last_server_time_ms: Optional[int]
    last_error: Optional[ErrorRecord]
    lifetime_error_count: int
    max_consecutive_error_count: int

    def as_dict(self) -> Dict[str, Any]:
        """Plain-data rendition, ready for ``json.dumps``."""
        data = asdict(self)
        data["deltas"] = list(data["deltas"])
        data["errors"] = list(data["errors"])
        return data


class HistoryLedger:
    def __init__(self, capacity: int, current_server: Server):
        if capacity <= 0:
            raise ValueError("History capacity must be positive")
        self.capacity = capacity
        self._deltas: Deque[Delta] = deque(maxlen=capacity)
        self._errors: Deque[ErrorRecord] = deque(maxlen=capacity)
        self._current_server = current_server
        self._current_consecutive_error_count = 0
        self._max_consecutive_error_count = 0
        self._lifetime_error_count = 0
        self._is_in_error_state = False
        self._last_sync_time_ms: Optional[int] = None
        self._last_server_time_ms: Optional[int] = None
        self._last_error: Optional[ErrorRecord] = None
        self.lock = threading.Lock()

    def record_success(self, offset_ms: int, server_time_ms: int, now_ms: int) -> None:
        with self.lock:
            self._deltas.append(Delta(offset_ms=offset_ms, server_time_ms=server_time_ms))
            self._last_sync_time_ms = now_ms
            self._last_server_time_ms = server_time_ms
            self._current_consecutive_error_count = 0
            self._is_in_error_state = False

    def record_failure(self, error: ErrorRecord) -> None:
        with self.lock:
            self._errors.append(error)
            self._current_consecutive_error_count += 1
            self._lifetime_error_count += 1
            self._max_consecutive_error_count = max(
                self._max_consecutive_error_count,
                self._current_consecutive_error_count,
            )
            self._is_in_error_state = True
            self._last_error = error

    def set_current_server(self, server: Server) -> None:
        with self.lock:
            self._current_server = server

    def estimated_offset_ms(self) -> int:
        """Mean of the retained offsets, rounded half up; 0 with no deltas."""
        with self.lock:
            if not self._deltas:
                return 0
            mean = sum(d.offset_ms for d in self._deltas) / len(self._deltas)
        return int(math.floor(mean + 0.5))

    def snapshot(self) -> HistoryState:
        with self.lock:
            return HistoryState(
                current_consecutive_error_count=self._current_consecutive_error_count,
                current_server=self._current_server,
                deltas=tuple(self._deltas),
                errors=tuple(self._errors),
                is_in_error_state=self._is_in_error_state,
                last_sync_time_ms=self._last_sync_time_ms,
                last_server_time_ms=self._last_server_time_ms,
                last_error=self._last_error,
                lifetime_error_count=self._lifetime_error_count,
                max_consecutive_error_count=self._max_consecutive_error_count,
            )
