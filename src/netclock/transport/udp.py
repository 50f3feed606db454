"""UDP transport for the SNTP exchange.

One request datagram goes out, one response datagram is awaited. The
receive runs on a worker thread and races the caller's deadline; a
:class:`OneShot` guard makes sure only the first outcome is delivered.
"""

from __future__ import annotations

import socket
import threading
from typing import Optional, Protocol

from netclock.time.errors import ExchangeTimeoutError, TransportError
from netclock.utils.logging_config import get_logger


logger = get_logger(__name__)

RECV_BUFFER_SIZE = 1024
# Extra time the worker keeps its socket open past the caller's deadline
SOCKET_GRACE_SECONDS = 0.5


class Transport(Protocol):
    def exchange(self, host: str, port: int, request: bytes, timeout_ms: int) -> bytes:
        ...


class OneShot:
    """Single-resolution slot: the first ``settle`` wins, the rest are refused."""

    def __init__(self):
        self.lock = threading.Lock()
        self._done = threading.Event()
        self._settled = False
        self._value: Optional[bytes] = None
        self._error: Optional[BaseException] = None

    @property
    def settled(self) -> bool:
        with self.lock:
            return self._settled

    def settle(self, value: Optional[bytes] = None, error: Optional[BaseException] = None) -> bool:
        with self.lock:
            if self._settled:
                return False
            self._settled = True
            self._value = value
            self._error = error
        self._done.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def result(self) -> bytes:
        if not self._done.is_set():
            raise RuntimeError("OneShot has not been settled")
        if self._error is not None:
            raise self._error
        return self._value


class UdpTransport:
    """Blocking request/response over a fresh UDP socket per exchange."""

    def __init__(self, buffer_size: int = RECV_BUFFER_SIZE):
        self.buffer_size = buffer_size

    def exchange(self, host: str, port: int, request: bytes, timeout_ms: int) -> bytes:
        timeout = timeout_ms / 1000.0
        guard = OneShot()
        worker = threading.Thread(
            target=self._receive,
            args=(guard, host, port, request, timeout + SOCKET_GRACE_SECONDS),
            name=f"netclock-udp-{host}",
            daemon=True,
        )
        worker.start()

        if not guard.wait(timeout):
            guard.settle(error=ExchangeTimeoutError(f"timed out waiting for response from {host}:{port}"))
        return guard.result()

    def _receive(self, guard: OneShot, host: str, port: int, request: bytes, socket_timeout: float) -> None:
        try:
            family, socktype, proto, _, address = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)[0]
            with socket.socket(family, socktype, proto) as sock:
                sock.settimeout(socket_timeout)
                sock.sendto(request, address)
                data, _ = sock.recvfrom(self.buffer_size)
        except (OSError, ValueError) as e:
            # ValueError covers UnicodeError from IDNA encoding of bad host names
            if not guard.settle(error=TransportError(f"{host}:{port}: {e}")):
                logger.debug("late_transport_error_ignored", host=host, port=port, error=str(e))
            return

        if not guard.settle(value=data):
            logger.debug("late_response_ignored", host=host, port=port, size=len(data))
