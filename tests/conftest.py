import struct

import pytest

from netclock.time.errors import ExchangeTimeoutError
from netclock.time.packet import NTP_DELTA_MS, PACKET_SIZE
from netclock.time.rotation import Server


NOW_MS = 1_700_000_000_000

A = Server("a.example", 123)
B = Server("b.example", 123)
C = Server("c.example", 123)


def make_response(server_time_ms: int) -> bytes:
    """Build a 48-byte server reply whose transmit timestamp is server_time_ms."""
    total = server_time_ms + NTP_DELTA_MS
    seconds, remainder = divmod(total, 1000)
    fraction = (remainder * 2**32) // 1000
    packet = bytearray(PACKET_SIZE)
    packet[0] = 0x1C
    struct.pack_into("!II", packet, 40, seconds, fraction)
    return bytes(packet)


class FakeClock:
    """Settable millisecond clock for deterministic offsets."""

    def __init__(self, now_ms: int = NOW_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeTransport:
    """Answers per host: an int is the server's offset from the clock,
    an exception instance is raised, bytes are returned as-is."""

    def __init__(self, clock: FakeClock, behaviors=None):
        self.clock = clock
        self.behaviors = dict(behaviors or {})
        self.calls = []

    def exchange(self, host, port, request, timeout_ms):
        self.calls.append((host, port, request, timeout_ms))
        behavior = self.behaviors.get(host, ExchangeTimeoutError(f"timed out waiting for {host}"))
        if isinstance(behavior, BaseException):
            raise behavior
        if isinstance(behavior, bytes):
            return behavior
        if callable(behavior):
            return behavior()
        return make_response(self.clock() + behavior)


@pytest.fixture
def clock():
    return FakeClock()
