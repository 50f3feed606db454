"""SNTP packet encoding and decoding.

Only the client request and the transmit timestamp of the server reply are
used. Stratum, leap indicator and the other header fields are ignored.
"""

from __future__ import annotations

import struct
from datetime import datetime, timezone

from netclock.time.errors import MalformedResponseError


PACKET_SIZE = 48
CLIENT_MODE_MARKER = 0x1B  # LI=0, VN=3, Mode=3 (client)
TRANSMIT_TIMESTAMP_OFFSET = 40
TRANSMIT_TIMESTAMP_FORMAT = "!II"

NTP_DELTA = 2208988800  # seconds between 1900-01-01 and 1970-01-01
NTP_DELTA_MS = NTP_DELTA * 1000
FRACTION_SCALE = 2**32


def build_request() -> bytes:
    """Return the 48-byte client request datagram."""
    packet = bytearray(PACKET_SIZE)
    packet[0] = CLIENT_MODE_MARKER
    return bytes(packet)


def parse_response(data: bytes) -> float:
    """Return the server transmit time as Unix-epoch milliseconds.

    The value is a float; callers round it when they store it.
    """
    if data is None or len(data) < PACKET_SIZE:
        size = 0 if data is None else len(data)
        raise MalformedResponseError(f"response too short: {size} bytes, expected {PACKET_SIZE}")

    try:
        int_part, frac_part = struct.unpack_from(TRANSMIT_TIMESTAMP_FORMAT, data, TRANSMIT_TIMESTAMP_OFFSET)
    except (struct.error, TypeError) as e:
        raise MalformedResponseError(f"unparsable response: {e}") from e

    milliseconds = int_part * 1000 + (frac_part * 1000) / FRACTION_SCALE
    return milliseconds - NTP_DELTA_MS


def to_datetime(timestamp_ms: float) -> datetime:
    """Convert Unix-epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)
