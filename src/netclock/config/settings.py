from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from netclock.time.engine import DEFAULT_SERVERS, SyncConfig
from netclock.time.rotation import DEFAULT_NTP_PORT, Server


def _parse_port(port_str: str, entry: str) -> int:
    try:
        return int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in server entry: {entry!r}") from None


def parse_server(text: str) -> Server:
    """Parse ``host``, ``host:port``, ``[v6addr]`` or ``[v6addr]:port``."""
    text = text.strip()
    if not text:
        raise ValueError("Empty server entry")
    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not host:
            raise ValueError(f"Unterminated IPv6 literal in server entry: {text!r}")
        if not rest:
            return Server(host=host, port=DEFAULT_NTP_PORT)
        if not rest.startswith(":"):
            raise ValueError(f"Unexpected text after IPv6 literal: {text!r}")
        return Server(host=host, port=_parse_port(rest[1:], text))
    if text.count(":") == 1:
        host, port_str = text.split(":", 1)
        return Server(host=host.strip(), port=_parse_port(port_str, text))
    # Bare host, or an unbracketed IPv6 literal
    return Server(host=text, port=DEFAULT_NTP_PORT)


def parse_server_list(text: str) -> List[Server]:
    return [parse_server(part) for part in text.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_prefix="NETCLOCK_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Comma separated host[:port] entries
    SERVERS: str = ",".join(str(s) for s in DEFAULT_SERVERS)
    HISTORY_CAPACITY: int = 10
    SYNC_INTERVAL_MS: int = 300 * 1000
    SYNC_TIMEOUT_MS: int = 10 * 1000
    SYNC_ON_CREATION: bool = True
    AUTO_SYNC: bool = True
    START_ONLINE: bool = True

    LOG_LEVEL: str = "INFO"

    def server_list(self) -> List[Server]:
        return parse_server_list(self.SERVERS)

    def to_sync_config(self, **overrides) -> SyncConfig:
        values = dict(
            servers=self.server_list(),
            history_capacity=self.HISTORY_CAPACITY,
            sync_interval_ms=self.SYNC_INTERVAL_MS,
            sync_timeout_ms=self.SYNC_TIMEOUT_MS,
            sync_on_creation=self.SYNC_ON_CREATION,
            auto_sync=self.AUTO_SYNC,
            start_online=self.START_ONLINE,
        )
        values.update(overrides)
        return SyncConfig(**values)


# Global settings instance
settings = Settings()
