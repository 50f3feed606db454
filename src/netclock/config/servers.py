"""Load the ordered server list from a small YAML file.

Only a top-level ``servers:`` key holding a list of ``host``/``port``
mappings is understood; everything else in the file is ignored::

    servers:
      - host: time.google.com
        port: 123
      - host: 0.pool.ntp.org

Entries keep their file order, which is the failover order. A missing
``port`` means 123.
"""

from __future__ import annotations

from typing import Dict, List, Union

from netclock.time.rotation import DEFAULT_NTP_PORT, Server


def _split_pair(text: str):
    key, value = [p.strip() for p in text.split(":", 1)]
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return key, value[1:-1]
    if value.isdigit():
        return key, int(value)
    return key, value


def _read_entries(text: str) -> List[Dict[str, Union[str, int]]]:
    entries: List[Dict[str, Union[str, int]]] = []
    in_servers = False
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if not raw[0].isspace():
            # A new top-level key ends the servers block
            in_servers = stripped.startswith("servers:")
            continue
        if not in_servers:
            continue
        if stripped.startswith("-"):
            entries.append({})
            stripped = stripped[1:].strip()
            if not stripped:
                continue
        if entries and ":" in stripped:
            key, value = _split_pair(stripped)
            entries[-1][key] = value
    return entries


def load_server_list(path: str) -> List[Server]:
    with open(path, "r", encoding="utf-8") as f:
        entries = _read_entries(f.read())
    if not entries:
        raise ValueError(f"No servers defined in {path}")

    servers: List[Server] = []
    for idx, entry in enumerate(entries):
        host = entry.get("host")
        if not host:
            raise ValueError(f"Server entry {idx} is missing required field 'host'")
        port = entry.get("port", DEFAULT_NTP_PORT)
        if not isinstance(port, int):
            raise ValueError(f"Server entry {idx} has a non-integer port: {port!r}")
        servers.append(Server(host=str(host), port=port))
    return servers
