"""Parsing of proxy access-log lines.

Expected shape (Xray access log)::

    2025/09/04 10:17:03.008517 from 203.0.113.5:51234 accepted tcp:example.com:443 [in >> out] email: user@x

The source may carry a ``tcp:``/``udp:`` prefix and IPv6 sources are
bracketed (``[2001:db8::1]:51234``). Timestamps are the proxy's local time.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from datetime import datetime

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S.%f"
TIMESTAMP_WIDTH = 26

_CONNECTION_RE = re.compile(
    r"from\s+(?:(?:tcp|udp):)?"
    r"(?P<address>\[[0-9A-Fa-f:.]+\]|\d{1,3}(?:\.\d{1,3}){3}):\d+"
    r"\s+accepted\b.*?\bemail:\s*(?P<identity>[^\s,;]+)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ConnectionEvent:
    identity: str
    address: str
    timestamp: datetime | None


def parse_timestamp(line: str) -> datetime | None:
    if len(line) < TIMESTAMP_WIDTH:
        return None
    try:
        return datetime.strptime(line[:TIMESTAMP_WIDTH], TIMESTAMP_FORMAT)
    except ValueError:
        return None


def _normalize_address(raw: str) -> str | None:
    candidate = raw[1:-1] if raw.startswith("[") and raw.endswith("]") else raw
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def parse_line(line: str) -> ConnectionEvent | None:
    """Return the connection described by ``line`` or None if it has none."""
    match = _CONNECTION_RE.search(line)
    if match is None:
        return None
    address = _normalize_address(match.group("address"))
    if address is None:
        return None
    return ConnectionEvent(
        identity=match.group("identity").strip(),
        address=address,
        timestamp=parse_timestamp(line),
    )
