from __future__ import annotations

import re
import socket
import time
from typing import Optional

_HOST_SAFE = re.compile(r"[^A-Za-z0-9-]+")


def utc_now_iso(ts: Optional[float] = None) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time() if ts is None else ts))


def new_run_id(ts: Optional[float] = None, *, host: Optional[str] = None, host_qualified: bool = False) -> str:
    """yyyyMMdd-HHmmss in UTC, optionally suffixed with a sanitized host name."""
    rid = time.strftime("%Y%m%d-%H%M%S", time.gmtime(time.time() if ts is None else ts))
    if host_qualified or host:
        name = host or socket.gethostname()
        name = _HOST_SAFE.sub("-", str(name)).strip("-").lower()[:32]
        if name:
            rid = f"{rid}-{name}"
    return rid


def dedupe_run_id(run_id: str, taken) -> str:  # noqa: ANN001
    if run_id not in taken:
        return run_id
    n = 2
    while f"{run_id}-{n}" in taken:
        n += 1
    return f"{run_id}-{n}"
