from __future__ import annotations

import re
from typing import Any, Dict

MASK = "***REDACTED***"

# structured keys whose values never leave the process
SECRET_KEYS = frozenset(
    {
        "password",
        "passphrase",
        "secret",
        "token",
        "api_key",
        "apikey",
        "access_key",
        "private_key",
        "authorization",
        "credentials",
    }
)

# installer output echoed into messages, e.g. "--password=hunter2" or "Authorization: Bearer abc"
_BEARER_RE = re.compile(r"(authorization:\s*bearer\s+)\S+", re.IGNORECASE)
_ASSIGN_RE = re.compile(r"(?i)\b(password|passphrase|token|secret|api[_-]?key|access[_-]?key)(\s*[=:]\s*)([^\s,;\"']+)")


def redact_text(text: str) -> str:
    s = _BEARER_RE.sub(rf"\1{MASK}", text)
    return _ASSIGN_RE.sub(rf"\1\2{MASK}", s)


def redact(obj: Any) -> Any:
    """Deep copy of `obj` with secret-named keys masked and secret assignments in strings scrubbed."""
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            out[k] = MASK if str(k).lower() in SECRET_KEYS else redact(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    if isinstance(obj, str):
        return redact_text(obj)
    return obj
