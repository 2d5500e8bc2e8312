from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from steadyhost import __version__
from steadyhost.core.runid import utc_now_iso

ENVELOPE_SCHEMA_VERSION = 1


class Outcome(str, Enum):
    success = "success"
    partial = "partial"
    fatal = "fatal"


EXIT_CODES = {
    Outcome.success: 0,
    Outcome.fatal: 1,
    Outcome.partial: 2,
}


def exit_code_for(outcome: Outcome) -> int:
    return EXIT_CODES[Outcome(outcome)]


def build_envelope(
    *,
    command: str,
    run_id: str,
    outcome: Outcome,
    data: Optional[Dict[str, Any]] = None,
    error: Any = None,
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """
    `error` is only populated for fatal outcomes. A partial failure keeps
    error=None and reports the failures through data.counts.
    """
    outcome = Outcome(outcome)
    err: Optional[Dict[str, Any]] = None
    if outcome == Outcome.fatal:
        if error is None:
            err = {"code": "INTERNAL_ERROR", "message": "Unknown failure."}
        elif hasattr(error, "to_dict"):
            err = error.to_dict()
        else:
            err = dict(error)
    return {
        "schemaVersion": ENVELOPE_SCHEMA_VERSION,
        "cliVersion": __version__,
        "command": command,
        "runId": run_id,
        "timestampUtc": timestamp or utc_now_iso(),
        "success": outcome == Outcome.success,
        "data": data if data is not None else {},
        "error": err,
    }
