"""
Structured output: NDJSON progress events and the machine-readable envelope.
"""

from steadyhost.core.events.envelope import Outcome, build_envelope, exit_code_for
from steadyhost.core.events.redaction import redact
from steadyhost.core.events.stream import EventStream, NullEventStream

__all__ = [
    "Outcome",
    "build_envelope",
    "exit_code_for",
    "redact",
    "EventStream",
    "NullEventStream",
]
