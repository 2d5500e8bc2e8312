from __future__ import annotations

import json
import threading
import time
from typing import IO, Any, Dict, List, Optional

from steadyhost.core.events.redaction import redact

EVENT_SCHEMA_VERSION = 1

PHASE = "phase"
ITEM = "item"
SUMMARY = "summary"
ARTIFACT = "artifact"
WARNING = "warning"

EVENT_KINDS = {PHASE, ITEM, SUMMARY, ARTIFACT, WARNING}


class EventStream:
    """
    NDJSON progress stream: one `{version, event, timestamp, ...}` object per line.

    The first event of a run is always `phase` and the last is always
    `summary`; close() emits a summary if the run never produced one.
    Safe to call from worker threads.
    """

    def __init__(self, sink: Optional[IO[str]] = None, *, run_id: str = "", keep: bool = False):
        self.sink = sink
        self.run_id = run_id
        self.keep = keep
        self.events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._started = False
        self._closed = False
        self._summarized = False

    def emit(self, event: str, **fields: Any) -> None:
        if event not in EVENT_KINDS:
            raise ValueError(f"unknown event kind: {event}")
        with self._lock:
            if self._closed:
                return
            if not self._started and event != PHASE:
                self._write_locked(PHASE, {"phase": "start"})
            self._started = True
            self._write_locked(event, fields)
            if event == SUMMARY:
                self._summarized = True

    def phase(self, name: str, **fields: Any) -> None:
        self.emit(PHASE, phase=name, **fields)

    def item(self, item_id: str, status: str, **fields: Any) -> None:
        self.emit(ITEM, id=item_id, status=status, **fields)

    def artifact(self, kind: str, path: str) -> None:
        self.emit(ARTIFACT, kind=kind, path=path)

    def warning(self, message: str, **fields: Any) -> None:
        self.emit(WARNING, message=message, **fields)

    def summary(self, **fields: Any) -> None:
        self.emit(SUMMARY, **fields)

    def close(self, **summary_fields: Any) -> None:
        with self._lock:
            if self._closed:
                return
            if not self._started:
                self._write_locked(PHASE, {"phase": "start"})
                self._started = True
            if not self._summarized:
                self._write_locked(SUMMARY, summary_fields)
                self._summarized = True
            self._closed = True

    def _write_locked(self, event: str, fields: Dict[str, Any]) -> None:
        payload: Dict[str, Any] = {
            "version": EVENT_SCHEMA_VERSION,
            "event": event,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        if self.run_id:
            payload["runId"] = self.run_id
        payload.update(redact(fields))
        if self.keep:
            self.events.append(payload)
        if self.sink is not None:
            self.sink.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
            try:
                self.sink.flush()
            except (OSError, ValueError):
                pass


class NullEventStream(EventStream):
    def __init__(self) -> None:
        super().__init__(sink=None, keep=False)
