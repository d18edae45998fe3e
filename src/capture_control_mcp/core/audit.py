"""Append-only JSON lines audit log."""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from .models import AuditEvent

logger = logging.getLogger(__name__)

# Observer signature injected into components: (event, detail, success)
AuditSink = Callable[[str, str, bool], None]


def null_audit(event: str, detail: str, success: bool) -> None:
    return None


class AuditLog:
    """
    One JSON object per line, never truncated by the coordinator.

    append is best effort. A failing disk is logged and swallowed so an
    audit problem can never fail the operation being audited.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, event: str, detail: str, success: bool) -> None:
        rec = AuditEvent(ts=time.time(), event=event, detail=detail, success=bool(success))
        line = json.dumps(rec.to_dict()) + "\n"
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as fh:
                    fh.write(line)
        except OSError as e:
            logger.warning("audit append failed for %s: %s", event, e)

    def read_events(self, event: Optional[str] = None) -> List[AuditEvent]:
        if not self.path.exists():
            return []

        with self._lock:
            raw = self.path.read_text(encoding="utf-8")

        events: List[AuditEvent] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
                evt = AuditEvent(
                    ts=float(obj["ts"]),
                    event=str(obj["event"]),
                    detail=str(obj["detail"]),
                    success=bool(obj["success"]),
                )
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping malformed audit line %d in %s", line_no, self.path)
                continue
            if event is not None and evt.event != event:
                continue
            events.append(evt)
        return events
