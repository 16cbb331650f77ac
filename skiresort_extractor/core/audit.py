"""Structured audit trail for pipeline stages.

Separate from module logging: audit events are machine-readable records of
what a pipeline run did (start/success/failure per stage), written one JSON
object per line. Auditing is opt-in; NoopAuditLogger is the default.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

from skiresort_extractor.core.timestamps import utc_now_iso

logger = logging.getLogger(__name__)


class AuditLogger(Protocol):
    """Receives structured audit events."""

    def info(self, event: str, context: dict[str, Any] | None = None) -> None: ...

    def error(self, event: str, context: dict[str, Any] | None = None) -> None: ...


class NoopAuditLogger:
    """Discards every event."""

    def info(self, event: str, context: dict[str, Any] | None = None) -> None:
        pass

    def error(self, event: str, context: dict[str, Any] | None = None) -> None:
        pass


class JsonlAuditLogger:
    """Appends {timestamp, level, event, context} records to a JSONL file.

    Example:
        audit = JsonlAuditLogger(Path("out/audit.jsonl"))
        audit.info("extract_resort.start", {"configPath": "config.json"})
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def info(self, event: str, context: dict[str, Any] | None = None) -> None:
        self._write(level="info", event=event, context=context)

    def error(self, event: str, context: dict[str, Any] | None = None) -> None:
        self._write(level="error", event=event, context=context)

    def _write(self, level: str, event: str, context: dict[str, Any] | None) -> None:
        record = {
            "timestamp": utc_now_iso(),
            "level": level,
            "event": event,
            "context": context or {},
        }
        line = json.dumps(record, ensure_ascii=False) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        logger.debug(f"audit {level} {event}")
