"""
Append-only audit log for conversation sessions.

Every raw upstream message and every significant state transition is
written as one JSON object per line. The file is opened once and kept
open for the lifetime of the owning SessionManager; record() never
raises, so a failing disk cannot abort a conversation.
"""

import dataclasses
import json
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Any, Optional, Union

from .models import AUDIT_FORMAT_VERSION, AuditRecord

logger = logging.getLogger("cade.core.audit")


def to_jsonable(value: Any) -> Any:
    """Convert upstream payloads to JSON-compatible structures.

    Upstream messages arrive as dicts or SDK objects depending on version,
    so dataclasses and plain objects are flattened to dicts of their
    public attributes; anything else falls back to str().
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if not f.name.startswith("_")
        }
    if hasattr(value, "__dict__"):
        return {k: to_jsonable(v) for k, v in vars(value).items() if not k.startswith("_")}
    return str(value)


def default_log_name() -> str:
    """cade-<UTC timestamp>-<pid>.jsonl"""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"cade-{stamp}-{os.getpid()}.jsonl"


class AuditLog:
    """Single-writer JSONL sink.

    Records are written in the order record() is called. Writes go through
    one buffered handle; flush() is called by the session pipeline at turn
    boundaries and close() on shutdown.
    """

    def __init__(self, directory: Union[str, Path], filename: Optional[str] = None):
        self.directory = Path(directory)
        self.path = self.directory / (filename or default_log_name())
        self.records_written = 0
        self.failures = 0
        self._handle: Optional[IO[str]] = None
        self._closed = False
        self._unavailable = False

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> "AuditLog":
        """Open the log file for appending. Safe to call more than once."""
        if self._handle is not None:
            return self
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "a", encoding="utf-8")
            self._closed = False
            self._unavailable = False
            logger.debug(f"Audit log opened: {self.path}")
        except OSError as e:
            self.failures += 1
            self._unavailable = True
            logger.warning(f"Audit log unavailable ({self.path}), records will be dropped: {e}")
        return self

    def record(
        self,
        event_type: str,
        message_type: str,
        data: Any = None,
        metadata: Optional[dict] = None,
        session_id: Optional[str] = None,
    ) -> None:
        """Append one record. Failures are counted and logged, never raised."""
        if self._handle is None:
            if self._closed or self._unavailable:
                logger.debug(f"Audit record dropped: {event_type}")
                self.failures += 1
                return
            self.open()
            if self._handle is None:
                return

        meta = {"format_version": AUDIT_FORMAT_VERSION}
        if metadata:
            meta.update(metadata)

        record = AuditRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            event_type=event_type,
            message_type=message_type,
            data=data,
            metadata=meta,
        )
        try:
            line = json.dumps(to_jsonable(record.to_dict()), default=str)
            self._handle.write(line + "\n")
            self.records_written += 1
        except (OSError, ValueError, TypeError, RecursionError) as e:
            self.failures += 1
            logger.warning(f"Audit write failed for {event_type}: {e}")

    def flush(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.flush()
        except (OSError, ValueError) as e:
            self.failures += 1
            logger.warning(f"Audit flush failed: {e}")

    def close(self) -> None:
        """Flush and close the file. Further records are dropped."""
        if self._handle is not None:
            self.flush()
            try:
                self._handle.close()
            except OSError as e:
                logger.warning(f"Audit close failed: {e}")
            self._handle = None
            logger.debug(f"Audit log closed: {self.records_written} records, {self.failures} failures")
        self._closed = True

    def __enter__(self) -> "AuditLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
