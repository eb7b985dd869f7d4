"""Append-only JSONL event log for mailbox activity."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .errors import TermailError

EVENT_KINDS = frozenset(
    {
        "registered",
        "unregistered",
        "sent",
        "read",
        "state",
        "notify",
        "warning",
        "error",
        "system",
    }
)


class EventLog:
    """Thread-safe writer for mailbox events."""

    def __init__(
        self,
        path: Path,
        *,
        now_provider: Callable[[], datetime] | None = None,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        """Open the event file for appending.

        Args:
            path: JSONL destination.
            now_provider: Optional timestamp provider for deterministic tests.
            echo: Optional sink receiving a one-line rendering of each event.
        """
        self._path = path
        self._now = now_provider or (lambda: datetime.now(timezone.utc))
        self._echo = echo
        self._lock = threading.Lock()
        self._closed = False

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("a", encoding="utf-8")

    @property
    def path(self) -> Path:
        """Return the event file path."""
        return self._path

    def log(
        self,
        kind: str,
        message: str,
        *,
        terminal: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        """Append one event.

        Args:
            kind: Event kind from `EVENT_KINDS`.
            message: Human-readable event text.
            terminal: Optional terminal the event concerns.
            meta: Optional structured metadata.
        """
        if kind not in EVENT_KINDS:
            raise TermailError(f"validation error: unsupported event kind: {kind}")
        if meta is not None and not isinstance(meta, dict):
            raise TermailError("validation error: event meta must be an object")

        event = {
            "ts": _iso_timestamp(self._now()),
            "kind": kind,
            "terminal": terminal,
            "message": message,
            "meta": meta,
        }

        with self._lock:
            if self._closed:
                raise TermailError("event log is closed")
            self._handle.write(json.dumps(event, ensure_ascii=False) + "\n")
            self._handle.flush()

        if self._echo is not None:
            self._echo(f"[{kind}] {message}")

    def warning(self, message: str) -> None:
        """Record a non-fatal warning."""
        self.log("warning", message)

    def close(self) -> None:
        """Flush and close the event file."""
        with self._lock:
            if self._closed:
                return
            self._handle.flush()
            self._handle.close()
            self._closed = True


def _iso_timestamp(value: datetime) -> str:
    """Return ISO 8601 timestamp with timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
