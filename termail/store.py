"""Date-sharded message storage for termail.

Layout under the storage root::

    <root>/<terminal>/unread/<YYYY-MM-DD>-messages.json
    <root>/<terminal>/read/<YYYY-MM-DD>-messages.json

Each shard is a JSON array of message objects in arrival order. The store is
not thread-safe on its own; callers serialize read-modify-write operations.
"""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

from .constants import PARTITIONS, READ, SHARD_GLOB, SHARD_SUFFIX, UNREAD

_REQUIRED_FIELDS = ("id", "from", "to", "message", "timestamp")


@dataclass(frozen=True)
class Message:
    """One persisted message.

    Attributes:
        id: Globally unique message id.
        sender: Sending terminal identity.
        recipient: Receiving terminal identity.
        body: Message text, possibly empty.
        timestamp: ISO 8601 UTC creation time.
    """

    id: str
    sender: str
    recipient: str
    body: str
    timestamp: str

    def to_payload(self) -> dict:
        """Return the on-disk JSON object."""
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "message": self.body,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: object) -> Message | None:
        """Parse one on-disk object, returning None when it is malformed."""
        if not isinstance(payload, dict):
            return None
        if not all(isinstance(payload.get(key), str) for key in _REQUIRED_FIELDS):
            return None
        return cls(
            id=payload["id"],
            sender=payload["from"],
            recipient=payload["to"],
            body=payload["message"],
            timestamp=payload["timestamp"],
        )


def iso_timestamp(value: datetime) -> str:
    """Return a UTC millisecond timestamp with a `Z` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_message_id() -> str:
    """Return a fresh message id."""
    return str(uuid.uuid4())


class LogStore:
    """Append-only per-recipient message partitions on the filesystem."""

    def __init__(
        self,
        root: Path,
        *,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store and create its root directory.

        Args:
            root: Storage root path.
            now_provider: Optional clock for deterministic tests.
        """
        self.root = root
        self._now = now_provider or (lambda: datetime.now(timezone.utc))
        self.root.mkdir(parents=True, exist_ok=True)

    def now(self) -> datetime:
        """Return the store clock reading in UTC."""
        value = self._now()
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def today(self) -> date:
        """Return the current UTC calendar date used as the shard key."""
        return self.now().date()

    def partition_dir(self, recipient: str, status: str) -> Path:
        """Return the directory holding one partition's shards."""
        if status not in PARTITIONS:
            raise ValueError(f"unsupported partition: {status}")
        return self.root / recipient / status

    def shard_path(self, recipient: str, status: str, day: date | None = None) -> Path:
        """Return the shard file for one partition and day (default today)."""
        day = day or self.today()
        return self.partition_dir(recipient, status) / f"{day.isoformat()}{SHARD_SUFFIX}"

    def ensure_partitions(self, recipient: str) -> None:
        """Create the recipient's unread/read directories if missing."""
        for status in PARTITIONS:
            self.partition_dir(recipient, status).mkdir(parents=True, exist_ok=True)

    def append(self, recipient: str, status: str, message: Message) -> None:
        """Append one message to today's shard for `(recipient, status)`.

        Raises:
            OSError: If the shard cannot be written.
        """
        path = self.shard_path(recipient, status)
        messages = _read_shard(path)
        messages.append(message)
        _write_shard(path, messages)

    def read_all(self, recipient: str, status: str) -> list[Message]:
        """Return every message in a partition, oldest shard first.

        Missing or corrupt shards contribute nothing.
        """
        messages: list[Message] = []
        for path in self._shards(recipient, status):
            messages.extend(_read_shard(path))
        return messages

    def move_one(self, recipient: str, message_id: str) -> bool:
        """Move the first unread message with `message_id` to today's read shard.

        The read shard is written before the unread shard is rewritten, so an
        interrupted move duplicates the message rather than losing it.

        Returns:
            True when a matching unread message was found and moved.
        """
        for path in self._shards(recipient, UNREAD):
            unread = _read_shard(path)
            index = next(
                (i for i, message in enumerate(unread) if message.id == message_id),
                None,
            )
            if index is None:
                continue
            message = unread.pop(index)
            self.append(recipient, READ, message)
            _write_shard(path, unread)
            return True
        return False

    def _shards(self, recipient: str, status: str) -> list[Path]:
        """Return shard files for a partition sorted by date."""
        directory = self.partition_dir(recipient, status)
        try:
            candidates = [path for path in directory.glob(SHARD_GLOB) if path.is_file()]
        except OSError:
            return []
        # ISO dates sort lexically
        return sorted(candidates, key=lambda path: path.name)


def _read_shard(path: Path) -> list[Message]:
    """Read one shard file, treating any failure as an empty shard."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return []
    if not isinstance(payload, list):
        return []
    messages = []
    for entry in payload:
        message = Message.from_payload(entry)
        if message is not None:
            messages.append(message)
    return messages


def _write_shard(path: Path, messages: list[Message]) -> None:
    """Replace one shard file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    # ascii escapes keep bodies with lone surrogates encodable
    payload = json.dumps([message.to_payload() for message in messages], ensure_ascii=True, indent=2)
    try:
        tmp_path.write_text(payload + "\n", encoding="utf-8")
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
