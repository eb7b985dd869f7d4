"""Terminal registry and message flow for termail."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .constants import UNREAD
from .store import LogStore, Message, iso_timestamp, new_message_id


class TerminalState(str, Enum):
    """Self-reported terminal availability."""

    IDLE = "idle"
    BUSY = "busy"


@dataclass
class TerminalRecord:
    """In-memory registration for one terminal.

    Attributes:
        id: Terminal identity.
        state: Current availability.
        explicitly_set: True once registration or a state change configured
            the terminal. Only configured idle terminals receive pushes.
        last_activity: ISO timestamp of the last registration or state change.
    """

    id: str
    state: TerminalState
    explicitly_set: bool
    last_activity: str


@dataclass(frozen=True)
class TerminalStatus:
    """Read-only status projection for one terminal."""

    terminal: str
    state: TerminalState
    last_activity: str
    unread_count: int

    def to_payload(self) -> dict:
        """Return a JSON-ready mapping."""
        return {
            "terminal": self.terminal,
            "state": self.state.value,
            "lastActivity": self.last_activity,
            "unreadCount": self.unread_count,
        }


def _spawn_daemon(task: Callable[[], None]) -> None:
    """Run one task on a background daemon thread."""
    thread = threading.Thread(target=task, name="termail-notify", daemon=True)
    thread.start()


class Mailbox:
    """Coordinates terminal registration, message storage, and idle delivery."""

    def __init__(
        self,
        store: LogStore,
        notify: Callable[[str, Message], None] | None = None,
        *,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
        event_callback: Callable[..., None] | None = None,
    ) -> None:
        """Initialize the mailbox.

        Args:
            store: Message storage.
            notify: Optional best-effort out-of-band delivery callback taking
                `(terminal, message)`.
            dispatch: Runs a notification task without blocking the caller;
                defaults to one daemon thread per task.
            event_callback: Optional observability hook called as
                `event_callback(kind, message, terminal=..., meta=...)`.
        """
        self.store = store
        self._notify = notify
        self._dispatch = dispatch or _spawn_daemon
        self._event_callback = event_callback
        self._records: dict[str, TerminalRecord] = {}
        # guards the registry and every shard read-modify-write
        self._lock = threading.Lock()

    def register(self, terminal: str) -> None:
        """Register a terminal as configured and idle. No-op when already registered."""
        with self._lock:
            self.store.ensure_partitions(terminal)
            if terminal in self._records:
                return
            self._ensure_record(terminal, TerminalState.IDLE)
        self._emit("registered", f"terminal '{terminal}' registered", terminal=terminal)

    def unregister(self, terminal: str) -> None:
        """Forget a terminal's registration. Persisted messages are kept."""
        with self._lock:
            removed = self._records.pop(terminal, None)
        if removed is not None:
            self._emit(
                "unregistered",
                f"terminal '{terminal}' unregistered (messages preserved)",
                terminal=terminal,
            )

    def send(self, sender: str, recipient: str, body: str) -> Message:
        """Store a message for `recipient` and push it if the recipient is idle.

        Args:
            sender: Sending terminal; need not be registered.
            recipient: Receiving terminal; need not be registered.
            body: Message text.

        Returns:
            The stored message.

        Raises:
            OSError: If the message cannot be persisted.
        """
        with self._lock:
            self.store.ensure_partitions(sender)
            self.store.ensure_partitions(recipient)
            message = Message(
                id=new_message_id(),
                sender=sender,
                recipient=recipient,
                body=body,
                timestamp=iso_timestamp(self.store.now()),
            )
            self.store.append(recipient, UNREAD, message)
            deliver = self._accepts_push(recipient)

        self._emit(
            "sent",
            f"message {message.id} from '{sender}' to '{recipient}'",
            terminal=recipient,
            meta={"id": message.id, "from": sender},
        )
        if deliver:
            self._schedule_notify(recipient, message)
        return message

    def list_unread(self, terminal: str) -> list[Message]:
        """Return unread messages for a terminal in arrival order."""
        with self._lock:
            self.store.ensure_partitions(terminal)
            return self.store.read_all(terminal, UNREAD)

    def oldest_unread(self, terminal: str) -> Message | None:
        """Return the oldest unread message without acknowledging it."""
        unread = self.list_unread(terminal)
        return unread[0] if unread else None

    def acknowledge(self, terminal: str, message_id: str) -> bool:
        """Move one unread message to the read partition.

        Returns:
            False when no unread message has `message_id`.
        """
        with self._lock:
            self.store.ensure_partitions(terminal)
            moved = self.store.move_one(terminal, message_id)
        if moved:
            self._emit(
                "read",
                f"message {message_id} marked read",
                terminal=terminal,
                meta={"id": message_id},
            )
        return moved

    def set_state(self, terminal: str, state: TerminalState | str) -> None:
        """Record a terminal's availability, registering it when unseen.

        Switching to idle pushes the oldest unread message, if any.
        """
        state = TerminalState(state)
        pending: Message | None = None
        with self._lock:
            self.store.ensure_partitions(terminal)
            record = self._records.get(terminal)
            created = record is None
            if record is None:
                record = self._ensure_record(terminal, state)
            record.state = state
            record.explicitly_set = True
            record.last_activity = iso_timestamp(self.store.now())
            if state is TerminalState.IDLE:
                unread = self.store.read_all(terminal, UNREAD)
                if unread:
                    pending = unread[0]

        if created:
            self._emit(
                "registered",
                f"terminal '{terminal}' auto-registered via state change",
                terminal=terminal,
            )
        self._emit("state", f"terminal '{terminal}' is {state.value}", terminal=terminal)
        if pending is not None:
            self._schedule_notify(terminal, pending)

    def status(self, terminal: str) -> TerminalStatus:
        """Return a status snapshot; unseen terminals report as idle."""
        with self._lock:
            record = self._records.get(terminal)
            self.store.ensure_partitions(terminal)
            unread_count = len(self.store.read_all(terminal, UNREAD))
            if record is None:
                return TerminalStatus(
                    terminal=terminal,
                    state=TerminalState.IDLE,
                    last_activity=iso_timestamp(self.store.now()),
                    unread_count=unread_count,
                )
            return TerminalStatus(
                terminal=terminal,
                state=record.state,
                last_activity=record.last_activity,
                unread_count=unread_count,
            )

    def all_statuses(self) -> list[TerminalStatus]:
        """Return status snapshots for every registered terminal."""
        return [self.status(terminal) for terminal in self.list_registered()]

    def list_registered(self) -> list[str]:
        """Return registered terminal ids in registration order."""
        with self._lock:
            return list(self._records)

    def _ensure_record(self, terminal: str, state: TerminalState) -> TerminalRecord:
        """Create the record for an unseen terminal.

        Assumes caller holds `_lock`.
        """
        record = self._records.get(terminal)
        if record is None:
            record = TerminalRecord(
                id=terminal,
                state=state,
                explicitly_set=True,
                last_activity=iso_timestamp(self.store.now()),
            )
            self._records[terminal] = record
        return record

    def _accepts_push(self, terminal: str) -> bool:
        """Return true when a terminal is registered, configured, and idle.

        Assumes caller holds `_lock`.
        """
        record = self._records.get(terminal)
        return (
            record is not None
            and record.explicitly_set
            and record.state is TerminalState.IDLE
        )

    def _schedule_notify(self, terminal: str, message: Message) -> None:
        """Hand one notification to the dispatcher."""
        if self._notify is None:
            return
        notify = self._notify

        def task() -> None:
            try:
                notify(terminal, message)
            except Exception as exc:  # notifier failures never reach callers
                kind = "error"
                text = f"notification for '{terminal}' failed: {exc}"
            else:
                kind = "notify"
                text = f"notified '{terminal}' of message {message.id}"
            try:
                self._emit(kind, text, terminal=terminal, meta={"id": message.id})
            except Exception:
                # the event sink may already be closed at shutdown
                pass

        try:
            self._dispatch(task)
        except RuntimeError as exc:
            # thread start can fail during interpreter shutdown
            self._emit("error", f"could not schedule notification: {exc}", terminal=terminal)

    def _emit(
        self,
        kind: str,
        message: str,
        *,
        terminal: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        """Emit one observability event."""
        if self._event_callback is not None:
            self._event_callback(kind, message, terminal=terminal, meta=meta)
