"""tmux delivery of mailbox notifications."""

from __future__ import annotations

import subprocess
import threading
import time
from typing import Callable

from .constants import (
    DEFAULT_NOTIFY_TIMEOUT_SECONDS,
    NOTIFY_MARKER,
    NOTIFY_SUBMIT_DELAY_SECONDS,
    SESSION_PREFIX,
)
from .errors import TermailError
from .store import Message


def _run_tmux(
    args: list[str],
    *,
    timeout: float,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run a tmux command with a hard timeout.

    Args:
        args: tmux subcommand argv.
        timeout: Seconds before the command is killed.
        check: When true, raise on non-zero return code.

    Returns:
        Completed subprocess result.

    Raises:
        TermailError: If `check` is set and tmux exits non-zero.
        subprocess.TimeoutExpired: If tmux does not finish in time.
    """
    result = subprocess.run(
        ["tmux", *args],
        text=True,
        capture_output=True,
        check=False,
        timeout=timeout,
    )
    if check and result.returncode != 0:
        stderr = result.stderr.strip()
        raise TermailError(stderr or f"tmux command failed: {' '.join(args)}")
    return result


def session_exists(session_name: str, *, timeout: float = DEFAULT_NOTIFY_TIMEOUT_SECONDS) -> bool:
    """Return true if a tmux session name exists."""
    result = _run_tmux(["has-session", "-t", session_name], timeout=timeout, check=False)
    return result.returncode == 0


def sanitize_for_keys(text: str) -> str:
    """Make text safe to type into a pane as one literal line.

    Control characters become spaces so the text cannot submit extra input
    lines, and a trailing `;` is escaped because tmux reads it as a command
    separator.
    """
    cleaned = "".join(
        " " if (ord(char) < 0x20 or ord(char) == 0x7F) else char for char in text
    )
    if cleaned.endswith(";"):
        cleaned = cleaned[:-1] + "\\;"
    return cleaned


def render_notification(message: Message) -> str:
    """Render one message as a single pane-safe line."""
    return sanitize_for_keys(f"{NOTIFY_MARKER} Message from {message.sender}: {message.body}")


def remaining_time(deadline: float) -> float:
    """Return seconds left before `deadline` (a `time.monotonic` reading).

    Raises:
        subprocess.TimeoutExpired: If the deadline has passed.
    """
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise subprocess.TimeoutExpired(cmd="tmux", timeout=0)
    return remaining


def type_and_submit(target: str, content: str, *, deadline: float) -> None:
    """Type content into a tmux target as literal keystrokes, then submit.

    Args:
        target: tmux session or pane.
        content: Pane-safe single-line text.
        deadline: `time.monotonic` reading shared by every step.
    """
    # `--` keeps payloads starting with `-` from being parsed as flags
    _run_tmux(["send-keys", "-t", target, "-l", "--", content], timeout=remaining_time(deadline))
    time.sleep(min(NOTIFY_SUBMIT_DELAY_SECONDS, remaining_time(deadline)))
    _run_tmux(["send-keys", "-t", target, "C-m"], timeout=remaining_time(deadline))


class TmuxNotifier:
    """Best-effort notifier that types messages into `<prefix><terminal>` sessions.

    Deliveries to one session run one at a time, so each message is typed and
    submitted before the next one starts.
    """

    def __init__(
        self,
        *,
        session_prefix: str = SESSION_PREFIX,
        timeout_seconds: float = DEFAULT_NOTIFY_TIMEOUT_SECONDS,
        warning_callback: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize notifier.

        Args:
            session_prefix: Prefix joined with the terminal id to name its session.
            timeout_seconds: Time budget for one whole delivery.
            warning_callback: Optional callback for non-fatal delivery problems.
        """
        self.session_prefix = session_prefix
        self.timeout_seconds = timeout_seconds
        self._warning_callback = warning_callback
        self._session_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def session_name(self, terminal: str) -> str:
        """Return the tmux session name for a terminal."""
        return f"{self.session_prefix}{terminal}"

    def __call__(self, terminal: str, message: Message) -> None:
        """Deliver a message to the terminal's session. Never raises."""
        session = self.session_name(terminal)
        with self._session_lock(session):
            # the budget starts once earlier deliveries to this session are done
            deadline = time.monotonic() + self.timeout_seconds
            try:
                if not session_exists(session, timeout=remaining_time(deadline)):
                    # no session is the normal case for a terminal running elsewhere
                    return
                type_and_submit(session, render_notification(message), deadline=deadline)
            except subprocess.TimeoutExpired:
                self._emit_warning(f"tmux delivery to '{session}' timed out")
            except FileNotFoundError:
                self._emit_warning("tmux not installed; notification skipped")
            except (TermailError, OSError, ValueError) as exc:
                self._emit_warning(f"tmux delivery to '{session}' failed: {exc}")

    def _session_lock(self, session: str) -> threading.Lock:
        """Return the lock serializing deliveries to one session."""
        with self._locks_guard:
            lock = self._session_locks.get(session)
            if lock is None:
                lock = threading.Lock()
                self._session_locks[session] = lock
            return lock

    def _emit_warning(self, message: str) -> None:
        """Emit a non-fatal notifier warning."""
        if self._warning_callback is not None:
            self._warning_callback(message)
