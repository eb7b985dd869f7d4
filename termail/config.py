"""Runtime settings resolved from defaults and environment overrides."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .constants import (
    DATA_DIR,
    DEFAULT_HOST,
    DEFAULT_NOTIFY_TIMEOUT_SECONDS,
    DEFAULT_PORT,
    ENV_DATA_DIR,
    ENV_HOST,
    ENV_NOTIFY_TIMEOUT,
    ENV_PORT,
    ENV_SESSION_PREFIX,
    MAX_NOTIFY_TIMEOUT_SECONDS,
    SESSION_PREFIX,
)
from .errors import TermailError


@dataclass(frozen=True)
class Settings:
    """Resolved termail settings.

    Attributes:
        data_dir: Storage root holding one directory per terminal.
        session_prefix: Prefix prepended to a terminal id to name its tmux session.
        notify_timeout_seconds: Upper bound for each tmux call made by the notifier.
        host: HTTP bind address.
        port: HTTP bind port.
    """

    data_dir: Path
    session_prefix: str
    notify_timeout_seconds: float
    host: str
    port: int


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from defaults plus `TERMAIL_*` environment overrides.

    Args:
        environ: Environment mapping; defaults to `os.environ`.

    Returns:
        Validated settings.

    Raises:
        TermailError: If an override is malformed or out of range.
    """
    env = os.environ if environ is None else environ

    data_dir = Path(env.get(ENV_DATA_DIR) or DATA_DIR).expanduser()
    session_prefix = env.get(ENV_SESSION_PREFIX, SESSION_PREFIX)

    return Settings(
        data_dir=data_dir,
        session_prefix=session_prefix,
        notify_timeout_seconds=_parse_timeout(env.get(ENV_NOTIFY_TIMEOUT)),
        host=env.get(ENV_HOST) or DEFAULT_HOST,
        port=parse_port(env.get(ENV_PORT), source=ENV_PORT),
    )


def _parse_timeout(raw: str | None) -> float:
    """Parse the notifier timeout override."""
    if raw is None:
        return DEFAULT_NOTIFY_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except (ValueError, OverflowError):
        value = float("nan")
    if math.isnan(value) or not (0 < value <= MAX_NOTIFY_TIMEOUT_SECONDS):
        raise TermailError(
            f"invalid {ENV_NOTIFY_TIMEOUT}: {raw!r} "
            f"(must be a number greater than 0 and at most {MAX_NOTIFY_TIMEOUT_SECONDS:g})"
        )
    return value


def parse_port(raw: str | int | None, *, source: str = "port") -> int:
    """Parse a TCP port, falling back to the default when unset.

    Args:
        raw: Raw port value.
        source: Name used in error messages.

    Returns:
        Port number in 1..65535.
    """
    if raw is None or raw == "":
        return DEFAULT_PORT
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise TermailError(f"invalid {source}: {raw!r} (must be an integer)") from None
    if not (1 <= value <= 65535):
        raise TermailError(f"invalid {source}: {raw!r} (must be between 1 and 65535)")
    return value
