"""Constants used across termail modules."""

from pathlib import Path

DATA_DIR = Path("data")
EVENTS_FILE = "events.jsonl"

# mailbox partitions, one subdirectory each per terminal
UNREAD = "unread"
READ = "read"
PARTITIONS = (UNREAD, READ)

# shard files are named `<YYYY-MM-DD>-messages.json`
SHARD_SUFFIX = "-messages.json"
SHARD_GLOB = f"*{SHARD_SUFFIX}"

# registration surface only accepts identities matching this
TERMINAL_NAME_RE = r"^[a-zA-Z0-9_-]+$"

SESSION_PREFIX = "claude-"
NOTIFY_MARKER = "\U0001f4e8"
DEFAULT_NOTIFY_TIMEOUT_SECONDS = 3.0
MAX_NOTIFY_TIMEOUT_SECONDS = 60.0
# pause between typing the notification and submitting it
NOTIFY_SUBMIT_DELAY_SECONDS = 0.3

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

ENV_DATA_DIR = "TERMAIL_DATA_DIR"
ENV_SESSION_PREFIX = "TERMAIL_SESSION_PREFIX"
ENV_NOTIFY_TIMEOUT = "TERMAIL_NOTIFY_TIMEOUT_SECONDS"
ENV_HOST = "TERMAIL_HOST"
ENV_PORT = "TERMAIL_PORT"
