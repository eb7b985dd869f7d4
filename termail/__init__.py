"""termail: a mailbox for terminals with push delivery to idle tmux sessions."""

from .mailbox import Mailbox, TerminalState, TerminalStatus
from .store import LogStore, Message

__all__ = ["LogStore", "Mailbox", "Message", "TerminalState", "TerminalStatus"]
__version__ = "0.1.0"
