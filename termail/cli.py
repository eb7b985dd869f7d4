"""termail CLI entrypoint."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from .config import Settings, load_settings, parse_port
from .constants import EVENTS_FILE, UNREAD
from .errors import TermailError
from .events import EventLog
from .mailbox import Mailbox
from .store import LogStore
from .tmux_ops import TmuxNotifier


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog="termail",
        description="Mailbox for terminals: queue messages and push them to idle tmux sessions.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="run the HTTP mailbox server")
    serve.add_argument("--data-dir", help="storage root (default: $TERMAIL_DATA_DIR or ./data)")
    serve.add_argument("--host", help="bind address")
    serve.add_argument("--port", help="bind port")
    serve.add_argument("--session-prefix", help="tmux session name prefix")
    serve.add_argument("--quiet", action="store_true", help="do not echo events to stdout")

    unread = subparsers.add_parser("unread", help="print unread messages straight from storage")
    unread.add_argument("terminal", help="terminal id")
    unread.add_argument("--data-dir", help="storage root (default: $TERMAIL_DATA_DIR or ./data)")
    return parser


class TermailApplication:
    """Application coordinator for the CLI subcommands."""

    def run(self, argv: list[str]) -> int:
        """Run the CLI from argv.

        Args:
            argv: CLI args excluding program name.

        Returns:
            Exit status code.
        """
        args = build_parser().parse_args(argv)
        try:
            settings = self._resolve_settings(args)
            if args.command == "serve":
                return self._run_serve(settings, quiet=args.quiet)
            return self._run_unread(settings, args.terminal)
        except TermailError as exc:
            print(str(exc), file=sys.stderr)
            return 1

    def _resolve_settings(self, args: argparse.Namespace) -> Settings:
        """Apply CLI flags on top of environment settings."""
        settings = load_settings()
        overrides = {}
        if getattr(args, "data_dir", None):
            overrides["data_dir"] = Path(args.data_dir).expanduser()
        if getattr(args, "host", None):
            overrides["host"] = args.host
        if getattr(args, "port", None):
            overrides["port"] = parse_port(args.port, source="--port")
        if getattr(args, "session_prefix", None) is not None:
            overrides["session_prefix"] = args.session_prefix
        return replace(settings, **overrides)

    def build_mailbox(self, settings: Settings, events: EventLog) -> Mailbox:
        """Wire storage, tmux delivery, and event logging into one mailbox."""
        store = LogStore(settings.data_dir)
        notifier = TmuxNotifier(
            session_prefix=settings.session_prefix,
            timeout_seconds=settings.notify_timeout_seconds,
            warning_callback=events.warning,
        )
        return Mailbox(store, notifier, event_callback=events.log)

    def _run_serve(self, settings: Settings, *, quiet: bool = False) -> int:
        """Serve the HTTP app until interrupted."""
        import uvicorn

        from .server import create_app

        settings.data_dir.mkdir(parents=True, exist_ok=True)
        events = EventLog(
            settings.data_dir / EVENTS_FILE,
            echo=None if quiet else print,
        )
        try:
            mailbox = self.build_mailbox(settings, events)
            events.log(
                "system",
                f"termail listening on http://{settings.host}:{settings.port} "
                f"(data: {settings.data_dir})",
            )
            uvicorn.run(create_app(mailbox), host=settings.host, port=settings.port)
        finally:
            events.close()
        return 0

    def _run_unread(self, settings: Settings, terminal: str) -> int:
        """Print one terminal's unread messages as JSON."""
        if not settings.data_dir.is_dir():
            raise TermailError(f"data directory not found: {settings.data_dir}")
        store = LogStore(settings.data_dir)
        messages = store.read_all(terminal, UNREAD)
        print(json.dumps([message.to_payload() for message in messages], ensure_ascii=False, indent=2))
        return 0


def main(argv: list[str] | None = None) -> int:
    """Console script entrypoint."""
    return TermailApplication().run(sys.argv[1:] if argv is None else argv)
