from __future__ import annotations

import json
import threading
from datetime import datetime, timezone

import pytest

from termail.errors import TermailError
from termail.events import EventLog


def _fixed_now() -> datetime:
    return datetime(2026, 2, 24, 1, 30, tzinfo=timezone.utc)


def _rows(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_log_appends_event_jsonl(tmp_path):
    path = tmp_path / "data" / "events.jsonl"
    log = EventLog(path, now_provider=_fixed_now)

    log.log("sent", "message m1 from 'a' to 'b'", terminal="b", meta={"id": "m1"})
    log.close()

    assert _rows(path) == [
        {
            "ts": "2026-02-24T01:30:00+00:00",
            "kind": "sent",
            "terminal": "b",
            "message": "message m1 from 'a' to 'b'",
            "meta": {"id": "m1"},
        }
    ]


def test_warning_is_logged_without_terminal(tmp_path):
    path = tmp_path / "events.jsonl"
    log = EventLog(path, now_provider=_fixed_now)

    log.warning("tmux delivery to 'claude-r' timed out")
    log.close()

    row = _rows(path)[0]
    assert row["kind"] == "warning"
    assert row["terminal"] is None


def test_log_rejects_unknown_kind(tmp_path):
    log = EventLog(tmp_path / "events.jsonl")

    with pytest.raises(TermailError, match="unsupported event kind"):
        log.log("gossip", "nope")
    log.close()


def test_log_rejects_non_object_meta(tmp_path):
    log = EventLog(tmp_path / "events.jsonl")

    with pytest.raises(TermailError, match="event meta must be an object"):
        log.log("system", "nope", meta=["x"])
    log.close()


def test_log_after_close_raises(tmp_path):
    log = EventLog(tmp_path / "events.jsonl")
    log.close()
    log.close()

    with pytest.raises(TermailError, match="event log is closed"):
        log.log("system", "late")


def test_log_echoes_rendered_line(tmp_path):
    echoed: list[str] = []
    log = EventLog(tmp_path / "events.jsonl", echo=echoed.append)

    log.log("registered", "terminal 'w' registered", terminal="w")
    log.close()

    assert echoed == ["[registered] terminal 'w' registered"]


def test_log_appends_across_reopen(tmp_path):
    path = tmp_path / "events.jsonl"
    first = EventLog(path)
    first.log("system", "one")
    first.close()

    second = EventLog(path)
    second.log("system", "two")
    second.close()

    assert [row["message"] for row in _rows(path)] == ["one", "two"]


def test_log_is_thread_safe(tmp_path):
    path = tmp_path / "events.jsonl"
    log = EventLog(path)

    def worker(index: int) -> None:
        for step in range(25):
            log.log("system", f"{index}-{step}")

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    log.close()

    assert len(_rows(path)) == 100
