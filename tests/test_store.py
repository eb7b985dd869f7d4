from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from termail.store import LogStore, Message, iso_timestamp


def _fixed_now() -> datetime:
    return datetime(2026, 2, 24, 1, 30, tzinfo=timezone.utc)


def _message(message_id: str, body: str = "hello", recipient: str = "bob") -> Message:
    return Message(
        id=message_id,
        sender="alice",
        recipient=recipient,
        body=body,
        timestamp="2026-02-24T01:30:00.000Z",
    )


def test_ensure_partitions_creates_unread_and_read_dirs(tmp_path):
    store = LogStore(tmp_path / "data")

    store.ensure_partitions("bob")
    store.ensure_partitions("bob")

    assert (tmp_path / "data" / "bob" / "unread").is_dir()
    assert (tmp_path / "data" / "bob" / "read").is_dir()


def test_append_writes_todays_shard_as_json_array(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)

    store.append("bob", "unread", _message("m1"))
    store.append("bob", "unread", _message("m2", body="again"))

    shard = tmp_path / "bob" / "unread" / "2026-02-24-messages.json"
    payload = json.loads(shard.read_text(encoding="utf-8"))
    assert [entry["id"] for entry in payload] == ["m1", "m2"]
    assert payload[0] == {
        "id": "m1",
        "from": "alice",
        "to": "bob",
        "message": "hello",
        "timestamp": "2026-02-24T01:30:00.000Z",
    }
    assert not shard.with_name(f"{shard.name}.tmp").exists()


def test_read_all_returns_empty_for_missing_partition(tmp_path):
    store = LogStore(tmp_path)

    assert store.read_all("nobody", "unread") == []


def test_read_all_treats_corrupt_shard_as_empty(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.ensure_partitions("bob")
    store.shard_path("bob", "unread").write_text("{not json", encoding="utf-8")

    assert store.read_all("bob", "unread") == []


def test_read_all_treats_non_array_shard_as_empty(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.ensure_partitions("bob")
    store.shard_path("bob", "unread").write_text('{"id": "m1"}', encoding="utf-8")

    assert store.read_all("bob", "unread") == []


def test_read_all_skips_malformed_entries(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.ensure_partitions("bob")
    good = _message("m1").to_payload()
    store.shard_path("bob", "unread").write_text(
        json.dumps([good, "junk", {"id": "m2"}]),
        encoding="utf-8",
    )

    assert [message.id for message in store.read_all("bob", "unread")] == ["m1"]


def test_read_all_merges_shards_by_date_then_file_order(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.ensure_partitions("bob")
    older = store.shard_path("bob", "unread", date(2026, 2, 22))
    older.write_text(
        json.dumps([_message("old-1").to_payload(), _message("old-2").to_payload()]),
        encoding="utf-8",
    )
    store.append("bob", "unread", _message("new-1"))

    ids = [message.id for message in store.read_all("bob", "unread")]
    assert ids == ["old-1", "old-2", "new-1"]


def test_move_one_moves_first_match_to_read(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    for message_id in ("m1", "m2", "m3"):
        store.append("bob", "unread", _message(message_id))

    assert store.move_one("bob", "m2") is True

    assert [m.id for m in store.read_all("bob", "unread")] == ["m1", "m3"]
    assert store.read_all("bob", "read") == [_message("m2")]


def test_move_one_returns_false_and_leaves_shards_untouched(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.append("bob", "unread", _message("m1"))
    unread_shard = store.shard_path("bob", "unread")
    before = unread_shard.read_text(encoding="utf-8")

    assert store.move_one("bob", "missing") is False

    assert unread_shard.read_text(encoding="utf-8") == before
    assert not store.shard_path("bob", "read").exists()


def test_move_one_finds_message_in_older_shard(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.ensure_partitions("bob")
    older = store.shard_path("bob", "unread", date(2026, 2, 20))
    older.write_text(json.dumps([_message("old").to_payload()]), encoding="utf-8")

    assert store.move_one("bob", "old") is True

    assert json.loads(older.read_text(encoding="utf-8")) == []
    # read shards are keyed by the day the move happened
    read_shard = store.shard_path("bob", "read")
    assert read_shard.name == "2026-02-24-messages.json"
    assert [entry["id"] for entry in json.loads(read_shard.read_text(encoding="utf-8"))] == ["old"]


def test_message_payload_keeps_empty_body_and_special_characters():
    message = _message("m1", body="")
    assert Message.from_payload(message.to_payload()) == message

    tricky = _message("m2", body="it's \"quoted\"; rm -rf / \n $(whoami) 🚀")
    assert Message.from_payload(tricky.to_payload()) == tricky


def test_iso_timestamp_uses_utc_millis_with_z_suffix():
    value = datetime(2026, 2, 24, 1, 30, 5, 123456, tzinfo=timezone.utc)
    assert iso_timestamp(value) == "2026-02-24T01:30:05.123Z"


def test_append_escapes_lone_surrogates(tmp_path):
    store = LogStore(tmp_path, now_provider=_fixed_now)

    store.append("bob", "unread", _message("m1", body="x\ud800y"))

    shard = tmp_path / "bob" / "unread" / "2026-02-24-messages.json"
    assert "x\\ud800y" in shard.read_text(encoding="utf-8")
    assert [message.body for message in store.read_all("bob", "unread")] == ["x\ud800y"]


def test_failed_shard_write_leaves_no_temp_file(tmp_path, monkeypatch):
    store = LogStore(tmp_path, now_provider=_fixed_now)
    store.append("bob", "unread", _message("m1"))

    def failing_replace(src, dst):
        _ = (src, dst)
        raise OSError("disk full")

    monkeypatch.setattr("termail.store.os.replace", failing_replace)

    with pytest.raises(OSError, match="disk full"):
        store.append("bob", "unread", _message("m2"))

    partition = tmp_path / "bob" / "unread"
    assert sorted(path.name for path in partition.iterdir()) == ["2026-02-24-messages.json"]
    assert [message.id for message in store.read_all("bob", "unread")] == ["m1"]
