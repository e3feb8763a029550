"""Unit tests for SessionStore file-per-record persistence."""

import json
import os
from datetime import timedelta

import pytest

from tmux_relay.session_store import SessionStore, StoreFullError, StoreWriteError


def test_create_then_find_by_token_round_trips(store, make_record):
    record = make_record(token="AB12CD34", tmux_session="work")

    assert store.create(record) == record.id

    found = store.find_by_token("AB12CD34")
    assert found == record


def test_create_writes_one_json_file_per_record(store, make_record, sessions_dir):
    record = make_record()
    store.create(record)

    files = list(sessions_dir.glob("*.json"))
    assert [f.name for f in files] == [f"{record.id}.json"]
    data = json.loads(files[0].read_text())
    assert set(data) == {
        "id", "token", "type", "created", "expires", "tmux_session", "project", "notification",
    }
    # No temp files left behind
    assert not list(sessions_dir.glob(".*.tmp"))


def test_create_never_overwrites_existing_record(store, make_record):
    record = make_record()
    store.create(record)

    with pytest.raises(StoreWriteError):
        store.create(record)


def test_create_unwritable_directory_raises_store_write_error(store, make_record, sessions_dir):
    if os.geteuid() == 0:
        pytest.skip("root ignores directory permissions")
    sessions_dir.chmod(0o500)
    try:
        with pytest.raises(StoreWriteError):
            store.create(make_record())
    finally:
        sessions_dir.chmod(0o700)


def test_find_by_token_miss_returns_none(store, make_record):
    store.create(make_record(token="AB12CD34"))

    assert store.find_by_token("ZZZZZZZZ") is None


def test_find_by_token_ignores_expired_records(store, make_record, clock):
    record = make_record(token="AB12CD34")
    store.create(record)

    clock.advance(hours=24, seconds=1)

    assert store.find_by_token("AB12CD34") is None
    # Still on disk until swept
    assert store.get(record.id) == record


def test_find_by_token_at_exact_expiry_is_still_live(store, make_record, clock):
    store.create(make_record(token="AB12CD34"))

    clock.advance(hours=24)

    assert store.find_by_token("AB12CD34") is not None


def test_find_by_token_prefers_most_recent_live_record(store, make_record, clock):
    older = make_record(token="AB12CD34", tmux_session="old")
    newer = make_record(token="AB12CD34", tmux_session="new", created=clock() + timedelta(minutes=5))
    store.create(newer)
    store.create(older)

    assert store.find_by_token("AB12CD34").tmux_session == "new"


def test_find_by_token_skips_corrupt_files(store, make_record, sessions_dir):
    (sessions_dir / "broken.json").write_text("{not json")
    (sessions_dir / "partial.json").write_text(json.dumps({"id": "x"}))
    record = make_record(token="AB12CD34")
    store.create(record)

    assert store.find_by_token("AB12CD34") == record


def test_remove_is_idempotent(store, make_record):
    record = make_record()
    store.create(record)

    assert store.remove(record.id) is True
    assert store.remove(record.id) is False
    assert store.get(record.id) is None


def test_list_sessions_excludes_expired_by_default(store, make_record, clock):
    short = make_record(token="SHORT001", ttl=timedelta(minutes=1))
    long = make_record(token="LONG0001")
    store.create(short)
    store.create(long)

    clock.advance(minutes=2)

    assert store.list_sessions() == [long]
    assert {r.id for r in store.list_sessions(include_expired=True)} == {short.id, long.id}


def test_sweep_expired_removes_only_expired(store, make_record, clock):
    short = make_record(token="SHORT001", ttl=timedelta(minutes=1))
    long = make_record(token="LONG0001")
    store.create(short)
    store.create(long)
    clock.advance(minutes=2)

    assert store.sweep_expired() == 1
    assert store.get(short.id) is None
    assert store.get(long.id) == long


def test_sweep_expired_filtered_by_token(store, make_record, clock):
    a = make_record(token="AAAAAAAA", ttl=timedelta(minutes=1))
    b = make_record(token="BBBBBBBB", ttl=timedelta(minutes=1))
    store.create(a)
    store.create(b)
    clock.advance(minutes=2)

    assert store.sweep_expired(token="AAAAAAAA") == 1
    assert store.get(a.id) is None
    assert store.get(b.id) is not None


def test_create_fails_when_store_is_full(sessions_dir, clock, make_record):
    store = SessionStore(str(sessions_dir), max_records=2, clock=clock)
    store.create(make_record(token="AAAAAAAA"))
    store.create(make_record(token="BBBBBBBB"))

    with pytest.raises(StoreFullError):
        store.create(make_record(token="CCCCCCCC"))
    assert store.count() == 2


def test_full_store_makes_room_by_sweeping_expired(sessions_dir, clock, make_record):
    store = SessionStore(str(sessions_dir), max_records=2, clock=clock)
    store.create(make_record(token="AAAAAAAA", ttl=timedelta(minutes=1)))
    store.create(make_record(token="BBBBBBBB"))
    clock.advance(minutes=2)

    store.create(make_record(token="CCCCCCCC"))

    assert store.count() == 2
    assert store.find_by_token("CCCCCCCC") is not None


def test_reads_records_with_z_suffix_timestamps(store, sessions_dir):
    (sessions_dir / "legacy.json").write_text(json.dumps({
        "id": "legacy",
        "token": "LEGACY01",
        "type": "slack",
        "created": "2024-01-15T09:00:00.000Z",
        "expires": "2024-01-16T09:00:00.000Z",
        "tmux_session": "work",
        "project": "demo",
        "notification": {"type": "completed"},
    }))

    record = store.find_by_token("LEGACY01")
    assert record is not None
    assert record.tmux_session == "work"
