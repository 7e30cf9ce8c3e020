import json
from datetime import datetime, timedelta, timezone

import pytest

from minyanmap.core.store import FileKeyValueStore, MemoryKeyValueStore
from minyanmap.domain.models import Event
from minyanmap.proximity.ledger import NotificationLedger

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)
HOUR_MS = 3600 * 1000
KEY = "notified_proximity_events"


@pytest.fixture(autouse=True)
def _frozen_time(monkeypatch):
    monkeypatch.setattr("minyanmap.proximity.ledger.time.time", lambda: NOW.timestamp())


def _event(event_id: str, starts_in: timedelta = timedelta(hours=6)) -> Event:
    return Event(id=event_id, date=NOW + starts_in, latitude=48.85, longitude=2.35)


def _record(event_id: str, *, notified_ago_h: float, event_in_h: float) -> dict:
    return {
        "eventId": event_id,
        "notifiedAt": NOW_MS - int(notified_ago_h * HOUR_MS),
        "eventDate": (NOW + timedelta(hours=event_in_h)).isoformat(),
    }


class _BrokenStore:
    def get(self, key):
        raise OSError("disk unavailable")

    def set(self, key, value):
        raise OSError("disk unavailable")


def test_mark_then_was_notified():
    ledger = NotificationLedger(MemoryKeyValueStore())
    ledger.load()
    event = _event("e1")

    assert not ledger.was_notified("e1")
    ledger.mark_notified(event)
    assert ledger.was_notified("e1")
    assert not ledger.was_notified("e2")


def test_records_are_persisted_as_json_array():
    store = MemoryKeyValueStore()
    ledger = NotificationLedger(store, key=KEY)
    ledger.load()
    ledger.mark_notified(_event("e1"))

    stored = json.loads(store.get(KEY))
    assert len(stored) == 1
    assert stored[0]["eventId"] == "e1"
    assert stored[0]["notifiedAt"] == NOW_MS
    assert datetime.fromisoformat(stored[0]["eventDate"].replace("Z", "+00:00")) == NOW + timedelta(hours=6)

    reloaded = NotificationLedger(store, key=KEY)
    reloaded.load()
    assert reloaded.was_notified("e1")


def test_load_drops_expired_records_and_rewrites_store():
    store = MemoryKeyValueStore(
        {
            KEY: json.dumps(
                [
                    _record("fresh", notified_ago_h=1, event_in_h=3),
                    _record("old", notified_ago_h=25, event_in_h=3),
                    _record("past", notified_ago_h=1, event_in_h=-1),
                ]
            )
        }
    )
    ledger = NotificationLedger(store, key=KEY)
    ledger.load()

    assert ledger.was_notified("fresh")
    assert not ledger.was_notified("old")
    assert not ledger.was_notified("past")
    assert [r["eventId"] for r in json.loads(store.get(KEY))] == ["fresh"]


def test_retention_window_is_configurable():
    store = MemoryKeyValueStore({KEY: json.dumps([_record("e", notified_ago_h=3, event_in_h=3)])})
    ledger = NotificationLedger(store, key=KEY, retention_hours=2)
    ledger.load()
    assert not ledger.was_notified("e")


def test_prune_applies_retention_in_memory(monkeypatch):
    ledger = NotificationLedger(MemoryKeyValueStore())
    ledger.load()
    ledger.mark_notified(_event("soon", starts_in=timedelta(hours=1)))
    ledger.mark_notified(_event("later", starts_in=timedelta(hours=10)))

    monkeypatch.setattr("minyanmap.proximity.ledger.time.time", lambda: (NOW + timedelta(hours=2)).timestamp())
    assert ledger.prune() == 1
    assert [r.event_id for r in ledger.records()] == ["later"]


def test_unreadable_payload_starts_empty():
    store = MemoryKeyValueStore({KEY: "{not json"})
    ledger = NotificationLedger(store, key=KEY)
    ledger.load()

    assert ledger.records() == []
    assert store.get(KEY) == "[]"


def test_storage_errors_are_absorbed():
    ledger = NotificationLedger(_BrokenStore())
    ledger.load()
    assert ledger.loaded

    ledger.mark_notified(_event("e1"))
    # The in-memory set still deduplicates for this session.
    assert ledger.was_notified("e1")


def test_undecodable_ledger_file_starts_empty(tmp_path):
    store = FileKeyValueStore(tmp_path)
    path = store._key_path(KEY)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\xff\xfe\x00garbage")

    ledger = NotificationLedger(store, key=KEY)
    ledger.load()

    assert ledger.loaded
    assert ledger.records() == []
    ledger.mark_notified(_event("e1"))
    assert json.loads(store.get(KEY))[0]["eventId"] == "e1"


def test_invalid_retention_is_rejected():
    with pytest.raises(ValueError):
        NotificationLedger(MemoryKeyValueStore(), retention_hours=0)
