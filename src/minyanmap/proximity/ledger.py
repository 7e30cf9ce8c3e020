"""
Notification dedup ledger.

Remembers which events already produced a proximity notification so each event
is announced at most once per retention window. Records live in memory and are
persisted as a JSON array under a single key of a `KeyValueStore`; every mutation
rewrites the whole (small) array.

A record is retained only while it is younger than `retention_hours` AND its event
has not started yet. Expired records are dropped on `load()` and the pruned set is
written back immediately.

Storage failures are logged and absorbed: the ledger then runs on whatever it has
in memory (possibly empty), which can cause a duplicate notification but never
stops the watcher.
"""

from __future__ import annotations

import logging
import time

from pydantic import TypeAdapter

from minyanmap.config.settings import Settings
from minyanmap.core.env import resolve_project_path
from minyanmap.core.store import FileKeyValueStore
from minyanmap.core.time import to_epoch_ms
from minyanmap.domain.models import Event, NotifiedRecord
from minyanmap.proximity.ports import KeyValueStore

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[NotifiedRecord])


def _now_ms() -> int:
    return int(time.time() * 1000)


class NotificationLedger:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = "notified_proximity_events",
        retention_hours: float = 24,
    ):
        if retention_hours <= 0:
            raise ValueError("retention_hours must be > 0")
        self._store = store
        self._key = key
        self._retention_ms = int(retention_hours * 3600 * 1000)
        self._records: list[NotifiedRecord] = []
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def records(self) -> list[NotifiedRecord]:
        """Snapshot of the in-memory records."""
        return list(self._records)

    def _is_live(self, record: NotifiedRecord, now_ms: int) -> bool:
        recent = now_ms - record.notified_at_ms < self._retention_ms
        upcoming = to_epoch_ms(record.event_date) > now_ms
        return recent and upcoming

    def load(self) -> None:
        """Read persisted records, drop expired ones and write the pruned set back."""
        self._loaded = True
        try:
            raw = self._store.get(self._key)
        except (OSError, ValueError) as exc:
            # ValueError covers undecodable bytes (UnicodeDecodeError) in a file-backed store.
            logger.warning("Could not read notification ledger (%s); starting empty.", exc)
            self._records = []
            return
        if raw is None:
            self._records = []
            return

        try:
            stored = _RECORDS.validate_json(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable notification ledger: %s", exc)
            stored = []

        now_ms = _now_ms()
        self._records = [r for r in stored if self._is_live(r, now_ms)]
        dropped = len(stored) - len(self._records)
        if dropped:
            logger.info("Pruned %d expired notification record(s).", dropped)
        self._save()

    def prune(self) -> int:
        """Apply the retention rule to the in-memory records; returns how many were dropped."""
        now_ms = _now_ms()
        before = len(self._records)
        self._records = [r for r in self._records if self._is_live(r, now_ms)]
        dropped = before - len(self._records)
        if dropped:
            self._save()
        return dropped

    def was_notified(self, event_id: str) -> bool:
        return any(r.event_id == event_id for r in self._records)

    def mark_notified(self, event: Event) -> None:
        self._records.append(
            NotifiedRecord(event_id=event.id, notified_at_ms=_now_ms(), event_date=event.date)
        )
        self._save()

    def _save(self) -> None:
        try:
            self._store.set(self._key, _RECORDS.dump_json(self._records, by_alias=True).decode("utf-8"))
        except OSError as exc:
            logger.warning("Could not persist notification ledger: %s", exc)


def build_ledger(settings: Settings) -> NotificationLedger:
    """Ledger backed by the file store configured under `store.dir`."""
    store = FileKeyValueStore(resolve_project_path(settings.store.dir))
    return NotificationLedger(
        store,
        key=settings.proximity.ledger_key,
        retention_hours=settings.proximity.retention_hours,
    )
