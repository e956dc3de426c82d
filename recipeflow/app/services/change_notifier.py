from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from recipeflow.app.domain.models import (
    ChangeEvent,
    ChangeKind,
    RecipeRecord,
    RecordFilter,
    Snapshot,
)
from recipeflow.app.infra.db.base import RecipeStore

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeEvent], None]


def _fingerprint(record: RecipeRecord) -> tuple:
    return (
        record.updated_at,
        record.status,
        record.nutritional_information.status,
        record.image_url,
        record.structured_content is not None,
    )


class ChangeNotifier:
    """
    Turns store snapshots into INSERT / MODIFY events.

    Keeps the last seen version of every record in the watched window and
    compares each new snapshot against it. Unsynced snapshots are ignored so
    stale data never produces events.
    """

    def __init__(self, store: RecipeStore, record_filter: Optional[RecordFilter] = None):
        self.store = store
        self.record_filter = record_filter or RecordFilter()
        self._known: dict[str, RecipeRecord] = {}
        self._listeners: list[ChangeListener] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def diff(self, snapshot: Snapshot) -> list[ChangeEvent]:
        if not snapshot.is_synced:
            logger.debug("Ignoring unsynced snapshot: items=%d", len(snapshot.items))
            return []

        events: list[ChangeEvent] = []
        with self._lock:
            current: dict[str, RecipeRecord] = {}
            for record in snapshot.items:
                current[record.id] = record
                previous = self._known.get(record.id)
                if previous is None:
                    events.append(ChangeEvent(kind=ChangeKind.INSERT, record=record))
                elif _fingerprint(previous) != _fingerprint(record):
                    events.append(ChangeEvent(kind=ChangeKind.MODIFY, record=record, previous=previous))
            self._known = current
        return events

    def forget(self, record_id: str) -> None:
        """Drop a record from the known window so the next diff reports it as an INSERT again."""
        with self._lock:
            self._known.pop(record_id, None)

    def poll_once(self) -> list[ChangeEvent]:
        """Read the watched window once and notify listeners of what changed."""
        records = self.store.list(self.record_filter)
        events = self.diff(Snapshot(items=records, is_synced=True))
        self._notify(events)
        return events

    def run(self, stop_event: threading.Event) -> None:
        """Follow the store subscription until ``stop_event`` is set."""
        for snapshot in self.store.subscribe(self.record_filter, stop_event):
            self._notify(self.diff(snapshot))
            if stop_event.is_set():
                break

    def _notify(self, events: list[ChangeEvent]) -> None:
        for event in events:
            logger.debug("Change detected: kind=%s, id=%s, status=%s", event.kind.value, event.record_id, event.record.status.value)
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception("Change listener failed: id=%s", event.record_id)
