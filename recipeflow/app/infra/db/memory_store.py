from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional
from uuid import uuid4

from recipeflow.app.domain.models import AuthContext, RecipeRecord, RecordFilter, Snapshot
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.db.rows import (
    normalize_value,
    reject_unknown_columns,
    resolve_path,
    row_to_record,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _MemoryBackend:
    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.version = 0
        self.changed = threading.Condition()


class InMemoryRecipeStore(RecipeStore):
    """Thread-safe process-local store with the same merge semantics as Supabase."""

    def __init__(
        self,
        auth: Optional[AuthContext] = None,
        backend: Optional[_MemoryBackend] = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        super().__init__(auth or AuthContext.service())
        self._backend = backend or _MemoryBackend()
        self.poll_interval_seconds = poll_interval_seconds

    def with_auth(self, auth: AuthContext) -> "InMemoryRecipeStore":
        return InMemoryRecipeStore(auth, self._backend, self.poll_interval_seconds)

    def create(self, fields: Mapping[str, Any]) -> RecipeRecord:
        reject_unknown_columns(dict(fields))
        now = _now_iso()
        row = {key: copy.deepcopy(normalize_value(value)) for key, value in fields.items()}
        row["id"] = str(uuid4())
        row["created_at"] = now
        row["updated_at"] = now

        with self._backend.changed:
            self._backend.rows[row["id"]] = row
            self._bump()

        logger.info("Created recipe: id=%s, status=%s", row["id"], row.get("status"))
        return row_to_record(copy.deepcopy(row))

    def get(self, record_id: str) -> Optional[RecipeRecord]:
        with self._backend.changed:
            row = self._backend.rows.get(record_id)
            if row is None or not self._visible(row):
                return None
            return row_to_record(copy.deepcopy(row))

    def update(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        only_if: Optional[Mapping[str, Any]] = None,
    ) -> Optional[RecipeRecord]:
        reject_unknown_columns(dict(fields))

        with self._backend.changed:
            row = self._backend.rows.get(record_id)
            if row is None or not self._visible(row):
                return None

            for path, expected in (only_if or {}).items():
                if resolve_path(row, path) != normalize_value(expected):
                    logger.debug(
                        "Conditional update skipped: id=%s, %s=%s",
                        record_id,
                        path,
                        resolve_path(row, path),
                    )
                    return None

            for key, value in fields.items():
                row[key] = copy.deepcopy(normalize_value(value))
            row["updated_at"] = _now_iso()
            self._bump()
            return row_to_record(copy.deepcopy(row))

    def list(self, record_filter: Optional[RecordFilter] = None) -> list[RecipeRecord]:
        record_filter = record_filter or RecordFilter()

        with self._backend.changed:
            rows = [copy.deepcopy(row) for row in self._backend.rows.values() if self._matches(row, record_filter)]

        rows.sort(key=lambda item: item.get("created_at") or "", reverse=True)
        return [row_to_record(row) for row in rows[: record_filter.limit]]

    def subscribe(
        self,
        record_filter: Optional[RecordFilter] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> Iterator[Snapshot]:
        stop_event = stop_event or threading.Event()
        seen_version = -1

        while not stop_event.is_set():
            with self._backend.changed:
                if self._backend.version == seen_version:
                    self._backend.changed.wait(timeout=self.poll_interval_seconds)
                if self._backend.version == seen_version:
                    continue
                seen_version = self._backend.version

            yield Snapshot(items=self.list(record_filter), is_synced=True)

    def _bump(self) -> None:
        self._backend.version += 1
        self._backend.changed.notify_all()

    def _visible(self, row: dict[str, Any]) -> bool:
        if self.auth.is_service:
            return True
        identity = self._owner_identity()
        return bool(identity) and identity in (row.get("owners") or [])

    def _matches(self, row: dict[str, Any], record_filter: RecordFilter) -> bool:
        if not self._visible(row):
            return False
        if record_filter.status is not None and row.get("status") != record_filter.status.value:
            return False
        if record_filter.owner is not None and record_filter.owner not in (row.get("owners") or []):
            return False
        return True
