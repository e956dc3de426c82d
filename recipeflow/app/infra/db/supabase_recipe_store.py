from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional
from uuid import uuid4

import httpx
from postgrest import APIError
from supabase import Client, create_client

from recipeflow.app.domain.errors import RecordStoreError
from recipeflow.app.domain.models import AuthContext, RecipeRecord, RecordFilter, Snapshot
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.db.rows import normalize_value, reject_unknown_columns, row_to_record

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
_STORE_ERRORS = (APIError, httpx.HTTPError, ConnectionError, TimeoutError)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _create_supabase_client() -> Client:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(url, key)


def _filter_column(path: str) -> str:
    # nutritional_information.status -> nutritional_information->>status
    if "." not in path:
        return path
    column, key = path.split(".", 1)
    return f"{column}->>{key}"


class SupabaseRecipeStore(RecipeStore):
    """
    Recipe records in the ``recipes`` table.

    Uses the service-role client; ownership for user and guest contexts is
    enforced here by filtering on the ``owners`` array.
    """

    TABLE_NAME = "recipes"

    def __init__(
        self,
        client: Client | None = None,
        auth: AuthContext | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        super().__init__(auth or AuthContext.service())
        self._client = client or _create_supabase_client()
        self.poll_interval_seconds = poll_interval_seconds

    def with_auth(self, auth: AuthContext) -> "SupabaseRecipeStore":
        return SupabaseRecipeStore(self._client, auth, self.poll_interval_seconds)

    def create(self, fields: Mapping[str, Any]) -> RecipeRecord:
        reject_unknown_columns(dict(fields))
        now = _now_utc().isoformat()
        row = {key: normalize_value(value) for key, value in fields.items()}
        row.update({"id": str(uuid4()), "created_at": now, "updated_at": now})

        try:
            result = self._client.table(self.TABLE_NAME).insert(row).execute()
        except _STORE_ERRORS as error:
            logger.error("Error creating recipe: %s", error)
            raise RecordStoreError("create", str(error)) from error

        if not result.data:
            raise RecordStoreError("create", "insert returned no rows")

        record = row_to_record(result.data[0])
        logger.info("Created recipe: id=%s, status=%s", record.id, record.status.value)
        return record

    def get(self, record_id: str) -> Optional[RecipeRecord]:
        query = self._client.table(self.TABLE_NAME).select("*").eq("id", record_id)
        query = self._scope(query)

        try:
            result = query.limit(1).execute()
        except _STORE_ERRORS as error:
            logger.error("Error fetching recipe %s: %s", record_id, error)
            raise RecordStoreError("get", str(error)) from error

        if not result.data:
            return None
        return row_to_record(result.data[0])

    def update(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        only_if: Optional[Mapping[str, Any]] = None,
    ) -> Optional[RecipeRecord]:
        reject_unknown_columns(dict(fields))
        update_data = {key: normalize_value(value) for key, value in fields.items()}
        update_data["updated_at"] = _now_utc().isoformat()

        query = self._client.table(self.TABLE_NAME).update(update_data).eq("id", record_id)
        query = self._scope(query)
        for path, expected in (only_if or {}).items():
            if expected is None:
                query = query.is_(_filter_column(path), "null")
            else:
                query = query.eq(_filter_column(path), normalize_value(expected))

        try:
            result = query.execute()
        except _STORE_ERRORS as error:
            logger.error("Error updating recipe %s: %s", record_id, error)
            raise RecordStoreError("update", str(error)) from error

        if not result.data:
            logger.debug("Update matched no rows: id=%s, only_if=%s", record_id, only_if)
            return None
        return row_to_record(result.data[0])

    def list(self, record_filter: Optional[RecordFilter] = None) -> list[RecipeRecord]:
        record_filter = record_filter or RecordFilter()
        query = self._scope(self._client.table(self.TABLE_NAME).select("*"))

        if record_filter.status is not None:
            query = query.eq("status", record_filter.status.value)
        if record_filter.owner is not None:
            query = query.contains("owners", [record_filter.owner])

        try:
            result = query.order("created_at", desc=True).limit(record_filter.limit).execute()
        except _STORE_ERRORS as error:
            logger.error("Error listing recipes: %s", error)
            raise RecordStoreError("list", str(error)) from error

        return [row_to_record(row) for row in result.data or []]

    def subscribe(
        self,
        record_filter: Optional[RecordFilter] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> Iterator[Snapshot]:
        stop_event = stop_event or threading.Event()
        last_items: list[RecipeRecord] = []

        while not stop_event.is_set():
            try:
                last_items = self.list(record_filter)
                yield Snapshot(items=last_items, is_synced=True)
            except RecordStoreError as error:
                logger.warning("Subscription poll failed, serving stale snapshot: %s", error)
                yield Snapshot(items=last_items, is_synced=False)

            stop_event.wait(self.poll_interval_seconds)

    def _scope(self, query):
        identity = self._owner_identity()
        if self.auth.is_service:
            return query
        # An unidentified caller matches nothing.
        return query.contains("owners", [identity or ""])
