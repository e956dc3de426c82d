from __future__ import annotations

import threading
from types import SimpleNamespace

import httpx
import pytest

from recipeflow.app.domain.errors import RecordStoreError
from recipeflow.app.domain.models import AuthContext, NutritionStatus, RecipeStatus, RecordFilter
from recipeflow.app.infra.db.supabase_recipe_store import SupabaseRecipeStore


class QueryStub:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []
        self.data: list[dict] = []
        self.error: Exception | None = None

    def __getattr__(self, name: str):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return method

    def execute(self) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)

    def called(self, name: str) -> list[tuple]:
        return [args for call_name, args, _ in self.calls if call_name == name]


class SupabaseClientStub:
    def __init__(self) -> None:
        self.query = QueryStub()
        self.tables: list[str] = []

    def table(self, name: str) -> QueryStub:
        self.tables.append(name)
        return self.query


def make_row(**overrides) -> dict:
    row = {
        "id": "r1",
        "status": "PENDING",
        "nutritional_information": {"status": "PENDING"},
        "owners": ["user-1"],
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }
    row.update(overrides)
    return row


class TestSupabaseRecipeStoreUpdate:
    def test_only_if_becomes_column_filters(self) -> None:
        client = SupabaseClientStub()
        client.query.data = [make_row(status="SUCCESS")]
        store = SupabaseRecipeStore(client=client)

        store.update(
            "r1",
            {"nutritional_information": {"status": "SUCCESS"}},
            only_if={
                "status": RecipeStatus.SUCCESS,
                "nutritional_information.status": NutritionStatus.PENDING,
            },
        )

        assert client.tables == ["recipes"]
        eq_filters = client.query.called("eq")
        assert ("id", "r1") in eq_filters
        assert ("status", "SUCCESS") in eq_filters
        assert ("nutritional_information->>status", "PENDING") in eq_filters

    def test_none_guard_becomes_is_null_filter(self) -> None:
        client = SupabaseClientStub()
        client.query.data = [make_row(status="SUCCESS", image_url="https://cdn.test/a.jpg")]
        store = SupabaseRecipeStore(client=client)

        store.update(
            "r1",
            {"image_url": "https://cdn.test/a.jpg"},
            only_if={"status": RecipeStatus.SUCCESS, "image_url": None},
        )

        assert ("image_url", "null") in client.query.called("is_")
        assert all(column != "image_url" for column, *_ in client.query.called("eq"))

    def test_no_matching_row_returns_none(self) -> None:
        client = SupabaseClientStub()
        store = SupabaseRecipeStore(client=client)

        assert store.update("r1", {"status": "FAILED"}, only_if={"status": "PENDING"}) is None

    def test_sets_updated_at_and_normalizes_enums(self) -> None:
        client = SupabaseClientStub()
        client.query.data = [make_row(status="FAILED")]
        store = SupabaseRecipeStore(client=client)

        record = store.update("r1", {"status": RecipeStatus.FAILED})

        payload = client.query.called("update")[0][0]
        assert payload["status"] == "FAILED"
        assert "updated_at" in payload
        assert record.status == RecipeStatus.FAILED

    def test_backend_error_raises_record_store_error(self) -> None:
        client = SupabaseClientStub()
        client.query.error = httpx.ConnectError("connection refused")
        store = SupabaseRecipeStore(client=client)

        with pytest.raises(RecordStoreError) as exc_info:
            store.update("r1", {"status": "FAILED"})

        assert exc_info.value.operation == "update"


class TestSupabaseRecipeStoreScope:
    def test_user_context_filters_on_owners(self) -> None:
        client = SupabaseClientStub()
        store = SupabaseRecipeStore(client=client, auth=AuthContext.user("user-1"))

        store.get("r1")

        assert ("owners", ["user-1"]) in client.query.called("contains")

    def test_service_context_is_unscoped(self) -> None:
        client = SupabaseClientStub()
        client.query.data = [make_row()]
        store = SupabaseRecipeStore(client=client)

        record = store.get("r1")

        assert client.query.called("contains") == []
        assert record.id == "r1"


class TestSupabaseRecipeStoreList:
    def test_list_applies_filter_and_order(self) -> None:
        client = SupabaseClientStub()
        client.query.data = [make_row(id="r2"), make_row(id="r1")]
        store = SupabaseRecipeStore(client=client)

        records = store.list(RecordFilter(status=RecipeStatus.PENDING, limit=10))

        assert [record.id for record in records] == ["r2", "r1"]
        assert ("status", "PENDING") in client.query.called("eq")
        assert client.query.called("limit") == [(10,)]

    def test_subscribe_serves_stale_snapshot_on_error(self) -> None:
        client = SupabaseClientStub()
        client.query.data = [make_row()]
        store = SupabaseRecipeStore(client=client, poll_interval_seconds=0)
        stop_event = threading.Event()

        stream = store.subscribe(stop_event=stop_event)
        first = next(stream)
        client.query.error = httpx.ConnectError("down")
        second = next(stream)
        stop_event.set()

        assert first.is_synced
        assert not second.is_synced
        assert [record.id for record in second.items] == ["r1"]
