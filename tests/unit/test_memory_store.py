from __future__ import annotations

import threading

import pytest

from recipeflow.app.domain.models import (
    AuthContext,
    NutritionStatus,
    RecipeStatus,
    RecordFilter,
)
from recipeflow.app.infra.db.memory_store import InMemoryRecipeStore


def create_pending(store: InMemoryRecipeStore, owner: str = "user-1", **extra) -> str:
    fields = {
        "status": RecipeStatus.PENDING,
        "nutritional_information": {"status": "PENDING"},
        "source_text": "text",
        "owners": [owner],
        "created_by": owner,
    }
    fields.update(extra)
    return store.create(fields).id


class TestCreateAndGet:
    def test_create_assigns_id_and_timestamps(self) -> None:
        store = InMemoryRecipeStore()
        record = store.create({"status": RecipeStatus.PENDING, "url": "https://example.com/r"})

        assert record.id
        assert record.status == RecipeStatus.PENDING
        assert record.source.url == "https://example.com/r"
        assert record.created_at is not None
        assert record.updated_at == record.created_at

    def test_get_unknown_returns_none(self) -> None:
        assert InMemoryRecipeStore().get("missing") is None

    def test_create_rejects_unknown_columns(self) -> None:
        with pytest.raises(ValueError):
            InMemoryRecipeStore().create({"id": "chosen-by-caller"})


class TestShallowMerge:
    def test_update_leaves_other_fields_untouched(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        store.update(record_id, {"image_url": "https://cdn/x.jpg"})

        record = store.get(record_id)
        assert record.image_url == "https://cdn/x.jpg"
        assert record.status == RecipeStatus.PENDING
        assert record.source.text == "text"

    def test_conditional_update_skips_on_mismatch(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        store.update(record_id, {"status": RecipeStatus.FAILED})

        result = store.update(
            record_id,
            {"status": RecipeStatus.SUCCESS},
            only_if={"status": RecipeStatus.PENDING},
        )

        assert result is None
        assert store.get(record_id).status == RecipeStatus.FAILED

    def test_conditional_update_on_nested_path(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store, status=RecipeStatus.SUCCESS)
        guard = {"nutritional_information.status": NutritionStatus.PENDING}

        first = store.update(record_id, {"nutritional_information": {"status": "SUCCESS", "calories": "1"}}, only_if=guard)
        second = store.update(record_id, {"nutritional_information": {"status": "FAILED"}}, only_if=guard)

        assert first is not None
        assert second is None
        assert store.get(record_id).nutritional_information.status == NutritionStatus.SUCCESS

    def test_update_unknown_record_returns_none(self) -> None:
        assert InMemoryRecipeStore().update("missing", {"image_url": "x"}) is None


class TestOwnership:
    def test_user_sees_only_own_records(self) -> None:
        service = InMemoryRecipeStore()
        mine = create_pending(service, owner="user-1")
        theirs = create_pending(service, owner="user-2")

        user_store = service.with_auth(AuthContext.user("user-1"))

        assert user_store.get(mine) is not None
        assert user_store.get(theirs) is None
        assert [record.id for record in user_store.list()] == [mine]

    def test_guest_cannot_update_foreign_record(self) -> None:
        service = InMemoryRecipeStore()
        record_id = create_pending(service, owner="user-1")

        guest_store = service.with_auth(AuthContext.guest("guest-9"))

        assert guest_store.update(record_id, {"image_url": "x"}) is None
        assert service.get(record_id).image_url is None


class TestList:
    def test_filters_by_status_and_limit(self) -> None:
        store = InMemoryRecipeStore()
        create_pending(store)
        done = create_pending(store, status=RecipeStatus.SUCCESS)
        create_pending(store, status=RecipeStatus.SUCCESS)

        successes = store.list(RecordFilter(status=RecipeStatus.SUCCESS))
        limited = store.list(RecordFilter(limit=1))

        assert {record.status for record in successes} == {RecipeStatus.SUCCESS}
        assert len(successes) == 2
        assert done in {record.id for record in successes}
        assert len(limited) == 1


class TestSubscribe:
    def test_yields_initial_snapshot_and_changes(self) -> None:
        store = InMemoryRecipeStore(poll_interval_seconds=0.05)
        record_id = create_pending(store)
        stop_event = threading.Event()

        stream = store.subscribe(stop_event=stop_event)
        first = next(stream)
        store.update(record_id, {"status": RecipeStatus.SUCCESS})
        second = next(stream)
        stop_event.set()

        assert first.is_synced
        assert first.items[0].status == RecipeStatus.PENDING
        assert second.items[0].status == RecipeStatus.SUCCESS

    def test_stops_when_event_set(self) -> None:
        store = InMemoryRecipeStore(poll_interval_seconds=0.01)
        stop_event = threading.Event()
        stop_event.set()

        assert list(store.subscribe(stop_event=stop_event)) == []
