from __future__ import annotations

import json

import pytest

from recipeflow.app.domain.errors import ModelOutputError, RecordStoreError
from recipeflow.app.domain.models import OutcomeStatus, RecipeStatus
from recipeflow.app.infra.db.memory_store import InMemoryRecipeStore
from recipeflow.app.services.extraction_stage import (
    ExtractedRecipe,
    ExtractionInput,
    ExtractionStage,
)
from recipeflow.app.services.failure_stage import FailureStage
from recipeflow.app.services.model_output import parse_model_json, strip_code_fences
from recipeflow.services.errors import ModelCallError

PANCAKE_TEXT = (
    "Fluffy pancakes. You will need 1 1/2 cups of flour, 2 tablespoons of sugar, 1 teaspoon of "
    "baking powder, 1 egg and 1 cup of milk. Whisk the dry ingredients, then add the egg and the "
    "milk. Cook ladlefuls on a hot buttered pan until golden on both sides. Serves 4."
)

PANCAKE_JSON = {
    "title": "Fluffy Pancakes",
    "ingredients": [
        {"name": "flour", "quantity": "1.5", "unit": "cup", "stepMapping": [1]},
        {"name": "sugar", "quantity": "2", "unit": "tablespoon", "stepMapping": [1]},
        {"name": "egg", "quantity": 1, "unit": "each", "stepMapping": [2]},
        {"name": "milk", "quantity": "1", "unit": "cup"},
    ],
    "instructions": ["Whisk the dry ingredients.", "Add egg and milk.", "Cook until golden."],
    "prep_time": "10 minutes",
    "cook_time": "15 minutes",
    "servings": 4,
}


class GeminiClientStub:
    def __init__(self, response: str | None = None, error: Exception | None = None) -> None:
        self.response = response if response is not None else json.dumps(PANCAKE_JSON)
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def generate_json(self, system_instruction: str, user_prompt: str) -> str:
        self.calls.append((system_instruction, user_prompt))
        if self.error is not None:
            raise self.error
        return self.response


class FailureStageSpy(FailureStage):
    def __init__(self, store: InMemoryRecipeStore) -> None:
        super().__init__(store)
        self.invocations: list[str] = []

    def run(self, record_id: str):
        self.invocations.append(record_id)
        return super().run(record_id)


class FailingUpdateStore(InMemoryRecipeStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_success_writes = True

    def update(self, record_id, fields, *, only_if=None):
        if self.fail_success_writes and fields.get("status") == RecipeStatus.SUCCESS:
            raise RecordStoreError("update", "simulated outage")
        return super().update(record_id, fields, only_if=only_if)


def create_pending(store: InMemoryRecipeStore) -> str:
    return store.create({"status": RecipeStatus.PENDING, "nutritional_information": {"status": "PENDING"}}).id


def build_stage(store, gemini=None):
    failure = FailureStageSpy(store)
    stage = ExtractionStage(store, gemini or GeminiClientStub(), failure)
    return stage, failure


class TestExtractionSuccess:
    def test_pancake_text_becomes_success(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        gemini = GeminiClientStub()
        stage, failure = build_stage(store, gemini)

        outcome = stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        record = store.get(record_id)
        assert outcome.succeeded
        assert record.status == RecipeStatus.SUCCESS
        assert record.structured_content.title == "Fluffy Pancakes"
        assert len(record.structured_content.ingredients) > 0
        assert record.structured_content.ingredients[0].step_mapping == [1]
        assert record.structured_content.ingredients[2].quantity == "1"
        assert record.structured_content.servings == "4"
        assert failure.invocations == []
        assert len(gemini.calls) == 1

    def test_fenced_output_is_accepted(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        gemini = GeminiClientStub(response="```json\n" + json.dumps(PANCAKE_JSON) + "\n```")
        stage, _ = build_stage(store, gemini)

        assert stage.run(ExtractionInput(record_id, PANCAKE_TEXT)).succeeded

    def test_unsupported_language_falls_back_to_english(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        gemini = GeminiClientStub()
        stage, _ = build_stage(store, gemini)

        stage.run(ExtractionInput(record_id, PANCAKE_TEXT, language="de"))

        assert "English" in gemini.calls[0][0]


class TestExtractionFailure:
    def test_short_text_never_calls_model(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        gemini = GeminiClientStub()
        stage, failure = build_stage(store, gemini)

        outcome = stage.run(ExtractionInput(record_id, "hi"))

        assert outcome.status == OutcomeStatus.FAILED
        assert gemini.calls == []
        assert failure.invocations == [record_id]
        assert store.get(record_id).status == RecipeStatus.FAILED

    def test_model_error_routes_to_failure_once(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        stage, failure = build_stage(store, GeminiClientStub(error=ModelCallError("timed out")))

        outcome = stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        assert not outcome.succeeded
        assert "timed out" in outcome.error
        assert failure.invocations == [record_id]
        assert store.get(record_id).status == RecipeStatus.FAILED

    @pytest.mark.parametrize(
        "response",
        [
            "not json at all",
            json.dumps({**PANCAKE_JSON, "title": "  "}),
            json.dumps({**PANCAKE_JSON, "ingredients": []}),
            json.dumps({key: value for key, value in PANCAKE_JSON.items() if key != "cook_time"}),
            json.dumps({**PANCAKE_JSON, "instructions": ["Mix", ""]}),
            json.dumps(
                {**PANCAKE_JSON, "ingredients": [{"name": "flour", "quantity": "1", "unit": "cup", "stepMapping": [9]}]}
            ),
        ],
    )
    def test_shape_mismatch_is_failure(self, response: str) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        stage, failure = build_stage(store, GeminiClientStub(response=response))

        outcome = stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        record = store.get(record_id)
        assert not outcome.succeeded
        assert failure.invocations == [record_id]
        assert record.status == RecipeStatus.FAILED
        assert record.structured_content is None

    def test_write_back_error_falls_back_to_failure(self) -> None:
        store = FailingUpdateStore()
        record_id = create_pending(store)
        stage, failure = build_stage(store)

        outcome = stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        assert not outcome.succeeded
        assert failure.invocations == [record_id]
        assert store.get(record_id).status == RecipeStatus.FAILED

    def test_record_already_failed_is_not_revived(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        store.update(record_id, {"status": RecipeStatus.FAILED})
        stage, _ = build_stage(store)

        outcome = stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        record = store.get(record_id)
        assert not outcome.succeeded
        assert record.status == RecipeStatus.FAILED
        assert record.structured_content is None

    def test_record_already_success_is_skipped(self) -> None:
        store = InMemoryRecipeStore()
        record_id = create_pending(store)
        stage, failure = build_stage(store)
        stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        outcome = stage.run(ExtractionInput(record_id, PANCAKE_TEXT))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert failure.invocations == []
        assert store.get(record_id).status == RecipeStatus.SUCCESS


class TestModelOutputParsing:
    def test_strip_code_fences(self) -> None:
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_parse_error_names_schema(self) -> None:
        with pytest.raises(ModelOutputError) as exc_info:
            parse_model_json(ExtractedRecipe, "{}")

        assert exc_info.value.schema_name == "ExtractedRecipe"
        assert "title" in exc_info.value.reason
