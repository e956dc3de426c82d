from __future__ import annotations

import json

from recipeflow.app.domain.models import (
    Ingredient,
    NutritionStatus,
    OutcomeStatus,
    RecipeStatus,
    StructuredContent,
)
from recipeflow.app.infra.db.memory_store import InMemoryRecipeStore
from recipeflow.app.infra.db.rows import content_to_dict
from recipeflow.app.services.nutrition_stage import NutritionInput, NutritionStage, render_ingredients
from recipeflow.services.errors import RateLimitedError

NUTRITION_JSON = {"calories": "320 kcal", "fat": "12 g", "carbs": "40 g", "protein": 9}


class GeminiClientStub:
    def __init__(self, response: str | None = None, error: Exception | None = None) -> None:
        self.response = response if response is not None else json.dumps(NUTRITION_JSON)
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def generate_json(self, system_instruction: str, user_prompt: str) -> str:
        self.calls.append((system_instruction, user_prompt))
        if self.error is not None:
            raise self.error
        return self.response


def make_content(servings: str = "4", ingredient_count: int = 5) -> StructuredContent:
    names = ["flour", "sugar", "egg", "milk", "butter", "salt"]
    return StructuredContent(
        title="Pancakes",
        ingredients=[
            Ingredient(name=name, quantity="1", unit="cup") for name in names[:ingredient_count]
        ],
        instructions=["Mix", "Cook"],
        servings=servings,
    )


def create_success(store: InMemoryRecipeStore, content: StructuredContent) -> str:
    record = store.create(
        {
            "status": RecipeStatus.SUCCESS,
            "structured_content": content_to_dict(content),
            "nutritional_information": {"status": "PENDING"},
            "image_url": "https://cdn/existing.jpg",
        }
    )
    return record.id


class TestNutritionStageSuccess:
    def test_five_ingredient_recipe_gets_nutrition(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content()
        record_id = create_success(store, content)
        gemini = GeminiClientStub()

        outcome = NutritionStage(store, gemini).run(NutritionInput(record_id, content))

        info = store.get(record_id).nutritional_information
        assert outcome.succeeded
        assert info.status == NutritionStatus.SUCCESS
        for value in (info.calories, info.fat, info.carbs, info.protein):
            assert isinstance(value, str) and value
        assert info.protein == "9"

    def test_prompt_lists_ingredients_and_servings(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content(servings="4", ingredient_count=2)
        record_id = create_success(store, content)
        gemini = GeminiClientStub()

        NutritionStage(store, gemini).run(NutritionInput(record_id, content))

        prompt = gemini.calls[0][1]
        assert "1 cup flour, 1 cup sugar" in prompt
        assert "serves 4" in prompt

    def test_other_fields_untouched(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content()
        record_id = create_success(store, content)

        NutritionStage(store, GeminiClientStub()).run(NutritionInput(record_id, content))

        record = store.get(record_id)
        assert record.status == RecipeStatus.SUCCESS
        assert record.image_url == "https://cdn/existing.jpg"
        assert record.structured_content.title == "Pancakes"


class TestNutritionStageFailure:
    def test_model_error_marks_sub_status_failed_only(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content()
        record_id = create_success(store, content)

        outcome = NutritionStage(store, GeminiClientStub(error=RateLimitedError("slow down"))).run(
            NutritionInput(record_id, content)
        )

        record = store.get(record_id)
        assert outcome.status == OutcomeStatus.FAILED
        assert record.nutritional_information.status == NutritionStatus.FAILED
        assert record.status == RecipeStatus.SUCCESS

    def test_invalid_shape_is_failure(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content()
        record_id = create_success(store, content)

        outcome = NutritionStage(store, GeminiClientStub(response='{"calories": "100 kcal"}')).run(
            NutritionInput(record_id, content)
        )

        assert outcome.status == OutcomeStatus.FAILED
        assert store.get(record_id).nutritional_information.status == NutritionStatus.FAILED

    def test_missing_servings_is_skipped_without_write(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content(servings="")
        record_id = create_success(store, content)
        before = store.get(record_id)
        gemini = GeminiClientStub()

        outcome = NutritionStage(store, gemini).run(NutritionInput(record_id, content))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert gemini.calls == []
        assert store.get(record_id).updated_at == before.updated_at

    def test_missing_content_is_skipped(self) -> None:
        store = InMemoryRecipeStore()
        outcome = NutritionStage(store, GeminiClientStub()).run(NutritionInput("r1", None))

        assert outcome.status == OutcomeStatus.SKIPPED

    def test_failed_parent_receives_no_write(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content()
        record_id = store.create(
            {"status": RecipeStatus.FAILED, "nutritional_information": {"status": "PENDING"}}
        ).id

        outcome = NutritionStage(store, GeminiClientStub()).run(NutritionInput(record_id, content))

        record = store.get(record_id)
        assert outcome.status == OutcomeStatus.SKIPPED
        assert record.nutritional_information.status == NutritionStatus.PENDING
        assert record.nutritional_information.calories is None

    def test_settled_nutrition_is_not_overwritten(self) -> None:
        store = InMemoryRecipeStore()
        content = make_content()
        record_id = create_success(store, content)
        stage = NutritionStage(store, GeminiClientStub())
        stage.run(NutritionInput(record_id, content))

        second = NutritionStage(store, GeminiClientStub(response='{"calories": "1 kcal", "fat": "1 g", "carbs": "1 g", "protein": "1 g"}'))
        outcome = second.run(NutritionInput(record_id, content))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert store.get(record_id).nutritional_information.calories == "320 kcal"


def test_render_ingredients() -> None:
    content = StructuredContent(
        title="t",
        ingredients=[
            Ingredient(name="flour", quantity="1.5", unit="cup"),
            Ingredient(name="egg", quantity="2", unit="each"),
        ],
        instructions=["x"],
    )
    assert render_ingredients(content) == "1.5 cup flour, 2 each egg"
