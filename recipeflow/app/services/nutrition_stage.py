from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recipeflow.app.domain.models import (
    NutritionalInformation,
    NutritionStatus,
    Outcome,
    RecipeStatus,
    StageName,
    StructuredContent,
)
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.db.rows import nutrition_to_dict
from recipeflow.app.services.model_output import coerce_text, parse_model_json
from recipeflow.services.gemini_client import GeminiClient
from recipeflow.services.prompts import NUTRITION_INSTRUCTION, nutrition_request

logger = logging.getLogger(__name__)

# Only a SUCCESS recipe whose nutrition is still open may be written.
WRITE_GUARD = {
    "status": RecipeStatus.SUCCESS,
    "nutritional_information.status": NutritionStatus.PENDING,
}


class NutritionFacts(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    calories: str = Field(..., min_length=1)
    fat: str = Field(..., min_length=1)
    carbs: str = Field(..., min_length=1)
    protein: str = Field(..., min_length=1)

    @field_validator("calories", "fat", "carbs", "protein", mode="before")
    @classmethod
    def _numbers_as_text(cls, value):
        return coerce_text(value)


@dataclass
class NutritionInput:
    record_id: str
    structured_content: Optional[StructuredContent]


def render_ingredients(content: StructuredContent) -> str:
    return ", ".join(ingredient.render() for ingredient in content.ingredients)


class NutritionStage:
    def __init__(self, store: RecipeStore, gemini: GeminiClient):
        self.store = store
        self.gemini = gemini

    def run(self, stage_input: NutritionInput) -> Outcome[NutritionalInformation]:
        record_id = stage_input.record_id
        content = stage_input.structured_content

        if content is None or not content.ingredients or not (content.servings or "").strip():
            logger.info("Nutrition skipped, missing ingredients or servings: id=%s", record_id)
            return Outcome.skipped(StageName.NUTRITION, record_id, "ingredients and servings are required")

        try:
            raw = self.gemini.generate_json(
                NUTRITION_INSTRUCTION,
                nutrition_request(render_ingredients(content), content.servings.strip()),
            )
            facts = parse_model_json(NutritionFacts, raw)
            info = NutritionalInformation(status=NutritionStatus.SUCCESS, **facts.model_dump())
            updated = self.store.update(
                record_id,
                {"nutritional_information": nutrition_to_dict(info)},
                only_if=WRITE_GUARD,
            )
        except Exception as err:
            logger.warning("Nutrition failed: id=%s, error=%s", record_id, err)
            self._mark_failed(record_id)
            return Outcome.failure(StageName.NUTRITION, record_id, str(err))

        if updated is None:
            logger.info("Nutrition not written, record not eligible: id=%s", record_id)
            return Outcome.skipped(StageName.NUTRITION, record_id, "record not eligible for nutrition")

        logger.info("Nutrition written: id=%s, calories=%s", record_id, info.calories)
        return Outcome.success(StageName.NUTRITION, record_id, info)

    def _mark_failed(self, record_id: str) -> None:
        try:
            self.store.update(
                record_id,
                {"nutritional_information": nutrition_to_dict(NutritionalInformation(status=NutritionStatus.FAILED))},
                only_if=WRITE_GUARD,
            )
        except Exception:
            logger.exception("Could not record nutrition failure: id=%s", record_id)
