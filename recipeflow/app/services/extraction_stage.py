from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recipeflow.app.domain.errors import InsufficientContentError, ModelOutputError, PipelineError
from recipeflow.app.domain.models import (
    DEFAULT_LANGUAGE,
    SUPPORTED_LANGUAGES,
    Ingredient,
    Outcome,
    RecipeStatus,
    StageName,
    StructuredContent,
)
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.db.rows import content_to_dict
from recipeflow.app.services.failure_stage import FailureStage
from recipeflow.app.services.model_output import coerce_text, parse_model_json
from recipeflow.services.errors import ServiceError
from recipeflow.services.gemini_client import GeminiClient
from recipeflow.services.prompts import recipe_extraction_instruction

logger = logging.getLogger(__name__)

MIN_SOURCE_TEXT_LENGTH = 100


class ExtractedIngredient(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    quantity: str
    unit: str
    step_mapping: Optional[list[int]] = Field(default=None, alias="stepMapping")

    @field_validator("quantity", "unit", mode="before")
    @classmethod
    def _numbers_as_text(cls, value):
        return coerce_text(value)


class ExtractedRecipe(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    ingredients: list[ExtractedIngredient] = Field(..., min_length=1)
    instructions: list[str] = Field(..., min_length=1)
    prep_time: str
    cook_time: str
    servings: str

    @field_validator("prep_time", "cook_time", "servings", mode="before")
    @classmethod
    def _numbers_as_text(cls, value):
        return coerce_text(value)

    @field_validator("instructions")
    @classmethod
    def _no_blank_steps(cls, steps: list[str]) -> list[str]:
        if any(not step for step in steps):
            raise ValueError("instructions must not contain blank steps")
        return steps

    def to_content(self) -> StructuredContent:
        return StructuredContent(
            title=self.title,
            ingredients=[
                Ingredient(
                    name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    step_mapping=item.step_mapping or None,
                )
                for item in self.ingredients
            ],
            instructions=list(self.instructions),
            prep_time=self.prep_time,
            cook_time=self.cook_time,
            servings=self.servings,
        )


@dataclass
class ExtractionInput:
    record_id: str
    raw_source_text: Optional[str]
    language: str = DEFAULT_LANGUAGE


class ExtractionStage:
    """
    Turns raw recipe text into structured content and marks the record SUCCESS.

    Every unrecoverable problem (short input, model error, invalid model
    output, failed write-back) goes to the FailureStage exactly once. The
    stage does not retry and does not raise.
    """

    def __init__(
        self,
        store: RecipeStore,
        gemini: GeminiClient,
        failure_stage: FailureStage,
        min_text_length: int = MIN_SOURCE_TEXT_LENGTH,
    ):
        self.store = store
        self.gemini = gemini
        self.failure_stage = failure_stage
        self.min_text_length = min_text_length

    def run(self, stage_input: ExtractionInput) -> Outcome[StructuredContent]:
        record_id = stage_input.record_id
        try:
            content = self._extract(stage_input)
        except (PipelineError, ServiceError) as err:
            logger.warning("Extraction failed: id=%s, error=%s", record_id, err)
            return self._fail(record_id, str(err))
        except Exception as err:
            logger.exception("Unexpected extraction error: id=%s", record_id)
            return self._fail(record_id, f"unexpected error: {err}")

        return self._write_back(record_id, content)

    def _extract(self, stage_input: ExtractionInput) -> StructuredContent:
        text = (stage_input.raw_source_text or "").strip()
        if len(text) < self.min_text_length:
            raise InsufficientContentError(len(text), self.min_text_length)

        language = stage_input.language if stage_input.language in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE
        raw = self.gemini.generate_json(recipe_extraction_instruction(language), text)
        recipe = parse_model_json(ExtractedRecipe, raw)

        for ingredient in recipe.ingredients:
            for step in ingredient.step_mapping or []:
                if step < 1 or step > len(recipe.instructions):
                    raise ModelOutputError(
                        ExtractedRecipe.__name__,
                        f"stepMapping {step} of {ingredient.name!r} is outside 1..{len(recipe.instructions)}",
                    )

        return recipe.to_content()

    def _write_back(self, record_id: str, content: StructuredContent) -> Outcome[StructuredContent]:
        try:
            updated = self.store.update(
                record_id,
                {"status": RecipeStatus.SUCCESS, "structured_content": content_to_dict(content)},
                only_if={"status": RecipeStatus.PENDING},
            )
            if updated is None:
                current = self.store.get(record_id)
                if current is not None and current.status == RecipeStatus.SUCCESS:
                    logger.info("Recipe already extracted, result dropped: id=%s", record_id)
                    return Outcome.skipped(StageName.EXTRACTION, record_id, "record already SUCCESS")
                return self._fail(record_id, "record was not PENDING at write-back")
        except Exception as err:
            logger.exception("Write-back failed: id=%s", record_id)
            return self._fail(record_id, f"write-back failed: {err}")

        logger.info(
            "Recipe extracted: id=%s, title=%s, ingredients=%d, steps=%d",
            record_id,
            content.title,
            len(content.ingredients),
            len(content.instructions),
        )
        return Outcome.success(StageName.EXTRACTION, record_id, content)

    def _fail(self, record_id: str, reason: str) -> Outcome[StructuredContent]:
        self.failure_stage.run(record_id)
        return Outcome.failure(StageName.EXTRACTION, record_id, reason)
