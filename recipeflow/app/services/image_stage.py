from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from recipeflow.app.domain.models import (
    ImageResult,
    Ingredient,
    Outcome,
    OutcomeStatus,
    RecipeStatus,
    StageName,
    StructuredContent,
)
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.storage.base import StorageProvider
from recipeflow.services.image_finder import HEURISTIC_FETCH_TIMEOUT_SECONDS, find_source_image
from recipeflow.services.image_generator import ImageGenerator
from recipeflow.services.prompts import recipe_image_prompt

logger = logging.getLogger(__name__)

ORIGIN_SOURCE = "source"
ORIGIN_GENERATED = "generated"

MAX_MAIN_INGREDIENTS = 5
TRACE_INGREDIENTS = ("salt", "pepper", "water")

CUISINE_KEYWORDS = (
    ("Asian", ("soy sauce", "ginger", "sesame")),
    ("Italian", ("pasta", "parmesan", "olive oil")),
    ("Mexican", ("tortilla", "cilantro", "jalapeño", "jalapeno")),
)
DEFAULT_CUISINE = "homemade"

VESSEL_KEYWORDS = (
    ("bowl", ("soup", "stew")),
    ("glass", ("drink", "smoothie")),
)
DEFAULT_VESSEL = "plate"

# image_url None also stops a second run from replacing an image already written.
WRITE_GUARD = {"status": RecipeStatus.SUCCESS, "image_url": None}


def main_ingredients(ingredients: list[Ingredient], limit: int = MAX_MAIN_INGREDIENTS) -> list[str]:
    names = []
    for ingredient in ingredients:
        name = ingredient.name.strip()
        lowered = name.lower()
        if not name or any(trace in lowered for trace in TRACE_INGREDIENTS):
            continue
        names.append(name)
    return names[:limit]


def infer_cuisine(title: str, ingredient_names: list[str]) -> str:
    haystack = " ".join([title, *ingredient_names]).lower()
    for cuisine, keywords in CUISINE_KEYWORDS:
        if any(keyword in haystack for keyword in keywords):
            return cuisine
    return DEFAULT_CUISINE


def infer_vessel(title: str) -> str:
    lowered = title.lower()
    for vessel, keywords in VESSEL_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return vessel
    return DEFAULT_VESSEL


def build_image_prompt(content: StructuredContent) -> str:
    all_names = [ingredient.name for ingredient in content.ingredients]
    return recipe_image_prompt(
        title=content.title,
        cuisine=infer_cuisine(content.title, all_names),
        main_ingredients=main_ingredients(content.ingredients),
        vessel=infer_vessel(content.title),
    )


@dataclass
class ImageInput:
    record_id: str
    structured_content: Optional[StructuredContent]
    original_source_url: Optional[str] = None


class ImageStage:
    """
    Finds or synthesizes a picture for a SUCCESS recipe.

    Tier 1 looks for an existing photo on the source page; tier 2 generates one
    and stores it. Tiers are isolated from each other and nothing propagates:
    every problem ends in an outcome whose image_url is None. The parent is
    re-read first and the write is guarded on SUCCESS with no image yet, so
    a rerun or a concurrent writer never has its image replaced.
    """

    def __init__(
        self,
        store: RecipeStore,
        storage: StorageProvider,
        generator: ImageGenerator,
        find_image: Callable[..., Optional[str]] = find_source_image,
        heuristic_timeout_seconds: float = HEURISTIC_FETCH_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.storage = storage
        self.generator = generator
        self._find_image = find_image
        self.heuristic_timeout_seconds = heuristic_timeout_seconds

    def run(self, stage_input: ImageInput) -> Outcome[ImageResult]:
        record_id = stage_input.record_id
        content = stage_input.structured_content

        if content is None or not content.title.strip():
            return Outcome.skipped(StageName.IMAGE, record_id, "structured content is required")

        try:
            current = self.store.get(record_id)
        except Exception as err:
            logger.warning("Image stage could not load recipe: id=%s, error=%s", record_id, err)
            return self._failed(record_id, f"load failed: {err}")
        if current is None or current.status != RecipeStatus.SUCCESS:
            return Outcome.skipped(StageName.IMAGE, record_id, "record not SUCCESS")
        if current.image_url:
            return Outcome.skipped(StageName.IMAGE, record_id, "image already set")

        result = ImageResult(image_url=None)
        if stage_input.original_source_url:
            result = self._from_source(record_id, stage_input.original_source_url)
        if not result.image_url:
            result = self._generate(record_id, content)

        if not result.image_url:
            logger.info("No image for recipe: id=%s", record_id)
            return Outcome.success(StageName.IMAGE, record_id, ImageResult(image_url=None))

        try:
            updated = self.store.update(
                record_id,
                {"image_url": result.image_url},
                only_if=WRITE_GUARD,
            )
        except Exception as err:
            logger.warning("Image write failed: id=%s, error=%s", record_id, err)
            return self._failed(record_id, f"write failed: {err}")

        if updated is None:
            logger.info("Image not written, record not SUCCESS or image already set: id=%s", record_id)
            return Outcome.skipped(StageName.IMAGE, record_id, "record not SUCCESS or image already set")

        logger.info("Image written: id=%s, origin=%s, url=%s", record_id, result.origin, result.image_url)
        return Outcome.success(StageName.IMAGE, record_id, result)

    def _failed(self, record_id: str, error: str) -> Outcome[ImageResult]:
        return Outcome(
            stage=StageName.IMAGE,
            record_id=record_id,
            status=OutcomeStatus.FAILED,
            value=ImageResult(image_url=None),
            error=error,
        )

    def _from_source(self, record_id: str, url: str) -> ImageResult:
        try:
            image_url = self._find_image(url, timeout=self.heuristic_timeout_seconds)
        except Exception as err:
            logger.warning("Source image lookup failed: id=%s, url=%s, error=%s", record_id, url, err)
            return ImageResult(image_url=None)
        return ImageResult(image_url=image_url, origin=ORIGIN_SOURCE if image_url else None)

    def _generate(self, record_id: str, content: StructuredContent) -> ImageResult:
        try:
            image_bytes = self.generator.generate(build_image_prompt(content))
            object_key = self.storage.generate_recipe_image_key(record_id)
            self.storage.put_object(object_key, image_bytes, content_type="image/jpeg")
            image_url = self.storage.public_url(object_key)
        except Exception as err:
            logger.warning("Image generation failed: id=%s, error=%s", record_id, err)
            return ImageResult(image_url=None)
        return ImageResult(image_url=image_url, origin=ORIGIN_GENERATED)
