from __future__ import annotations

from typing import Any

from recipeflow.app.domain.models import (
    DEFAULT_LANGUAGE,
    Ingredient,
    NutritionalInformation,
    NutritionStatus,
    RecipeRecord,
    RecipeSource,
    RecipeStatus,
    StructuredContent,
)

# Columns a caller may pass to create()/update(); everything else is store-managed.
WRITABLE_COLUMNS = frozenset({
    "status",
    "structured_content",
    "nutritional_information",
    "image_url",
    "description",
    "tags",
    "instacart_url",
    "url",
    "picture_submission_uuid",
    "source_text",
    "language",
    "owners",
    "created_by",
})


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _step_mapping(value: object) -> list[int] | None:
    if not isinstance(value, list):
        return None
    steps = [int(item) for item in value if isinstance(item, (int, float)) or str(item).isdigit()]
    return steps or None


def ingredient_to_dict(ingredient: Ingredient) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": ingredient.name,
        "quantity": ingredient.quantity,
        "unit": ingredient.unit,
    }
    if ingredient.step_mapping:
        data["stepMapping"] = list(ingredient.step_mapping)
    return data


def content_to_dict(content: StructuredContent) -> dict[str, Any]:
    return {
        "title": content.title,
        "ingredients": [ingredient_to_dict(item) for item in content.ingredients],
        "instructions": list(content.instructions),
        "prep_time": content.prep_time,
        "cook_time": content.cook_time,
        "servings": content.servings,
    }


def content_from_dict(data: object) -> StructuredContent | None:
    if not isinstance(data, dict) or not data.get("title"):
        return None

    ingredients = [
        Ingredient(
            name=_text(item.get("name")),
            quantity=_text(item.get("quantity")),
            unit=_text(item.get("unit")),
            step_mapping=_step_mapping(item.get("stepMapping")),
        )
        for item in data.get("ingredients") or []
        if isinstance(item, dict)
    ]

    return StructuredContent(
        title=_text(data.get("title")),
        ingredients=ingredients,
        instructions=[_text(step) for step in data.get("instructions") or []],
        prep_time=_text(data.get("prep_time")),
        cook_time=_text(data.get("cook_time")),
        servings=_text(data.get("servings")),
    )


def normalize_tags(names: list[str]) -> list[str]:
    """Trimmed, non-empty tag names with case-insensitive duplicates dropped."""
    seen: set[str] = set()
    tags = []
    for name in names:
        cleaned = " ".join(str(name).split())
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            tags.append(cleaned)
    return tags


def tags_to_rows(names: list[str]) -> list[dict[str, str]]:
    return [{"name": name} for name in normalize_tags(names)]


def tags_from_rows(data: object) -> list[str]:
    if not isinstance(data, list):
        return []
    return normalize_tags([item.get("name", "") if isinstance(item, dict) else item for item in data])


def nutrition_to_dict(info: NutritionalInformation) -> dict[str, Any]:
    data: dict[str, Any] = {"status": info.status.value}
    for key in ("calories", "fat", "carbs", "protein"):
        value = getattr(info, key)
        if value is not None:
            data[key] = value
    return data


def nutrition_from_dict(data: object) -> NutritionalInformation:
    if not isinstance(data, dict):
        return NutritionalInformation()

    try:
        status = NutritionStatus(str(data.get("status") or NutritionStatus.PENDING.value))
    except ValueError:
        status = NutritionStatus.PENDING

    return NutritionalInformation(
        status=status,
        calories=_safe_str(data.get("calories")),
        fat=_safe_str(data.get("fat")),
        carbs=_safe_str(data.get("carbs")),
        protein=_safe_str(data.get("protein")),
    )


def row_to_record(row: dict[str, Any]) -> RecipeRecord:
    return RecipeRecord(
        id=str(row["id"]),
        status=RecipeStatus(str(row.get("status") or RecipeStatus.PENDING.value)),
        source=RecipeSource(
            url=_safe_str(row.get("url")),
            picture_submission_uuid=_safe_str(row.get("picture_submission_uuid")),
            text=_safe_str(row.get("source_text")),
            language=_safe_str(row.get("language")) or DEFAULT_LANGUAGE,
        ),
        structured_content=content_from_dict(row.get("structured_content")),
        nutritional_information=nutrition_from_dict(row.get("nutritional_information")),
        image_url=_safe_str(row.get("image_url")),
        description=_safe_str(row.get("description")),
        tags=tags_from_rows(row.get("tags")),
        instacart_url=_safe_str(row.get("instacart_url")),
        owners=[str(owner) for owner in row.get("owners") or []],
        created_by=_safe_str(row.get("created_by")),
        created_at=_safe_str(row.get("created_at")),
        updated_at=_safe_str(row.get("updated_at")),
    )


def resolve_path(row: dict[str, Any], path: str) -> Any:
    """Read a dotted field path such as ``nutritional_information.status``."""
    current: Any = row
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def normalize_value(value: Any) -> Any:
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value


def reject_unknown_columns(fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown or read-only recipe fields: {sorted(unknown)}")
