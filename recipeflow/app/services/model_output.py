from __future__ import annotations

import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from recipeflow.app.domain.errors import ModelOutputError

M = TypeVar("M", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    text = (raw or "").strip()
    match = _FENCE_PATTERN.match(text)
    return match.group(1) if match else text


def coerce_text(value: Any) -> Any:
    """Models sometimes answer numbers where a string was asked for."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return f"{value:g}" if isinstance(value, float) else str(value)
    return value


def parse_model_json(schema: type[M], raw: str) -> M:
    """
    Validate a model's JSON answer against ``schema``.

    Raises:
        ModelOutputError: On invalid JSON or any schema mismatch
    """
    try:
        return schema.model_validate_json(strip_code_fences(raw))
    except ValidationError as err:
        raise ModelOutputError(schema.__name__, _summarize(err)) from err


def _summarize(err: ValidationError) -> str:
    problems = []
    for item in err.errors()[:5]:
        location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        problems.append(f"{location}: {item.get('msg')}")
    return "; ".join(problems)
