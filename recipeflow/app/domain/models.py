# recipeflow/app/domain/models.py
"""
Domain models for the recipe processing pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class RecipeStatus(str, Enum):
    """Lifecycle of the recipe record itself (owned by extraction/failure)."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class NutritionStatus(str, Enum):
    """Lifecycle of the nutrition sub-record (owned by the nutrition stage)."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Completeness(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_ENRICHED = "PARTIALLY_ENRICHED"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class StageName(str, Enum):
    EXTRACTION = "EXTRACTION"
    NUTRITION = "NUTRITION"
    IMAGE = "IMAGE"


class AuthKind(str, Enum):
    USER = "USER"
    GUEST = "GUEST"
    SERVICE = "SERVICE"


SUPPORTED_LANGUAGES = ("en", "es", "fr")
DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class AuthContext:
    """Who a record store call is made on behalf of."""
    kind: AuthKind
    identity_id: Optional[str] = None

    @classmethod
    def service(cls) -> "AuthContext":
        return cls(kind=AuthKind.SERVICE)

    @classmethod
    def user(cls, user_id: str) -> "AuthContext":
        return cls(kind=AuthKind.USER, identity_id=user_id)

    @classmethod
    def guest(cls, identity_id: str) -> "AuthContext":
        return cls(kind=AuthKind.GUEST, identity_id=identity_id)

    @property
    def is_service(self) -> bool:
        return self.kind == AuthKind.SERVICE


@dataclass
class Ingredient:
    name: str
    quantity: str
    unit: str
    step_mapping: Optional[list[int]] = None  # 1-based instruction indices

    def render(self) -> str:
        parts = [self.quantity.strip(), self.unit.strip(), self.name.strip()]
        return " ".join(part for part in parts if part)


@dataclass
class StructuredContent:
    """Recipe fields produced by the extraction stage."""
    title: str
    ingredients: list[Ingredient]
    instructions: list[str]
    prep_time: str = ""
    cook_time: str = ""
    servings: str = ""


@dataclass
class NutritionalInformation:
    status: NutritionStatus = NutritionStatus.PENDING
    calories: Optional[str] = None
    fat: Optional[str] = None
    carbs: Optional[str] = None
    protein: Optional[str] = None


@dataclass
class RecipeSource:
    url: Optional[str] = None
    picture_submission_uuid: Optional[str] = None
    text: Optional[str] = None
    language: str = DEFAULT_LANGUAGE

    @property
    def is_empty(self) -> bool:
        return not (self.url or self.picture_submission_uuid or (self.text and self.text.strip()))


@dataclass
class RecipeRecord:
    """
    One recipe document.

    Field ownership:
    - status / structured_content: extraction stage and failure stage
    - nutritional_information: nutrition stage
    - image_url: image stage
    - description / tags: the owners, through the API
    - instacart_url: shopping-link generation
    """
    id: str
    status: RecipeStatus
    source: RecipeSource = field(default_factory=RecipeSource)
    structured_content: Optional[StructuredContent] = None
    nutritional_information: NutritionalInformation = field(default_factory=NutritionalInformation)
    image_url: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    instacart_url: Optional[str] = None
    owners: list[str] = field(default_factory=list)
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RecipeStatus.SUCCESS, RecipeStatus.FAILED)

    @property
    def completeness(self) -> Completeness:
        if self.status == RecipeStatus.FAILED:
            return Completeness.FAILED
        if self.status == RecipeStatus.PENDING:
            return Completeness.PENDING
        if self.nutritional_information.status == NutritionStatus.PENDING:
            return Completeness.PARTIALLY_ENRICHED
        return Completeness.COMPLETE


class OutcomeStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class Outcome(Generic[T]):
    """Result of one stage invocation. Stages return these instead of raising."""
    stage: StageName
    record_id: str
    status: OutcomeStatus
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    @classmethod
    def success(cls, stage: StageName, record_id: str, value: Optional[T] = None) -> "Outcome[T]":
        return cls(stage=stage, record_id=record_id, status=OutcomeStatus.SUCCEEDED, value=value)

    @classmethod
    def failure(cls, stage: StageName, record_id: str, error: str) -> "Outcome[T]":
        return cls(stage=stage, record_id=record_id, status=OutcomeStatus.FAILED, error=error)

    @classmethod
    def skipped(cls, stage: StageName, record_id: str, reason: str) -> "Outcome[T]":
        return cls(stage=stage, record_id=record_id, status=OutcomeStatus.SKIPPED, error=reason)


@dataclass
class FailureResult:
    record_id: str
    status: RecipeStatus = RecipeStatus.FAILED
    written: bool = False


@dataclass
class RecordFilter:
    status: Optional[RecipeStatus] = None
    owner: Optional[str] = None
    limit: int = 100


@dataclass
class Snapshot:
    """One emission of a store subscription."""
    items: list[RecipeRecord]
    is_synced: bool


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"


@dataclass
class ChangeEvent:
    kind: ChangeKind
    record: RecipeRecord
    previous: Optional[RecipeRecord] = None

    @property
    def record_id(self) -> str:
        return self.record.id


@dataclass
class ImageResult:
    image_url: Optional[str]
    origin: Optional[str] = None  # "source" or "generated"


@dataclass
class EnrichmentReport:
    record_id: str
    outcomes: dict[StageName, Outcome[Any]] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return all(outcome.succeeded for outcome in self.outcomes.values())
