from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

Language = Literal["en", "es", "fr"]
RecipeStatusValue = Literal["PENDING", "SUCCESS", "FAILED"]

MAX_DESCRIPTION_LENGTH = 2000
MAX_TAGS = 20

ALLOWED_PICTURE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
}


class RecipeCreateRequest(BaseModel):
    url: Optional[str] = Field(None, max_length=2048)
    text: Optional[str] = Field(None, max_length=50_000)
    pictureSubmissionUuid: Optional[UUID] = None
    language: Language = "en"
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    tags: list[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "RecipeCreateRequest":
        sources = [
            bool(self.url and self.url.strip()),
            bool(self.text and self.text.strip()),
            self.pictureSubmissionUuid is not None,
        ]
        if sum(sources) != 1:
            raise ValueError("Provide exactly one of url, text or pictureSubmissionUuid")
        if self.url and not self.url.strip().lower().startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        return self


class RecipeUpdateRequest(BaseModel):
    """Owner-editable fields; omitted fields are left as they are."""
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    tags: Optional[list[str]] = Field(None, max_length=MAX_TAGS)

    @model_validator(mode="after")
    def _something_to_update(self) -> "RecipeUpdateRequest":
        if not self.model_fields_set & {"description", "tags"}:
            raise ValueError("Provide description and/or tags")
        return self


class PictureUploadRequest(BaseModel):
    contentType: str = Field(..., description="MIME type of the photo")


class PictureUploadResponse(BaseModel):
    pictureSubmissionUuid: UUID
    uploadUrl: str
    expiresAt: datetime


class IngredientOut(BaseModel):
    name: str
    quantity: str
    unit: str
    stepMapping: Optional[list[int]] = None


class StructuredContentOut(BaseModel):
    title: str
    ingredients: list[IngredientOut]
    instructions: list[str]
    prepTime: str = ""
    cookTime: str = ""
    servings: str = ""


class NutritionOut(BaseModel):
    status: RecipeStatusValue
    calories: Optional[str] = None
    fat: Optional[str] = None
    carbs: Optional[str] = None
    protein: Optional[str] = None


class RecipeResponse(BaseModel):
    id: str
    status: RecipeStatusValue
    completeness: Literal["PENDING", "PARTIALLY_ENRICHED", "COMPLETE", "FAILED"]
    url: Optional[str] = None
    pictureSubmissionUuid: Optional[str] = None
    language: str = "en"
    structuredContent: Optional[StructuredContentOut] = None
    nutritionalInformation: NutritionOut
    imageUrl: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    instacartUrl: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class RecipeListResponse(BaseModel):
    items: list[RecipeResponse]


class EnrichResponse(BaseModel):
    id: str
    scheduled: list[Literal["NUTRITION", "IMAGE"]]


class ShoppingLinkResponse(BaseModel):
    id: str
    instacartUrl: str
