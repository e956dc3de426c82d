from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class FeedbackRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=320)
    type: Literal["BUG", "FEATURE", "GENERAL"] = "GENERAL"
    message: str = Field(..., min_length=1, max_length=5000)


class FeedbackResponse(BaseModel):
    id: str
    queued: bool
