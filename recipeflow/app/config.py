from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    APP_ENV: str = "local"
    STORE_BACKEND: Literal["supabase", "memory"] = "supabase"
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_IMAGE_MODEL: str = "imagen-4.0-generate-001"

    R2_ACCOUNT_ID: Optional[str] = None
    R2_ACCESS_KEY_ID: Optional[str] = None
    R2_SECRET_ACCESS_KEY: Optional[str] = None
    R2_BUCKET_NAME: Optional[str] = None
    R2_PUBLIC_URL: Optional[str] = None
    UPLOAD_URL_EXPIRES_SECONDS: int = 900

    # Poll interval of the in-process pipeline (STORE_BACKEND=memory only)
    LOCAL_POLL_INTERVAL_SECONDS: float = 1.0

    INSTACART_API_URI: str = "https://connect.dev.instacart.tools"
    INSTACART_API_KEY: Optional[str] = None

    FEEDBACK_RECIPIENT: Optional[str] = None
    FEEDBACK_SENDER: Optional[str] = None
    AWS_REGION: str = "us-east-1"

    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
    )


settings = Settings()
