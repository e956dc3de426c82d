# workers/pipeline/config.py
"""
Configuration for the recipe pipeline worker.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True))


@dataclass
class WorkerConfig:
    """Configuration for the recipe pipeline worker."""

    # Worker identification
    worker_id: str = os.getenv("WORKER_ID", f"pipeline-{os.getpid()}")

    # Polling configuration
    poll_interval_seconds: float = float(os.getenv("WORKER_POLL_INTERVAL", "2"))
    max_poll_interval_seconds: float = float(os.getenv("WORKER_MAX_POLL_INTERVAL", "30"))
    watch_limit: int = int(os.getenv("WORKER_WATCH_LIMIT", "100"))

    # Processing configuration
    max_events_per_run: int = int(os.getenv("WORKER_MAX_EVENTS_PER_RUN", "0"))  # 0 = infinite
    max_concurrent_stages: int = int(os.getenv("WORKER_MAX_CONCURRENT_STAGES", "4"))
    auto_enrich: bool = os.getenv("AUTO_ENRICH", "true").lower() == "true"
    min_source_text_length: int = int(os.getenv("MIN_SOURCE_TEXT_LENGTH", "100"))

    # Graceful shutdown
    graceful_shutdown_timeout_seconds: int = int(os.getenv("WORKER_SHUTDOWN_TIMEOUT", "300"))

    # Record store
    store_backend: str = os.getenv("STORE_BACKEND", "supabase")
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Models
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_image_model: str = os.getenv("GEMINI_IMAGE_MODEL", "imagen-4.0-generate-001")

    # R2 Storage
    r2_account_id: str = os.getenv("R2_ACCOUNT_ID", "")
    r2_access_key_id: str = os.getenv("R2_ACCESS_KEY_ID", "")
    r2_secret_access_key: str = os.getenv("R2_SECRET_ACCESS_KEY", "")
    r2_bucket_name: str = os.getenv("R2_BUCKET_NAME", "")
    r2_public_url: str = os.getenv("R2_PUBLIC_URL", "")

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        # The memory store lives inside the API process, which runs its own pipeline.
        if self.store_backend != "supabase":
            errors.append("STORE_BACKEND must be 'supabase' for the standalone worker")
        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_key:
            errors.append("SUPABASE_SERVICE_ROLE_KEY is required")
        if not self.gemini_api_key:
            errors.append("GEMINI_API_KEY is required")
        if not self.r2_account_id:
            errors.append("R2_ACCOUNT_ID is required")
        if not self.r2_access_key_id:
            errors.append("R2_ACCESS_KEY_ID is required")
        if not self.r2_secret_access_key:
            errors.append("R2_SECRET_ACCESS_KEY is required")
        if not self.r2_bucket_name:
            errors.append("R2_BUCKET_NAME is required")
        if self.poll_interval_seconds <= 0:
            errors.append("WORKER_POLL_INTERVAL must be positive")
        if self.max_poll_interval_seconds < self.poll_interval_seconds:
            errors.append("WORKER_MAX_POLL_INTERVAL must be >= WORKER_POLL_INTERVAL")
        if self.max_concurrent_stages < 1:
            errors.append("WORKER_MAX_CONCURRENT_STAGES must be at least 1")

        return errors


def get_config() -> WorkerConfig:
    """Get worker configuration from environment."""
    return WorkerConfig()
