# recipeflow/app/infra/storage/base.py
"""
Abstract base class for storage providers.
This interface allows easy swapping between different storage backends (R2, S3, GCS, etc.)
"""
from __future__ import annotations

import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime

PICTURE_SUBMISSIONS_PREFIX = "picture-submissions"
RECIPE_IMAGES_PREFIX = "recipe-images"


class StorageProvider(ABC):
    """
    Abstract interface for object storage operations.

    Implementations:
    - R2StorageProvider: Cloudflare R2 (S3-compatible)
    """

    @abstractmethod
    def generate_signed_put_url(
        self,
        object_key: str,
        content_type: str,
        expires_seconds: int = 3600,
    ) -> tuple[str, datetime]:
        """
        Generate a pre-signed URL for uploading an object.

        Returns:
            Tuple of (signed_url, expiration_datetime)
        """
        pass

    @abstractmethod
    def get_object_bytes(self, object_key: str) -> bytes:
        """
        Read an object fully into memory.

        Raises:
            StorageObjectNotFoundError: If the key does not exist
            StorageError: On any other failure
        """
        pass

    @abstractmethod
    def put_object(self, object_key: str, body: bytes, content_type: str) -> None:
        """Store ``body`` under ``object_key``."""
        pass

    @abstractmethod
    def public_url(self, object_key: str) -> str:
        """Public (CDN) URL for an object stored with put_object."""
        pass

    def picture_submission_key(self, submission_uuid: str) -> str:
        return f"{PICTURE_SUBMISSIONS_PREFIX}/{submission_uuid}"

    def generate_recipe_image_key(self, record_id: str, extension: str = "jpg") -> str:
        """
        Format: recipe-images/{record_id}-{epoch_ms}-{random_hex}.{extension}
        """
        timestamp = int(time.time() * 1000)
        return f"{RECIPE_IMAGES_PREFIX}/{record_id}-{timestamp}-{secrets.token_hex(8)}.{extension}"
