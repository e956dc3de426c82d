from __future__ import annotations

import logging
import time
from typing import Callable

from recipeflow.app.domain.errors import StorageError, StorageObjectNotFoundError
from recipeflow.app.infra.storage.base import StorageProvider
from recipeflow.services.errors import ModelCallError, OcrError
from recipeflow.services.gemini_client import GeminiClient
from recipeflow.services.prompts import OCR_INSTRUCTION

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 6
DEFAULT_RETRY_DELAY_SECONDS = 2.0

_MAGIC_NUMBERS = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF8", "image/gif"),
)


def guess_image_mime_type(data: bytes) -> str:
    for prefix, mime_type in _MAGIC_NUMBERS:
        if data.startswith(prefix):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:12] in (b"ftypheic", b"ftypheix", b"ftypmif1"):
        return "image/heic"
    return "image/jpeg"


class PhotoTextExtractor:
    """Reads an uploaded recipe photo from storage and transcribes its text."""

    def __init__(
        self,
        storage: StorageProvider,
        gemini: GeminiClient,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.storage = storage
        self.gemini = gemini
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep

    def extract_text(self, picture_submission_uuid: str) -> str:
        object_key = self.storage.picture_submission_key(picture_submission_uuid)
        image_bytes = self._read_with_retry(object_key)

        try:
            text = self.gemini.describe_image(
                OCR_INSTRUCTION,
                image_bytes,
                mime_type=guess_image_mime_type(image_bytes),
            )
        except ModelCallError as error:
            raise OcrError(f"Failed to read text from photo {object_key}: {error}") from error

        logger.info("Transcribed photo: key=%s, chars=%d", object_key, len(text))
        return text.strip()

    def _read_with_retry(self, object_key: str) -> bytes:
        # Uploads from the browser may land after the record is created.
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.storage.get_object_bytes(object_key)
            except StorageObjectNotFoundError:
                if attempt == self.max_attempts:
                    break
                logger.warning(
                    "Photo not found yet (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    self.max_attempts,
                    self.retry_delay_seconds,
                    object_key,
                )
                self._sleep(self.retry_delay_seconds)
            except StorageError as error:
                raise OcrError(f"Failed to read photo {object_key}: {error}") from error

        raise OcrError(f"Photo not found after {self.max_attempts} attempts: {object_key}")
