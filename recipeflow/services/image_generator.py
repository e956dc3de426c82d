from __future__ import annotations

import logging

from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError

from recipeflow.services.errors import ImageGenerationError, RateLimitedError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"
DEFAULT_TIMEOUT_SECONDS = 120.0


class ImageGenerator:
    """Text-to-image client for synthesized recipe photos."""

    def __init__(
        self,
        api_key: str,
        model_name: str = DEFAULT_IMAGE_MODEL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: genai.Client | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ImageGenerationError("Missing Google API key.")
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self._client = client or genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )

    def generate(self, prompt: str) -> bytes:
        """Generate one JPEG for ``prompt`` and return its bytes."""
        try:
            response = self._client.models.generate_images(
                model=self.model_name,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    output_mime_type="image/jpeg",
                ),
            )
        except ClientError as err:
            status_code = getattr(err, "code", None)
            if status_code == 429 or "RESOURCE_EXHAUSTED" in str(err):
                raise RateLimitedError("Image model rate limit reached. Try again shortly.") from err
            raise ImageGenerationError(f"Image generation rejected: {err}") from err
        except APIError as err:
            raise ImageGenerationError(f"Image generation failed: {err}") from err

        images = getattr(response, "generated_images", None) or []
        image = images[0].image if images else None
        if image is None or not image.image_bytes:
            raise ImageGenerationError("Image model returned no image.")

        logger.info("Generated image: model=%s, bytes=%d", self.model_name, len(image.image_bytes))
        return image.image_bytes
