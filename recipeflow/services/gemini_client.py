from __future__ import annotations

import json
import logging

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from recipeflow.services.errors import ModelCallError, RateLimitedError, ServiceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0


class GeminiConfigurationError(ServiceError):
    pass


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = 0.2,
    ) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self._configure_api()

    def _configure_api(self) -> None:
        if not self.api_key:
            raise GeminiConfigurationError("Missing Google API key.")
        genai.configure(api_key=self.api_key)

    def _serialize_prompt(self, user_prompt: str | dict[str, str | int | float | list | dict]) -> str:
        if isinstance(user_prompt, str):
            return user_prompt
        try:
            return json.dumps(user_prompt, indent=2, ensure_ascii=False)
        except TypeError:
            return str(user_prompt)

    def generate_json(
        self,
        system_instruction: str,
        user_prompt: str | dict[str, str | int | float | list | dict],
    ) -> str:
        """Run one prompt in JSON mode and return the raw response text."""
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_instruction,
        )
        config = genai.GenerationConfig(
            response_mime_type="application/json",
            temperature=self.temperature,
        )
        return self._call(model, self._serialize_prompt(user_prompt), config)

    def describe_image(self, instruction: str, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        """Send an image with an instruction and return the plain-text answer."""
        model = genai.GenerativeModel(model_name=self.model_name)
        contents = [instruction, {"mime_type": mime_type, "data": image_bytes}]
        return self._call(model, contents, genai.GenerationConfig(temperature=0.0))

    def _call(self, model: genai.GenerativeModel, contents, config: genai.GenerationConfig) -> str:
        try:
            response = model.generate_content(
                contents,
                generation_config=config,
                request_options={"timeout": self.timeout_seconds},
            )
            text = response.text
        except google_exceptions.ResourceExhausted as err:
            raise RateLimitedError("Gemini API rate limit reached. Try again shortly.") from err
        except google_exceptions.DeadlineExceeded as err:
            raise ModelCallError(f"Gemini call timed out after {self.timeout_seconds}s") from err
        except google_exceptions.GoogleAPIError as err:
            raise ModelCallError(f"Gemini call failed: {err}") from err
        except ValueError as err:
            # response.text raises ValueError when the candidate was blocked or empty
            raise ModelCallError(f"Gemini returned no text: {err}") from err

        if not text or not text.strip():
            raise ModelCallError("Model response did not include text content.")

        logger.debug("Gemini response: model=%s, chars=%d", self.model_name, len(text))
        return text
