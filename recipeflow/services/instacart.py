"""
Instacart recipe pages: turns a recipe's ingredient list into a shoppable
link via the Instacart Developer Platform.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from recipeflow.app.domain.models import Ingredient

from .errors import NetworkTimeoutError, RateLimitedError, ShoppingLinkError

logger = logging.getLogger(__name__)

DEFAULT_INSTACART_API_URI = "https://connect.dev.instacart.tools"
RECIPE_PATH = "/idp/v1/products/recipe"
DEFAULT_TIMEOUT_SECONDS = 15.0


def parse_quantity(quantity: str) -> float:
    """Parse "2", "0.5", "1/2" or "1 1/2". Anything unparseable counts as 0."""
    total = 0.0
    for part in (quantity or "").split():
        try:
            if "/" in part:
                numerator, denominator = part.split("/", 1)
                total += float(numerator) / float(denominator)
            else:
                total += float(part)
        except (ValueError, ZeroDivisionError):
            return 0.0
    return total


def ingredient_payload(ingredient: Ingredient) -> dict:
    return {
        "name": ingredient.name,
        "display_text": ingredient.name,
        "measurements": [{"quantity": parse_quantity(ingredient.quantity), "unit": ingredient.unit}],
    }


class InstacartClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_INSTACART_API_URI,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport

    def create_recipe_link(
        self,
        title: str,
        instructions: list[str],
        ingredients: list[Ingredient],
        image_url: Optional[str] = None,
        linkback_url: Optional[str] = None,
    ) -> str:
        if not ingredients:
            raise ShoppingLinkError("Recipe has no ingredients")

        payload = {
            "title": title,
            "image_url": image_url or "",
            "link_type": "recipe",
            "instructions": list(instructions),
            "ingredients": [ingredient_payload(item) for item in ingredients],
            "landing_page_configuration": {
                "partner_linkback_url": linkback_url or "",
                "enable_pantry_items": True,
            },
        }
        url = f"{self.base_url}{RECIPE_PATH}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    url,
                    json=payload,
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {self._api_key}",
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as error:
            raise NetworkTimeoutError(url, self.timeout) from error
        except httpx.HTTPStatusError as error:
            code = error.response.status_code
            if code == 429:
                raise RateLimitedError("Instacart rate limit reached") from error
            raise ShoppingLinkError(f"Instacart API error: {code} - {error.response.text}") from error
        except (httpx.HTTPError, ValueError) as error:
            raise ShoppingLinkError(f"Instacart request failed: {error}") from error

        link = data.get("products_link_url") if isinstance(data, dict) else None
        if not link:
            raise ShoppingLinkError("Instacart response has no products_link_url")

        logger.info("Instacart link created: title=%s, ingredients=%d", title, len(ingredients))
        return str(link)
