"""
Find an existing recipe photo in a page's markup.

Heuristics, each a fallback for the previous one:
1. schema.org Recipe image in JSON-LD (top level, list or @graph)
2. recipe-specific class/id selectors
3. widest large image inside a recipe container
4. widest large image anywhere on the page
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .fetcher import fetch_html

logger = logging.getLogger(__name__)

HEURISTIC_FETCH_TIMEOUT_SECONDS = 10.0
MIN_CONTAINER_IMAGE_PX = 300
MIN_PAGE_IMAGE_PX = 400

RECIPE_IMAGE_SELECTORS = (
    ".recipe-image",
    "#recipe-image",
    ".hero-image",
    ".primary-image",
    ".featured-image",
    ".main-image",
    ".recipe-hero-image",
    ".recipe-featured-image",
    '[itemprop="image"]',
)
RECIPE_CONTAINER_SELECTORS = (
    ".recipe",
    "#recipe",
    '[itemtype*="Recipe"]',
    ".recipe-container",
    ".recipe-content",
)
NON_CONTENT_MARKERS = ("data:image", "blank.gif", "icon", "logo", "advertisement", "tracking", "pixel")


def is_content_image(src: str | None) -> bool:
    if not src or not src.strip():
        return False
    lowered = src.lower()
    return not any(marker in lowered for marker in NON_CONTENT_MARKERS)


def _dimension(img: Tag, attribute: str) -> int:
    raw = str(img.get(attribute) or "").strip().lower().removesuffix("px")
    try:
        return int(float(raw))
    except ValueError:
        return 0


def _json_ld_blocks(soup: BeautifulSoup) -> Iterable[Any]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            yield json.loads(script.string or script.get_text() or "{}")
        except (json.JSONDecodeError, TypeError):
            continue


def _is_recipe_type(node: dict) -> bool:
    node_type = node.get("@type")
    if isinstance(node_type, list):
        return "Recipe" in node_type
    return node_type == "Recipe"


def _image_value(image: Any) -> Optional[str]:
    if isinstance(image, list):
        for item in image:
            value = _image_value(item)
            if value:
                return value
        return None
    if isinstance(image, dict):
        return _image_value(image.get("url") or image.get("contentUrl"))
    if isinstance(image, str) and image.strip():
        return image.strip()
    return None


def _recipe_nodes(data: Any) -> Iterable[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _recipe_nodes(item)
        return
    if not isinstance(data, dict):
        return
    if _is_recipe_type(data):
        yield data
    graph = data.get("@graph")
    if isinstance(graph, list):
        for item in graph:
            if isinstance(item, dict) and _is_recipe_type(item):
                yield item


def find_structured_data_image(soup: BeautifulSoup) -> Optional[str]:
    for block in _json_ld_blocks(soup):
        for node in _recipe_nodes(block):
            image = _image_value(node.get("image"))
            if image and not image.startswith("data:"):
                return image
    return None


def find_selector_image(soup: BeautifulSoup) -> Optional[str]:
    for selector in RECIPE_IMAGE_SELECTORS:
        img = soup.select_one(f"{selector} img") or soup.select_one(selector)
        if not isinstance(img, Tag) or img.name != "img":
            continue
        src = img.get("src")
        if is_content_image(src):
            return str(src)
    return None


def widest_image(images: Iterable[Tag], min_px: int) -> Optional[str]:
    candidates = [
        (_dimension(img, "width"), str(img.get("src")))
        for img in images
        if (_dimension(img, "width") >= min_px or _dimension(img, "height") >= min_px)
        and is_content_image(img.get("src"))
    ]
    if not candidates:
        return None
    # stable sort keeps document order among equal widths
    candidates.sort(key=lambda candidate: candidate[0], reverse=True)
    return candidates[0][1]


def find_container_image(soup: BeautifulSoup) -> Optional[str]:
    for container in soup.select(", ".join(RECIPE_CONTAINER_SELECTORS)):
        image = widest_image(container.find_all("img"), MIN_CONTAINER_IMAGE_PX)
        if image:
            return image
    return None


def find_page_image(soup: BeautifulSoup) -> Optional[str]:
    return widest_image(soup.find_all("img"), MIN_PAGE_IMAGE_PX)


def find_image_in_html(html: str, page_url: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    heuristics = (
        ("structured-data", find_structured_data_image),
        ("selector", find_selector_image),
        ("recipe-container", find_container_image),
        ("page", find_page_image),
    )

    for name, heuristic in heuristics:
        image = heuristic(soup)
        if image:
            absolute = urljoin(page_url, image)
            logger.info("Found source image via %s heuristic: %s", name, absolute)
            return absolute

    logger.info("No suitable image found on page: %s", page_url)
    return None


def find_source_image(url: str, timeout: float = HEURISTIC_FETCH_TIMEOUT_SECONDS) -> Optional[str]:
    """
    Fetch ``url`` and return the best recipe image URL, or None.

    Raises:
        ServiceError subclasses when the page cannot be fetched
    """
    html = fetch_html(url, timeout=timeout)
    return find_image_in_html(html, url)
