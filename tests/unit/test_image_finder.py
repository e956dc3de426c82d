from __future__ import annotations

import json

import pytest

from recipeflow.services import image_finder
from recipeflow.services.image_finder import find_image_in_html, find_source_image, is_content_image

PAGE_URL = "https://cooking.example.com/recipes/pancakes"


def page(body: str, head: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


def json_ld(data: object) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


class TestStructuredData:
    def test_recipe_image_string(self) -> None:
        html = page("", json_ld({"@type": "Recipe", "image": "https://img.example.com/a.jpg"}))
        assert find_image_in_html(html, PAGE_URL) == "https://img.example.com/a.jpg"

    def test_recipe_in_graph_with_image_object(self) -> None:
        data = {
            "@context": "https://schema.org",
            "@graph": [
                {"@type": "WebPage", "image": "https://img.example.com/page.jpg"},
                {"@type": ["Recipe"], "image": [{"@type": "ImageObject", "url": "/images/b.jpg"}]},
            ],
        }
        html = page("", json_ld(data))
        assert find_image_in_html(html, PAGE_URL) == "https://cooking.example.com/images/b.jpg"

    def test_invalid_json_ld_falls_back(self) -> None:
        html = page(
            '<div class="recipe-image"><img src="/hero.jpg"></div>',
            '<script type="application/ld+json">{not json</script>',
        )
        assert find_image_in_html(html, PAGE_URL) == "https://cooking.example.com/hero.jpg"


class TestSelectors:
    def test_itemprop_image(self) -> None:
        html = page('<img itemprop="image" src="https://img.example.com/c.jpg">')
        assert find_image_in_html(html, PAGE_URL) == "https://img.example.com/c.jpg"

    def test_selector_rejects_logo(self) -> None:
        html = page('<div class="hero-image"><img src="/site-logo.png"></div>')
        assert find_image_in_html(html, PAGE_URL) is None


class TestLargestImage:
    def test_widest_in_recipe_container(self) -> None:
        html = page(
            '<div class="recipe">'
            '<img src="/small.jpg" width="200" height="200">'
            '<img src="/medium.jpg" width="350">'
            '<img src="/large.jpg" width="640">'
            "</div>"
        )
        assert find_image_in_html(html, PAGE_URL) == "https://cooking.example.com/large.jpg"

    def test_page_tier_needs_four_hundred_pixels(self) -> None:
        html = page('<img src="/a.jpg" width="350"><img src="/b.jpg" width="800" height="600">')
        assert find_image_in_html(html, PAGE_URL) == "https://cooking.example.com/b.jpg"

    def test_small_and_tracking_images_rejected(self) -> None:
        html = page(
            '<img src="/tiny.jpg" width="100">'
            '<img src="/tracking-pixel.gif" width="1000">'
            '<img src="data:image/png;base64,AAAA" width="900">'
        )
        assert find_image_in_html(html, PAGE_URL) is None


@pytest.mark.parametrize(
    "src, expected",
    [
        ("https://img.example.com/food.jpg", True),
        ("", False),
        (None, False),
        ("/static/icon-192.png", False),
        ("/ads/advertisement.jpg", False),
        ("/blank.gif", False),
    ],
)
def test_is_content_image(src, expected) -> None:
    assert is_content_image(src) is expected


def test_find_source_image_uses_short_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_fetch(url: str, timeout: float) -> str:
        calls.append((url, timeout))
        return page('<img itemprop="image" src="/d.jpg">')

    monkeypatch.setattr(image_finder, "fetch_html", fake_fetch)

    assert find_source_image(PAGE_URL) == "https://cooking.example.com/d.jpg"
    assert calls == [(PAGE_URL, 10.0)]
