from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from .errors import FetchFailedError, InvalidURLError, NetworkTimeoutError

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
NON_CONTENT_TAGS = ("script", "style", "svg", "footer", "img", "noscript")
WHITESPACE_PATTERN = re.compile(r"\s+")


def _validate_http_url(url: str) -> None:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(f"Not an http(s) URL: {url}")


def fetch_html(url: str, timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS) -> str:
    _validate_http_url(url)

    try:
        with httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": BROWSER_USER_AGENT},
        ) as client:
            response = client.get(url)
            response.raise_for_status()
            return response.text
    except httpx.TimeoutException as error:
        raise NetworkTimeoutError(url, timeout) from error
    except httpx.HTTPStatusError as error:
        raise FetchFailedError(f"HTTP {error.response.status_code} fetching {url}") from error
    except httpx.HTTPError as error:
        raise FetchFailedError(f"Network error fetching {url}: {error}") from error


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()

    body = soup.body or soup
    text = body.get_text(separator=" ")
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def extract_text_from_url(url: str, timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS) -> str:
    html = fetch_html(url, timeout=timeout)
    text = html_to_text(html)
    logger.info("Extracted page text: url=%s, chars=%d", url, len(text))
    return text
