"""Static-page scraper producing plain text for ingestion."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
from bs4 import BeautifulSoup

from rag_router.errors import ScrapeError

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; RAG-Bot/1.0)"
MIN_PAGE_CHARS = 100

_STRIP_SELECTORS = "script, style, nav, footer, .advertisement"
_CONTENT_SELECTORS = ("main", "article", ".content", ".post-content")
_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class ScrapedPage:
    title: str
    content: str
    url: str
    metadata: dict[str, str | int] = field(default_factory=dict)


class WebScraper:
    """Fetches a URL with httpx and extracts readable text with BeautifulSoup.

    Content comes from the first `main`, `article`, `.content` or
    `.post-content` element, or from all paragraphs when the page has none
    of those. Pages yielding fewer than `MIN_PAGE_CHARS` characters are
    rejected.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        timeout: float = 30.0,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._headers = {"User-Agent": user_agent}

    def scrape(self, url: str) -> ScrapedPage:
        logger.info(f"Scraping {url}")
        try:
            response = self._client.get(url, headers=self._headers)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ScrapeError(f"Failed to fetch {url!r}: {exc}") from exc

        soup = BeautifulSoup(response.text, "html.parser")
        for element in soup.select(_STRIP_SELECTORS):
            element.decompose()

        title = _extract_title(soup)
        content = _WHITESPACE.sub(" ", _extract_content(soup)).strip()
        if len(content) < MIN_PAGE_CHARS:
            raise ScrapeError(
                f"Insufficient content from {url} ({len(content)} < {MIN_PAGE_CHARS} characters)"
            )

        return ScrapedPage(
            title=title,
            content=content,
            url=url,
            metadata={
                "scrapedAt": datetime.now(timezone.utc).isoformat(),
                "method": "bs4",
                "contentLength": len(content),
            },
        )

    def close(self) -> None:
        self._client.close()


def _extract_title(soup: BeautifulSoup) -> str:
    for tag in ("title", "h1"):
        element = soup.find(tag)
        if element is not None:
            text = element.get_text(strip=True)
            if text:
                return text
    return "Untitled"


def _extract_content(soup: BeautifulSoup) -> str:
    for selector in _CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            return element.get_text(" ")
    return "\n\n".join(p.get_text(" ") for p in soup.find_all("p"))
