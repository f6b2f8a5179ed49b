"""
Content fetcher service for pulling heading structure out of competitor pages.
Fetches HTML and extracts h1-h6 headings from the main content area, with caching.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup

from draftwise.config import FETCH_TIMEOUT_SECONDS, FETCH_CACHE_TTL_SECONDS
from draftwise.services.exceptions import FetchTimeoutError, ForbiddenError, UnreachableError

logger = logging.getLogger(__name__)

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

# Page chrome that carries headings which are not part of the article
NON_CONTENT_TAGS = ["script", "style", "nav", "header", "footer", "aside", "noscript", "iframe", "form"]
# Matched against whole class tokens and ids: "sidebar-left" and "nav" match, "has-sidebar" does not
NON_CONTENT_PATTERN = re.compile(
    r"^(nav|navbar|menu|sidebar|footer|comments?|widget|promo|related|share|sharing|social|newsletter)([-_]|$)", re.I
)
NEVER_STRIPPED_TAGS = ("html", "body")
MAIN_CONTENT_SELECTORS = ["article", "main", '[role="main"]', ".post-content", ".entry-content", ".article-content", "#content"]


def _is_page_chrome(tag) -> bool:
    if tag.name in NEVER_STRIPPED_TAGS:
        return False
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    if any(NON_CONTENT_PATTERN.search(token) for token in classes):
        return True
    tag_id = tag.get("id")
    return isinstance(tag_id, str) and bool(NON_CONTENT_PATTERN.search(tag_id))


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


class ContentFetcherService:
    """Service for fetching pages and extracting their headings"""

    def __init__(self, timeout: float = FETCH_TIMEOUT_SECONDS, cache_ttl: int = FETCH_CACHE_TTL_SECONDS):
        self._cache: Dict[str, Tuple[List[Heading], float]] = {}  # url -> (headings, timestamp)
        self._cache_ttl = cache_ttl
        self.timeout = timeout
        self.headers = {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    def _is_cache_valid(self, url: str) -> bool:
        """Check if cached data is still valid"""
        if url not in self._cache:
            return False
        _, timestamp = self._cache[url]
        return (time.time() - timestamp) < self._cache_ttl

    def fetch_and_extract_headings(self, url: str) -> List[Heading]:
        """
        Fetch a URL and return its headings in document order.

        Raises:
            FetchTimeoutError: the page did not answer in time
            ForbiddenError: the site refused us (401/403/451)
            UnreachableError: DNS, connection or other HTTP failure
        """
        if self._is_cache_valid(url):
            headings, _ = self._cache[url]
            return headings

        html = self._fetch_html(url)
        headings = self.extract_headings(html)

        self._cache[url] = (headings, time.time())
        return headings

    def _fetch_html(self, url: str) -> str:
        """Fetch HTML from URL"""
        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise FetchTimeoutError(f"Timed out fetching {url}", service="fetch") from e
        except requests.exceptions.RequestException as e:
            raise UnreachableError(f"Could not reach {url}: {e}", service="fetch") from e

        if response.status_code in (401, 403, 451):
            raise ForbiddenError(f"Access to {url} refused", status_code=response.status_code, service="fetch")
        if response.status_code >= 400:
            raise UnreachableError(
                f"Fetching {url} returned {response.status_code}",
                status_code=response.status_code,
                service="fetch",
            )
        return response.text

    def extract_headings(self, html: str) -> List[Heading]:
        """Extract headings from the main content of an HTML document"""
        if not html:
            return []

        soup = BeautifulSoup(html, "lxml")

        for tag in soup.find_all(NON_CONTENT_TAGS):
            tag.decompose()

        root = self._find_main_content(soup)

        # The content root and everything enclosing it survive whatever their class says
        protected = {id(root)} | {id(parent) for parent in root.parents}
        for tag in soup.find_all(_is_page_chrome):
            if id(tag) not in protected:
                tag.decompose()

        headings = []
        for tag in root.find_all(HEADING_TAGS):
            text = re.sub(r"\s+", " ", tag.get_text(separator=" ")).strip()
            if text:
                headings.append(Heading(level=int(tag.name[1]), text=text))
        return headings

    def _find_main_content(self, soup: BeautifulSoup):
        """Try to find main content area, fall back to body"""
        for selector in MAIN_CONTENT_SELECTORS:
            main_content = soup.select_one(selector)
            if main_content and main_content.find(HEADING_TAGS):
                return main_content
        return soup.find("body") or soup


# Global service instance
_content_fetcher_service: Optional[ContentFetcherService] = None


def get_content_fetcher_service() -> ContentFetcherService:
    """Get or initialize the global content fetcher service instance"""
    global _content_fetcher_service
    if _content_fetcher_service is None:
        _content_fetcher_service = ContentFetcherService()
    return _content_fetcher_service
