"""
SERP Service - find competitor pages for a search query.

Organic results are fetched from SerpApi and re-ordered so that pages on known
competitor domains come first. The ranked URLs are the candidate list that
outline extraction works through.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

import requests

from draftwise.config import (
    COMPETITOR_DOMAINS,
    SERPAPI_KEY,
    SERP_API_URL,
    SERP_RESULTS_COUNT,
    SERP_TIMEOUT_SECONDS,
)
from draftwise.services.exceptions import (
    FetchTimeoutError,
    ServiceUnavailableError,
    UnauthorizedError,
    error_for_status,
)

logger = logging.getLogger(__name__)

GENERAL_SOURCE = "GENERAL"


def extract_domain(url: str) -> str:
    """Extract bare domain from URL."""
    try:
        netloc = urlparse(url).netloc.lower()
    except ValueError:
        return ""
    return netloc[4:] if netloc.startswith("www.") else netloc


@dataclass(frozen=True)
class SerpResult:
    title: str
    url: str
    description: str = ""
    origin_site: str = ""
    position: int = 0
    source: str = GENERAL_SOURCE

    @property
    def is_competitor(self) -> bool:
        return self.source != GENERAL_SOURCE


class SERPService:
    """Service for fetching organic results and ranking competitor pages first"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = SERP_API_URL,
        competitors: Optional[Sequence[str]] = None,
        num_results: int = SERP_RESULTS_COUNT,
        timeout: float = SERP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.serpapi_key = SERPAPI_KEY if api_key is None else api_key
        self.api_url = api_url
        self.competitors = [c.lower() for c in (COMPETITOR_DOMAINS if competitors is None else competitors)]
        self.num_results = num_results
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_serp_data(self, query: str) -> Dict:
        """
        Fetch raw SERP data for a query.

        Raises:
            UnauthorizedError: no API key, or SerpApi rejected it
            FetchTimeoutError: SerpApi did not answer in time
            ServiceUnavailableError: SerpApi unreachable, failing or answering garbage
        """
        if not self.serpapi_key:
            raise UnauthorizedError("SERPAPI_KEY not configured", service="serp")

        params = {
            "engine": "google",
            "q": query,
            "api_key": self.serpapi_key,
            "num": self.num_results,
            "google_domain": "google.com",
            "gl": "us",
            "hl": "en",
        }

        try:
            response = self.session.get(self.api_url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise FetchTimeoutError(f"Search for '{query}' timed out", service="serp") from e
        except requests.exceptions.RequestException as e:
            raise ServiceUnavailableError(f"Search API unreachable: {e}", service="serp") from e

        if response.status_code >= 400:
            raise error_for_status(response.status_code, f"Search API returned {response.status_code}", "serp")
        try:
            body = response.json()
        except ValueError as e:
            raise ServiceUnavailableError("Search API returned invalid JSON", service="serp") from e
        if not isinstance(body, dict):
            raise ServiceUnavailableError("Search API returned an unexpected response", service="serp")
        return body

    def extract_organic_results(self, serp_data: Dict) -> List[SerpResult]:
        """Organic results in SERP order. Proxies that wrap the payload in `data` are unwrapped."""
        if isinstance(serp_data.get("data"), dict):
            serp_data = serp_data["data"]
        organic_results = serp_data.get("organic_results") or []

        extracted = []
        for result in organic_results:
            if not isinstance(result, dict):
                continue
            url = result.get("link") or result.get("url")
            if not url:
                continue
            extracted.append(SerpResult(
                title=result.get("title", ""),
                url=url,
                description=result.get("snippet") or result.get("description", ""),
                origin_site=result.get("origin_site") or result.get("displayed_link") or extract_domain(url),
                position=result.get("position", len(extracted) + 1),
            ))

        return extracted

    def match_competitor(self, result: SerpResult) -> Optional[str]:
        domain = (result.origin_site or extract_domain(result.url)).lower()
        for competitor in self.competitors:
            if competitor in domain:
                return competitor
        return None

    def rank_results(self, results: List[SerpResult]) -> List[SerpResult]:
        """Competitor pages first, each group keeping SERP order, labelled with their source"""
        competitor_results = []
        general_results = []
        for result in results:
            competitor = self.match_competitor(result)
            if competitor:
                competitor_results.append(SerpResult(
                    title=result.title,
                    url=result.url,
                    description=result.description,
                    origin_site=result.origin_site,
                    position=result.position,
                    source=competitor.upper(),
                ))
            else:
                general_results.append(result)
        return competitor_results + general_results

    def find_candidates(self, query: str) -> List[SerpResult]:
        """Search a query and return its organic results, competitors first"""
        serp_data = self.fetch_serp_data(query)
        results = self.rank_results(self.extract_organic_results(serp_data))
        competitor_count = sum(1 for r in results if r.is_competitor)
        logger.info(f"Search for '{query}' returned {len(results)} results, {competitor_count} from competitors")
        return results


def get_serp_service() -> SERPService:
    """Get SERP service instance"""
    return SERPService()
