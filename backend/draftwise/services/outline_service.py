"""
Outline (Table of Contents) resolution over competitor URLs.

Three stages, each run at most once per call:
1. Direct: ask the LLM to find a TOC in the candidates, in order
2. Scrape: pull headings from each candidate until one has usable ones
3. Cleanup: ask the LLM to turn the raw headings into a clean outline,
   formatting them locally if it can't
"""
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from draftwise.config import (
    OUTLINE_MIN_HEADING_LENGTH,
    OUTLINE_MAX_HEADING_LENGTH,
    OUTLINE_MAX_HEADINGS,
)
from draftwise.services.content_fetcher_service import (
    ContentFetcherService,
    Heading,
    get_content_fetcher_service,
)
from draftwise.services.exceptions import (
    ExternalServiceError,
    FatalServiceError,
    TransientServiceError,
)
from draftwise.services.llm_service import LLMService, get_llm_service

logger = logging.getLogger(__name__)

TOC_START = "<<<TOC_START>>>"
TOC_END = "<<<TOC_END>>>"
NOT_FOUND_TOKEN = "NO_TOC_FOUND"
NOT_FOUND_MESSAGE = "No clear Table of Contents found in any of the URLs."

_SENTINEL_PATTERN = re.compile(re.escape(TOC_START) + r"(.*?)" + re.escape(TOC_END), re.DOTALL)
_SOURCE_LINE = re.compile(r"^\s*source\s*:\s*(\S+)\s*$", re.I | re.M)
_TAG_LIKE = re.compile(r"<[^>]{0,200}>")


class SourceStrategy(str, enum.Enum):
    DIRECT_AI = "direct_ai"
    SCRAPE_CLEANED = "scrape_cleaned"
    SCRAPE_RAW_FORMATTED = "scrape_raw_formatted"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CandidateDocument:
    reference: str
    priority_rank: int


@dataclass
class OutlineResult:
    text: str
    source_strategy: SourceStrategy
    source_document: Optional[str] = None
    # Transient failures absorbed as misses, for diagnostics only
    misses: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("OutlineResult text must not be empty")

    @classmethod
    def not_found(cls, misses: Optional[List[str]] = None) -> "OutlineResult":
        return cls(NOT_FOUND_MESSAGE, SourceStrategy.NOT_FOUND, None, misses or [])


def candidates_from_urls(urls: Sequence[str]) -> List[CandidateDocument]:
    """Rank plain URLs by their position"""
    return [CandidateDocument(reference=url, priority_rank=i) for i, url in enumerate(urls) if url]


def parse_sentinel_payload(response_text: str) -> Optional[str]:
    """Return the text between the sentinel pair, or None if the response is a miss"""
    if not response_text:
        return None
    match = _SENTINEL_PATTERN.search(response_text)
    if not match:
        return None
    body = match.group(1).strip()
    if not body or NOT_FOUND_TOKEN in body:
        return None
    return body


def format_headings_locally(headings: Sequence[Heading]) -> str:
    """Deterministic numbered list of headings, tag-like markers stripped"""
    lines = []
    for heading in headings:
        text = _TAG_LIKE.sub("", heading.text)
        text = re.sub(r"\s+", " ", text).strip()
        if text:
            lines.append(f"{len(lines) + 1}. {text}")
    return "\n".join(lines)


class OutlineService:
    """
    Resolves an outline from an ordered list of candidate documents.
    Owns the fallback policy; the LLM and the fetcher are injected.
    """

    def __init__(
        self,
        llm: Optional[LLMService] = None,
        fetcher: Optional[ContentFetcherService] = None,
        min_heading_length: int = OUTLINE_MIN_HEADING_LENGTH,
        max_heading_length: int = OUTLINE_MAX_HEADING_LENGTH,
        max_headings: int = OUTLINE_MAX_HEADINGS,
    ):
        self.llm = llm or get_llm_service()
        self.fetcher = fetcher or get_content_fetcher_service()
        self.min_heading_length = min_heading_length
        self.max_heading_length = max_heading_length
        self.max_headings = max_headings

    def resolve(self, candidates: Sequence[CandidateDocument]) -> OutlineResult:
        """
        Resolve an outline from the candidates.

        Returns:
            OutlineResult; NOT_FOUND is a normal outcome

        Raises:
            FatalServiceError: the LLM rejected our credentials or request in stage 1
        """
        ordered = sorted(candidates, key=lambda c: c.priority_rank)
        misses: List[str] = []

        if not ordered:
            return OutlineResult.not_found()

        # Stage 1
        direct = self._try_direct(ordered, misses)
        if direct is not None:
            return direct

        # Stage 2
        scraped = self._try_scrape(ordered, misses)
        if scraped is None:
            logger.info(f"No outline found in {len(ordered)} candidates")
            return OutlineResult.not_found(misses)
        source, headings = scraped

        # Stage 3
        return self._cleanup(source, headings, misses)

    def _try_direct(self, ordered: List[CandidateDocument], misses: List[str]) -> Optional[OutlineResult]:
        prompt = self._build_direct_prompt(ordered)
        try:
            response_text = self.llm.complete(prompt)
        except TransientServiceError as e:
            logger.warning(f"Direct TOC extraction skipped: {e}")
            misses.append(f"direct: {type(e).__name__}")
            return None

        body = parse_sentinel_payload(response_text)
        if body is None:
            logger.info("Direct TOC extraction returned no usable outline")
            return None

        source = self._pick_source(body, ordered)
        text = _SOURCE_LINE.sub("", body).strip()
        if not text:
            return None
        logger.info(f"TOC extracted directly from {source or 'unknown source'}")
        return OutlineResult(text, SourceStrategy.DIRECT_AI, source, misses)

    def _try_scrape(self, ordered: List[CandidateDocument], misses: List[str]):
        for candidate in ordered:
            try:
                raw = self.fetcher.fetch_and_extract_headings(candidate.reference)
            except ExternalServiceError as e:
                logger.info(f"Skipping {candidate.reference}: {e}")
                misses.append(f"scrape {candidate.reference}: {type(e).__name__}")
                continue

            headings = self.filter_headings(raw)
            if headings:
                logger.info(f"Scraped {len(headings)} headings from {candidate.reference}")
                return candidate.reference, headings
            logger.info(f"No usable headings on {candidate.reference}")
        return None

    def _cleanup(self, source: str, headings: List[Heading], misses: List[str]) -> OutlineResult:
        prompt = self._build_cleanup_prompt(headings)
        try:
            response_text = self.llm.complete(prompt)
        except FatalServiceError as e:
            logger.error(f"Outline cleanup rejected by LLM, formatting locally: {e}")
            misses.append(f"cleanup: {type(e).__name__}")
            response_text = ""
        except TransientServiceError as e:
            logger.warning(f"Outline cleanup unavailable, formatting locally: {e}")
            misses.append(f"cleanup: {type(e).__name__}")
            response_text = ""

        body = parse_sentinel_payload(response_text)
        if body:
            cleaned = _SOURCE_LINE.sub("", body).strip()
            if cleaned:
                return OutlineResult(cleaned, SourceStrategy.SCRAPE_CLEANED, source, misses)

        return OutlineResult(
            format_headings_locally(headings),
            SourceStrategy.SCRAPE_RAW_FORMATTED,
            source,
            misses,
        )

    def filter_headings(self, headings: Sequence[Heading]) -> List[Heading]:
        """Drop headings that are too short, too long or repeated"""
        kept = []
        seen = set()
        for heading in headings:
            text = re.sub(r"\s+", " ", _TAG_LIKE.sub("", heading.text)).strip()
            if len(text) < self.min_heading_length or len(text) > self.max_heading_length:
                continue
            key = text.lower()
            if key in seen:
                continue
            seen.add(key)
            kept.append(Heading(level=heading.level, text=text))
            if len(kept) >= self.max_headings:
                break
        return kept

    def _pick_source(self, body: str, ordered: List[CandidateDocument]) -> Optional[str]:
        match = _SOURCE_LINE.search(body)
        if not match:
            return None
        reported = match.group(1).strip().rstrip(".,")
        for candidate in ordered:
            if candidate.reference == reported or candidate.reference.rstrip("/") == reported.rstrip("/"):
                return candidate.reference
        # Position reported instead of URL
        if reported.isdigit() and 1 <= int(reported) <= len(ordered):
            return ordered[int(reported) - 1].reference
        return None

    def _build_direct_prompt(self, ordered: List[CandidateDocument]) -> str:
        url_lines = "\n".join(f"{i}. {c.reference}" for i, c in enumerate(ordered, 1))
        return f"""I have {len(ordered)} blog post URLs. Your task is to extract the Table of Contents (TOC) from the first URL that contains one in a clearly structured way.

Check each URL in the given order.
If you find a clear TOC in a URL, return it and stop, without checking the remaining URLs.
If not found, move to the next URL.

Reply in exactly this format:
{TOC_START}
source: <the URL the TOC came from>
1. <first section>
2. <second section>
...
{TOC_END}

If no clear TOC is found in any of the URLs, reply with only: {NOT_FOUND_TOKEN}

Here are the URLs:
{url_lines}"""

    def _build_cleanup_prompt(self, headings: Sequence[Heading]) -> str:
        heading_lines = "\n".join(f"{'  ' * max(h.level - 2, 0)}- (h{h.level}) {h.text}" for h in headings)
        return f"""Below are the raw headings scraped from a blog post. Reduce them to a clean Table of Contents for the article.

Remove headings that are not part of the article itself (author boxes, calls to action, comments, newsletter signups).
Keep the original order. Output a clean numbered list.

Reply in exactly this format:
{TOC_START}
1. <first section>
2. <second section>
...
{TOC_END}

Raw headings:
{heading_lines}"""


def get_outline_service() -> OutlineService:
    """Get outline service instance"""
    return OutlineService()
