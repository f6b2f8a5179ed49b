"""Tests for the three-stage outline resolver."""

from unittest.mock import MagicMock

import pytest

from draftwise.services.content_fetcher_service import Heading
from draftwise.services.exceptions import (
    BadRequestError,
    FetchTimeoutError,
    ForbiddenError,
    RateLimitedError,
    UnauthorizedError,
)
from draftwise.services.outline_service import (
    NOT_FOUND_MESSAGE,
    NOT_FOUND_TOKEN,
    TOC_END,
    TOC_START,
    CandidateDocument,
    OutlineResult,
    OutlineService,
    SourceStrategy,
    candidates_from_urls,
    format_headings_locally,
    parse_sentinel_payload,
)

URLS = ["https://one.example/post", "https://two.example/post", "https://three.example/post"]

SIX_HEADINGS = [
    Heading(1, "How to Brew Cold Coffee"),
    Heading(2, "Choosing the Beans"),
    Heading(2, "Grind Size Matters"),
    Heading(2, "Steeping Time"),
    Heading(3, "Filtering the Concentrate"),
    Heading(2, "Serving Ideas"),
]


def wrapped(body: str) -> str:
    return f"Sure, here it is.\n{TOC_START}\n{body}\n{TOC_END}\nHope that helps."


@pytest.fixture
def llm():
    return MagicMock()


@pytest.fixture
def fetcher():
    return MagicMock()


@pytest.fixture
def service(llm, fetcher):
    return OutlineService(llm=llm, fetcher=fetcher, min_heading_length=5, max_heading_length=120, max_headings=40)


class TestDirectStage:
    def test_well_formed_direct_payload_skips_fetch_and_cleanup(self, service, llm, fetcher):
        llm.complete.return_value = wrapped(f"source: {URLS[1]}\n1. Intro\n2. Steps\n3. Summary")

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.DIRECT_AI
        assert result.source_document == URLS[1]
        assert result.text == "1. Intro\n2. Steps\n3. Summary"
        assert llm.complete.call_count == 1
        fetcher.fetch_and_extract_headings.assert_not_called()

    def test_direct_source_reported_by_position(self, service, llm):
        llm.complete.return_value = wrapped("source: 3\n1. Only section")

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_document == URLS[2]

    def test_direct_prompt_lists_candidates_in_priority_order(self, service, llm):
        llm.complete.return_value = wrapped("1. Section")
        candidates = [CandidateDocument(URLS[2], 2), CandidateDocument(URLS[0], 0), CandidateDocument(URLS[1], 1)]

        service.resolve(candidates)

        prompt = llm.complete.call_args_list[0].args[0]
        assert prompt.index(URLS[0]) < prompt.index(URLS[1]) < prompt.index(URLS[2])

    def test_transient_llm_error_counts_as_miss(self, service, llm, fetcher):
        llm.complete.side_effect = [RateLimitedError("slow down", 429, "claude"), wrapped("1. Cleaned Section")]
        fetcher.fetch_and_extract_headings.return_value = SIX_HEADINGS

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.SCRAPE_CLEANED
        assert any("RateLimitedError" in miss for miss in result.misses)

    def test_fatal_llm_error_in_direct_stage_propagates(self, service, llm, fetcher):
        llm.complete.side_effect = UnauthorizedError("bad key", 401, "claude")

        with pytest.raises(UnauthorizedError):
            service.resolve(candidates_from_urls(URLS))

        fetcher.fetch_and_extract_headings.assert_not_called()

    def test_not_found_token_moves_to_scrape(self, service, llm, fetcher):
        llm.complete.side_effect = [NOT_FOUND_TOKEN, wrapped("1. Cleaned")]
        fetcher.fetch_and_extract_headings.return_value = SIX_HEADINGS

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.SCRAPE_CLEANED
        assert result.source_document == URLS[0]


class TestScrapeAndCleanup:
    def test_scenario_second_candidate_cleaned(self, service, llm, fetcher):
        llm.complete.side_effect = ["I looked but here are some thoughts", wrapped("1. Beans\n2. Grind\n3. Steep")]
        fetcher.fetch_and_extract_headings.side_effect = [[], SIX_HEADINGS, SIX_HEADINGS]

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.SCRAPE_CLEANED
        assert result.source_document == URLS[1]
        assert result.text == "1. Beans\n2. Grind\n3. Steep"
        # the third candidate is never consulted
        fetched = [c.args[0] for c in fetcher.fetch_and_extract_headings.call_args_list]
        assert fetched == URLS[:2]

    def test_scenario_nothing_anywhere_is_not_found(self, service, llm, fetcher):
        llm.complete.return_value = "garbage without markers"
        fetcher.fetch_and_extract_headings.return_value = []

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.NOT_FOUND
        assert result.text == NOT_FOUND_MESSAGE
        assert result.source_document is None
        # no cleanup call when nothing was scraped
        assert llm.complete.call_count == 1

    def test_fetch_failures_are_skipped(self, service, llm, fetcher):
        llm.complete.side_effect = ["nope", wrapped("1. Clean")]
        fetcher.fetch_and_extract_headings.side_effect = [
            FetchTimeoutError("slow", service="fetch"),
            ForbiddenError("blocked", 403, "fetch"),
            SIX_HEADINGS,
        ]

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_document == URLS[2]
        assert len(result.misses) == 2

    def test_malformed_cleanup_falls_back_to_local_formatting(self, service, llm, fetcher):
        llm.complete.side_effect = ["nope", "Here is your outline: 1. stuff"]
        fetcher.fetch_and_extract_headings.return_value = SIX_HEADINGS

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.SCRAPE_RAW_FORMATTED
        assert result.text.splitlines()[0] == "1. How to Brew Cold Coffee"
        assert len(result.text.splitlines()) == 6

    def test_fatal_cleanup_error_falls_back_and_logs(self, service, llm, fetcher, caplog):
        llm.complete.side_effect = ["nope", BadRequestError("too long", 400, "claude")]
        fetcher.fetch_and_extract_headings.return_value = SIX_HEADINGS

        with caplog.at_level("ERROR"):
            result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.SCRAPE_RAW_FORMATTED
        assert any("cleanup" in r.getMessage().lower() for r in caplog.records)

    def test_headings_that_fail_filters_mean_no_usable_content(self, service, llm, fetcher):
        llm.complete.return_value = "nope"
        fetcher.fetch_and_extract_headings.return_value = [Heading(2, "Hi"), Heading(2, "x" * 200)]

        result = service.resolve(candidates_from_urls(URLS))

        assert result.source_strategy == SourceStrategy.NOT_FOUND

    def test_empty_candidate_list_is_not_found(self, service, llm):
        result = service.resolve([])

        assert result.source_strategy == SourceStrategy.NOT_FOUND
        llm.complete.assert_not_called()


class TestHelpers:
    def test_filter_headings_dedupes_and_caps(self, llm, fetcher):
        service = OutlineService(llm=llm, fetcher=fetcher, min_heading_length=5, max_heading_length=30, max_headings=2)
        headings = [
            Heading(2, "Short"),
            Heading(2, "short"),
            Heading(2, "<b>Second</b>  heading"),
            Heading(2, "Third heading"),
        ]

        kept = service.filter_headings(headings)

        assert [h.text for h in kept] == ["Short", "Second heading"]

    def test_parse_sentinel_payload(self):
        assert parse_sentinel_payload(wrapped("1. A")) == "1. A"
        assert parse_sentinel_payload(wrapped(NOT_FOUND_TOKEN)) is None
        assert parse_sentinel_payload(f"{TOC_START}\n   \n{TOC_END}") is None
        assert parse_sentinel_payload("1. A") is None
        assert parse_sentinel_payload("") is None

    def test_format_headings_locally_strips_tags(self):
        text = format_headings_locally([Heading(2, "<span>Intro</span>"), Heading(2, "<br/>"), Heading(3, "Body")])

        assert text == "1. Intro\n2. Body"

    def test_outline_result_rejects_empty_text(self):
        with pytest.raises(ValueError):
            OutlineResult("  ", SourceStrategy.DIRECT_AI)

    def test_candidates_from_urls_skips_blanks(self):
        candidates = candidates_from_urls(["a", "", "b"])

        assert [c.reference for c in candidates] == ["a", "b"]
        assert [c.priority_rank for c in candidates] == [0, 2]
