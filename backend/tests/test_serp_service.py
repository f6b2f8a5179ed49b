"""Tests for search result fetching and competitor ranking."""

from unittest.mock import MagicMock

import pytest
import requests

from draftwise.services.exceptions import (
    BadRequestError,
    FetchTimeoutError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from draftwise.services.serp_service import GENERAL_SOURCE, SERPService, SerpResult, extract_domain

ORGANIC = {
    "organic_results": [
        {"position": 1, "title": "Cold email guide", "link": "https://www.example.com/guide", "snippet": "How to start"},
        {"position": 2, "title": "Cold email tips", "link": "https://blog.woodpecker.co/tips", "snippet": "Tips"},
        {"position": 3, "title": "No link here"},
        {"position": 4, "title": "Templates", "link": "https://www.saleshandy.com/templates", "snippet": "Templates"},
    ]
}


def make_response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def serp(session):
    return SERPService(
        api_key="key",
        api_url="https://search.example/search",
        competitors=["woodpecker", "saleshandy"],
        num_results=10,
        timeout=1,
        session=session,
    )


class TestExtractDomain:
    @pytest.mark.parametrize("url,domain", [
        ("https://www.Example.com/a", "example.com"),
        ("http://blog.woodpecker.co", "blog.woodpecker.co"),
        ("not a url", ""),
    ])
    def test_extract_domain(self, url, domain):
        assert extract_domain(url) == domain


class TestFetch:
    def test_missing_key(self, session):
        with pytest.raises(UnauthorizedError):
            SERPService(api_key="", session=session).fetch_serp_data("cold email")

        session.get.assert_not_called()

    def test_query_params(self, serp, session):
        session.get.return_value = make_response(200, ORGANIC)

        serp.fetch_serp_data("cold email")

        assert session.get.call_args.args[0] == "https://search.example/search"
        params = session.get.call_args.kwargs["params"]
        assert params["q"] == "cold email"
        assert params["engine"] == "google"
        assert params["api_key"] == "key"
        assert params["num"] == 10

    def test_timeout(self, serp, session):
        session.get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(FetchTimeoutError):
            serp.fetch_serp_data("cold email")

    def test_connection_error(self, serp, session):
        session.get.side_effect = requests.exceptions.ConnectionError("dns")

        with pytest.raises(ServiceUnavailableError):
            serp.fetch_serp_data("cold email")

    @pytest.mark.parametrize("status,error", [
        (401, UnauthorizedError),
        (429, RateLimitedError),
        (400, BadRequestError),
        (503, ServiceUnavailableError),
    ])
    def test_error_status(self, serp, session, status, error):
        session.get.return_value = make_response(status, {"error": "nope"})

        with pytest.raises(error):
            serp.fetch_serp_data("cold email")

    @pytest.mark.parametrize("body", [ValueError("not json"), ["organic_results"]])
    def test_unusable_body(self, serp, session, body):
        session.get.return_value = make_response(200, body)

        with pytest.raises(ServiceUnavailableError):
            serp.fetch_serp_data("cold email")


class TestRanking:
    def test_extract_skips_results_without_url(self, serp):
        results = serp.extract_organic_results(ORGANIC)

        assert [r.position for r in results] == [1, 2, 4]
        assert results[0].description == "How to start"
        assert results[0].origin_site == "example.com"

    def test_extract_unwraps_data_and_reads_url_field(self, serp):
        wrapped = {"data": {"organic_results": [
            {"title": "Guide", "url": "https://uplead.com/guide", "description": "d", "origin_site": "uplead.com"},
        ]}}

        results = serp.extract_organic_results(wrapped)

        assert results == [SerpResult(title="Guide", url="https://uplead.com/guide", description="d", origin_site="uplead.com", position=1)]

    def test_competitors_first_in_serp_order(self, serp):
        ranked = serp.rank_results(serp.extract_organic_results(ORGANIC))

        assert [r.url for r in ranked] == [
            "https://blog.woodpecker.co/tips",
            "https://www.saleshandy.com/templates",
            "https://www.example.com/guide",
        ]
        assert [r.source for r in ranked] == ["WOODPECKER", "SALESHANDY", GENERAL_SOURCE]
        assert ranked[0].is_competitor
        assert not ranked[2].is_competitor

    def test_competitor_match_is_case_insensitive(self, session):
        serp = SERPService(api_key="key", competitors=["ZoomInfo"], session=session)

        ranked = serp.rank_results([SerpResult(title="t", url="https://www.zoominfo.com/x", origin_site="ZoomInfo.com")])

        assert ranked[0].source == "ZOOMINFO"

    def test_find_candidates(self, serp, session):
        session.get.return_value = make_response(200, ORGANIC)

        results = serp.find_candidates("cold email")

        assert len(results) == 3
        assert results[0].source == "WOODPECKER"

    def test_find_candidates_without_results(self, serp, session):
        session.get.return_value = make_response(200, {"search_metadata": {}})

        assert serp.find_candidates("nothing") == []
