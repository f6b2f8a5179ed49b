"""Tests for heading extraction and fetch error mapping."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from draftwise.services.content_fetcher_service import NON_CONTENT_PATTERN, ContentFetcherService, Heading
from draftwise.services.exceptions import FetchTimeoutError, ForbiddenError, UnreachableError

ARTICLE_HTML = """
<html>
  <body>
    <nav><h2>Site Menu</h2></nav>
    <header><h1>Brand Name</h1></header>
    <article>
      <h1>Cold Brew at Home</h1>
      <p>Intro text.</p>
      <h2>  What   you need </h2>
      <h3>Equipment</h3>
      <div class="related-posts"><h3>You may also like</h3></div>
      <h2>Step by step</h2>
    </article>
    <aside><h3>Subscribe</h3></aside>
    <footer><h4>Contact</h4></footer>
  </body>
</html>
"""


def make_response(status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
def fetcher():
    return ContentFetcherService(timeout=1, cache_ttl=60)


class TestExtractHeadings:
    def test_keeps_article_headings_in_order(self, fetcher):
        headings = fetcher.extract_headings(ARTICLE_HTML)

        assert headings == [
            Heading(1, "Cold Brew at Home"),
            Heading(2, "What you need"),
            Heading(3, "Equipment"),
            Heading(2, "Step by step"),
        ]

    def test_falls_back_to_body_without_main_content(self, fetcher):
        html = "<html><body><h2>First</h2><div><h3>Second</h3></div></body></html>"

        headings = fetcher.extract_headings(html)

        assert [h.text for h in headings] == ["First", "Second"]

    def test_body_with_sidebar_layout_class_keeps_article(self, fetcher):
        html = (
            '<html><body class="single-post has-sidebar ast-right-sidebar"><article>'
            "<h2>Choosing the Beans</h2><h2>Grind Size Matters</h2>"
            "</article></body></html>"
        )

        headings = fetcher.extract_headings(html)

        assert [h.text for h in headings] == ["Choosing the Beans", "Grind Size Matters"]

    def test_content_root_survives_chrome_like_class(self, fetcher):
        html = (
            '<html><body><div class="sidebar-wrapper layout"><article class="post share-enabled">'
            "<h2>Steeping Time</h2>"
            '<div class="share-buttons"><h3>Share this post</h3></div>'
            '<div id="comments"><h3>Leave a reply</h3></div>'
            "</article></div>"
            '<div class="sidebar"><h3>Popular posts</h3></div></body></html>'
        )

        headings = fetcher.extract_headings(html)

        assert [h.text for h in headings] == ["Steeping Time"]

    def test_chrome_pattern_matches_whole_tokens_only(self):
        assert NON_CONTENT_PATTERN.search("sidebar")
        assert NON_CONTENT_PATTERN.search("nav-primary")
        assert NON_CONTENT_PATTERN.search("comments")
        assert not NON_CONTENT_PATTERN.search("has-sidebar")
        assert not NON_CONTENT_PATTERN.search("canvas")
        assert not NON_CONTENT_PATTERN.search("navigator")

    def test_empty_document(self, fetcher):
        assert fetcher.extract_headings("") == []


class TestFetch:
    @patch("draftwise.services.content_fetcher_service.requests.get")
    def test_fetch_and_cache(self, mock_get, fetcher):
        mock_get.return_value = make_response(200, ARTICLE_HTML)

        first = fetcher.fetch_and_extract_headings("https://example.com/a")
        second = fetcher.fetch_and_extract_headings("https://example.com/a")

        assert first == second
        assert mock_get.call_count == 1

    @patch("draftwise.services.content_fetcher_service.requests.get")
    def test_timeout(self, mock_get, fetcher):
        mock_get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(FetchTimeoutError):
            fetcher.fetch_and_extract_headings("https://example.com/slow")

    @patch("draftwise.services.content_fetcher_service.requests.get")
    def test_connection_error_is_unreachable(self, mock_get, fetcher):
        mock_get.side_effect = requests.exceptions.ConnectionError("dns")

        with pytest.raises(UnreachableError):
            fetcher.fetch_and_extract_headings("https://nowhere.example")

    @pytest.mark.parametrize("status", [401, 403, 451])
    @patch("draftwise.services.content_fetcher_service.requests.get")
    def test_refused(self, mock_get, status, fetcher):
        mock_get.return_value = make_response(status)

        with pytest.raises(ForbiddenError) as exc_info:
            fetcher.fetch_and_extract_headings("https://example.com/private")

        assert exc_info.value.status_code == status

    @patch("draftwise.services.content_fetcher_service.requests.get")
    def test_not_found_is_unreachable(self, mock_get, fetcher):
        mock_get.return_value = make_response(404)

        with pytest.raises(UnreachableError):
            fetcher.fetch_and_extract_headings("https://example.com/missing")
