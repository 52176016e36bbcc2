"""Tests for the retrieval backends and the HTML parser.

The HTTP fetcher is exercised against a local aiohttp test server; no
external network access is needed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as LocalServer

from depthcrawl.crawler.fetcher import (
    SAMPLE_FIXTURE,
    FakeFetcher,
    FetchResult,
    NotFound,
    RetrievalFailure,
    WebFetcher,
)
from depthcrawl.crawler.parser import ContentParser
from depthcrawl.crawler.scheduler import crawl
from depthcrawl.storage.visited import DedupKey
from depthcrawl.utils.reporting import CollectingReporter

FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures"

INDEX_HTML = """
<html>
  <head><title>  Example
     Index </title></head>
  <body>
    <script>var ignored = "<a href='/script'>x</a>";</script>
    <a href="/docs">Docs</a>
    <a href="/docs#install">Docs again</a>
    <a href="https://Other.Example.com/page?x=1">Other</a>
    <a href="#top">Top</a>
    <a href="mailto:someone@example.com">Mail</a>
    <a href="/blog">Blog</a>
  </body>
</html>
"""


class TestFakeFetcher:
    """Tests for the canned-data fetcher."""

    @pytest.mark.asyncio
    async def test_fetch_known_page(self):
        fetcher = FakeFetcher.sample()
        result = await fetcher.fetch("https://golang.org/")

        assert isinstance(result, FetchResult)
        assert result.content == "The Go Programming Language"
        assert result.links == ["https://golang.org/pkg/", "https://golang.org/cmd/"]
        assert fetcher.calls == ["https://golang.org/"]

    @pytest.mark.asyncio
    async def test_unknown_page_raises_not_found(self):
        fetcher = FakeFetcher.sample()
        with pytest.raises(NotFound) as excinfo:
            await fetcher.fetch("https://golang.org/cmd/")

        assert isinstance(excinfo.value, RetrievalFailure)
        assert excinfo.value.message == "not found: https://golang.org/cmd/"
        assert excinfo.value.url == "https://golang.org/cmd/"
        assert str(excinfo.value) == "not found: https://golang.org/cmd/"

    @pytest.mark.asyncio
    async def test_links_are_copied(self):
        """Callers cannot mutate the fixture through a result."""
        fetcher = FakeFetcher.sample()
        result = await fetcher.fetch("https://golang.org/")
        result.links.append("https://evil/")

        again = await fetcher.fetch("https://golang.org/")
        assert "https://evil/" not in again.links

    def test_sample_fixture_shape(self):
        assert len(SAMPLE_FIXTURE) == 4
        contents = [content for content, _ in SAMPLE_FIXTURE.values()]
        assert len(set(contents)) == 4
        assert "https://golang.org/cmd/" not in SAMPLE_FIXTURE

    def test_accepts_mapping_pages(self):
        fetcher = FakeFetcher({"a": {"content": "A", "links": ["b"]}, "b": {"content": "B"}})
        assert fetcher.pages == {"a": ("A", ["b"]), "b": ("B", [])}

    def test_page_without_content_rejected(self):
        with pytest.raises(ValueError):
            FakeFetcher({"a": {"links": ["b"]}})

    @pytest.mark.asyncio
    async def test_from_yaml(self, tmp_path):
        fixture = tmp_path / "graph.yaml"
        fixture.write_text(
            "pages:\n"
            "  a:\n"
            "    content: Alpha\n"
            "    links: [b, c]\n"
            "  b:\n"
            "    content: Beta\n"
        )
        fetcher = FakeFetcher.from_yaml(fixture)

        result = await fetcher.fetch("a")
        assert result.content == "Alpha"
        assert result.links == ["b", "c"]
        assert (await fetcher.fetch("b")).links == []

    def test_from_yaml_top_level_mapping(self, tmp_path):
        fixture = tmp_path / "graph.yaml"
        fixture.write_text("a:\n  content: Alpha\n")
        assert FakeFetcher.from_yaml(fixture).pages == {"a": ("Alpha", [])}

    def test_shipped_fixture_matches_sample(self):
        fetcher = FakeFetcher.from_yaml(FIXTURES_DIR / "golang.yaml")
        assert fetcher.pages == FakeFetcher.sample().pages

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FakeFetcher.from_yaml(tmp_path / "nope.yaml")

    def test_from_yaml_rejects_non_mapping(self, tmp_path):
        fixture = tmp_path / "graph.yaml"
        fixture.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            FakeFetcher.from_yaml(fixture)

    @pytest.mark.asyncio
    async def test_delay_suspends_only_the_caller(self):
        """Two delayed fetches overlap instead of running back to back."""
        fetcher = FakeFetcher.sample(delay=0.2)
        loop = asyncio.get_running_loop()
        start = loop.time()
        await asyncio.gather(
            fetcher.fetch("https://golang.org/"),
            fetcher.fetch("https://golang.org/pkg/"),
        )
        assert loop.time() - start < 0.35


class TestContentParser:
    """Tests for HTML parsing."""

    def test_title_is_cleaned(self):
        parsed = ContentParser().parse("https://example.com/", INDEX_HTML)
        assert parsed.title == "Example Index"

    def test_links_in_document_order_without_duplicates(self):
        parsed = ContentParser().parse("https://example.com/", INDEX_HTML)
        assert parsed.links == [
            "https://example.com/docs",
            "https://other.example.com/page?x=1",
            "https://example.com/blog",
        ]

    def test_text_fallback_without_title(self):
        parsed = ContentParser().parse("https://example.com/", "<p>Hello   <b>world</b></p>")
        assert parsed.title is None
        assert parsed.text == "Hello world"

    def test_scripts_are_ignored(self):
        parsed = ContentParser().parse(
            "https://example.com/",
            "<body><script>alert(1)</script><p>Visible</p></body>",
        )
        assert parsed.text == "Visible"


def _make_app() -> web.Application:
    async def index(request):
        return web.Response(text=INDEX_HTML, content_type="text/html")

    async def plain(request):
        return web.Response(text="<p>No title   here</p>", content_type="text/html")

    async def image(request):
        return web.Response(body=b"\x89PNG\r\n", content_type="image/png")

    async def broken(request):
        return web.Response(status=500, text="boom")

    async def bogus_charset(request):
        return web.Response(
            body=b"<html><head><title>Odd charset</title></head></html>",
            headers={"Content-Type": "text/html; charset=x-bogus"},
        )

    async def links_to_bogus(request):
        return web.Response(
            text='<title>Start</title><a href="/bogus-charset">odd</a>',
            content_type="text/html",
        )

    async def large(request):
        return web.Response(text="<p>" + "x" * 4096 + "</p>", content_type="text/html")

    async def streamed(request):
        response = web.StreamResponse(headers={"Content-Type": "text/html"})
        response.enable_chunked_encoding()
        await response.prepare(request)
        try:
            for _ in range(8):
                await response.write(b"<p>" + b"x" * 1024 + b"</p>")
            await response.write_eof()
        except ConnectionError:
            pass
        return response

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/plain", plain)
    app.router.add_get("/image.png", image)
    app.router.add_get("/broken", broken)
    app.router.add_get("/bogus-charset", bogus_charset)
    app.router.add_get("/links-to-bogus", links_to_bogus)
    app.router.add_get("/large", large)
    app.router.add_get("/streamed", streamed)
    return app


class TestWebFetcher:
    """Tests for the HTTP fetcher."""

    @pytest.mark.asyncio
    async def test_fetch_page(self):
        async with LocalServer(_make_app()) as server:
            base = str(server.make_url("/"))
            async with WebFetcher(request_timeout=5) as fetcher:
                result = await fetcher.fetch(base)

                assert result.content == "Example Index"
                assert result.links[0] == str(server.make_url("/docs"))
                assert result.links[-1] == str(server.make_url("/blog"))
                assert fetcher.get_stats()['successful_requests'] == 1

    @pytest.mark.asyncio
    async def test_page_without_title_uses_text(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/plain")))
                assert result.content == "No title here"
                assert result.links == []

    @pytest.mark.asyncio
    async def test_missing_page_raises_not_found(self):
        async with LocalServer(_make_app()) as server:
            url = str(server.make_url("/missing"))
            async with WebFetcher(request_timeout=5) as fetcher:
                with pytest.raises(NotFound) as excinfo:
                    await fetcher.fetch(url)
                assert excinfo.value.message == f"not found: {url}"
                assert fetcher.get_stats()['failed_requests'] == 1

    @pytest.mark.asyncio
    async def test_server_error_raises_retrieval_failure(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5) as fetcher:
                with pytest.raises(RetrievalFailure, match="HTTP 500"):
                    await fetcher.fetch(str(server.make_url("/broken")))

    @pytest.mark.asyncio
    async def test_non_text_content_rejected(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5) as fetcher:
                with pytest.raises(RetrievalFailure, match="non-text content"):
                    await fetcher.fetch(str(server.make_url("/image.png")))

    @pytest.mark.asyncio
    async def test_connection_error_becomes_retrieval_failure(self):
        async with LocalServer(_make_app()) as server:
            url = str(server.make_url("/"))
        # server is closed now
        async with WebFetcher(request_timeout=5) as fetcher:
            with pytest.raises(RetrievalFailure):
                await fetcher.fetch(url)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        fetcher = WebFetcher()
        await fetcher.start()
        await fetcher.close()
        await fetcher.close()
        assert fetcher.session is None

    @pytest.mark.asyncio
    async def test_unknown_charset_falls_back_to_utf8(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/bogus-charset")))
                assert result.content == "Odd charset"

    @pytest.mark.asyncio
    async def test_unknown_charset_does_not_abort_traversal(self):
        reporter = CollectingReporter()
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5) as fetcher:
                report = await crawl(str(server.make_url("/links-to-bogus")), 3, fetcher,
                                     reporter=reporter, dedup_key=DedupKey.URL)

        assert reporter.lines()[0].endswith('"Start"')
        assert {event.content for event in report.events if event.found} == {"Start", "Odd charset"}

    @pytest.mark.asyncio
    async def test_unexpected_parse_error_becomes_retrieval_failure(self, monkeypatch):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5) as fetcher:
                def explode(url, html):
                    raise RuntimeError("parser exploded")

                monkeypatch.setattr(fetcher.parser, "parse", explode)
                with pytest.raises(RetrievalFailure, match="unexpected error"):
                    await fetcher.fetch(str(server.make_url("/")))
                assert fetcher.get_stats()['failed_requests'] == 1

    @pytest.mark.asyncio
    async def test_declared_length_over_limit_rejected(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5, max_size=1024) as fetcher:
                with pytest.raises(RetrievalFailure, match="content too large"):
                    await fetcher.fetch(str(server.make_url("/large")))

    @pytest.mark.asyncio
    async def test_streamed_body_stops_at_limit(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5, max_size=2048) as fetcher:
                with pytest.raises(RetrievalFailure, match="over 2048 bytes"):
                    await fetcher.fetch(str(server.make_url("/streamed")))
                assert fetcher.get_stats()['total_bytes_downloaded'] == 0

    @pytest.mark.asyncio
    async def test_body_within_limit_accepted(self):
        async with LocalServer(_make_app()) as server:
            async with WebFetcher(request_timeout=5, max_size=16 * 1024) as fetcher:
                result = await fetcher.fetch(str(server.make_url("/streamed")))
                assert result.content.startswith("xxx")
                assert fetcher.get_stats()['total_bytes_downloaded'] == 8 * 1031
