"""Integration tests for the extraction routes."""

import pytest
from httpx import ASGITransport, AsyncClient

from extractly.config import settings
from extractly.core.exceptions import FetchError
from extractly.main import create_app

PAGE = "https://example.test/page"


class TestExtractCss:
    @pytest.mark.asyncio
    async def test_returns_trimmed_text(self, client: AsyncClient):
        resp = await client.post("/extract-css", json={"url": PAGE, "selector": "li"})
        assert resp.status_code == 200
        assert resp.json() == ["First", "Second"]

    @pytest.mark.asyncio
    async def test_url_without_protocol(self, client: AsyncClient, fetcher):
        resp = await client.post("/extract-css", json={"url": "example.test/page", "selector": "h1"})
        assert resp.json() == ["Title"]
        assert fetcher.calls == [PAGE]

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, client: AsyncClient, fetcher):
        for _ in range(3):
            resp = await client.post("/extract-css", json={"url": PAGE, "selector": "h1"})
            assert resp.json() == ["Title"]
        assert len(fetcher.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_selector(self, client: AsyncClient):
        resp = await client.post("/extract-css", json={"url": PAGE})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request: selector"}

    @pytest.mark.asyncio
    async def test_fetch_failure(self, client: AsyncClient, fetcher):
        fetcher.pages[PAGE] = FetchError(PAGE, 503, "Service Unavailable")
        resp = await client.post("/extract-css", json={"url": PAGE, "selector": "h1"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "FetchError 503 Service Unavailable"}


class TestExtractXPath:
    @pytest.mark.asyncio
    async def test_returns_node_string_forms(self, client: AsyncClient):
        resp = await client.post("/extract-xpath", json={"url": PAGE, "xpath": "//h1"})
        assert resp.status_code == 200
        assert resp.json() == ["<h1>Title</h1>"]

    @pytest.mark.asyncio
    async def test_invalid_expression(self, client: AsyncClient):
        resp = await client.post("/extract-xpath", json={"url": PAGE, "xpath": "//["})
        assert resp.status_code == 500
        assert "error" in resp.json()


class TestExtractXPathHtml:
    @pytest.mark.asyncio
    async def test_xpath_from_header(self, client: AsyncClient):
        resp = await client.post(
            "/extract-xpath-html",
            content='<div id="a">X</div>',
            headers={"content-type": "text/html", "x-xpath": '//div[@id="a"]/text()'},
        )
        assert resp.status_code == 200
        assert resp.json() == ["X"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("param", ["xpath", "xp"])
    async def test_xpath_from_query(self, client: AsyncClient, param):
        resp = await client.post(
            "/extract-xpath-html",
            params={param: "//li/text()"},
            content="<ul><li> a <li>b</ul>",
            headers={"content-type": "text/plain"},
        )
        assert resp.json() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_xpath(self, client: AsyncClient):
        resp = await client.post("/extract-xpath-html", content="<p>x</p>")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Provide XPath via query (?xpath=...) or 'x-xpath' header"}

    @pytest.mark.asyncio
    async def test_empty_body(self, client: AsyncClient):
        resp = await client.post("/extract-xpath-html", params={"xpath": "//p"}, content="  ")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Body must contain raw HTML text."}

    @pytest.mark.asyncio
    async def test_body_over_limit(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "MAX_HTML_BODY_BYTES", 16)
        resp = await client.post(
            "/extract-xpath-html", params={"xpath": "//p"}, content="<p>" + "x" * 32 + "</p>"
        )
        assert resp.status_code == 413
        assert resp.json() == {"error": "Payload too large"}

    @pytest.mark.asyncio
    async def test_raw_body_may_exceed_json_limit(self, service, monkeypatch):
        monkeypatch.setattr(settings, "MAX_JSON_BODY_BYTES", 16)
        app = create_app(service)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            resp = await ac.post(
                "/extract-xpath-html", params={"xpath": "//p/text()"}, content="<p>" + "y" * 64 + "</p>"
            )
        assert resp.status_code == 200
        assert resp.json() == ["y" * 64]


class TestRenderExtract:
    @pytest.mark.asyncio
    async def test_rendered_text(self, client: AsyncClient, renderer):
        resp = await client.post("/render-extract", json={"url": PAGE, "selector": "h1"})
        assert resp.status_code == 200
        assert resp.json() == ["Rendered Title"]
        assert renderer.calls == [(PAGE, "h1")]

    @pytest.mark.asyncio
    async def test_browser_failure(self, client: AsyncClient):
        resp = await client.post("/render-extract", json={"url": PAGE, "selector": "!nope"})
        assert resp.status_code == 500
        assert "failed" in resp.json()["error"]


class TestExtractMulti:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/extract-multi", "/render-extract-multi"])
    async def test_mixed_batch(self, client: AsyncClient, path):
        tasks = [
            {"type": "css", "url": PAGE, "selector": "h1"},
            {"type": "bogus"},
            {"type": "render", "url": PAGE, "selector": "h1"},
        ]
        resp = await client.post(path, json={"tasks": tasks})
        assert resp.status_code == 200
        assert resp.json() == [
            {"task": tasks[0], "result": ["Title"]},
            {"task": tasks[1], "error": "Unknown task type"},
            {"task": tasks[2], "result": ["Rendered Title"]},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"tasks": "css"}, {"tasks": {"type": "css"}}])
    async def test_tasks_must_be_array(self, client: AsyncClient, body):
        resp = await client.post("/extract-multi", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "tasks must be an array"}


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_json_body_over_limit(self, service, monkeypatch):
        monkeypatch.setattr(settings, "MAX_JSON_BODY_BYTES", 32)
        app = create_app(service)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            resp = await ac.post("/extract-css", json={"url": PAGE, "selector": "h1" * 40})
        assert resp.status_code == 413
        assert resp.json() == {"error": "Payload too large"}

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        resp = await client.post(
            "/extract-css", json={"url": PAGE, "selector": "h1"}, headers={"X-Request-ID": "abc123"}
        )
        assert resp.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client: AsyncClient):
        resp = await client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 32


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


class TestChunkedBodies:
    """Bodies sent without Content-Length are capped while they stream in."""

    @pytest.mark.asyncio
    async def test_chunked_json_over_limit(self, service, monkeypatch, fetcher):
        monkeypatch.setattr(settings, "MAX_JSON_BODY_BYTES", 32)
        app = create_app(service)
        body = _chunks(b'{"url": "https://example.test/page", ', b'"selector": "' + b"h" * 64 + b'"}')
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            resp = await ac.post("/extract-css", content=body, headers={"content-type": "application/json"})
        assert resp.status_code == 413
        assert resp.json() == {"error": "Payload too large"}
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_chunked_json_within_limit_is_replayed(self, client: AsyncClient):
        body = _chunks(b'{"url": "https://example.test/page", ', b'"selector": "h1"}')
        resp = await client.post("/extract-css", content=body, headers={"content-type": "application/json"})
        assert resp.status_code == 200
        assert resp.json() == ["Title"]

    @pytest.mark.asyncio
    async def test_chunked_html_over_limit(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "MAX_HTML_BODY_BYTES", 16)
        resp = await client.post(
            "/extract-xpath-html",
            params={"xpath": "//p"},
            content=_chunks(b"<p>", b"x" * 32, b"</p>"),
        )
        assert resp.status_code == 413
        assert resp.json() == {"error": "Payload too large"}

    @pytest.mark.asyncio
    async def test_chunked_html_within_limit(self, client: AsyncClient):
        resp = await client.post(
            "/extract-xpath-html",
            params={"xpath": "//p/text()"},
            content=_chunks(b"<p>", b" streamed ", b"</p>"),
        )
        assert resp.status_code == 200
        assert resp.json() == ["streamed"]


class TestXPathHtmlEdgeCases:
    @pytest.mark.asyncio
    async def test_page_with_xml_declaration(self, client: AsyncClient):
        resp = await client.post(
            "/extract-xpath-html",
            params={"xpath": '//div[@id="a"]/text()'},
            content='<?xml version="1.0" encoding="utf-8"?>\n<html xmlns="http://www.w3.org/1999/xhtml"><body><div id="a">X</div></body></html>',
        )
        assert resp.status_code == 200
        assert resp.json() == ["X"]

    @pytest.mark.asyncio
    async def test_comment_nodes(self, client: AsyncClient):
        resp = await client.post(
            "/extract-xpath-html", params={"xpath": "//comment()"}, content="<div><!-- hi --></div>"
        )
        assert resp.status_code == 200
        assert resp.json() == ["hi"]
