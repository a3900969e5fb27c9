"""Shared fixtures: fake clock, fake fetcher/renderer and an ASGI client."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from extractly.core.cache import TTLCache
from extractly.core.exceptions import BrowserError
from extractly.main import create_app
from extractly.services.extraction import ExtractionService

FIXTURE_PAGE = """
<html>
<head><title>Fixture</title></head>
<body>
    <h1>Title</h1>
    <ul class="items">
        <li> First </li>
        <li>Second</li>
    </ul>
    <a class="more" href="/next">More</a>
</body>
</html>
"""


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Serves canned pages by URL; an Exception value is raised instead."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.calls: list[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        page = self.pages[url]
        if isinstance(page, Exception):
            raise page
        return page


class FakeRenderer:
    """Stands in for a browser session; selectors starting with '!' fail."""

    def __init__(self, results: dict | None = None):
        self.results = results or {}
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, url: str, selector: str) -> list[str]:
        self.calls.append((url, selector))
        if selector.startswith("!"):
            raise BrowserError(f"Selector {selector!r} failed: SyntaxError")
        return self.results.get((url, selector), [])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl=60, clock=clock)


@pytest.fixture
def fetcher():
    return FakeFetcher({"https://example.test/page": FIXTURE_PAGE})


@pytest.fixture
def renderer():
    return FakeRenderer({("https://example.test/page", "h1"): ["Rendered Title"]})


@pytest.fixture
def service(cache, fetcher, renderer):
    return ExtractionService(cache, fetch=fetcher, render=renderer, html_ttl=300)


@pytest.fixture
def app(service):
    return create_app(service)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
