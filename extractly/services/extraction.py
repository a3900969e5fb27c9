"""The extraction engine behind every route.

``ExtractionService`` ties the response cache to the three strategies.
A cached result short-circuits all network and browser work; only
successful results are stored.
"""

import logging
import time
from typing import Awaitable, Callable

from extractly.config import settings
from extractly.core.cache import TTLCache, cache_key, content_hash
from extractly.core.exceptions import ExtractlyError, format_error
from extractly.core.metrics import extraction_duration_seconds, extraction_requests_total
from extractly.services.browser import render_extract
from extractly.services.fetcher import fetch_html
from extractly.services.selector_extraction import extract_by_css, extract_by_xpath

logger = logging.getLogger(__name__)

Fetch = Callable[[str], Awaitable[str]]
Render = Callable[[str, str], Awaitable[list[str]]]


class ExtractionService:
    def __init__(
        self,
        cache: TTLCache,
        fetch: Fetch = fetch_html,
        render: Render = render_extract,
        html_ttl: float | None = None,
    ):
        self.cache = cache
        self._fetch = fetch
        self._render = render
        self.html_ttl = settings.CACHE_HTML_TTL_SECONDS if html_ttl is None else html_ttl

    async def _cached(self, strategy: str, key: str, produce, ttl: float | None, use_cache: bool):
        start = time.monotonic()
        try:
            if use_cache:
                cached = self.cache.get(key)
                if cached is not None:
                    logger.debug(f"Cache hit for {key}")
                    extraction_requests_total.labels(strategy=strategy, status="cached").inc()
                    return cached

            result = await produce()
            if use_cache:
                self.cache.set(key, result, ttl)
            extraction_requests_total.labels(strategy=strategy, status="success").inc()
            return result
        except ExtractlyError:
            extraction_requests_total.labels(strategy=strategy, status="error").inc()
            raise
        except Exception as e:
            extraction_requests_total.labels(strategy=strategy, status="error").inc()
            raise ExtractlyError(format_error(e)) from e
        finally:
            extraction_duration_seconds.labels(strategy=strategy).observe(time.monotonic() - start)

    async def css(self, url: str, selector: str, use_cache: bool = True) -> list[str]:
        async def produce():
            html = await self._fetch(url)
            return extract_by_css(html, selector)

        key = cache_key("css", url, selector)
        return await self._cached("css", key, produce, None, use_cache)

    async def xpath(self, url: str, xpath: str, use_cache: bool = True) -> list[str]:
        """Node string forms for ``xpath`` evaluated on the fetched page."""
        async def produce():
            html = await self._fetch(url)
            return extract_by_xpath(html, xpath, output="markup")

        key = cache_key("xpath", url, xpath)
        return await self._cached("xpath", key, produce, None, use_cache)

    async def xpath_html(self, html: str, xpath: str, use_cache: bool = True) -> list[str]:
        """Trimmed values for ``xpath`` on caller-supplied markup.

        Keyed by the markup's hash so identical documents share an entry.
        """
        async def produce():
            return extract_by_xpath(html, xpath, output="value")

        key = cache_key("xpath-html", content_hash(html), xpath)
        return await self._cached("xpath-html", key, produce, self.html_ttl, use_cache)

    async def render(self, url: str, selector: str, use_cache: bool = True) -> list[str]:
        async def produce():
            return await self._render(url, selector)

        key = cache_key("render", url, selector)
        return await self._cached("render", key, produce, None, use_cache)
