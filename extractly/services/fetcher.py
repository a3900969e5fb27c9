"""Static page fetcher with jittered exponential backoff.

Only failures that look transient are retried: anything without an HTTP
status (DNS, connect, timeout, redirect overflow) and 503. Every other
status is fatal and surfaces immediately.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx

from extractly.config import settings
from extractly.core.exceptions import FetchError
from extractly.core.metrics import fetch_attempts_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Referer": settings.FETCH_REFERER,
}


def backoff_delay(
    attempt: int,
    base: float = 0.8,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before retrying after ``attempt`` (1-based) failed.

    ``base * 2**(attempt-1)`` scaled into [0.75x, 1.25x].
    """
    return base * (2 ** (attempt - 1)) * (0.75 + rng() * 0.5)


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, FetchError):
        return exc.retryable
    return False


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    is_retryable: Callable[[BaseException], bool] = is_retryable,
    delay: Callable[[int], float] = backoff_delay,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``attempts`` are used up.

    A failure the predicate rejects propagates at once. The last retryable
    failure propagates once attempts are exhausted; no delay follows it.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc):
                fetch_attempts_total.labels(outcome="fatal").inc()
                raise
            if attempt >= attempts:
                fetch_attempts_total.labels(outcome="exhausted").inc()
                raise
            wait = delay(attempt)
            fetch_attempts_total.labels(outcome="retry").inc()
            logger.info(
                f"Attempt {attempt}/{attempts} failed ({exc}), retrying in {wait:.2f}s"
            )
            await sleep(wait)
    raise ValueError("attempts must be >= 1")


def _new_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.FETCH_TIMEOUT_SECONDS,
        follow_redirects=True,
        max_redirects=settings.FETCH_MAX_REDIRECTS,
    )


async def _get_once(client: httpx.AsyncClient, url: str) -> str:
    try:
        response = await client.get(url, headers=BROWSER_HEADERS)
    except httpx.RequestError as e:
        raise FetchError(url, None, f"{type(e).__name__}: {e}".rstrip(": ")) from e

    if not 200 <= response.status_code < 400:
        raise FetchError(url, response.status_code, response.reason_phrase)

    fetch_attempts_total.labels(outcome="success").inc()
    return response.text


async def fetch_html(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    attempts: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> str:
    """GET ``url`` with browser-like headers and return the decoded body.

    Raises FetchError once the failure is fatal or retries are exhausted.
    """
    attempts = attempts or settings.FETCH_MAX_ATTEMPTS
    base = settings.FETCH_BACKOFF_BASE_SECONDS

    async def _run(active: httpx.AsyncClient) -> str:
        return await retry_async(
            lambda: _get_once(active, url),
            attempts=attempts,
            delay=lambda attempt: backoff_delay(attempt, base=base),
            sleep=sleep,
        )

    if client is not None:
        return await _run(client)

    async with _new_client() as owned:
        return await _run(owned)
