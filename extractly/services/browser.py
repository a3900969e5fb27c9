import asyncio
import logging

from playwright.async_api import Browser, Error as PlaywrightError, Page, async_playwright

from extractly.config import settings
from extractly.core.exceptions import BrowserError, BrowserSlotTimeoutError
from extractly.core.metrics import active_browser_sessions, browser_launch_failures_total
from extractly.services.consent import dismiss_consent
from extractly.services.fetcher import BROWSER_USER_AGENT
from extractly.services.interception import route_handler

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-features=site-per-process",
    "--disable-gpu",
    "--no-zygote",
]

# Runs in the page: trimmed textContent of every match, in document order
_TEXT_CONTENT_JS = "els => els.map(e => (e.textContent || '').trim())"


def _short(exc: BaseException) -> str:
    """First line of a Playwright error (the rest is a call log)."""
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__


class BrowserSlots:
    """Process-wide cap on simultaneously running browser processes.

    Batches run their render tasks one at a time, but independent requests
    do not coordinate; this bounds them together.
    """

    def __init__(self, limit: int, timeout: float):
        self.limit = limit
        self.timeout = timeout
        self._semaphore: asyncio.Semaphore | None = None
        self._loop = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        """Get or create a semaphore bound to the current event loop."""
        current_loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not current_loop:
            self._semaphore = asyncio.Semaphore(self.limit)
            self._loop = current_loop
        return self._semaphore

    async def acquire(self) -> None:
        try:
            await asyncio.wait_for(self._get_semaphore().acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise BrowserSlotTimeoutError(self.timeout)

    def release(self) -> None:
        self._get_semaphore().release()


browser_slots = BrowserSlots(
    settings.MAX_CONCURRENT_BROWSERS, settings.BROWSER_SLOT_TIMEOUT_SECONDS
)


async def launch_browser(
    browser_type,
    *,
    attempts: int = 2,
    retry_delay_ms: int = 200,
    executable_path: str = "",
    headless: bool = True,
    sleep=asyncio.sleep,
) -> Browser:
    """Launch Chromium, retrying after a short pause.

    Raises BrowserError when every attempt fails.
    """
    opts: dict = {"headless": headless, "args": LAUNCH_ARGS}
    if executable_path:
        opts["executable_path"] = executable_path

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            logger.info(f"Launching browser (attempt {attempt}, executable={executable_path or 'bundled'})")
            return await browser_type.launch(**opts)
        except Exception as e:
            last_error = e
            browser_launch_failures_total.inc()
            logger.error(f"Browser launch failed (attempt {attempt}/{attempts}): {_short(e)}")
            if attempt < attempts:
                await sleep(retry_delay_ms * attempt / 1000)

    raise BrowserError(f"Browser launch failed: {_short(last_error)}") from last_error


class BrowserSession:
    """One browser process and one page, owned by a single render task.

    Use as ``async with BrowserSession() as session``. Leaving the block
    closes the browser and stops the driver whatever happened inside it,
    and so does a failure half-way through ``__aenter__``.
    """

    def __init__(
        self,
        *,
        playwright_factory=async_playwright,
        slots: BrowserSlots | None = None,
        user_agent: str = BROWSER_USER_AGENT,
        sleep=asyncio.sleep,
    ):
        self._playwright_factory = playwright_factory
        self._slots = slots or browser_slots
        self._user_agent = user_agent
        self._sleep = sleep
        self._slot_held = False
        self._playwright = None
        self._browser: Browser | None = None
        self.page: Page | None = None

    async def __aenter__(self) -> "BrowserSession":
        await self._slots.acquire()
        self._slot_held = True
        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await launch_browser(
                self._playwright.chromium,
                attempts=settings.BROWSER_LAUNCH_ATTEMPTS,
                retry_delay_ms=settings.BROWSER_LAUNCH_RETRY_DELAY_MS,
                executable_path=settings.BROWSER_EXECUTABLE_PATH,
                headless=settings.BROWSER_HEADLESS,
                sleep=self._sleep,
            )
            active_browser_sessions.inc()
            await self._open_page()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False

    async def _open_page(self) -> None:
        try:
            context = await self._browser.new_context(user_agent=self._user_agent)
            self.page = await context.new_page()
            await self.page.route("**/*", route_handler)
        except PlaywrightError as e:
            raise BrowserError(f"Page setup failed: {_short(e)}") from e

    async def close(self) -> None:
        """Terminate the browser process and driver; safe to call twice."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        self.page = None
        try:
            if browser is not None:
                active_browser_sessions.dec()
                try:
                    await browser.close()
                except Exception as e:
                    logger.warning(f"Browser close failed: {_short(e)}")
            if playwright is not None:
                try:
                    await playwright.stop()
                except Exception as e:
                    logger.warning(f"Playwright stop failed: {_short(e)}")
        finally:
            if self._slot_held:
                self._slot_held = False
                self._slots.release()

    async def extract(self, url: str, selector: str) -> list[str]:
        """Navigate, clear any consent wall, and read ``selector`` from the live DOM."""
        if self.page is None:
            raise BrowserError("Browser session is not open")

        try:
            # networkidle waits for zero connections over 500 ms, stricter than
            # allowing a couple of long-polling requests to stay open
            await self.page.goto(
                url, wait_until="networkidle", timeout=settings.NAVIGATION_TIMEOUT_MS
            )
        except PlaywrightError as e:
            raise BrowserError(f"Navigation to {url} failed: {_short(e)}") from e

        await dismiss_consent(self.page, settle_ms=settings.CONSENT_SETTLE_MS)

        try:
            return await self.page.eval_on_selector_all(selector, _TEXT_CONTENT_JS)
        except PlaywrightError as e:
            raise BrowserError(f"Selector {selector!r} failed: {_short(e)}") from e


async def render_extract(url: str, selector: str, *, session_factory=BrowserSession) -> list[str]:
    """Render ``url`` in a dedicated browser and extract ``selector``."""
    async with session_factory() as session:
        return await session.extract(url, selector)
