"""Best-effort dismissal of cookie/identity consent interstitials.

The walk over candidate buttons is a small state machine::

    UNATTEMPTED -> SEARCHING(candidate i) -> DISMISSED
                                          -> EXHAUSTED

Pages outside the known consent hosts end in NOT_REQUIRED. Nothing in here
raises; a wall that cannot be dismissed leaves the page as it is.
"""

import enum
import logging
import re

logger = logging.getLogger(__name__)

CONSENT_HOST_PATTERN = re.compile(r"guce\.yahoo\.com|consent\.yahoo\.com", re.IGNORECASE)

CONSENT_BUTTON_SELECTORS = (
    'button[type="submit"]',
    '[data-testid*="accept"]',
    "[data-accept]",
    'button:has-text("Accept")',
    'button:has-text("Agree")',
)


class ConsentState(str, enum.Enum):
    UNATTEMPTED = "unattempted"
    NOT_REQUIRED = "not_required"
    SEARCHING = "searching"
    DISMISSED = "dismissed"
    EXHAUSTED = "exhausted"


def is_consent_url(url: str) -> bool:
    return bool(CONSENT_HOST_PATTERN.search(url or ""))


async def _try_candidate(page, selector: str) -> bool:
    try:
        button = await page.query_selector(selector)
    except Exception as e:
        logger.debug(f"Consent lookup {selector!r} failed: {e}")
        return False
    if button is None:
        return False
    try:
        await button.click()
    except Exception as e:
        logger.debug(f"Consent click {selector!r} failed: {e}")
        return False
    return True


async def dismiss_consent(
    page,
    settle_ms: int = 500,
    candidates: tuple[str, ...] = CONSENT_BUTTON_SELECTORS,
) -> ConsentState:
    """Click the first accept/agree button found on a consent page."""
    if not is_consent_url(page.url):
        return ConsentState.NOT_REQUIRED

    state = ConsentState.SEARCHING
    for selector in candidates:
        if await _try_candidate(page, selector):
            state = ConsentState.DISMISSED
            logger.info(f"Consent wall dismissed via {selector!r}")
            try:
                await page.wait_for_timeout(settle_ms)
            except Exception as e:
                logger.debug(f"Settling after consent click failed: {e}")
            break
    else:
        state = ConsentState.EXHAUSTED
        logger.warning(f"No consent button matched on {page.url}")

    return state
