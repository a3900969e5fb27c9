"""Sub-resource blocking for render tasks.

``should_block`` is the whole policy and has no Playwright dependency;
``route_handler`` only applies its verdict to an intercepted route.
"""

import logging
import re

from extractly.core.metrics import blocked_requests_total

logger = logging.getLogger(__name__)

# Heavy assets with no bearing on text extraction
BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})

# Ad / tracking URL shapes
AD_URL_PATTERN = re.compile(r"doubleclick|adtech|scorecardresearch|/ads?[\W_]", re.IGNORECASE)

AD_SERVING_DOMAINS = frozenset(
    {
        "doubleclick.net",
        "adservice.google.com",
        "googlesyndication.com",
        "googletagservices.com",
        "amazon-adsystem.com",
        "adnxs.com",
        "ads-twitter.com",
        "criteo.com",
        "criteo.net",
        "outbrain.com",
        "taboola.com",
        "moatads.com",
        "pubmatic.com",
        "rubiconproject.com",
        "openx.net",
        "casalemedia.com",
        "scorecardresearch.com",
        "quantserve.com",
        "adsystem.com",
        "bidswitch.net",
        "advertising.com",
        "smartadserver.com",
    }
)


def _hostname(url: str) -> str:
    try:
        after_scheme = url.split("//", 1)[1]
    except IndexError:
        return ""
    return after_scheme.split("/", 1)[0].split("?", 1)[0].split(":")[0].lower()


def block_reason(resource_type: str, url: str) -> str | None:
    """Why a request should be aborted, or None to let it through."""
    if (resource_type or "").lower() in BLOCKED_RESOURCE_TYPES:
        return "resource_type"

    hostname = _hostname(url)
    if any(hostname == d or hostname.endswith("." + d) for d in AD_SERVING_DOMAINS):
        return "ad_domain"

    if AD_URL_PATTERN.search(url):
        return "ad_pattern"

    return None


def should_block(resource_type: str, url: str) -> bool:
    return block_reason(resource_type, url) is not None


async def route_handler(route, request=None):
    """Playwright route callback applying :func:`should_block`."""
    request = request or route.request
    reason = block_reason(request.resource_type, request.url)
    if reason:
        blocked_requests_total.labels(reason=reason).inc()
        await route.abort()
        return
    await route.continue_()
