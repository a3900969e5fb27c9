import logging

from fastapi import APIRouter, Depends, Request

from extractly.config import settings
from extractly.core.exceptions import ValidationError
from extractly.middleware.request_context import read_limited_body
from extractly.schemas.extract import BatchRequest, CssRequest, RenderRequest, XPathRequest
from extractly.services.batch import run_batch
from extractly.services.extraction import ExtractionService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_service(request: Request) -> ExtractionService:
    return request.app.state.extraction_service


@router.post(
    "/extract-css",
    summary="Extract text by CSS selector",
    description="Fetch the page over HTTP and return the trimmed text of every element matching the CSS selector. Cached for 60 seconds per (url, selector).",
)
async def extract_css(body: CssRequest, service: ExtractionService = Depends(get_service)) -> list[str]:
    return await service.css(body.url, body.selector)


@router.post(
    "/extract-xpath",
    summary="Extract nodes by XPath",
    description="Fetch the page, normalize it to XHTML and return the string form of every node matching the XPath expression. Cached for 60 seconds per (url, xpath).",
)
async def extract_xpath(body: XPathRequest, service: ExtractionService = Depends(get_service)) -> list[str]:
    return await service.xpath(body.url, body.xpath)


@router.post(
    "/extract-xpath-html",
    summary="Extract values by XPath from submitted HTML",
    description="Evaluate an XPath expression against the raw HTML request body. The expression comes from the `xpath` or `xp` query parameter or the `x-xpath` header. Cached for 5 minutes per (sha256 of body, xpath).",
)
async def extract_xpath_html(request: Request, service: ExtractionService = Depends(get_service)) -> list[str]:
    xpath = (
        request.query_params.get("xpath")
        or request.query_params.get("xp")
        or request.headers.get("x-xpath")
    )
    if not xpath:
        raise ValidationError("Provide XPath via query (?xpath=...) or 'x-xpath' header")

    raw = await read_limited_body(request, settings.MAX_HTML_BODY_BYTES)
    html = raw.decode("utf-8", errors="replace")
    if not html.strip():
        raise ValidationError("Body must contain raw HTML text.")

    return await service.xpath_html(html, xpath)


@router.post(
    "/render-extract",
    summary="Render in a browser and extract by CSS selector",
    description="Load the page in a dedicated headless Chromium (images, fonts, media and ad hosts blocked), dismiss known consent walls and return the trimmed text of every element matching the selector. Cached for 60 seconds per (url, selector).",
)
async def render_extract(body: RenderRequest, service: ExtractionService = Depends(get_service)) -> list[str]:
    return await service.render(body.url, body.selector)


@router.post(
    "/extract-multi",
    summary="Run a batch of css/xpath/render tasks",
    description="Run each task in order and return one `{task, result}` or `{task, error}` record per task. A failing task never stops the batch. Not cached.",
)
@router.post("/render-extract-multi", include_in_schema=False)
async def extract_multi(body: BatchRequest, service: ExtractionService = Depends(get_service)) -> list[dict]:
    return await run_batch(body.tasks, service)
