"""Command-line access to the extraction engine.

Usage:
    python -m extractly.cli css https://example.com "h1.title"
    python -m extractly.cli xpath https://example.com "//div[@class='price']"
    python -m extractly.cli xpath-html page.html "//a/@href"
    cat page.html | python -m extractly.cli xpath-html - "//title/text()"
    python -m extractly.cli render https://example.com "#quote-price"
    python -m extractly.cli batch tasks.json
    python -m extractly.cli serve --port 8080
"""

import argparse
import asyncio
import json
import logging
import sys


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _build_service():
    from extractly.config import settings
    from extractly.core.cache import TTLCache
    from extractly.services.extraction import ExtractionService

    # One-shot process: caching buys nothing
    return ExtractionService(TTLCache(default_ttl=settings.CACHE_TTL_SECONDS, enabled=False))


def _read_markup(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    with open(source, encoding="utf-8", errors="replace") as fh:
        return fh.read()


def _load_tasks(path: str):
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict) and "tasks" in data:
        return data["tasks"]
    return data


async def _cmd_css(args):
    return await _build_service().css(args.url, args.selector)


async def _cmd_xpath(args):
    return await _build_service().xpath(args.url, args.xpath)


async def _cmd_xpath_html(args):
    return await _build_service().xpath_html(_read_markup(args.file), args.xpath)


async def _cmd_render(args):
    return await _build_service().render(args.url, args.selector)


async def _cmd_batch(args):
    from extractly.services.batch import run_batch

    return await run_batch(_load_tasks(args.file), _build_service())


def _serve(args) -> int:
    import uvicorn

    from extractly.config import settings

    # The app configures its own logging on import
    uvicorn.run(
        "extractly.main:app",
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
        log_config=None,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="extractly",
        description="Extract text and attribute values from web pages",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("--compact", action="store_true", help="Single-line JSON output")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("css", help="Fetch a page and select by CSS")
    p.add_argument("url")
    p.add_argument("selector")
    p.set_defaults(handler=_cmd_css)

    p = sub.add_parser("xpath", help="Fetch a page and select by XPath")
    p.add_argument("url")
    p.add_argument("xpath")
    p.set_defaults(handler=_cmd_xpath)

    p = sub.add_parser("xpath-html", help="Select by XPath from a local HTML file ('-' for stdin)")
    p.add_argument("file")
    p.add_argument("xpath")
    p.set_defaults(handler=_cmd_xpath_html)

    p = sub.add_parser("render", help="Render a page in headless Chromium and select by CSS")
    p.add_argument("url")
    p.add_argument("selector")
    p.set_defaults(handler=_cmd_render)

    p = sub.add_parser("serve", help="Run the HTTP service under uvicorn")
    p.add_argument("--host", default=None, help="Listen address (default: HOST setting)")
    p.add_argument("--port", type=int, default=None, help="Listen port (default: PORT setting)")
    p.set_defaults(handler=None)

    p = sub.add_parser("batch", help="Run a JSON file of css/xpath/render tasks")
    p.add_argument("file")
    p.set_defaults(handler=_cmd_batch)

    return parser


def main(argv: list[str] | None = None) -> int:
    from extractly.core.exceptions import format_error

    args = build_parser().parse_args(argv)
    if args.command == "serve":
        return _serve(args)

    _setup_logging(args.verbose)

    try:
        output = asyncio.run(args.handler(args))
    except Exception as e:
        print(f"Error: {format_error(e)}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=None if args.compact else 2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
