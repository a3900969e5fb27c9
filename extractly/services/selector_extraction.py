"""CSS and XPath selection over static markup.

CSS selection runs on BeautifulSoup, which tolerates broken markup on its
own. XPath runs on the normalized XHTML document from
:mod:`extractly.services.markup`; when the plain expression is rejected it
is evaluated once more against the XHTML-namespaced document with the ``x``
prefix bound.
"""
from __future__ import annotations
import logging
from typing import Any, Literal
from bs4 import BeautifulSoup
from lxml import etree
from soupsieve import SelectorSyntaxError

from extractly.core.exceptions import ExtractionError
from extractly.services.markup import XHTML_NAMESPACE, XHTML_PREFIX, normalize

logger = logging.getLogger(__name__)

XPathOutput = Literal["value", "markup"]


def extract_by_css(html: str, selector: str) -> list[str]:
    """Trimmed text content of every element matching ``selector``.

    Args:
        html: Raw HTML string
        selector: CSS selector (e.g., "div.product-title", "h1", "a.nav-link")

    Returns:
        One string per matched element, in document order
    """
    soup = BeautifulSoup(html or "", "lxml")
    try:
        elements = soup.select(selector)
    except (SelectorSyntaxError, ValueError, NotImplementedError) as e:
        raise ExtractionError(f"Invalid CSS selector {selector!r}: {e}") from e
    return [el.get_text().strip() for el in elements]


def node_value(node: Any) -> str:
    """Trimmed value of an XPath result item.

    Text and attribute results come back from lxml as strings; elements
    contribute their text content.
    """
    if isinstance(node, str):
        return node.strip()
    # Comments and PIs subclass _Element but have no descendant text
    if isinstance(node, (etree._Comment, etree._ProcessingInstruction)):
        return (node.text or "").strip()
    if isinstance(node, etree._Element):
        return "".join(node.itertext()).strip()
    return node_markup(node).strip()


def node_markup(node: Any) -> str:
    """The node's own string form: markup for elements, raw text otherwise."""
    if isinstance(node, etree._Element):
        return etree.tostring(node, encoding="unicode", with_tail=False)
    if isinstance(node, etree._ElementUnicodeResult) and node.is_attribute:
        return f'{node.attrname}="{node}"'
    if isinstance(node, str):
        return str(node)
    if isinstance(node, bool):
        return "true" if node else "false"
    if isinstance(node, float) and node.is_integer():
        return str(int(node))
    return str(node)


def evaluate_xpath(html: str, xpath: str) -> list[Any]:
    """Raw XPath results, with the XHTML-namespace retry."""
    document = normalize(html)
    try:
        results = document.xpath(xpath)
    except etree.XPathError as first:
        logger.debug(f"XPath {xpath!r} rejected ({first}), retrying with XHTML namespace")
        namespaced = normalize(html, namespaced=True)
        try:
            results = namespaced.xpath(xpath, namespaces={XHTML_PREFIX: XHTML_NAMESPACE})
        except etree.XPathError as e:
            raise ExtractionError(f"Invalid XPath {xpath!r}: {e}") from e

    # count(), string() and friends return a scalar
    if not isinstance(results, list):
        return [results]
    return results


def extract_by_xpath(html: str, xpath: str, output: XPathOutput = "value") -> list[str]:
    """Extract content matching an XPath expression.

    Args:
        html: Raw HTML string
        xpath: XPath expression (e.g., "//div[@class='price']/text()")
        output: "value" for trimmed text/attribute values, "markup" for
            each node's string form

    Returns:
        One string per result item, in document order
    """
    convert = node_markup if output == "markup" else node_value
    return [convert(node) for node in evaluate_xpath(html, xpath)]
