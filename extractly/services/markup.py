"""HTML -> XHTML normalization for XPath evaluation.

Real-world HTML is rarely well-formed, while XPath wants an XML tree. The
markup is parsed with lxml's forgiving HTML parser, re-serialized as XML
(every tag closed, nesting repaired) and parsed again as XML. The second
parse runs in recover mode, so leftover oddities are dropped instead of
aborting the request.
"""

import logging

import lxml.html
from lxml import etree

from extractly.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)

XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"
XHTML_PREFIX = "x"


def to_xhtml(html: str, namespaced: bool = False) -> str:
    """Serialize tolerantly-parsed ``html`` as well-formed XHTML.

    With ``namespaced`` every element is placed in the XHTML namespace, so
    expressions written with the ``x:`` prefix can match.
    """
    if not html or not html.strip():
        raise ExtractionError("Document is empty")

    # Bytes with a fixed encoding: lxml refuses str input that carries an
    # <?xml ... encoding=...?> declaration
    parser = lxml.html.HTMLParser(encoding="utf-8")
    try:
        root = lxml.html.document_fromstring(html.encode("utf-8"), parser=parser)
    except (etree.ParserError, ValueError) as e:
        raise ExtractionError(f"Unparseable HTML: {e}") from e

    # An XML declaration read as HTML becomes a PI, which is illegal past the prolog
    for pi in list(root.iter(etree.ProcessingInstruction)):
        if pi.target.lower() == "xml" and pi.getparent() is not None:
            pi.getparent().remove(pi)

    # A literal xmlns attribute would put the reparsed tree in a namespace
    for element in root.iter(etree.Element):
        for name in [n for n in element.attrib if n == "xmlns" or n.startswith("xmlns:")]:
            del element.attrib[name]

    if namespaced:
        lxml.html.html_to_xhtml(root)

    return etree.tostring(root, method="xml", encoding="unicode")


def build_document(xhtml: str) -> etree._ElementTree:
    """Parse normalized XHTML into a navigable document."""
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(xhtml.encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise ExtractionError(f"Unparseable XHTML: {e}") from e

    if root is None:
        raise ExtractionError("Document is empty")
    return etree.ElementTree(root)


def normalize(html: str, namespaced: bool = False) -> etree._ElementTree:
    return build_document(to_xhtml(html, namespaced=namespaced))
