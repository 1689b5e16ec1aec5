"""
Decoder for OVAL definition documents.

Maps the subset of the OVAL schema used by vendor advisories onto the typed
records in normalization.models:

    oval_definitions/definitions/definition
        metadata/title, metadata/description
        metadata/reference[@source, @ref_url, @ref_id]
        metadata/advisory/severity
        metadata/advisory/cve[@impact, @href]   (id as text)
        criteria[@operator]/{criteria, criterion[@comment]}

Elements are matched by local name, so the OVAL XML namespaces are optional.
No semantic validation happens here.
"""
import logging
from typing import Iterator, List, Optional
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from normalization.models import Advisory, Criteria, Criterion, CveReference, Operator, Reference

from .base_updater import DocumentParseError

logger = logging.getLogger(__name__)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: Optional[Element], name: str) -> Iterator[Element]:
    if element is None:
        return iter(())
    return (child for child in element if _local(child.tag) == name)


def _child(element: Optional[Element], *path: str) -> Optional[Element]:
    for name in path:
        element = next(_children(element, name), None)
        if element is None:
            return None
    return element


def _text(element: Optional[Element], *path: str) -> str:
    node = _child(element, *path)
    if node is None or node.text is None:
        return ""
    return node.text


def decode_criteria(element: Optional[Element]) -> Criteria:
    """Decode a criteria element and everything below it."""
    if element is None:
        return Criteria()

    return Criteria(
        operator=Operator.parse(element.get("operator")),
        children=tuple(decode_criteria(child) for child in _children(element, "criteria")),
        criterions=tuple(
            Criterion(comment=c.get("comment", ""))
            for c in _children(element, "criterion")
        ),
    )


def decode_definition(element: Element) -> Advisory:
    metadata = _child(element, "metadata")
    advisory = _child(metadata, "advisory")

    return Advisory(
        title=_text(metadata, "title"),
        description=_text(metadata, "description"),
        severity=_text(advisory, "severity"),
        criteria=decode_criteria(_child(element, "criteria")),
        references=tuple(
            Reference(
                source=ref.get("source", ""),
                uri=ref.get("ref_url", ""),
                id=ref.get("ref_id", ""),
            )
            for ref in _children(metadata, "reference")
        ),
        cves=tuple(
            CveReference(
                id=(cve.text or "").strip(),
                impact=cve.get("impact", ""),
                href=cve.get("href", ""),
            )
            for cve in _children(advisory, "cve")
        ),
    )


def decode_advisories(data: bytes) -> List[Advisory]:
    """
    Decode one OVAL document into its advisories.

    Args:
        data: Raw XML bytes

    Returns:
        One Advisory per definition, in document order

    Raises:
        DocumentParseError: If the bytes are not an OVAL definitions document
    """
    try:
        root = ET.fromstring(data)
    except (ParseError, DefusedXmlException, LookupError, ValueError) as e:
        logger.error("could not decode OVAL XML: %s", e)
        raise DocumentParseError(f"could not parse OVAL document: {e}") from e

    if _local(root.tag) != "oval_definitions":
        logger.error("unexpected OVAL root element: %s", root.tag)
        raise DocumentParseError(f"unexpected root element {_local(root.tag)!r}")

    return [
        decode_definition(definition)
        for definition in _children(_child(root, "definitions"), "definition")
    ]
