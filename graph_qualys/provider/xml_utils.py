"""XML helpers for Qualys request bodies and responses."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Any, Iterable
from xml.sax.saxutils import escape

XMLParseError = ET.ParseError

_INT_RE = re.compile(r"^-?(0|[1-9][0-9]*)$")
_ATTR_ENTITIES = {'"': "&quot;"}


def _coerce(text: str) -> Any:
    if _INT_RE.match(text):
        return int(text)
    if text == "true":
        return True
    if text == "false":
        return False
    return text


def _element_to_value(element: ET.Element) -> Any:
    children = list(element)
    if not children:
        text = (element.text or "").strip()
        return _coerce(text) if text else None

    result: dict[str, Any] = {}
    for child in children:
        value = _element_to_value(child)
        if child.tag in result:
            existing = result[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[child.tag] = [existing, value]
        else:
            result[child.tag] = value
    return result


def parse_xml(document: str | bytes) -> dict[str, Any]:
    """Parse an XML document into nested dicts keyed by the root tag.

    Repeated sibling tags become lists, attributes are dropped and leaf text
    is coerced (integers, ``true``/``false``). Callers should pass list-ish
    values through :func:`to_list` since a single child is not wrapped.
    """
    if isinstance(document, str):
        # ElementTree rejects str input that carries an encoding declaration
        document = document.encode("utf-8")
    root = ET.fromstring(document)
    return {root.tag: _element_to_value(root)}


def to_list(value: Any) -> list:
    """Normalize a possibly-absent, possibly-single value into a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def build_criteria_xml(criteria: Iterable[tuple[str, str, Any]]) -> str:
    """Render ``(field, operator, value)`` triples as a ``<filters>`` block."""
    parts = [
        f'<Criteria field="{escape(field, _ATTR_ENTITIES)}" '
        f'operator="{escape(operator, _ATTR_ENTITIES)}">{escape(str(value))}</Criteria>'
        for field, operator, value in criteria
    ]
    if not parts:
        return ""
    return "<filters>" + "".join(parts) + "</filters>"


def build_service_request(limit: int, offset: int | None = None, filters_xml: str = "") -> str:
    """Build a ``ServiceRequest`` body with pagination preferences."""
    preferences = f"<limitResults>{limit}</limitResults>"
    if offset is not None:
        preferences += f"<startFromOffset>{offset}</startFromOffset>"
    return (
        "<ServiceRequest>"
        f"<preferences>{preferences}</preferences>"
        f"{filters_xml}"
        "</ServiceRequest>"
    )
