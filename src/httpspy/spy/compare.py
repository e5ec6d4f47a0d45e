"""
HTTP Spy Structural Comparison

Deep-equality checks for XML and JSON payloads.

Both functions return the list of differences found (empty means equal) and
raise StructuralComparisonError when either side cannot be parsed.

JSON rules:
- Object key sets must be equal (no extra or missing fields)
- Array elements are compared without regard to order
- Scalars compare by type and value (true is not 1)

XML rules:
- Comments, processing instructions and attribute order are ignored
- Text is whitespace-normalized; whitespace-only text is ignored
- CDATA and plain text are the same
- Namespace prefixes are ignored, namespace URIs are not
- Child elements are paired by tag name, so sibling order is ignored
"""

import json
import xml.etree.ElementTree as ET
from typing import Any, List, Optional

from ..common import StructuralComparisonError


def compare_json(expected: Optional[str], actual: Optional[str]) -> List[str]:
    """
    Compare two JSON documents structurally.

    Args:
        expected: Expected JSON text
        actual: Actual JSON text

    Returns:
        List of human-readable differences, empty if documents are equal

    Raises:
        StructuralComparisonError: Either side is not valid JSON
    """
    try:
        expected_doc = json.loads(expected)
        actual_doc = json.loads(actual)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        raise StructuralComparisonError('JSON', expected, actual, e) from e

    differences: List[str] = []
    _compare_json_values('$', expected_doc, actual_doc, differences)
    return differences


def _render_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def _same_json_scalar(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return expected == actual
    return type(expected) is type(actual) and expected == actual


def _json_equal(expected: Any, actual: Any) -> bool:
    differences: List[str] = []
    _compare_json_values('$', expected, actual, differences)
    return not differences


def _compare_json_values(path: str, expected: Any, actual: Any, differences: List[str]):
    if isinstance(expected, dict) and isinstance(actual, dict):
        for key, value in expected.items():
            child_path = f"{path}.{key}"
            if key not in actual:
                differences.append(f"{child_path}: Expected: {_render_json(value)} but none found")
            else:
                _compare_json_values(child_path, value, actual[key], differences)
        for key, value in actual.items():
            if key not in expected:
                differences.append(f"{path}.{key}: Unexpected: {_render_json(value)}")
        return

    if isinstance(expected, list) and isinstance(actual, list):
        if len(expected) != len(actual):
            differences.append(
                f"{path}[]: Expected {len(expected)} values but got {len(actual)}"
            )

        # Pair every expected element with one equal, not yet paired actual element
        remaining = list(actual)
        missing = []
        for item in expected:
            for index, candidate in enumerate(remaining):
                if _json_equal(item, candidate):
                    del remaining[index]
                    break
            else:
                missing.append(item)

        for item in missing:
            differences.append(f"{path}[]: Expected: {_render_json(item)} but none found")
        for item in remaining:
            differences.append(f"{path}[]: Unexpected: {_render_json(item)}")
        return

    if isinstance(expected, (dict, list)) or isinstance(actual, (dict, list)):
        differences.append(
            f"{path}: Expected: {_render_json(expected)} got: {_render_json(actual)}"
        )
        return

    if not _same_json_scalar(expected, actual):
        differences.append(
            f"{path}: Expected: {_render_json(expected)} got: {_render_json(actual)}"
        )


def compare_xml(expected: Optional[str], actual: Optional[str]) -> List[str]:
    """
    Compare two XML documents structurally.

    Args:
        expected: Expected XML text
        actual: Actual XML text

    Returns:
        List of human-readable differences, empty if documents are similar

    Raises:
        StructuralComparisonError: Either side is not well-formed XML
    """
    try:
        expected_root = ET.fromstring(expected)
        actual_root = ET.fromstring(actual)
    except (ET.ParseError, TypeError, ValueError) as e:
        raise StructuralComparisonError('XML', expected, actual, e) from e

    differences: List[str] = []
    if expected_root.tag != actual_root.tag:
        differences.append(
            f"/: Expected root element <{expected_root.tag}> but was <{actual_root.tag}>"
        )
        return differences

    _compare_elements(f"/{expected_root.tag}", expected_root, actual_root, differences)
    return differences


def _normalize_text(text: Optional[str]) -> str:
    return ' '.join((text or '').split())


def _element_text(element: ET.Element) -> str:
    """Direct text content of an element: its text plus the tails of its children."""
    parts = [_normalize_text(element.text)]
    parts.extend(_normalize_text(child.tail) for child in element)
    return ' '.join(part for part in parts if part)


def _compare_elements(path: str, expected: ET.Element, actual: ET.Element, differences: List[str]):
    # Attributes
    for name, value in expected.attrib.items():
        if name not in actual.attrib:
            differences.append(f"{path}/@{name}: Expected attribute {value!r} but none found")
        elif actual.attrib[name] != value:
            differences.append(
                f"{path}/@{name}: Expected attribute {value!r} but was {actual.attrib[name]!r}"
            )
    for name, value in actual.attrib.items():
        if name not in expected.attrib:
            differences.append(f"{path}/@{name}: Unexpected attribute {value!r}")

    # Text
    expected_text = _element_text(expected)
    actual_text = _element_text(actual)
    if expected_text != actual_text:
        differences.append(f"{path}/text(): Expected {expected_text!r} but was {actual_text!r}")

    # Children, paired by tag name
    remaining = list(actual)
    seen = {}
    for child in expected:
        seen[child.tag] = seen.get(child.tag, 0) + 1
        child_path = f"{path}/{child.tag}[{seen[child.tag]}]"

        partner = next((candidate for candidate in remaining if candidate.tag == child.tag), None)
        if partner is None:
            differences.append(f"{child_path}: Expected element <{child.tag}> but none found")
            continue

        remaining.remove(partner)
        _compare_elements(child_path, child, partner, differences)

    for child in remaining:
        differences.append(f"{path}/{child.tag}: Unexpected element <{child.tag}>")
