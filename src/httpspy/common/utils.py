"""
HTTP Spy Common Utilities

Shared helpers for header multimaps, HTTP paths and text payloads.
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

HeaderValues = Union[str, Iterable[str]]

PATH_SEPARATOR = "/"


def safe_json_parse(json_string: Optional[str], default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        document = safe_json_parse(request.body, default={})
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def freeze_headers(
    headers: Optional[Mapping[str, HeaderValues]],
    require_values: bool = False
) -> Dict[str, Tuple[str, ...]]:
    """
    Copy a header multimap into an insertion-ordered dict of value tuples.

    A single string value is accepted as shorthand for a one-element list.

    Args:
        headers: Mapping of header name to one value or a list of values
        require_values: Reject blank names, empty value lists and None values

    Returns:
        New dict mapping each header name to a tuple of values

    Raises:
        ValueError: require_values is set and a header is malformed
    """
    frozen: Dict[str, Tuple[str, ...]] = {}
    if not headers:
        return frozen

    for name, values in headers.items():
        if isinstance(values, str):
            values = (values,)
        values = tuple(values) if values is not None else ()

        if require_values:
            if name is None or not str(name).strip():
                raise ValueError("headerName must not be blank")
            if not values:
                raise ValueError(f"headerValues must not be empty, header: {name}")
            if any(value is None for value in values):
                raise ValueError(f"headerValue must not be None, header: {name}")

        frozen[name] = values

    return frozen


def headers_from_pairs(pairs: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    """
    Group raw (name, value) header pairs into an ordered multimap.

    Order of first appearance of each name and order of values within a name
    are preserved as received.
    """
    grouped: Dict[str, List[str]] = {}
    for name, value in pairs:
        grouped.setdefault(name, []).append(value)
    return grouped


def join_header_values(values: Iterable[str]) -> str:
    """Combine multiple values of one header into a single comma-separated value (RFC 7230, 3.2.2)."""
    return ",".join(values)


def normalize_path(path: Optional[str]) -> str:
    """
    Normalize the HTTP path prefix the spy is served on.

    Empty or None becomes "/". Otherwise the path gets a leading and a
    trailing slash: "api/v1" -> "/api/v1/".

    Raises:
        ValueError: path contains spaces
    """
    if not path:
        return PATH_SEPARATOR

    if " " in path:
        raise ValueError(f"HTTP path must not contain spaces: {path}")

    normalized = path
    if not normalized.startswith(PATH_SEPARATOR):
        normalized = PATH_SEPARATOR + normalized
    if not normalized.endswith(PATH_SEPARATOR):
        normalized = normalized + PATH_SEPARATOR
    return normalized


def decode_body(body: Optional[bytes], charset: Optional[str] = None) -> str:
    """
    Decode a request body to text.

    Uses the charset announced by the client when Python knows it, UTF-8
    otherwise. Undecodable bytes are replaced rather than rejected.
    """
    if not body:
        return ""

    encoding = charset or "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    """Extract the charset parameter from a Content-Type header value."""
    if not content_type:
        return None

    for param in content_type.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip().strip('"')
    return None


def truncate(text: Optional[str], limit: int = 500) -> str:
    """Shorten long payloads for log lines."""
    if text is None:
        return ""
    if len(text) > limit:
        return text[:limit] + "... [truncated]"
    return text
