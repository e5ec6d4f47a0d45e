"""
HTTP Spy Request and Response Models

Immutable value objects exchanged between the spy server and test plans.

A Request is captured once from the wire and never changes. A Response is
declared once by the test author and may be served to many requests, so it
is immutable too: every with_* method returns a new Response.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import timedelta
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..common import (
    DelayInterruptedError,
    freeze_headers,
    join_header_values,
    truncate,
)

HTTP_OK = 200
HTTP_INTERNAL_SERVER_ERROR = 500


@dataclass(frozen=True)
class Request:
    """HTTP request actually received by the spy."""

    method: str
    path: str
    body: str = ""
    headers: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'headers', MappingProxyType(freeze_headers(self.headers)))
        if self.body is None:
            object.__setattr__(self, 'body', "")

    def header_values(self, name: str) -> Optional[List[str]]:
        """
        Get all values of a header.

        Args:
            name: Header name, case-sensitive

        Returns:
            List of values in received order, or None if no such header
        """
        values = self.headers.get(name)
        if not values:
            return None
        return list(values)

    @property
    def header_names(self) -> frozenset:
        """Set of header names present in this request."""
        return frozenset(self.headers.keys())

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary."""
        return {
            'method': self.method,
            'path': self.path,
            'headers': {name: list(values) for name, values in self.headers.items()},
            'body': self.body,
        }

    def __str__(self) -> str:
        headers = {name: list(values) for name, values in self.headers.items()}
        return f"{self.method} {self.path} headers={headers} body={truncate(self.body)!r}"


@dataclass(frozen=True)
class Response:
    """
    HTTP response the spy sends back.

    Example:
        response = Response().with_status(201).with_header('h1', 'v1').with_body('created')
    """

    status_code: int = HTTP_OK
    body: Optional[str] = ""
    headers: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    delay_ms: int = 0

    def __post_init__(self):
        if isinstance(self.status_code, bool) or not isinstance(self.status_code, int):
            raise TypeError(f"statusCode must be an int: {self.status_code!r}")
        if self.status_code <= 0:
            raise ValueError(f"statusCode must be positive: {self.status_code}")
        if self.delay_ms < 0:
            raise ValueError(f"delay must not be negative: {self.delay_ms}")
        object.__setattr__(
            self, 'headers', MappingProxyType(freeze_headers(self.headers, require_values=True))
        )

    def with_status(self, status_code: int) -> 'Response':
        """Return a copy with the given status code."""
        return replace(self, status_code=status_code)

    def with_body(self, body: Optional[str]) -> 'Response':
        """Return a copy with the given body."""
        return replace(self, body=body)

    def with_header(self, name: str, value: str) -> 'Response':
        """
        Return a copy with one more header value.

        Calling this repeatedly with the same name accumulates values for
        that header in call order.
        """
        if name is None or not str(name).strip():
            raise ValueError("headerName must not be blank")
        if value is None:
            raise ValueError(f"headerValue must not be None, header: {name}")

        headers = {key: list(values) for key, values in self.headers.items()}
        headers.setdefault(name, []).append(value)
        return replace(self, headers=headers)

    def with_delay(self, delay: Union[int, float, timedelta]) -> 'Response':
        """
        Return a copy that is sent after a delay.

        Args:
            delay: Milliseconds, or a timedelta
        """
        if isinstance(delay, timedelta):
            delay_ms = int(delay.total_seconds() * 1000)
        else:
            delay_ms = int(delay)
        return replace(self, delay_ms=delay_ms)

    def wire_headers(self) -> Dict[str, str]:
        """Headers as sent on the wire: all values of a name joined by commas."""
        return {name: join_header_values(values) for name, values in self.headers.items()}

    def wait_delay(self, cancel_event: Optional[threading.Event] = None) -> None:
        """
        Block for the configured delay.

        Args:
            cancel_event: Event that aborts the wait when set

        Raises:
            DelayInterruptedError: cancel_event was set before the delay elapsed
        """
        if self.delay_ms <= 0:
            return

        event = cancel_event or threading.Event()
        if event.wait(self.delay_ms / 1000):
            raise DelayInterruptedError(self.delay_ms)

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary."""
        return {
            'status_code': self.status_code,
            'body': self.body,
            'headers': {name: list(values) for name, values in self.headers.items()},
            'delay_ms': self.delay_ms,
        }


def response() -> Response:
    """Start a response declaration: 200, empty body, no headers, no delay."""
    return Response()


def diagnostic_response(message: str) -> Response:
    """Build the 500 response a plan sends when it has nothing better to say."""
    return Response(status_code=HTTP_INTERNAL_SERVER_ERROR, body=message)
