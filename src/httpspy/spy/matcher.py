"""
HTTP Spy Request Matcher

Request expectations: predicates over a whole received request.

A RequestExpectation is the conjunction of bindings, each one checking a
single aspect of the request:
- Attribute bindings (method, path, body, indexed header value, JSON path)
- Header bindings (some value of the header satisfies the expectation)
- Without-header constraints
- Strict headers (request header names equal the names referenced here)

An expectation without bindings matches every request.

Example:
    expectation = (
        request()
        .with_method('POST')
        .with_body(equal_to_json('{"name": "John"}'))
        .with_header('content-type', contains_string('json'))
    )
    result = expectation.evaluate(received)
    if not result.matched:
        print(result.mismatches)
"""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as jsonpath_parse

from ..common import safe_json_parse
from .models import Request
from .values import ValueExpectation, any_value, as_expectation

ValueLike = Union[ValueExpectation, str, Callable[[Optional[str]], bool]]


@dataclass(frozen=True)
class AttributeBinding:
    """Expectation on one value derived from the request."""

    label: str
    derive: Callable[[Request], Optional[str]] = field(compare=False)
    expectation: ValueExpectation

    def matches(self, request: Request) -> bool:
        return self.expectation.matches(self.derive(request))

    def describe(self) -> str:
        return f"[{self.label} : {self.expectation.describe()}]"

    def describe_mismatch(self, request: Request) -> str:
        return self.expectation.describe_mismatch(self.derive(request))


@dataclass(frozen=True)
class HeaderBinding:
    """Request has the header and at least one of its values satisfies the expectation."""

    name: str
    expectation: ValueExpectation

    def matches(self, request: Request) -> bool:
        values = request.header_values(self.name)
        if not values:
            return False
        return any(self.expectation.matches(value) for value in values)

    def describe(self) -> str:
        return f"[header {self.name} : {self.expectation.describe()}]"

    def describe_mismatch(self, request: Request) -> str:
        values = request.header_values(self.name)
        if values is None:
            return f"was no such header: {self.name}"
        return f"was {values}"


@dataclass(frozen=True)
class WithoutHeaderBinding:
    """Request does not have the header."""

    name: str

    def matches(self, request: Request) -> bool:
        return self.name not in request.headers

    def describe(self) -> str:
        return f"[without header : {self.name}]"

    def describe_mismatch(self, request: Request) -> str:
        return f"was {self.name}: {request.header_values(self.name)}"


@dataclass(frozen=True)
class StrictHeadersBinding:
    """Request header names are exactly the given set."""

    names: FrozenSet[str]

    def matches(self, request: Request) -> bool:
        return request.header_names == self.names

    def describe(self) -> str:
        return f"[strict headers : {sorted(self.names)}]"

    def describe_mismatch(self, request: Request) -> str:
        unexpected = sorted(request.header_names - self.names)
        missing = sorted(self.names - request.header_names)
        details = []
        if unexpected:
            details.append(f"unexpected headers {unexpected}")
        if missing:
            details.append(f"missing headers {missing}")
        return f"was {sorted(request.header_names)} ({', '.join(details)})"


@dataclass
class MatchResult:
    """Result of matching a request against an expectation."""

    matched: bool
    expectation: str
    mismatches: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'matched': self.matched,
            'expectation': self.expectation,
            'mismatches': list(self.mismatches),
        }


def _header_value_at(name: str, index: int) -> Callable[[Request], Optional[str]]:
    def derive(request: Request) -> Optional[str]:
        values = request.header_values(name)
        if values is None or index >= len(values):
            return None
        return values[index]
    return derive


def _json_path_value(expression: str) -> Callable[[Request], Optional[str]]:
    compiled = jsonpath_parse(expression)

    def derive(request: Request) -> Optional[str]:
        document = safe_json_parse(request.body)
        if document is None:
            return None
        found = compiled.find(document)
        if not found:
            return None
        value = found[0].value
        if isinstance(value, str):
            return value
        return json.dumps(value)
    return derive


def _check_header_name(name: str):
    if name is None or not str(name).strip():
        raise ValueError("headerName must not be blank")


@dataclass(frozen=True)
class RequestExpectation:
    """
    Predicate over a received request.

    Every with_* method returns a new expectation; instances are immutable
    and can be shared between plans and threads.
    """

    bindings: Tuple[Any, ...] = ()
    referenced_headers: FrozenSet[str] = frozenset()
    strict_headers: bool = False

    def _with(self, binding, header: Optional[str] = None) -> 'RequestExpectation':
        referenced = self.referenced_headers
        if header is not None:
            referenced = referenced | {header}
        return replace(self, bindings=self.bindings + (binding,), referenced_headers=referenced)

    def with_attribute(
        self,
        label: str,
        derive: Callable[[Request], Optional[str]],
        expectation: ValueLike
    ) -> 'RequestExpectation':
        """
        Expect a value derived from the request.

        Args:
            label: Name of the attribute in failure messages
            derive: Function extracting the value from a request
            expectation: Expected value
        """
        if not label or not label.strip():
            raise ValueError("label must not be blank")
        return self._with(AttributeBinding(label, derive, as_expectation(expectation)))

    def with_method(self, expectation: ValueLike) -> 'RequestExpectation':
        """Expect the HTTP method."""
        return self.with_attribute('method', lambda request: request.method, expectation)

    def with_path(self, expectation: ValueLike) -> 'RequestExpectation':
        """Expect the HTTP path, relative to the spy path."""
        return self.with_attribute('path', lambda request: request.path, expectation)

    def with_body(self, expectation: ValueLike) -> 'RequestExpectation':
        """Expect the request body."""
        return self.with_attribute('body', lambda request: request.body, expectation)

    def with_header(self, name: str, expectation: Optional[ValueLike] = None) -> 'RequestExpectation':
        """
        Expect a header to be present.

        Args:
            name: Header name, case-sensitive
            expectation: Expected value of at least one of the header values;
                any value if omitted
        """
        _check_header_name(name)
        value_expectation = any_value() if expectation is None else as_expectation(expectation)
        return self._with(HeaderBinding(name, value_expectation), header=name)

    def with_header_value(self, name: str, index: int, expectation: ValueLike) -> 'RequestExpectation':
        """
        Expect the value at a given position of a multi-valued header.

        Args:
            name: Header name, case-sensitive
            index: Zero-based position among the values of the header
            expectation: Expected value at that position
        """
        _check_header_name(name)
        if index < 0:
            raise ValueError(f"valueIndex must be >= 0: {index}")
        binding = AttributeBinding(
            f"header {name} - value index {index}",
            _header_value_at(name, index),
            as_expectation(expectation)
        )
        return self._with(binding, header=name)

    def with_json_path(self, expression: str, expectation: ValueLike) -> 'RequestExpectation':
        """
        Expect the value found at a JSONPath expression in a JSON body.

        Strings are compared as is, other JSON values in their JSON text
        form. A body that is not JSON or has no value there yields null.

        Raises:
            ValueError: expression is not valid JSONPath
        """
        try:
            derive = _json_path_value(expression)
        except JSONPathError as e:
            raise ValueError(f"Invalid JSONPath expression {expression!r}: {e}") from e
        return self._with(AttributeBinding(f"body {expression}", derive, as_expectation(expectation)))

    def without_header(self, name: str) -> 'RequestExpectation':
        """Expect a header to be absent."""
        _check_header_name(name)
        return self._with(WithoutHeaderBinding(name))

    def with_strict_headers(self) -> 'RequestExpectation':
        """Expect no headers other than those referenced by with_header calls."""
        return replace(self, strict_headers=True)

    def constraints(self) -> Tuple[Any, ...]:
        """All checks this expectation performs, in declaration order."""
        if self.strict_headers:
            return self.bindings + (StrictHeadersBinding(self.referenced_headers),)
        return self.bindings

    def matches(self, request: Request) -> bool:
        """
        Check a request against this expectation.

        Raises:
            StructuralComparisonError: An XML/JSON binding cannot parse its input
        """
        return all(constraint.matches(request) for constraint in self.constraints())

    def mismatches(self, request: Request) -> List[str]:
        """Describe every check the request fails, in declaration order."""
        return [
            f"{constraint.describe()} {constraint.describe_mismatch(request)}"
            for constraint in self.constraints()
            if not constraint.matches(request)
        ]

    def evaluate(self, request: Request) -> MatchResult:
        """Check a request and describe every failed binding."""
        mismatches = self.mismatches(request)
        return MatchResult(matched=not mismatches, expectation=self.describe(), mismatches=mismatches)

    def describe(self) -> str:
        """Describe this expectation for failure messages."""
        constraints = self.constraints()
        if not constraints:
            return "any request"
        return ' and '.join(constraint.describe() for constraint in constraints)

    def __str__(self) -> str:
        return self.describe()


def request() -> RequestExpectation:
    """Start a request expectation that matches any request."""
    return RequestExpectation()
