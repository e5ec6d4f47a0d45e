"""
HTTP Spy Value Expectations

Predicates over a single string value derived from a request (method, path,
body, one header value, ...).

A ValueExpectation is a tagged value: its kind selects the rule applied by
evaluate(), describe() and describe_mismatch(). Expectations are immutable and
safe to evaluate from many service threads at once.

Example:
    expectation = all_of(contains_string('user'), matches_pattern(r'^/users/\\d+$'))
    expectation.matches('/users/42')        # True
    expectation.describe_mismatch('/items') # 'was "/items"'
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

from .compare import compare_json, compare_xml


class ValueKind(str, Enum):
    """Kinds of value expectations."""

    EQUAL = 'equal'
    IGNORE_CASE = 'ignore_case'
    XML_EQUAL = 'xml_equal'
    JSON_EQUAL = 'json_equal'
    CONTAINS = 'contains'
    PATTERN = 'pattern'
    ANY = 'any'
    ALL_OF = 'all_of'
    ANY_OF = 'any_of'
    NOT = 'not'
    CUSTOM = 'custom'


@dataclass(frozen=True)
class ValueExpectation:
    """Expectation on the value of one string attribute."""

    kind: ValueKind
    expected: Optional[str] = None
    parts: Tuple['ValueExpectation', ...] = ()
    predicate: Optional[Callable[[Optional[str]], bool]] = field(default=None, compare=False)
    label: Optional[str] = None

    def matches(self, value: Optional[str]) -> bool:
        """
        Check a value against this expectation.

        Raises:
            StructuralComparisonError: XML/JSON expectation and a side is unparsable
        """
        return evaluate(self, value)

    def describe(self) -> str:
        """Describe the expected value for failure messages."""
        return describe(self)

    def describe_mismatch(self, actual: Optional[str]) -> str:
        """Describe why an actual value does not satisfy this expectation."""
        return describe_mismatch(self, actual)

    def __str__(self) -> str:
        return self.describe()


def _quote(value: Optional[str]) -> str:
    if value is None:
        return 'null'
    return f'"{value}"'


def evaluate(expectation: ValueExpectation, value: Optional[str]) -> bool:
    """Evaluate an expectation against a value."""
    kind = expectation.kind

    if kind == ValueKind.EQUAL:
        return value == expectation.expected

    if kind == ValueKind.IGNORE_CASE:
        if value is None or expectation.expected is None:
            return value is None and expectation.expected is None
        return value.casefold() == expectation.expected.casefold()

    if kind == ValueKind.XML_EQUAL:
        if not expectation.expected:
            return value == expectation.expected
        return not compare_xml(expectation.expected, value)

    if kind == ValueKind.JSON_EQUAL:
        if not expectation.expected:
            return value == expectation.expected
        return not compare_json(expectation.expected, value)

    if kind == ValueKind.CONTAINS:
        return value is not None and expectation.expected in value

    if kind == ValueKind.PATTERN:
        return value is not None and re.search(expectation.expected, value) is not None

    if kind == ValueKind.ANY:
        return True

    if kind == ValueKind.ALL_OF:
        return all(part.matches(value) for part in expectation.parts)

    if kind == ValueKind.ANY_OF:
        return any(part.matches(value) for part in expectation.parts)

    if kind == ValueKind.NOT:
        return not expectation.parts[0].matches(value)

    if kind == ValueKind.CUSTOM:
        return bool(expectation.predicate(value))

    raise ValueError(f"Unknown value expectation kind: {kind}")


def describe(expectation: ValueExpectation) -> str:
    """Describe an expectation."""
    kind = expectation.kind

    if kind == ValueKind.EQUAL:
        return _quote(expectation.expected)
    if kind == ValueKind.IGNORE_CASE:
        return f"{_quote(expectation.expected)} (ignoring case)"
    if kind == ValueKind.XML_EQUAL:
        return f"[equals XML : {_quote(expectation.expected)}]"
    if kind == ValueKind.JSON_EQUAL:
        return f"[equals JSON : {_quote(expectation.expected)}]"
    if kind == ValueKind.CONTAINS:
        return f"a string containing {_quote(expectation.expected)}"
    if kind == ValueKind.PATTERN:
        return f"a string matching pattern {_quote(expectation.expected)}"
    if kind == ValueKind.ANY:
        return "anything"
    if kind == ValueKind.ALL_OF:
        return '(' + ' and '.join(part.describe() for part in expectation.parts) + ')'
    if kind == ValueKind.ANY_OF:
        return '(' + ' or '.join(part.describe() for part in expectation.parts) + ')'
    if kind == ValueKind.NOT:
        return f"not {expectation.parts[0].describe()}"
    if kind == ValueKind.CUSTOM:
        return expectation.label or f"a value satisfying {getattr(expectation.predicate, '__name__', 'predicate')}"

    raise ValueError(f"Unknown value expectation kind: {kind}")


def describe_mismatch(expectation: ValueExpectation, actual: Optional[str]) -> str:
    """Describe how an actual value differs from an expectation."""
    kind = expectation.kind

    if kind == ValueKind.XML_EQUAL and expectation.expected:
        return "was " + "; ".join(compare_xml(expectation.expected, actual))

    if kind == ValueKind.JSON_EQUAL and expectation.expected:
        return "was " + "; ".join(compare_json(expectation.expected, actual))

    if kind == ValueKind.ALL_OF:
        for part in expectation.parts:
            if not part.matches(actual):
                return f"{part.describe()} {part.describe_mismatch(actual)}"

    return f"was {_quote(actual)}"


# Factories

def _require_text(value, name: str):
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}: {value!r}")


def equal_to(value: Optional[str]) -> ValueExpectation:
    """Value equals the given string exactly."""
    _require_text(value, "expected value")
    return ValueExpectation(ValueKind.EQUAL, expected=value)


def equal_to_ignore_case(value: Optional[str]) -> ValueExpectation:
    """Value equals the given string ignoring letter case."""
    _require_text(value, "expected value")
    return ValueExpectation(ValueKind.IGNORE_CASE, expected=value)


def equal_to_xml(value: Optional[str]) -> ValueExpectation:
    """
    Value is an XML document similar to the given one.

    An empty or None expected value matches only an identical actual value.
    """
    _require_text(value, "expected XML")
    return ValueExpectation(ValueKind.XML_EQUAL, expected=value)


def equal_to_json(value: Optional[str]) -> ValueExpectation:
    """
    Value is a JSON document equal to the given one.

    An empty or None expected value matches only an identical actual value.
    """
    _require_text(value, "expected JSON")
    return ValueExpectation(ValueKind.JSON_EQUAL, expected=value)


def contains_string(substring: str) -> ValueExpectation:
    """Value contains the given substring."""
    if substring is None:
        raise ValueError("substring must not be None")
    _require_text(substring, "substring")
    return ValueExpectation(ValueKind.CONTAINS, expected=substring)


def matches_pattern(pattern: str) -> ValueExpectation:
    """
    Value contains a match of the regular expression (re.search semantics).

    Raises:
        ValueError: pattern is not a valid regular expression
    """
    try:
        re.compile(pattern)
    except (re.error, TypeError) as e:
        raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
    return ValueExpectation(ValueKind.PATTERN, expected=pattern)


def any_value() -> ValueExpectation:
    """Any value is accepted."""
    return ValueExpectation(ValueKind.ANY)


def all_of(*expectations: ValueExpectation) -> ValueExpectation:
    """Value satisfies every given expectation."""
    if not expectations:
        raise ValueError("all_of needs at least one expectation")
    return ValueExpectation(ValueKind.ALL_OF, parts=tuple(expectations))


def any_of(*expectations: ValueExpectation) -> ValueExpectation:
    """Value satisfies at least one of the given expectations."""
    if not expectations:
        raise ValueError("any_of needs at least one expectation")
    return ValueExpectation(ValueKind.ANY_OF, parts=tuple(expectations))


def is_not(expectation: ValueExpectation) -> ValueExpectation:
    """Value does not satisfy the given expectation."""
    return ValueExpectation(ValueKind.NOT, parts=(expectation,))


def matching(predicate: Callable[[Optional[str]], bool], description: Optional[str] = None) -> ValueExpectation:
    """
    Value satisfies an arbitrary predicate.

    Args:
        predicate: Function taking the value and returning truthy on match
        description: Text used in failure messages
    """
    if not callable(predicate):
        raise TypeError(f"predicate must be callable: {predicate!r}")
    return ValueExpectation(ValueKind.CUSTOM, predicate=predicate, label=description)


def as_expectation(value) -> ValueExpectation:
    """
    Coerce a shorthand into a ValueExpectation.

    A string means equal_to, a callable means matching; an expectation is
    returned as is.
    """
    if isinstance(value, ValueExpectation):
        return value
    if isinstance(value, str):
        return equal_to(value)
    if callable(value):
        return matching(value)
    raise TypeError(f"Cannot use {value!r} as a value expectation")
