"""
HTTP Spy Errors

Exception hierarchy shared by the spy server, test plans and matchers.

Three families are kept apart:
- Configuration and state errors raised synchronously at the faulty call
- Structural comparison errors raised by a broken XML/JSON expectation
- Verification errors raised once by verify() with every discrepancy found
"""

from typing import Optional


class HttpSpyError(Exception):
    """Base class for all HTTP Spy errors."""


class ConfigurationError(HttpSpyError):
    """Spy or plan was configured in a way that cannot work."""


class PlanNotSetError(ConfigurationError):
    """An operation needs a test plan but none is installed."""

    def __init__(self, message: str = "Test plan is not set"):
        super().__init__(message)


class PlanAlreadySetError(ConfigurationError):
    """A test plan is installed already; reset() the spy first."""

    def __init__(self, message: str = "Test plan is already set"):
        super().__init__(message)


class ThreadingConfigurationError(ConfigurationError):
    """Plan does not support the configured number of service threads."""


class PlanDocumentError(ConfigurationError):
    """A YAML plan document could not be turned into a test plan."""


class SpyStateError(HttpSpyError):
    """Operation is not allowed in the current lifecycle state of the spy."""


class StructuralComparisonError(HttpSpyError):
    """
    Expected or actual value cannot be parsed in the declared format.

    Raised instead of a match/no-match answer: it means the expectation is
    broken, not that the test failed.
    """

    def __init__(self, format_name: str, expected: Optional[str], actual: Optional[str], cause: Exception):
        self.format_name = format_name
        self.expected = expected
        self.actual = actual
        self.cause = cause
        super().__init__(
            f"Cannot compare {format_name}: expected value {expected!r} "
            f"and actual value {actual!r} ({cause})"
        )


class DelayInterruptedError(HttpSpyError):
    """Response delay was cut short because the spy is shutting down."""

    def __init__(self, delay_ms: int):
        self.delay_ms = delay_ms
        super().__init__(f"Response delay of {delay_ms} ms interrupted by shutdown")


class VerificationError(AssertionError, HttpSpyError):
    """
    Recorded traffic does not satisfy the test plan.

    One instance carries every discrepancy found by a verify() call.
    """

    def __init__(self, report):
        self.report = report
        super().__init__(report.render())
