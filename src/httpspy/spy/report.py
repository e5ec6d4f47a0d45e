"""
HTTP Spy Verification Report

Collects every discrepancy a verify() call finds and turns them into one
failure, so a single test failure tells everything that went wrong.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..common import VerificationError
from .models import Request


@dataclass
class RequestMismatch:
    """A received request that does not match the expectation at its position."""

    position: int
    expectation: str
    details: List[str]
    request: Request

    def render(self) -> str:
        lines = [
            f"Request #{self.position} should match expectation",
            f"   Expected: {self.expectation}",
        ]
        for detail in self.details:
            lines.append(f"   but: {detail}")
        lines.append(f"   Actual request: {self.request}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position,
            'expectation': self.expectation,
            'details': list(self.details),
            'request': self.request.to_dict(),
        }


@dataclass
class ExpectationError:
    """An expectation that could not be evaluated, e.g. malformed XML/JSON."""

    message: str
    request: Request
    position: Optional[int] = None

    def render(self) -> str:
        where = f" at request #{self.position}" if self.position is not None else ""
        return f"Expectation error{where}: {self.message}\n   Actual request: {self.request}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position,
            'message': self.message,
            'request': self.request.to_dict(),
        }


@dataclass
class VerificationReport:
    """
    Aggregated outcome of verifying a test plan.

    Example:
        report = plan.check()
        if report.failed:
            print(report.render())
        report.raise_if_failed()
    """

    plan_name: str
    count_mismatch: Optional[Tuple[int, int]] = None
    mismatches: List[RequestMismatch] = field(default_factory=list)
    unmatched: List[Request] = field(default_factory=list)
    errors: List[ExpectationError] = field(default_factory=list)

    def add_count_mismatch(self, expected: int, received: int):
        """Record that the number of received requests differs from the plan."""
        self.count_mismatch = (expected, received)

    def add_mismatch(self, position: int, expectation: str, details: List[str], request: Request):
        """Record a request that does not match the expectation at its position."""
        self.mismatches.append(RequestMismatch(position, expectation, list(details), request))

    def add_unmatched(self, request: Request):
        """Record a request no expectation matched."""
        self.unmatched.append(request)

    def add_error(self, message: str, request: Request, position: Optional[int] = None):
        """Record an expectation that failed to evaluate."""
        self.errors.append(ExpectationError(message, request, position))

    @property
    def problem_count(self) -> int:
        count = len(self.mismatches) + len(self.errors)
        if self.count_mismatch is not None:
            count += 1
        if self.unmatched:
            count += 1
        return count

    @property
    def failed(self) -> bool:
        return self.problem_count > 0

    def render(self) -> str:
        """Render all problems as one failure message."""
        if not self.failed:
            return f"{self.plan_name}: all expectations met"

        sections = []
        if self.count_mismatch is not None:
            expected, received = self.count_mismatch
            sections.append(
                f"Number of received requests does not match the plan: "
                f"expected {expected}, received {received}"
            )
        for mismatch in self.mismatches:
            sections.append(mismatch.render())
        if self.unmatched:
            lines = [f"Unmatched requests received: {len(self.unmatched)}"]
            lines.extend(f"   {request}" for request in self.unmatched)
            sections.append("\n".join(lines))
        for error in self.errors:
            sections.append(error.render())

        header = f"{self.plan_name} verification failed with {len(sections)} problem(s):"
        body = "\n".join(f"{index}) {section}" for index, section in enumerate(sections, start=1))
        return f"{header}\n{body}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = {
            'plan': self.plan_name,
            'failed': self.failed,
            'problem_count': self.problem_count,
            'mismatches': [m.to_dict() for m in self.mismatches],
            'unmatched': [r.to_dict() for r in self.unmatched],
            'errors': [e.to_dict() for e in self.errors],
        }
        if self.count_mismatch is not None:
            data['count_mismatch'] = {
                'expected': self.count_mismatch[0],
                'received': self.count_mismatch[1],
            }
        return data

    def raise_if_failed(self):
        """
        Raise one aggregated failure if anything went wrong.

        Raises:
            VerificationError: The report holds at least one problem
        """
        if self.failed:
            raise VerificationError(self)
