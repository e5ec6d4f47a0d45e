"""
HTTP Spy Test Plans

A test plan decides which response to send for each received request and
judges the recorded traffic afterwards.

Two strategies:
- SequencePlan: requests are expected one by one in declaration order and
  responses are handed out in FIFO order. Single-threaded only.
- StubPlan: the first expectation matching a request selects its response.
  Safe under concurrent service threads.

resolve() never raises for ordinary mismatches: the system under test always
gets a real HTTP response, and every problem is surfaced by verify().
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..common import StructuralComparisonError
from .matcher import RequestExpectation
from .models import Request, Response, diagnostic_response
from .report import VerificationReport

logger = logging.getLogger("httpspy.plan")


def _error_text(error: Exception) -> str:
    if isinstance(error, StructuralComparisonError):
        return str(error)
    return f"{type(error).__name__}: {error}"


@dataclass(frozen=True)
class PlanEntry:
    """A request expectation paired with the response to send for it."""

    expectation: RequestExpectation
    response: Response


@dataclass(frozen=True)
class Interaction:
    """
    One request recorded by a plan.

    position is the request index for sequence plans, and the priority of
    the matched entry (None when unmatched) for stub plans.
    matched tells whether the request satisfied that entry's expectation.
    """

    request: Request
    position: Optional[int]
    matched: bool


class TestPlan(ABC):
    """Base class of test plans."""

    # Not a pytest test class despite the name
    __test__ = False

    def __init__(self, entries: Iterable[PlanEntry]):
        self._entries: Tuple[PlanEntry, ...] = tuple(entries)
        if not self._entries:
            raise ValueError(f"{type(self).__name__} needs at least one expectation")
        self._lock = threading.Lock()
        self._interactions: List[Interaction] = []

    @property
    def entries(self) -> Tuple[PlanEntry, ...]:
        return self._entries

    @property
    def interactions(self) -> List[Interaction]:
        """Snapshot of the recorded interactions in arrival order."""
        with self._lock:
            return list(self._interactions)

    @abstractmethod
    def resolve(self, request: Request) -> Response:
        """Produce the response for a received request and record it."""

    @abstractmethod
    def check(self) -> VerificationReport:
        """Judge recorded traffic without raising."""

    def verify(self):
        """
        Judge recorded traffic against the plan.

        Raises:
            VerificationError: One aggregated failure listing every problem
        """
        self.check().raise_if_failed()

    @abstractmethod
    def reset(self):
        """Forget all recorded traffic so the plan can be replayed."""

    @abstractmethod
    def is_multithreaded(self) -> bool:
        """Whether resolve() may be called from several threads at once."""

    def __len__(self) -> int:
        return len(self._entries)


class SequencePlan(TestPlan):
    """
    Ordered plan: request #i is expected to match expectation #i.

    Responses are positional. The i-th request gets the i-th response even if
    it does not match the i-th expectation; mismatches are only reported by
    verify().

    Example:
        plan = SequencePlan.from_lists(
            [request().with_method('GET'), request().with_method('POST')],
            [response().with_body('R1'), response().with_body('R2')]
        )
    """

    def __init__(self, entries: Iterable[PlanEntry]):
        super().__init__(entries)
        self._responses = deque(entry.response for entry in self._entries)
        self._requests: List[Request] = []

    @classmethod
    def from_lists(
        cls,
        expectations: Sequence[RequestExpectation],
        responses: Sequence[Response]
    ) -> 'SequencePlan':
        """
        Build a plan from parallel lists of expectations and responses.

        Raises:
            ValueError: Lists are empty or of different sizes
        """
        if len(expectations) != len(responses):
            raise ValueError(
                f"Expectations and responses must have the same size: "
                f"{len(expectations)} != {len(responses)}"
            )
        return cls(PlanEntry(e, r) for e, r in zip(expectations, responses))

    @property
    def requests(self) -> List[Request]:
        """Snapshot of the received requests in arrival order."""
        with self._lock:
            return list(self._requests)

    def _matches_at(self, position: int, request: Request) -> bool:
        if position >= len(self._entries):
            return False
        try:
            return self._entries[position].expectation.matches(request)
        except Exception as e:
            # Reported by check()
            logger.error(f"Expectation #{position} cannot be evaluated: {_error_text(e)}")
            return False

    def resolve(self, request: Request) -> Response:
        with self._lock:
            position = len(self._requests)
            self._requests.append(request)
            self._interactions.append(Interaction(request, position, self._matches_at(position, request)))
            if self._responses:
                return self._responses.popleft()
            received = len(self._requests)

        expected = len(self._entries)
        logger.warning(f"No more responses for request #{position}: expected {expected}, received {received}")
        return diagnostic_response(
            f"No more responses: expected {expected}, received {received}; "
            f"actual request: {request}"
        )

    def check(self) -> VerificationReport:
        report = VerificationReport(type(self).__name__)
        requests = self.requests

        if len(requests) != len(self._entries):
            report.add_count_mismatch(len(self._entries), len(requests))

        for position, (entry, received) in enumerate(zip(self._entries, requests)):
            try:
                details = entry.expectation.mismatches(received)
            except Exception as e:
                report.add_error(_error_text(e), received, position)
                continue
            if details:
                report.add_mismatch(position, entry.expectation.describe(), details, received)

        return report

    def reset(self):
        with self._lock:
            self._responses = deque(entry.response for entry in self._entries)
            self._requests = []
            self._interactions = []

    def is_multithreaded(self) -> bool:
        return False


class StubPlan(TestPlan):
    """
    Priority plan: the first declared expectation matching a request wins.

    Requests no expectation matches get a 500 diagnostic response and are
    reported by verify().

    Example:
        plan = StubPlan([
            PlanEntry(request().with_body('Hello'), response().with_body('First')),
            PlanEntry(request().with_method('GET'), response().with_body('Second')),
        ])
    """

    def __init__(self, entries: Iterable[PlanEntry]):
        super().__init__(entries)
        self._unmatched: List[Request] = []
        self._errors: List[Tuple[Request, int, Exception]] = []

    @property
    def unmatched(self) -> List[Request]:
        """Snapshot of the requests no expectation matched."""
        with self._lock:
            return list(self._unmatched)

    def resolve(self, request: Request) -> Response:
        # Entries are an immutable tuple, scanning needs no lock
        for priority, entry in enumerate(self._entries):
            try:
                matched = entry.expectation.matches(request)
            except Exception as e:
                logger.error(f"Expectation #{priority} cannot be evaluated: {_error_text(e)}")
                with self._lock:
                    self._errors.append((request, priority, e))
                continue

            if matched:
                with self._lock:
                    self._interactions.append(Interaction(request, priority, True))
                return entry.response

        logger.warning(f"Unmatched request: {request}")
        with self._lock:
            self._unmatched.append(request)
            self._interactions.append(Interaction(request, None, False))
        return diagnostic_response(f"Unmatched request: {request}")

    def check(self) -> VerificationReport:
        report = VerificationReport(type(self).__name__)
        with self._lock:
            unmatched = list(self._unmatched)
            errors = list(self._errors)

        for received in unmatched:
            report.add_unmatched(received)
        for received, priority, error in errors:
            report.add_error(f"expectation #{priority}: {_error_text(error)}", received)

        return report

    def reset(self):
        with self._lock:
            self._unmatched = []
            self._errors = []
            self._interactions = []

    def is_multithreaded(self) -> bool:
        return True
