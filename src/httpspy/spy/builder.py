"""
HTTP Spy Plan Builders

Fluent helpers assembling expectations and responses into test plans.

Example:
    plan = (
        StubPlanBuilder()
        .expect(request().with_path('/users'), response().with_body('[]'))
        .expect(response=response().with_status(404))
        .build()
    )
"""

from typing import List, Optional

from .matcher import RequestExpectation, request
from .models import Response, response
from .plan import PlanEntry, SequencePlan, StubPlan


class _PlanBuilder:
    def __init__(self):
        self._entries: List[PlanEntry] = []

    def _add(self, expectation: Optional[RequestExpectation], reply: Optional[Response]):
        self._entries.append(PlanEntry(
            expectation if expectation is not None else request(),
            reply if reply is not None else response()
        ))

    def __len__(self) -> int:
        return len(self._entries)


class SequencePlanBuilder(_PlanBuilder):
    """Builds a SequencePlan one expected request at a time."""

    def expect(
        self,
        expectation: Optional[RequestExpectation] = None,
        response: Optional[Response] = None,
        times: int = 1
    ) -> 'SequencePlanBuilder':
        """
        Expect the next request(s) of the sequence.

        Args:
            expectation: Expected request; any request if omitted
            response: Response to send; 200 with empty body if omitted
            times: Number of consecutive requests this entry stands for
        """
        if times < 1:
            raise ValueError(f"times must be >= 1: {times}")
        for _ in range(times):
            self._add(expectation, response)
        return self

    def build(self) -> SequencePlan:
        return SequencePlan(self._entries)


class StubPlanBuilder(_PlanBuilder):
    """Builds a StubPlan; earlier expectations take priority."""

    def expect(
        self,
        expectation: Optional[RequestExpectation] = None,
        response: Optional[Response] = None
    ) -> 'StubPlanBuilder':
        """
        Add a stub entry with lower priority than all previous ones.

        Args:
            expectation: Requests this entry answers; any request if omitted
            response: Response to send; 200 with empty body if omitted
        """
        self._add(expectation, response)
        return self

    def build(self) -> StubPlan:
        return StubPlan(self._entries)
