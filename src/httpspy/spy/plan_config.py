"""
HTTP Spy Plan Documents

YAML declarations of test plans, for running a spy outside a test suite.

Example document:
    plan: stub
    expectations:
      - request:
          method: GET
          path: {pattern: '^/users/\\d+$'}
          headers:
            accept: {contains: json}
        response:
          status: 200
          body: '{"id": 1}'
          headers:
            content-type: application/json
      - response:
          status: 404

Value specs:
- a plain string means equal_to
- null means any value (headers only)
- a mapping with exactly one of: equal_to, equal_to_ignore_case,
  equal_to_xml, equal_to_json, contains, pattern, any
- numbers in a mapping compare as text; equal_to_json also takes a YAML
  mapping or list
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from ..common import PlanDocumentError
from .builder import SequencePlanBuilder, StubPlanBuilder
from .matcher import RequestExpectation, request
from .models import Response, response
from .plan import TestPlan
from .values import (
    ValueExpectation,
    any_value,
    contains_string,
    equal_to,
    equal_to_ignore_case,
    equal_to_json,
    equal_to_xml,
    matches_pattern,
)

PLAN_KINDS = ('stub', 'sequence')

VALUE_SPEC_FACTORIES = {
    'equal_to': equal_to,
    'equal_to_ignore_case': equal_to_ignore_case,
    'equal_to_xml': equal_to_xml,
    'equal_to_json': equal_to_json,
    'contains': contains_string,
    'pattern': matches_pattern,
}

REQUEST_KEYS = {
    'method', 'path', 'body', 'headers', 'header_values',
    'json_path', 'without_headers', 'strict_headers',
}
RESPONSE_KEYS = {'status', 'body', 'headers', 'delay_ms'}


def parse_value_spec(spec: Any, where: str) -> ValueExpectation:
    """
    Turn a value spec from a plan document into a ValueExpectation.

    Raises:
        PlanDocumentError: Spec is not a string, null or a one-key mapping
    """
    if spec is None:
        return any_value()
    if isinstance(spec, (str, int, float)) and not isinstance(spec, bool):
        return equal_to(str(spec))

    if not isinstance(spec, dict) or len(spec) != 1:
        raise PlanDocumentError(f"{where}: value spec must be a string or a mapping with one key, got {spec!r}")

    kind, argument = next(iter(spec.items()))
    if kind == 'any':
        return any_value()
    if kind not in VALUE_SPEC_FACTORIES:
        raise PlanDocumentError(
            f"{where}: unknown value spec {kind!r}, "
            f"expected one of {', '.join(sorted(VALUE_SPEC_FACTORIES))}, any"
        )

    # Scalars compare as text, as in the bare form; JSON may be written as YAML
    if isinstance(argument, (int, float)) and not isinstance(argument, bool):
        argument = str(argument)
    elif kind == 'equal_to_json' and isinstance(argument, (dict, list)):
        argument = json.dumps(argument)

    try:
        return VALUE_SPEC_FACTORIES[kind](argument)
    except (TypeError, ValueError) as e:
        raise PlanDocumentError(f"{where}: {e}") from e


def _check_keys(data: Dict[str, Any], allowed: set, where: str):
    unknown = set(data) - allowed
    if unknown:
        raise PlanDocumentError(f"{where}: unknown keys {', '.join(sorted(unknown))}")


@dataclass
class ExpectationSpec:
    """One entry of a plan document."""

    request: Dict[str, Any] = field(default_factory=dict)
    response: Dict[str, Any] = field(default_factory=dict)
    times: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str = "expectation") -> 'ExpectationSpec':
        """Create ExpectationSpec from dictionary."""
        if not isinstance(data, dict):
            raise PlanDocumentError(f"{where}: must be a mapping, got {data!r}")
        _check_keys(data, {'request', 'response', 'times'}, where)

        times = data.get('times', 1)
        if isinstance(times, bool) or not isinstance(times, int) or times < 1:
            raise PlanDocumentError(f"{where}: times must be a positive integer, got {times!r}")

        return cls(
            request=data.get('request') or {},
            response=data.get('response') or {},
            times=times
        )

    def build_expectation(self, where: str = "expectation") -> RequestExpectation:
        """Build the request expectation declared by this entry."""
        spec = self.request
        where = f"{where}.request"
        if not isinstance(spec, dict):
            raise PlanDocumentError(f"{where}: must be a mapping")
        _check_keys(spec, REQUEST_KEYS, where)

        try:
            return self._build_expectation(spec, where)
        except ValueError as e:
            raise PlanDocumentError(f"{where}: {e}") from e

    @staticmethod
    def _build_expectation(spec: Dict[str, Any], where: str) -> RequestExpectation:
        expectation = request()
        if 'method' in spec:
            expectation = expectation.with_method(parse_value_spec(spec['method'], f"{where}.method"))
        if 'path' in spec:
            expectation = expectation.with_path(parse_value_spec(spec['path'], f"{where}.path"))
        if 'body' in spec:
            expectation = expectation.with_body(parse_value_spec(spec['body'], f"{where}.body"))

        for name, value in (spec.get('headers') or {}).items():
            expectation = expectation.with_header(name, parse_value_spec(value, f"{where}.headers.{name}"))

        for name, values in (spec.get('header_values') or {}).items():
            if not isinstance(values, list):
                raise PlanDocumentError(f"{where}.header_values.{name}: must be a list")
            for index, value in enumerate(values):
                expectation = expectation.with_header_value(
                    name, index, parse_value_spec(value, f"{where}.header_values.{name}[{index}]")
                )

        for expression, value in (spec.get('json_path') or {}).items():
            expectation = expectation.with_json_path(
                expression, parse_value_spec(value, f"{where}.json_path.{expression}")
            )

        for name in spec.get('without_headers') or []:
            expectation = expectation.without_header(name)

        if spec.get('strict_headers'):
            expectation = expectation.with_strict_headers()

        return expectation

    def build_response(self, where: str = "expectation") -> Response:
        """Build the response declared by this entry."""
        spec = self.response
        where = f"{where}.response"
        if not isinstance(spec, dict):
            raise PlanDocumentError(f"{where}: must be a mapping")
        _check_keys(spec, RESPONSE_KEYS, where)

        try:
            reply = response().with_status(spec.get('status', 200))
            if 'body' in spec:
                body = spec['body']
                # Structured YAML bodies are sent as JSON
                if body is not None and not isinstance(body, str):
                    body = json.dumps(body)
                reply = reply.with_body(body)
            for name, values in (spec.get('headers') or {}).items():
                if not isinstance(values, list):
                    values = [values]
                for value in values:
                    reply = reply.with_header(name, str(value))
            if 'delay_ms' in spec:
                reply = reply.with_delay(spec['delay_ms'])
        except (TypeError, ValueError) as e:
            raise PlanDocumentError(f"{where}: {e}") from e

        return reply


@dataclass
class PlanDocument:
    """
    A test plan declared in YAML.

    Example:
        plan = PlanDocument.from_yaml('plan.yaml').build()
        spy.test_plan(plan)
    """

    plan: str = 'stub'
    expectations: List[ExpectationSpec] = field(default_factory=list)
    source: Optional[str] = None

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'PlanDocument':
        """Load plan document from YAML file."""
        try:
            with open(yaml_path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PlanDocumentError(f"{yaml_path}: invalid YAML: {e}") from e

        document = cls.from_dict(data)
        document.source = yaml_path
        return document

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlanDocument':
        """Create plan document from dictionary."""
        if not isinstance(data, dict):
            raise PlanDocumentError(f"Plan document must be a mapping, got {type(data).__name__}")
        _check_keys(data, {'plan', 'expectations'}, "plan document")

        kind = data.get('plan', 'stub')
        if kind not in PLAN_KINDS:
            raise PlanDocumentError(f"Unknown plan kind {kind!r}, expected one of {', '.join(PLAN_KINDS)}")

        entries = data.get('expectations') or []
        if not isinstance(entries, list) or not entries:
            raise PlanDocumentError("Plan document needs a non-empty 'expectations' list")

        expectations = [
            ExpectationSpec.from_dict(entry, f"expectations[{index}]")
            for index, entry in enumerate(entries)
        ]

        if kind == 'stub':
            repeated = [index for index, spec in enumerate(expectations) if spec.times != 1]
            if repeated:
                raise PlanDocumentError(f"'times' is only supported by sequence plans: expectations{repeated}")

        return cls(plan=kind, expectations=expectations)

    def build(self) -> TestPlan:
        """Build the test plan this document declares."""
        if self.plan == 'sequence':
            builder = SequencePlanBuilder()
            for index, spec in enumerate(self.expectations):
                where = f"expectations[{index}]"
                builder.expect(spec.build_expectation(where), spec.build_response(where), times=spec.times)
        else:
            builder = StubPlanBuilder()
            for index, spec in enumerate(self.expectations):
                where = f"expectations[{index}]"
                builder.expect(spec.build_expectation(where), spec.build_response(where))

        return builder.build()
