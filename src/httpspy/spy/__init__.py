"""
HTTP Spy Module

HTTP test double recording received requests and verifying them against a
test plan.

This module provides:
- Value and request expectations
- Sequence and stub test plans
- Aggregated verification reports
- FastAPI-based spy server
- YAML plan documents
"""

from .models import Request, Response, response, diagnostic_response
from .values import (
    ValueKind,
    ValueExpectation,
    equal_to,
    equal_to_ignore_case,
    equal_to_xml,
    equal_to_json,
    contains_string,
    matches_pattern,
    any_value,
    all_of,
    any_of,
    is_not,
    matching,
)
from .compare import compare_json, compare_xml
from .matcher import RequestExpectation, MatchResult, request
from .report import VerificationReport, RequestMismatch, ExpectationError
from .plan import TestPlan, SequencePlan, StubPlan, PlanEntry, Interaction
from .builder import SequencePlanBuilder, StubPlanBuilder
from .server import HttpSpy, SpyConfig, create_spy
from .plan_config import PlanDocument, ExpectationSpec, parse_value_spec

__all__ = [
    # Models
    'Request',
    'Response',
    'response',
    'diagnostic_response',

    # Value expectations
    'ValueKind',
    'ValueExpectation',
    'equal_to',
    'equal_to_ignore_case',
    'equal_to_xml',
    'equal_to_json',
    'contains_string',
    'matches_pattern',
    'any_value',
    'all_of',
    'any_of',
    'is_not',
    'matching',
    'compare_json',
    'compare_xml',

    # Request expectations
    'RequestExpectation',
    'MatchResult',
    'request',

    # Plans
    'TestPlan',
    'SequencePlan',
    'StubPlan',
    'PlanEntry',
    'Interaction',
    'SequencePlanBuilder',
    'StubPlanBuilder',

    # Verification
    'VerificationReport',
    'RequestMismatch',
    'ExpectationError',

    # Server
    'HttpSpy',
    'SpyConfig',
    'create_spy',

    # Plan documents
    'PlanDocument',
    'ExpectationSpec',
    'parse_value_spec',
]
