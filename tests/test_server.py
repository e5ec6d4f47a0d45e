"""
Tests for HTTP Spy Server

Tests the FastAPI-based spy including:
- Configuration and path normalization
- Plan installation and threading rules
- In-process request handling with TestClient
- Live serving on an ephemeral port
- Interrupted response delays
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests
from fastapi.testclient import TestClient

from httpspy.common import (
    ConfigurationError,
    PlanAlreadySetError,
    PlanNotSetError,
    SpyStateError,
    ThreadingConfigurationError,
    VerificationError,
)
from httpspy.spy.builder import SequencePlanBuilder, StubPlanBuilder
from httpspy.spy.matcher import request
from httpspy.spy.models import response
from httpspy.spy.server import HttpSpy, SpyConfig, create_spy
from httpspy.spy.values import contains_string, equal_to_json, matching


@pytest.fixture
def stub_plan():
    """Stub plan answering /users requests."""
    return (
        StubPlanBuilder()
        .expect(
            request().with_method('POST').with_path('/users').with_body(equal_to_json('{"name": "John"}')),
            response().with_status(201).with_header('content-type', 'application/json').with_body('{"id": 1}')
        )
        .expect(
            request().with_method('GET').with_path('/users'),
            response().with_header('h1', 'v1').with_header('h1', 'v2').with_header('h1', 'v3').with_body('[]')
        )
        .build()
    )


@pytest.fixture
def spy():
    """Spy under /api with no plan installed."""
    spy = create_spy(path='/api', log_level='debug')
    yield spy
    spy.stop()


@pytest.fixture
def client(spy):
    """In-process client for the spy app."""
    return TestClient(spy.get_app())


class TestSpyConfig:
    """Test SpyConfig dataclass."""

    def test_default_config(self):
        """Test default configuration values."""
        config = SpyConfig()

        assert config.host == '127.0.0.1'
        assert config.port == 0
        assert config.path == '/'
        assert config.service_threads == 1
        assert config.log_level == 'info'
        assert config.access_log is False

    def test_from_dict(self):
        """Test building config from a mapping."""
        config = SpyConfig.from_dict({'port': 9090, 'service_threads': 4})

        assert config.port == 9090
        assert config.service_threads == 4
        assert config.host == '127.0.0.1'

    def test_from_dict_unknown_key(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ConfigurationError):
            SpyConfig.from_dict({'threads': 4})

    def test_from_yaml(self, tmp_path):
        """Test loading config from YAML."""
        config_file = tmp_path / 'spy.yaml'
        config_file.write_text('host: localhost\npath: /api\nservice_threads: 2\n')

        config = SpyConfig.from_yaml(str(config_file))

        assert config.host == 'localhost'
        assert config.path == '/api'
        assert config.service_threads == 2

    def test_from_empty_yaml(self, tmp_path):
        """Test an empty file means defaults."""
        config_file = tmp_path / 'spy.yaml'
        config_file.write_text('')

        assert SpyConfig.from_yaml(str(config_file)) == SpyConfig()


class TestSpyConfiguration:
    """Test spy properties and validation."""

    @pytest.mark.parametrize('path,expected', [
        ('/', '/'),
        ('', '/'),
        (None, '/'),
        ('api', '/api/'),
        ('/api', '/api/'),
        ('/api/v1/', '/api/v1/'),
    ])
    def test_path_normalization(self, path, expected):
        """Test prefixes always start and end with a slash."""
        assert create_spy(path=path).path == expected

    def test_invalid_settings(self):
        """Test invalid listener settings are rejected."""
        with pytest.raises(ValueError):
            create_spy(path='/my api')
        with pytest.raises(ValueError):
            create_spy(host=' ')
        with pytest.raises(ValueError):
            create_spy(port=-1)
        with pytest.raises(ValueError):
            create_spy(service_threads=0)

    def test_url(self):
        """Test url combines host, port and path."""
        spy = create_spy(port=8123, path='api')

        assert spy.url == 'http://127.0.0.1:8123/api/'

    def test_plan_set_twice(self, spy, stub_plan):
        """Test a second plan needs a reset first."""
        spy.test_plan(stub_plan)

        with pytest.raises(PlanAlreadySetError):
            spy.test_plan(stub_plan)

        spy.reset()
        spy.test_plan(stub_plan)
        assert spy.plan is stub_plan

    def test_plan_from_builder(self, spy):
        """Test builders are built on installation."""
        spy.test_plan(StubPlanBuilder().expect())

        assert spy.plan is not None
        assert len(spy.plan) == 1

    def test_single_threaded_plan_with_many_threads(self, spy):
        """Test sequence plans refuse more than one service thread, in either order."""
        spy.set_service_threads(2)
        with pytest.raises(ThreadingConfigurationError):
            spy.test_plan(SequencePlanBuilder().expect())

        spy.set_service_threads(1)
        spy.test_plan(SequencePlanBuilder().expect())
        with pytest.raises(ThreadingConfigurationError):
            spy.set_service_threads(2)
        assert spy.service_threads == 1

    def test_multithreaded_plan_with_many_threads(self, spy, stub_plan):
        """Test stub plans accept many service threads."""
        spy.set_service_threads(4)
        spy.test_plan(stub_plan)

        assert spy.service_threads == 4

    def test_invalid_service_threads(self, spy):
        """Test at least one thread is required."""
        with pytest.raises(ValueError):
            spy.set_service_threads(0)

    def test_verify_without_plan(self, spy):
        """Test verification needs a plan."""
        with pytest.raises(PlanNotSetError):
            spy.verify()

    def test_reset_is_idempotent(self, spy, stub_plan):
        """Test repeated resets are harmless."""
        spy.reset()
        spy.test_plan(stub_plan)
        spy.reset()
        spy.reset()

        assert spy.plan is None


class TestSpyRequestHandling:
    """Test request handling through the FastAPI app."""

    def test_no_plan(self, client):
        """Test requests without a plan get a 500."""
        result = client.get('/api/users')

        assert result.status_code == 500
        assert result.text == 'Test plan is not set'

    def test_stub_responses(self, spy, client, stub_plan):
        """Test matched requests get their responses."""
        spy.test_plan(stub_plan)

        created = client.post('/api/users', content='{"name": "John"}')
        listed = client.get('/api/users')

        assert created.status_code == 201
        assert created.headers['content-type'] == 'application/json'
        assert created.json() == {'id': 1}
        assert listed.status_code == 200
        assert listed.text == '[]'
        spy.verify()

    def test_multi_valued_response_header(self, spy, client, stub_plan):
        """Test values of one header are joined with commas."""
        spy.test_plan(stub_plan)

        result = client.get('/api/users')

        assert result.headers['h1'] == 'v1,v2,v3'

    def test_path_is_relative_to_prefix(self, spy, client):
        """Test plans see the path below the spy prefix."""
        plan = StubPlanBuilder().expect(request().with_path('/orders/7')).build()
        spy.test_plan(plan)

        assert client.get('/api/orders/7').status_code == 200
        assert plan.interactions[0].request.path == '/orders/7'

    def test_outside_prefix_not_served(self, spy, client, stub_plan):
        """Test requests outside the prefix never reach the plan."""
        spy.test_plan(stub_plan)

        assert client.get('/other').status_code == 404
        assert stub_plan.interactions == []

    def test_request_headers_captured(self, spy, client):
        """Test header names arrive lower-cased with every value."""
        plan = (
            StubPlanBuilder()
            .expect(request().with_header('x-token', 'abc').with_header_value('x-multi', 1, 'b'))
            .build()
        )
        spy.test_plan(plan)

        result = client.get('/api/', headers=[('X-Token', 'abc'), ('x-multi', 'a'), ('x-multi', 'b')])

        assert result.status_code == 200

    def test_unmatched_request(self, spy, client, stub_plan):
        """Test unmatched requests get a diagnostic and fail verification."""
        spy.test_plan(stub_plan)

        result = client.delete('/api/users')

        assert result.status_code == 500
        assert result.text.startswith('Unmatched request: DELETE /users')
        with pytest.raises(VerificationError):
            spy.verify()

    def test_raising_predicate_still_answers(self, spy, client):
        """Test an expectation that raises yields a diagnostic and fails verification."""
        def explode(value):
            raise RuntimeError('boom')

        spy.test_plan(StubPlanBuilder().expect(request().with_body(matching(explode)), response()))

        result = client.post('/api/x', content='payload')

        assert result.status_code == 500
        assert result.text.startswith('Unmatched request: POST /x')
        with pytest.raises(VerificationError, match='RuntimeError: boom'):
            spy.verify()

    def test_sequence_exhausted(self, spy, client):
        """Test the request after the last response gets a diagnostic."""
        spy.test_plan(
            SequencePlanBuilder()
            .expect(response=response().with_body('R1'))
            .expect(response=response().with_body('R2'))
        )

        assert client.get('/api/').text == 'R1'
        assert client.get('/api/').text == 'R2'
        third = client.get('/api/')

        assert third.status_code == 500
        assert 'expected 2, received 3' in third.text
        with pytest.raises(VerificationError, match='expected 2, received 3'):
            spy.verify()

    def test_check(self, spy, client, stub_plan):
        """Test check reports without raising."""
        spy.test_plan(stub_plan)
        client.put('/api/users')

        report = spy.check()

        assert report.failed
        assert len(report.unmatched) == 1

    def test_reset_then_replay(self, spy, client, stub_plan):
        """Test the same plan and traffic verify the same after a reset."""
        for _ in range(2):
            spy.test_plan(stub_plan)
            client.get('/api/users')
            spy.verify()
            spy.reset()


class TestLiveSpy:
    """Test a spy serving on a real socket."""

    def test_start_and_stop(self, stub_plan):
        """Test serving on an ephemeral port."""
        spy = create_spy(path='/api')
        spy.test_plan(stub_plan)

        with spy:
            assert spy.running
            assert spy.port > 0

            result = requests.get(spy.url + 'users', timeout=5)

            assert result.status_code == 200
            assert result.headers['h1'] == 'v1,v2,v3'

        assert not spy.running
        spy.verify()

    def test_lifecycle_errors(self, stub_plan):
        """Test start twice and thread changes while running."""
        spy = create_spy()
        spy.test_plan(stub_plan)

        with spy:
            with pytest.raises(SpyStateError):
                spy.start()
            with pytest.raises(SpyStateError):
                spy.set_service_threads(2)

        spy.stop()

    def test_concurrent_requests(self):
        """Test a stub plan served by several threads records every request."""
        plan = (
            StubPlanBuilder()
            .expect(request().with_path(contains_string('/items/')), response().with_delay(20).with_body('ok'))
            .build()
        )
        spy = create_spy(service_threads=4)
        spy.test_plan(plan)

        with spy:
            with ThreadPoolExecutor(max_workers=8) as pool:
                results = list(pool.map(
                    lambda i: requests.get(f"{spy.url}items/{i}", timeout=5),
                    range(20)
                ))

        assert all(result.text == 'ok' for result in results)
        assert len(plan.interactions) == 20
        spy.verify()

    def test_stop_interrupts_delay(self):
        """Test stopping the spy aborts delayed responses with 503."""
        plan = StubPlanBuilder().expect(response=response().with_delay(30000)).build()
        spy = create_spy(service_threads=2)
        spy.test_plan(plan)
        spy.start()

        outcome = {}

        def call():
            outcome['response'] = requests.get(spy.url, timeout=20)

        caller = threading.Thread(target=call)
        caller.start()

        deadline = time.monotonic() + 5
        while not plan.interactions and time.monotonic() < deadline:
            time.sleep(0.01)
        assert plan.interactions

        started = time.monotonic()
        spy.stop()
        caller.join(timeout=10)

        assert time.monotonic() - started < 10
        assert outcome['response'].status_code == 503

    def test_delays_wait_again_after_stop(self):
        """Test a stopped spy no longer aborts delayed responses."""
        plan = StubPlanBuilder().expect(response=response().with_delay(50).with_body('late')).build()
        spy = create_spy()
        spy.test_plan(plan)
        spy.start()
        spy.stop()

        result = TestClient(spy.get_app()).get('/')

        assert result.status_code == 200
        assert result.text == 'late'
