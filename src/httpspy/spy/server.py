"""
HTTP Spy Server

FastAPI-based HTTP listener that hands every received request to the
installed test plan and writes back the response the plan chose.

Features:
- One endpoint per spy, served under a fixed path prefix
- Configurable number of service threads resolving requests
- Response delays that are cut short when the spy stops
- Background uvicorn server on an ephemeral or fixed port
"""

import asyncio
import logging
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Union

import uvicorn
import yaml
from fastapi import FastAPI
from fastapi import Request as HttpRequest
from fastapi import Response as HttpResponse
from fastapi.responses import PlainTextResponse

from ..common import (
    ConfigurationError,
    DelayInterruptedError,
    PlanAlreadySetError,
    PlanNotSetError,
    SpyStateError,
    ThreadingConfigurationError,
    charset_from_content_type,
    decode_body,
    headers_from_pairs,
    normalize_path,
)
from .models import Request, Response
from .plan import TestPlan
from .report import VerificationReport

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE"]

# Headers the ASGI server computes itself
HOP_BY_HOP_HEADERS = {'content-length', 'transfer-encoding', 'connection'}


@dataclass
class SpyConfig:
    """Configuration for the HTTP spy."""

    # Listener
    host: str = "127.0.0.1"
    port: int = 0  # 0 picks a free port at start
    path: str = "/"

    # Serving
    service_threads: int = 1

    # Logging
    log_level: str = "info"
    access_log: bool = False

    # Lifecycle, in seconds
    startup_timeout: float = 10.0
    shutdown_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SpyConfig':
        """Create config from dictionary; unknown keys are rejected."""
        data = data or {}
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown spy config keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'SpyConfig':
        """Load config from YAML file."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"Spy config must be a mapping: {yaml_path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


class HttpSpy:
    """
    HTTP test double serving one test plan at a time.

    Example:
        spy = create_spy(path='/api')
        spy.test_plan(
            StubPlanBuilder()
            .expect(request().with_method('GET'), response().with_body('pong'))
        )
        with spy:
            requests.get(spy.url + 'ping')
        spy.verify()
    """

    def __init__(self, config: Optional[SpyConfig] = None):
        """
        Initialize the spy.

        Args:
            config: Optional SpyConfig; defaults listen on 127.0.0.1 on a free port

        Raises:
            ValueError: Host is blank, port is negative, path contains spaces
                or service_threads < 1
        """
        self.config = config or SpyConfig()

        if not self.config.host or not self.config.host.strip():
            raise ValueError("hostname must not be blank")
        if self.config.port < 0:
            raise ValueError(f"port must be >= 0: {self.config.port}")
        if self.config.service_threads < 1:
            raise ValueError(f"serviceThreads must be >= 1: {self.config.service_threads}")

        self._path = normalize_path(self.config.path)
        self._port = self.config.port
        self._service_threads = self.config.service_threads

        self._plan: Optional[TestPlan] = None
        self._plan_lock = threading.Lock()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._shutdown_event = threading.Event()

        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._socket: Optional[socket.socket] = None

        self.logger = logging.getLogger("httpspy.server")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.app = self._create_app()

    # Properties

    @property
    def hostname(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        """Listening port; the actual port once an ephemeral one was bound."""
        return self._port

    @property
    def path(self) -> str:
        """Normalized path prefix, always starting and ending with '/'."""
        return self._path

    @property
    def url(self) -> str:
        return f"http://{self.hostname}:{self.port}{self.path}"

    @property
    def service_threads(self) -> int:
        return self._service_threads

    @property
    def plan(self) -> Optional[TestPlan]:
        return self._plan

    @property
    def running(self) -> bool:
        return self._thread is not None

    def set_service_threads(self, service_threads: int) -> 'HttpSpy':
        """
        Set the number of threads resolving requests.

        Raises:
            SpyStateError: The spy is running
            ValueError: service_threads < 1
            ThreadingConfigurationError: The installed plan is single-threaded
        """
        if self.running:
            raise SpyStateError("Cannot change service threads of a running HTTP spy")
        if service_threads < 1:
            raise ValueError(f"serviceThreads must be >= 1: {service_threads}")

        with self._plan_lock:
            plan = self._plan
            if plan is not None and service_threads > 1 and not plan.is_multithreaded():
                raise ThreadingConfigurationError(
                    f"{type(plan).__name__} is single-threaded, "
                    f"cannot use {service_threads} service threads"
                )
            self._service_threads = service_threads

        self._shutdown_executor()
        return self

    # Test plan

    def test_plan(self, plan: Union[TestPlan, Any]) -> 'HttpSpy':
        """
        Install the test plan serving the next requests.

        Args:
            plan: A TestPlan, or a builder whose build() returns one

        Raises:
            PlanAlreadySetError: A plan is installed; call reset() first
            ThreadingConfigurationError: Plan is single-threaded and the spy
                uses more than one service thread
        """
        if not isinstance(plan, TestPlan) and hasattr(plan, 'build'):
            plan = plan.build()
        if not isinstance(plan, TestPlan):
            raise TypeError(f"Not a test plan: {plan!r}")

        with self._plan_lock:
            if self._plan is not None:
                raise PlanAlreadySetError()
            if self._service_threads > 1 and not plan.is_multithreaded():
                raise ThreadingConfigurationError(
                    f"{type(plan).__name__} is single-threaded, "
                    f"but the spy uses {self._service_threads} service threads"
                )
            self._plan = plan

        self.logger.info(f"Installed {type(plan).__name__} with {len(plan)} expectation(s)")
        return self

    def _require_plan(self) -> TestPlan:
        plan = self._plan
        if plan is None:
            raise PlanNotSetError()
        return plan

    def check(self) -> VerificationReport:
        """Judge recorded traffic without raising."""
        return self._require_plan().check()

    def verify(self):
        """
        Verify recorded traffic against the installed plan.

        Raises:
            PlanNotSetError: No plan is installed
            VerificationError: Traffic does not satisfy the plan
        """
        self._require_plan().verify()

    def reset(self):
        """Clear the installed plan so another one can be installed. Idempotent."""
        with self._plan_lock:
            plan = self._plan
            self._plan = None

        if plan is not None:
            plan.reset()
            self.logger.info(f"Removed {type(plan).__name__}")

    # Serving

    def serve(self, request: Request) -> Response:
        """
        Resolve a request with the installed plan and wait for the response delay.

        Runs on a service thread.

        Raises:
            PlanNotSetError: No plan is installed
            DelayInterruptedError: The spy stopped during the delay
        """
        plan = self._require_plan()
        self.logger.debug(f"Incoming: {request}")

        reply = plan.resolve(request)
        reply.wait_delay(self._shutdown_event)

        self.logger.debug(f"Responding {reply.status_code} to {request.method} {request.path}")
        return reply

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._service_threads,
                    thread_name_prefix="httpspy-service"
                )
            return self._executor

    def _shutdown_executor(self):
        with self._executor_lock:
            executor = self._executor
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=False)

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with the catch-all spy route."""
        app = FastAPI(
            title="HTTP Spy",
            description="HTTP test double verifying received requests",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.exception_handler(PlanNotSetError)
        async def plan_not_set(request: HttpRequest, exc: PlanNotSetError):
            self.logger.error(f"Request {request.method} {request.url.path} received without a test plan")
            return PlainTextResponse(str(exc), status_code=500)

        @app.exception_handler(DelayInterruptedError)
        async def delay_interrupted(request: HttpRequest, exc: DelayInterruptedError):
            self.logger.warning(f"{exc} for {request.method} {request.url.path}")
            return PlainTextResponse(str(exc), status_code=503)

        @app.api_route(f"{self._path}{{request_path:path}}", methods=HTTP_METHODS)
        async def spy_request(request: HttpRequest, request_path: str):
            """Handle incoming requests and serve the plan's response."""
            return await self._handle_request(request, request_path)

        return app

    async def _handle_request(self, http_request: HttpRequest, request_path: str) -> HttpResponse:
        body = await http_request.body()
        charset = charset_from_content_type(http_request.headers.get('content-type'))

        request = Request(
            method=http_request.method,
            path="/" + request_path,
            body=decode_body(body, charset),
            headers=headers_from_pairs(http_request.headers.items())
        )

        loop = asyncio.get_running_loop()
        reply = await loop.run_in_executor(self._get_executor(), self.serve, request)
        return self._create_response(reply)

    def _create_response(self, reply: Response) -> HttpResponse:
        headers = {
            name: value for name, value in reply.wire_headers().items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        }
        return HttpResponse(
            content=reply.body or "",
            status_code=reply.status_code,
            headers=headers
        )

    # Lifecycle

    def start(self) -> 'HttpSpy':
        """
        Start serving in a background thread.

        Returns once the listener accepts connections.

        Raises:
            SpyStateError: Already running, or the server did not start in time
        """
        if self.running:
            raise SpyStateError("HTTP spy is already started")

        self._shutdown_event = threading.Event()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.hostname, self.config.port))
        except OSError:
            sock.close()
            raise
        self._socket = sock
        self._port = sock.getsockname()[1]

        uvicorn_config = uvicorn.Config(
            self.app,
            log_level=self.config.log_level,
            access_log=self.config.access_log,
            lifespan="off",
            timeout_graceful_shutdown=max(1, int(self.config.shutdown_timeout))
        )
        self._server = uvicorn.Server(uvicorn_config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={'sockets': [sock]},
            name=f"httpspy-{self._port}",
            daemon=True
        )
        self._get_executor()
        self._thread.start()

        deadline = time.monotonic() + self.config.startup_timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise SpyStateError(f"HTTP spy did not start on {self.hostname}:{self._port}")
            time.sleep(0.01)

        self.logger.info(
            f"HTTP spy listening on {self.url} with {self._service_threads} service thread(s)"
        )
        return self

    def stop(self):
        """
        Stop serving. Idempotent.

        In-flight delayed responses are interrupted and answered with 503.
        """
        if not self.running:
            return

        self._shutdown_event.set()
        self._server.should_exit = True
        self._thread.join(timeout=self.config.shutdown_timeout + 1)
        if self._thread.is_alive():
            self.logger.warning(f"HTTP spy thread did not stop within {self.config.shutdown_timeout}s")

        self._shutdown_executor()
        self._socket.close()

        self._server = None
        self._thread = None
        self._socket = None
        # Interrupted delays keep the old event; later delays must wait again
        self._shutdown_event = threading.Event()
        self.logger.info(f"HTTP spy on {self.hostname}:{self._port} stopped")

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for in-process testing.

        Returns:
            FastAPI application instance
        """
        return self.app

    def __enter__(self) -> 'HttpSpy':
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def create_spy(
    host: str = "127.0.0.1",
    port: int = 0,
    path: str = "/",
    service_threads: int = 1,
    log_level: str = "info",
    access_log: bool = False
) -> HttpSpy:
    """
    Convenience function to create and configure an HTTP spy.

    Args:
        host: Host to bind to
        port: Port to bind to, 0 for a free port
        path: Path prefix the spy answers under
        service_threads: Number of threads resolving requests
        log_level: Log level of the spy and uvicorn
        access_log: Enable uvicorn access logging

    Returns:
        Configured HttpSpy instance

    Example:
        spy = create_spy(path='/api', service_threads=4)
        spy.test_plan(stub_plan)
        spy.start()
    """
    config = SpyConfig(
        host=host,
        port=port,
        path=path,
        service_threads=service_threads,
        log_level=log_level,
        access_log=access_log
    )

    return HttpSpy(config=config)
