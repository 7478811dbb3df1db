"""
StubDriver Stub Server

FastAPI-based HTTP stub server that answers requests from registered
expectations and verifies that exactly the expected traffic occurred.

Features:
- Expectation registration (builders or expectation files)
- Atomic, single-use expectation consumption
- Simulated response delays
- Diagnostic responses listing near-misses for unexpected requests
- Background uvicorn listener with a start/shutdown lifecycle
- Admin API for inspecting expectations and metrics
"""

from __future__ import annotations  # Enable forward references for type hints

import asyncio
import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..common import get_env_setting
from ..errors import StubServerError, UnfulfilledExpectationError
from .live import StaticLiveRequest, from_fastapi_request
from .loader import ExpectationLoader
from .registry import Expectation, ExpectationRegistry
from .request import ExpectedRequest, RequestBuilder
from .response import ExpectedResponse, ResponseBuilder

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE"]

# uvicorn level names; "trace" sits below DEBUG
LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": 5,
}


class ServerState(Enum):
    """Lifecycle states of a StubServer."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class StubConfig:
    """Configuration for stub server behavior."""

    # Server options
    host: str = "127.0.0.1"
    port: int = 0  # 0 picks a free ephemeral port
    log_level: str = "warning"
    access_log: bool = False

    # Unexpected request handling
    unexpected_status: int = 404
    closest_match_limit: int = 3

    # Lifecycle timeouts (seconds)
    startup_timeout: float = 5.0
    shutdown_timeout: float = 5.0

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__admin__"

    @classmethod
    def from_env(cls, prefix: str = "STUBDRIVER_") -> 'StubConfig':
        """
        Build a config from environment variables.

        Reads {prefix}HOST, {prefix}PORT, {prefix}LOG_LEVEL and
        {prefix}UNEXPECTED_STATUS; unset variables keep their defaults.
        """
        config = cls()
        host = get_env_setting('HOST', prefix)
        port = get_env_setting('PORT', prefix)
        log_level = get_env_setting('LOG_LEVEL', prefix)
        unexpected_status = get_env_setting('UNEXPECTED_STATUS', prefix)

        if host:
            config.host = host
        if port:
            config.port = int(port)
        if log_level:
            config.log_level = log_level.lower()
        if unexpected_status:
            config.unexpected_status = int(unexpected_status)
        return config


@dataclass
class StubMetrics:
    """Track stub server traffic."""

    total_requests: int = 0
    matched_requests: int = 0
    unmatched_requests: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'matched_requests': self.matched_requests,
            'unmatched_requests': self.unmatched_requests,
            'match_rate': round((self.matched_requests / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class StubServer:
    """
    Programmable HTTP test double.

    Register expectations, point the code under test at base_url, then call
    verify() to assert every expectation was consumed and nothing
    unexpected arrived.

    Example:
        with StubServer() as server:
            server.add_expectation(
                on_request('/users').with_param('page', '1'),
                give_response('{"users": []}', 'application/json')
            )

            httpx.get(f"{server.base_url}/users?page=1")

            server.verify()
    """

    def __init__(
        self,
        config: Optional[StubConfig] = None,
        registry: Optional[ExpectationRegistry] = None
    ):
        """
        Initialize stub server.

        Args:
            config: Optional StubConfig for server behavior
            registry: Optional ExpectationRegistry (will create if None)
        """
        self.config = config or StubConfig()
        self.metrics = StubMetrics()
        self.registry = registry or ExpectationRegistry()

        self.logger = logging.getLogger("stubdriver.mock")
        level = LOG_LEVELS.get(str(self.config.log_level).lower())
        if level is None:
            raise StubServerError(
                f"Unknown log level {self.config.log_level!r}; expected one of {sorted(LOG_LEVELS)}"
            )
        self.logger.setLevel(level)

        self._state = ServerState.STOPPED
        self._state_lock = threading.Lock()
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._socket: Optional[socket.socket] = None
        self._port: Optional[int] = None

        # Setup FastAPI app
        self.app = self._create_app()

    # Registration API

    def add_expectation(
        self,
        request: Union[ExpectedRequest, RequestBuilder],
        response: Union[ExpectedResponse, ResponseBuilder],
        reusable: bool = False
    ) -> Expectation:
        """
        Register an expectation. Builders are built here.

        Args:
            request: Expected request (or its builder)
            response: Response to write back when it matches (or its builder)
            reusable: Allow the expectation to match more than once

        Returns:
            The registered Expectation
        """
        if isinstance(request, RequestBuilder):
            request = request.build()
        if isinstance(response, ResponseBuilder):
            response = response.build()
        return self.registry.register(request, response, reusable=reusable)

    def load_expectations(self, file_path: str) -> List[Expectation]:
        """Register every expectation in a YAML or JSON expectation file."""
        entries = ExpectationLoader(file_path).load()
        registered = [
            self.registry.register(entry.request, entry.response, reusable=entry.reusable)
            for entry in entries
        ]
        self.logger.info(f"Loaded {len(registered)} expectations from {file_path}")
        return registered

    def verify(self):
        """
        Assert that traffic went exactly as expected.

        Raises:
            UnfulfilledExpectationError: If expectations were never consumed
                or requests arrived that matched no expectation
        """
        pending = self.registry.verify()
        unexpected = self.registry.unexpected()
        if pending or unexpected:
            raise UnfulfilledExpectationError(pending, unexpected)

    def reset(self):
        """Clear expectations, recorded unexpected requests and metrics."""
        self.registry.reset()
        self.metrics = StubMetrics()

    # Lifecycle

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> int:
        """Port the listener is bound to."""
        if self._port is None:
            raise StubServerError("Stub server is not running")
        return self._port

    @property
    def base_url(self) -> str:
        """Base URL of the running server, without trailing slash."""
        host = self.config.host
        if ':' in host:
            host = f"[{host}]"
        return f"http://{host}:{self.port}"

    def start(self) -> 'StubServer':
        """
        Bind the listening socket and serve requests in a background thread.

        Blocks until uvicorn reports it has started.

        Raises:
            StubServerError: If the server is not stopped, or fails to start in time
        """
        with self._state_lock:
            if self._state is not ServerState.STOPPED:
                raise StubServerError(f"Cannot start stub server in state {self._state.value}")
            self._state = ServerState.STARTING

        try:
            self._socket = self._bind_socket()
            self._port = self._socket.getsockname()[1]

            uvicorn_config = uvicorn.Config(
                self.app,
                host=self.config.host,
                port=self._port,
                log_level=self.config.log_level.lower(),
                access_log=self.config.access_log,
                lifespan="off"
            )
            self._server = uvicorn.Server(uvicorn_config)
            self._thread = threading.Thread(
                target=self._server.run,
                kwargs={'sockets': [self._socket]},
                name=f"stubdriver-{self._port}",
                daemon=True
            )
            self._thread.start()
            self._wait_until_started()
        except Exception:
            self._release()
            raise

        with self._state_lock:
            self._state = ServerState.RUNNING
        self.logger.info(f"Stub server listening on {self.base_url}")
        return self

    def shutdown(self):
        """
        Stop accepting connections, let in-flight requests finish and
        release the socket. Calling it on a stopped server does nothing.
        """
        with self._state_lock:
            if self._state is ServerState.STOPPED:
                return
            self._state = ServerState.STOPPING

        self.logger.info("Stub server shutting down")
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(self.config.shutdown_timeout)
            if self._thread.is_alive():
                self.logger.warning("In-flight requests did not finish in time, forcing exit")
                self._server.force_exit = True
                self._thread.join(self.config.shutdown_timeout)

        self._release()

    def _bind_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ':' in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.config.port))
            sock.listen()
        except OSError as e:
            sock.close()
            raise StubServerError(f"Cannot bind {self.config.host}:{self.config.port}: {e}") from e
        return sock

    def _wait_until_started(self):
        deadline = time.monotonic() + self.config.startup_timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise StubServerError("Stub server thread exited during startup")
            if time.monotonic() > deadline:
                self._server.should_exit = True
                self._thread.join(self.config.shutdown_timeout)
                raise StubServerError(
                    f"Stub server did not start within {self.config.startup_timeout}s"
                )
            time.sleep(0.01)

    def _release(self):
        if self._socket is not None:
            self._socket.close()
        self._socket = None
        self._server = None
        self._thread = None
        self._port = None
        with self._state_lock:
            self._state = ServerState.STOPPED

    def __enter__(self) -> 'StubServer':
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for in-process testing.

        Returns:
            FastAPI application instance
        """
        return self.app

    # Request handling

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="StubDriver Stub Server",
            description="HTTP test double serving registered expectations",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        # Admin API routes
        if self.config.admin_enabled:
            @app.get(f"{self.config.admin_prefix}/expectations")
            async def list_expectations():
                """List registered expectations with their consumption state."""
                expectations = [e.to_dict() for e in self.registry.all()]
                return JSONResponse(content={
                    'total': len(expectations),
                    'pending': sum(1 for e in expectations if not e['consumed']),
                    'expectations': expectations
                })

            @app.get(f"{self.config.admin_prefix}/unexpected")
            async def list_unexpected():
                """List requests that matched no expectation."""
                unexpected = self.registry.unexpected()
                return JSONResponse(content={
                    'total': len(unexpected),
                    'requests': unexpected
                })

            @app.get(f"{self.config.admin_prefix}/metrics")
            async def get_metrics():
                """Get server metrics."""
                return JSONResponse(content=self.metrics.to_dict())

            @app.post(f"{self.config.admin_prefix}/reset")
            async def reset_server():
                """Clear expectations, unexpected requests and metrics."""
                self.reset()
                return JSONResponse(content={'status': 'reset'})

        # Main catch-all route for stubbing
        @app.api_route("/{path:path}", methods=HTTP_METHODS)
        async def stub_request(request: Request, path: str):
            """Answer incoming requests from the registered expectations."""
            return await self._handle_request(request)

        return app

    async def _handle_request(self, request: Request) -> Response:
        """
        Match an incoming request and write the expected or diagnostic response.

        Args:
            request: FastAPI Request object

        Returns:
            FastAPI Response
        """
        self.metrics.total_requests += 1

        live = await from_fastapi_request(request)
        self.logger.debug(f"Incoming: {live.describe()}")

        expectation = self.registry.find_and_consume(live)

        if expectation is not None:
            self.metrics.matched_requests += 1
            await self._apply_delay(expectation.response.delay_ms)
            return self._create_response(expectation)

        self.metrics.unmatched_requests += 1
        description = live.describe()
        self.registry.record_unexpected(description)
        self.logger.warning(f"Unexpected request: {description}")

        return Response(
            content=json.dumps(self._create_diagnostic(live)),
            status_code=self.config.unexpected_status,
            media_type="application/json",
            headers={'X-StubDriver-Matched': 'false'}
        )

    async def _apply_delay(self, delay_ms: int):
        """Sleep for the expectation's simulated delay."""
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    def _create_response(self, expectation: Expectation) -> Response:
        """
        Create FastAPI Response from an expected response.

        Args:
            expectation: The consumed expectation

        Returns:
            FastAPI Response object
        """
        expected = expectation.response

        # Framing headers are computed by the server
        headers_to_skip = {'content-length', 'transfer-encoding', 'connection'}
        headers = {
            k: v for k, v in expected.headers.items()
            if k.lower() not in headers_to_skip
        }

        return Response(
            content=expected.body or b'',
            status_code=expected.status,
            media_type=expected.content_type,
            headers=headers
        )

    def _create_diagnostic(self, live: StaticLiveRequest) -> Dict[str, Any]:
        """
        Build the body returned for an unexpected request.

        Args:
            live: The request that matched nothing

        Returns:
            Dict with the request, closest expectations and why each failed
        """
        pending = self.registry.verify()
        closest = self.registry.closest_matches(live, limit=self.config.closest_match_limit)

        diagnostic = {
            'error': 'No expectation matched the request',
            'request': live.to_dict(),
            'debug': {
                'registered_expectations': len(self.registry),
                'pending_expectations': len(pending)
            }
        }

        if closest:
            diagnostic['closest_matches'] = [report.to_dict() for report in closest]
        else:
            diagnostic['suggestions'] = [
                'No expectations are available - register one with add_expectation() before sending requests'
            ]

        return diagnostic


def create_stub_server(
    host: str = "127.0.0.1",
    port: int = 0,
    log_level: str = "warning",
    unexpected_status: int = 404,
    admin_enabled: bool = True,
    expectations_file: Optional[str] = None
) -> StubServer:
    """
    Convenience function to create and configure a stub server.

    Args:
        host: Host to bind to
        port: Port to bind to (0 for an ephemeral port)
        log_level: Logging level for the server and uvicorn
        unexpected_status: Status code for requests matching no expectation
        admin_enabled: Serve the admin API
        expectations_file: Optional YAML/JSON file of expectations to register

    Returns:
        Configured StubServer instance (not started)

    Example:
        server = create_stub_server(expectations_file='fixtures/users.yaml')
        with server:
            ...
            server.verify()
    """
    config = StubConfig(
        host=host,
        port=port,
        log_level=log_level,
        unexpected_status=unexpected_status,
        admin_enabled=admin_enabled
    )

    server = StubServer(config=config)
    if expectations_file:
        server.load_expectations(expectations_file)
    return server
