"""
StubDriver Mock Module

Programmable HTTP stub server for tests.

This module provides:
- Expected request/response builders
- Request matching engine
- Thread-safe expectation registry
- FastAPI-based stub server with verification
- YAML/JSON expectation files
"""

from .request import Method, BodySpec, ExpectedRequest, RequestBuilder, on_request
from .response import ExpectedResponse, ResponseBuilder, give_response
from .live import LiveRequest, StaticLiveRequest, from_fastapi_request
from .matcher import RequestMatcher, MatchReport, values_correspond
from .registry import Expectation, ExpectationRegistry
from .loader import ExpectationLoader, LoadedExpectation
from .server import StubServer, StubConfig, StubMetrics, ServerState, create_stub_server

__all__ = [
    # Request
    'Method',
    'BodySpec',
    'ExpectedRequest',
    'RequestBuilder',
    'on_request',

    # Response
    'ExpectedResponse',
    'ResponseBuilder',
    'give_response',

    # Live requests
    'LiveRequest',
    'StaticLiveRequest',
    'from_fastapi_request',

    # Matcher
    'RequestMatcher',
    'MatchReport',
    'values_correspond',

    # Registry
    'Expectation',
    'ExpectationRegistry',

    # Loader
    'ExpectationLoader',
    'LoadedExpectation',

    # Server
    'StubServer',
    'StubConfig',
    'StubMetrics',
    'ServerState',
    'create_stub_server',
]
