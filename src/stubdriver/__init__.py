"""
StubDriver

Programmable HTTP test double: register expected requests and canned
responses, run the code under test against an embedded server, then
verify that exactly the expected traffic occurred.
"""

from .common import PatternValue, PatternKind, literal, regex
from .errors import (
    StubDriverError,
    MalformedSpecificationError,
    StubServerError,
    UnfulfilledExpectationError
)
from .mock import (
    Method,
    ExpectedRequest,
    RequestBuilder,
    on_request,
    ExpectedResponse,
    ResponseBuilder,
    give_response,
    StaticLiveRequest,
    RequestMatcher,
    MatchReport,
    Expectation,
    ExpectationRegistry,
    ExpectationLoader,
    StubServer,
    StubConfig,
    ServerState,
    create_stub_server
)

__all__ = [
    'PatternValue',
    'PatternKind',
    'literal',
    'regex',
    'StubDriverError',
    'MalformedSpecificationError',
    'StubServerError',
    'UnfulfilledExpectationError',
    'Method',
    'ExpectedRequest',
    'RequestBuilder',
    'on_request',
    'ExpectedResponse',
    'ResponseBuilder',
    'give_response',
    'StaticLiveRequest',
    'RequestMatcher',
    'MatchReport',
    'Expectation',
    'ExpectationRegistry',
    'ExpectationLoader',
    'StubServer',
    'StubConfig',
    'ServerState',
    'create_stub_server',
]

__version__ = '1.0.0'
