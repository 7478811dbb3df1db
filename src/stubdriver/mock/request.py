"""
StubDriver Expected Request

Immutable description of a request a test expects the stub server to
receive, and the builder that produces it.

Example:
    expected = (
        on_request('/users')
        .with_method('GET')
        .with_param('page', '1')
        .with_param('tag', re.compile(r'[a-z]+'))
        .with_header('Accept', 'application/json')
        .build()
    )
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..common import PatternValue, pair_up
from ..errors import MalformedSpecificationError


class Method(Enum):
    """HTTP methods the stub server can expect."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @classmethod
    def parse(cls, value: Union['Method', str]) -> 'Method':
        """
        Resolve a Method from an enum member or a method name (any case).

        Raises:
            MalformedSpecificationError: If value names no known method
        """
        if isinstance(value, Method):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise MalformedSpecificationError(f"Unsupported HTTP method: {value!r}")


@dataclass(frozen=True)
class BodySpec:
    """Expected body content and content type."""

    content: PatternValue
    content_type: PatternValue

    def __post_init__(self):
        object.__setattr__(self, 'content', PatternValue.of(self.content))
        object.__setattr__(self, 'content_type', PatternValue.of(self.content_type))

    def describe(self) -> str:
        return f"{self.content.describe()} ({self.content_type.describe()})"


def _freeze_params(params: Mapping[str, Any]) -> Mapping[str, Tuple[PatternValue, ...]]:
    return MappingProxyType({name: tuple(values) for name, values in params.items()})


def _coerce_params(params: Any) -> Dict[str, List[PatternValue]]:
    if params is None:
        return {}
    if not isinstance(params, Mapping):
        raise MalformedSpecificationError(f"params must be a mapping, got {type(params).__name__}")
    coerced = {}
    for name, values in params.items():
        if not isinstance(name, str) or not name:
            raise MalformedSpecificationError(f"Parameter name must be a non-empty string, got {name!r}")
        if not isinstance(values, (list, tuple)):
            values = [values]
        if not values:
            raise MalformedSpecificationError(f"Parameter {name!r} needs at least one value")
        coerced[name] = [PatternValue.of(value) for value in values]
    return coerced


def _coerce_headers(headers: Any) -> Dict[str, PatternValue]:
    if headers is None:
        return {}
    if not isinstance(headers, Mapping):
        raise MalformedSpecificationError(f"headers must be a mapping, got {type(headers).__name__}")
    coerced = {}
    for name, value in headers.items():
        if not isinstance(name, str) or not name:
            raise MalformedSpecificationError(f"Header name must be a non-empty string, got {name!r}")
        coerced[name] = PatternValue.of(value)
    return coerced


@dataclass(frozen=True)
class ExpectedRequest:
    """
    A request the test expects to receive.

    Instances are immutable: params and headers are read-only mappings and
    each parameter maps to a tuple of PatternValues. Build them with
    RequestBuilder (or on_request()).
    """

    method: Method
    path: PatternValue
    params: Mapping[str, Tuple[PatternValue, ...]] = field(default_factory=lambda: MappingProxyType({}))
    headers: Mapping[str, PatternValue] = field(default_factory=lambda: MappingProxyType({}))
    body: Optional[BodySpec] = None

    def __post_init__(self):
        if not isinstance(self.method, Method):
            raise MalformedSpecificationError(f"method must be a Method, got {self.method!r}")
        if not isinstance(self.path, PatternValue):
            raise MalformedSpecificationError(f"path must be a PatternValue, got {self.path!r}")
        if self.body is not None and not isinstance(self.body, BodySpec):
            raise MalformedSpecificationError(f"body must be a BodySpec or None, got {self.body!r}")
        # Coerce and freeze so the matcher only ever sees PatternValues in read-only containers
        object.__setattr__(self, 'params', _freeze_params(_coerce_params(self.params)))
        object.__setattr__(self, 'headers', MappingProxyType(_coerce_headers(self.headers)))

    @staticmethod
    def builder(path: Any) -> 'RequestBuilder':
        return RequestBuilder(path)

    def describe(self) -> str:
        """Render the expectation on one line for diagnostics."""
        text = f"{self.method.value} {self.path.describe()}"
        if self.params:
            rendered = ', '.join(
                f"{name}=[{', '.join(v.describe() for v in values)}]"
                for name, values in self.params.items()
            )
            text += f" params {{{rendered}}}"
        if self.headers:
            rendered = ', '.join(f"{name}: {value.describe()}" for name, value in self.headers.items())
            text += f" headers {{{rendered}}}"
        if self.body is not None:
            text += f" body {self.body.describe()}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (patterns rendered as strings)."""
        return {
            'method': self.method.value,
            'path': self.path.describe(),
            'params': {name: [v.describe() for v in values] for name, values in self.params.items()},
            'headers': {name: value.describe() for name, value in self.headers.items()},
            'body': {
                'content': self.body.content.describe(),
                'content_type': self.body.content_type.describe()
            } if self.body else None
        }


class RequestBuilder:
    """
    Chained builder for ExpectedRequest.

    The builder is mutable; build() returns an immutable ExpectedRequest
    snapshot, so later builder calls never affect a built value.
    """

    def __init__(self, path: Any):
        """
        Initialize builder.

        Args:
            path: Literal path string or compiled regex for the request path
        """
        self._path = PatternValue.of(path)
        self._method = Method.GET
        self._params: Dict[str, List[PatternValue]] = {}
        self._headers: Dict[str, PatternValue] = {}
        self._body: Optional[BodySpec] = None

    def with_method(self, method: Union[Method, str]) -> 'RequestBuilder':
        self._method = Method.parse(method)
        return self

    def with_param(self, name: str, value: Any) -> 'RequestBuilder':
        """
        Expect a query/form parameter. Repeat the call to expect several
        values for the same name; their order does not matter when matching.
        """
        if not isinstance(name, str) or not name:
            raise MalformedSpecificationError(f"Parameter name must be a non-empty string, got {name!r}")
        self._params.setdefault(name, []).append(PatternValue.of(value))
        return self

    def with_params(self, params: Mapping[str, Any]) -> 'RequestBuilder':
        """Expect every parameter in a mapping; list/tuple values add one value each."""
        for name, value in params.items():
            if isinstance(value, (list, tuple)):
                if not value:
                    raise MalformedSpecificationError(f"Parameter {name!r} needs at least one value")
                for item in value:
                    self.with_param(name, item)
            else:
                self.with_param(name, value)
        return self

    def with_param_list(self, *items: Any) -> 'RequestBuilder':
        """Expect parameters given as name1, value1, name2, value2, ..."""
        for name, value in pair_up(items):
            self.with_param(name, value)
        return self

    def with_header(self, name: str, value: Any) -> 'RequestBuilder':
        if not isinstance(name, str) or not name:
            raise MalformedSpecificationError(f"Header name must be a non-empty string, got {name!r}")
        self._headers[name] = PatternValue.of(value)
        return self

    def with_body(self, content: Any, content_type: Any) -> 'RequestBuilder':
        """Expect a body; both content and content type must then match."""
        self._body = BodySpec(content, content_type)
        return self

    def build(self) -> ExpectedRequest:
        return ExpectedRequest(
            method=self._method,
            path=self._path,
            params=self._params,
            headers=self._headers,
            body=self._body
        )


def on_request(path: Any) -> RequestBuilder:
    """Start building an expected request for path (literal or compiled regex)."""
    return RequestBuilder(path)
