"""
StubDriver Expected Response

The canned response written back when a live request matches an
expectation, and its builder.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from ..errors import MalformedSpecificationError


@dataclass(frozen=True)
class ExpectedResponse:
    """Canned status, body, content type, headers and simulated delay."""

    status: int = 200
    body: Optional[bytes] = None
    content_type: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    delay_ms: int = 0

    def __post_init__(self):
        if isinstance(self.status, bool) or not isinstance(self.status, int) or not 100 <= self.status <= 599:
            raise MalformedSpecificationError(f"Status must be an integer in 100..599, got {self.status!r}")
        if isinstance(self.delay_ms, bool) or not isinstance(self.delay_ms, int) or self.delay_ms < 0:
            raise MalformedSpecificationError(f"Delay must be a non-negative number of milliseconds, got {self.delay_ms!r}")
        if isinstance(self.body, str):
            object.__setattr__(self, 'body', self.body.encode('utf-8'))
        elif self.body is not None and not isinstance(self.body, (bytes, bytearray)):
            raise MalformedSpecificationError(f"Body must be str or bytes, got {type(self.body).__name__}")
        elif isinstance(self.body, bytearray):
            object.__setattr__(self, 'body', bytes(self.body))
        headers = self.headers if self.headers is not None else {}
        if not isinstance(headers, Mapping):
            raise MalformedSpecificationError(f"Response headers must be a mapping, got {type(headers).__name__}")
        for name, value in headers.items():
            if not isinstance(name, str) or not isinstance(value, str):
                raise MalformedSpecificationError(f"Response headers must be str -> str, got {name!r}: {value!r}")
        object.__setattr__(self, 'headers', MappingProxyType(dict(headers)))

    @classmethod
    def of(
        cls,
        body: Union[str, bytes, None] = None,
        content_type: Optional[str] = None,
        status: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        delay_ms: int = 0
    ) -> 'ExpectedResponse':
        """Convenience constructor mirroring the builder arguments."""
        return cls(
            status=status,
            body=body,
            content_type=content_type,
            headers=dict(headers or {}),
            delay_ms=delay_ms
        )

    def describe(self) -> str:
        text = f"{self.status}"
        if self.content_type:
            text += f" {self.content_type}"
        if self.body:
            text += f" ({len(self.body)} bytes)"
        if self.delay_ms:
            text += f" after {self.delay_ms}ms"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'content_type': self.content_type,
            'headers': dict(self.headers),
            'body_length': len(self.body) if self.body else 0,
            'delay_ms': self.delay_ms
        }


class ResponseBuilder:
    """Chained builder for ExpectedResponse."""

    def __init__(self, body: Union[str, bytes, None] = None, content_type: Optional[str] = None):
        self._body = body
        self._content_type = content_type
        self._status = 200
        self._headers: Dict[str, str] = {}
        self._delay_ms = 0

    def with_status(self, status: int) -> 'ResponseBuilder':
        self._status = status
        return self

    def with_header(self, name: str, value: str) -> 'ResponseBuilder':
        self._headers[name] = value
        return self

    def with_delay(self, delay_ms: int) -> 'ResponseBuilder':
        self._delay_ms = delay_ms
        return self

    def with_delay_seconds(self, seconds: float) -> 'ResponseBuilder':
        if seconds < 0:
            raise MalformedSpecificationError(f"Delay must be non-negative, got {seconds!r}")
        self._delay_ms = int(round(seconds * 1000))
        return self

    def build(self) -> ExpectedResponse:
        return ExpectedResponse(
            status=self._status,
            body=self._body,
            content_type=self._content_type,
            headers=dict(self._headers),
            delay_ms=self._delay_ms
        )


def give_response(body: Union[str, bytes, None] = None, content_type: Optional[str] = None) -> ResponseBuilder:
    """Start building a canned response."""
    return ResponseBuilder(body, content_type)
