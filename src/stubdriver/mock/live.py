"""
StubDriver Live Requests

Read-only view of an inbound HTTP request as consumed by the matcher, and
the adapter that builds it from a FastAPI/Starlette request.
"""

import io
from typing import BinaryIO, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import parse_qsl

from fastapi import Request

from ..common import charset_from_content_type, format_params, media_type, truncate

FORM_MEDIA_TYPE = 'application/x-www-form-urlencoded'


class LiveRequest(Protocol):
    """What the matcher needs from an inbound request."""

    method: str
    path_info: str
    content_type: Optional[str]

    def param_map(self) -> Mapping[str, List[str]]:
        """All parameter values by name, including repeated occurrences."""
        ...

    def header_values(self, name: str) -> Optional[List[str]]:
        """All values of a header, or None when the header was not sent."""
        ...

    def body_reader(self) -> BinaryIO:
        """Fresh binary stream over the request body; caller closes it."""
        ...


class StaticLiveRequest:
    """
    LiveRequest over data already held in memory.

    Header lookup is case-insensitive. Pass body_reader to supply a custom
    stream factory (for instance one that fails) instead of body bytes.
    """

    def __init__(
        self,
        method: str,
        path_info: str,
        params: Optional[Mapping[str, Iterable[str]]] = None,
        headers: Optional[Iterable[Tuple[str, str]]] = None,
        content_type: Optional[str] = None,
        body: bytes = b'',
        body_reader: Optional[Callable[[], BinaryIO]] = None
    ):
        self.method = method.upper()
        self.path_info = path_info
        self.content_type = content_type
        self.body = body
        self._params: Dict[str, List[str]] = {
            name: list(values) for name, values in (params or {}).items()
        }
        self._headers: Dict[str, List[str]] = {}
        for name, value in self._header_items(headers):
            self._headers.setdefault(name.lower(), []).append(value)
        self._body_reader = body_reader

    @staticmethod
    def _header_items(headers) -> Iterable[Tuple[str, str]]:
        if headers is None:
            return []
        if isinstance(headers, Mapping):
            items = []
            for name, value in headers.items():
                if isinstance(value, (list, tuple)):
                    items.extend((name, v) for v in value)
                else:
                    items.append((name, value))
            return items
        return headers

    def param_map(self) -> Mapping[str, List[str]]:
        return self._params

    def header_values(self, name: str) -> Optional[List[str]]:
        values = self._headers.get(name.lower())
        return list(values) if values else None

    def body_reader(self) -> BinaryIO:
        if self._body_reader is not None:
            return self._body_reader()
        return io.BytesIO(self.body)

    def describe(self) -> str:
        """One-line summary for logs and miss records."""
        text = f"{self.method} {self.path_info}"
        if self._params:
            text += f"?{format_params(self._params.items())}"
        if self.content_type:
            text += f" [{self.content_type}]"
        if self.body:
            text += f" body={truncate(self.body.decode('utf-8', errors='replace'), 80)!r}"
        return text

    def to_dict(self) -> Dict[str, object]:
        return {
            'method': self.method,
            'path': self.path_info,
            'params': dict(self._params),
            'headers': {name: list(values) for name, values in self._headers.items()},
            'content_type': self.content_type,
            'body': truncate(self.body.decode('utf-8', errors='replace'), 500) if self.body else ''
        }


async def from_fastapi_request(request: Request) -> StaticLiveRequest:
    """
    Read a FastAPI request once and adapt it for matching.

    Parameters are every query-string occurrence, followed by the fields of
    an application/x-www-form-urlencoded body.
    """
    body = await request.body()
    content_type = request.headers.get('content-type')

    params: Dict[str, List[str]] = {}
    for name, value in request.query_params.multi_items():
        params.setdefault(name, []).append(value)

    if body and media_type(content_type) == FORM_MEDIA_TYPE:
        charset = charset_from_content_type(content_type)
        try:
            form_fields = parse_qsl(body.decode(charset), keep_blank_values=True, encoding=charset)
        except ValueError:
            # UnicodeDecodeError included; the body still reaches the matcher
            form_fields = []
        for name, value in form_fields:
            params.setdefault(name, []).append(value)

    return StaticLiveRequest(
        method=request.method,
        path_info=request.scope['path'],
        params=params,
        headers=request.headers.items(),
        content_type=content_type,
        body=body
    )
