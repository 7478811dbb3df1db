"""
StubDriver Expectation Loader

Reads expectations from YAML or JSON files so fixtures can live next to
the tests that use them.

File format (YAML shown; JSON has the same shape):

    expectations:
      - request:
          method: GET
          path: /users
          params:
            page: "1"
            tag: [red, {regex: "b.*"}]
          headers:
            Accept: application/json
        response:
          status: 200
          body: '{"users": []}'
          content_type: application/json
      - request:
          method: POST
          path: {regex: "/users/\\d+"}
          body:
            content: {regex: ".*alice.*"}
            content_type: application/json
        response:
          status: 201
        reusable: true

A plain string is a literal; a mapping with a single 'regex' key is a
pattern. A bare top-level list of entries is also accepted.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..common import PatternValue, regex
from ..errors import MalformedSpecificationError
from .request import ExpectedRequest, RequestBuilder
from .response import ExpectedResponse


@dataclass
class LoadedExpectation:
    """One entry of an expectation file."""

    request: ExpectedRequest
    response: ExpectedResponse
    reusable: bool = False


def parse_pattern(value: Any, where: str) -> PatternValue:
    """Turn a file value (string, number or {regex: ...}) into a PatternValue."""
    if isinstance(value, dict):
        if set(value.keys()) != {'regex'}:
            raise MalformedSpecificationError(
                f"{where}: pattern mappings take exactly one 'regex' key, got {sorted(value.keys())}"
            )
        return regex(value['regex'])
    try:
        return PatternValue.of(value)
    except MalformedSpecificationError as e:
        raise MalformedSpecificationError(f"{where}: {e}") from e


def parse_request(data: Dict[str, Any], where: str) -> ExpectedRequest:
    if not isinstance(data, dict) or 'path' not in data:
        raise MalformedSpecificationError(f"{where}: request must be a mapping with a 'path'")

    builder = RequestBuilder(parse_pattern(data['path'], f"{where}.path"))
    builder.with_method(data.get('method', 'GET'))

    for name, values in (data.get('params') or {}).items():
        if not isinstance(values, list):
            values = [values]
        if not values:
            raise MalformedSpecificationError(f"{where}.params.{name}: needs at least one value")
        for value in values:
            builder.with_param(str(name), parse_pattern(value, f"{where}.params.{name}"))

    for name, value in (data.get('headers') or {}).items():
        builder.with_header(str(name), parse_pattern(value, f"{where}.headers.{name}"))

    body = data.get('body')
    if body is not None:
        if not isinstance(body, dict) or 'content' not in body or 'content_type' not in body:
            raise MalformedSpecificationError(f"{where}.body: needs 'content' and 'content_type'")
        builder.with_body(
            parse_pattern(body['content'], f"{where}.body.content"),
            parse_pattern(body['content_type'], f"{where}.body.content_type")
        )

    return builder.build()


def parse_response(data: Dict[str, Any], where: str) -> ExpectedResponse:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedSpecificationError(f"{where}: response must be a mapping")

    body = data.get('body')
    if body is not None and not isinstance(body, (str, bytes)):
        # Structured bodies are serialised as JSON
        body = json.dumps(body)

    return ExpectedResponse.of(
        body=body,
        content_type=data.get('content_type'),
        status=data.get('status', 200),
        headers={str(k): str(v) for k, v in (data.get('headers') or {}).items()},
        delay_ms=data.get('delay_ms', 0)
    )


class ExpectationLoader:
    """
    Loader for expectation files.

    Example:
        loader = ExpectationLoader("fixtures/users.yaml")
        for entry in loader.load():
            server.add_expectation(entry.request, entry.response, reusable=entry.reusable)
    """

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)

    def load(self) -> List[LoadedExpectation]:
        """
        Load and validate every expectation in the file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            MalformedSpecificationError: If an entry is invalid
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Expectation file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            if self.file_path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        if isinstance(data, dict):
            if 'expectations' not in data:
                raise MalformedSpecificationError(
                    f"Unexpected format in {self.file_path}. "
                    f"Expected a mapping with an 'expectations' key or a list. "
                    f"Found keys: {list(data.keys())}"
                )
            entries = data['expectations'] or []
        elif isinstance(data, list):
            entries = data
        elif data is None:
            entries = []
        else:
            raise MalformedSpecificationError(
                f"Unexpected format in {self.file_path}: {type(data).__name__}"
            )

        loaded = []
        for index, entry in enumerate(entries):
            where = f"{self.file_path.name}[{index}]"
            if not isinstance(entry, dict) or 'request' not in entry:
                raise MalformedSpecificationError(f"{where}: entry must be a mapping with a 'request'")
            loaded.append(LoadedExpectation(
                request=parse_request(entry['request'], f"{where}.request"),
                response=parse_response(entry.get('response'), f"{where}.response"),
                reusable=bool(entry.get('reusable', False))
            ))
        return loaded
