"""
StubDriver Request Matcher

Decides whether a live request satisfies an expected request.

All clauses must hold:
- Method: exact equality
- Path: the path PatternValue accepts the request path
- Params: identical key sets, equal value counts per key, and an
  order-independent one-to-one pairing of expected values to actual values
- Body (only when expected): content type present and accepted, decoded
  body accepted
- Headers: every expected header is present and at least one of its
  values is accepted

is_match() short-circuits on the first failing clause. explain() evaluates
every clause and records why each failed, for near-miss diagnostics.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..common import PatternValue, charset_from_content_type
from .live import LiveRequest
from .request import ExpectedRequest

logger = logging.getLogger("stubdriver.mock.matcher")

CLAUSES = ('method', 'path', 'params', 'body', 'headers')


@dataclass
class MatchReport:
    """Clause-by-clause outcome of comparing one live request to one expectation."""

    expected: ExpectedRequest
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return not self.failures

    @property
    def score(self) -> int:
        """Number of passing clauses (0 to 5)."""
        return len(CLAUSES) - len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'expectation': self.expected.describe(),
            'score': self.score,
            'failed': dict(self.failures)
        }


class RequestMatcher:
    """
    Stateless matcher comparing a live request against an ExpectedRequest.

    Example:
        matcher = RequestMatcher()
        if matcher.is_match(live, expected):
            ...
        report = matcher.explain(live, expected)
        print(report.failures)
    """

    def is_match(self, live: LiveRequest, expected: ExpectedRequest) -> bool:
        """Return True iff every clause holds; never raises for well-formed input."""
        return (
            self._method_failure(live, expected) is None
            and self._path_failure(live, expected) is None
            and self._params_failure(live, expected) is None
            and self._body_failure(live, expected) is None
            and self._headers_failure(live, expected) is None
        )

    def explain(self, live: LiveRequest, expected: ExpectedRequest) -> MatchReport:
        """Evaluate every clause and collect a reason for each one that fails."""
        report = MatchReport(expected=expected)
        checks = (
            ('method', self._method_failure),
            ('path', self._path_failure),
            ('params', self._params_failure),
            ('body', self._body_failure),
            ('headers', self._headers_failure),
        )
        for clause, check in checks:
            reason = check(live, expected)
            if reason is not None:
                report.failures[clause] = reason
        return report

    # Each clause returns None when it holds, otherwise the reason it failed.

    def _method_failure(self, live: LiveRequest, expected: ExpectedRequest) -> Optional[str]:
        if (live.method or '').upper() != expected.method.value:
            return f"expected method {expected.method.value}, got {live.method}"
        return None

    def _path_failure(self, live: LiveRequest, expected: ExpectedRequest) -> Optional[str]:
        if not expected.path.accepts(live.path_info):
            return f"path {live.path_info!r} not accepted by {expected.path.describe()}"
        return None

    def _params_failure(self, live: LiveRequest, expected: ExpectedRequest) -> Optional[str]:
        actual = live.param_map() or {}
        expected_keys = set(expected.params.keys())
        actual_keys = set(actual.keys())

        if expected_keys != actual_keys:
            missing = sorted(expected_keys - actual_keys)
            extra = sorted(actual_keys - expected_keys)
            parts = []
            if missing:
                parts.append(f"missing {missing}")
            if extra:
                parts.append(f"unexpected {extra}")
            return f"parameter names differ: {', '.join(parts)}"

        for name, expected_values in expected.params.items():
            actual_values = actual.get(name)
            if actual_values is None:
                return f"parameter {name!r} has no values"
            if len(actual_values) != len(expected_values):
                return (
                    f"parameter {name!r} expected {len(expected_values)} value(s), "
                    f"got {len(actual_values)}"
                )
            if not values_correspond(expected_values, list(actual_values)):
                shown = ', '.join(v.describe() for v in expected_values)
                return f"parameter {name!r} values {list(actual_values)} do not match [{shown}]"

        return None

    def _body_failure(self, live: LiveRequest, expected: ExpectedRequest) -> Optional[str]:
        if expected.body is None:
            return None

        if live.content_type is None:
            return "expected a body but the request has no content type"
        if not expected.body.content_type.accepts(live.content_type):
            return (
                f"content type {live.content_type!r} not accepted by "
                f"{expected.body.content_type.describe()}"
            )

        body = read_body(live)
        if body is None:
            return "request body could not be read"
        if not expected.body.content.accepts(body):
            return f"body not accepted by {expected.body.content.describe()}"
        return None

    def _headers_failure(self, live: LiveRequest, expected: ExpectedRequest) -> Optional[str]:
        for name, pattern in expected.headers.items():
            values = live.header_values(name)
            if values is None:
                return f"header {name!r} missing"
            if not any(pattern.accepts(value) for value in values):
                return f"header {name!r} values {list(values)} not accepted by {pattern.describe()}"
        return None


def read_body(live: LiveRequest) -> Optional[str]:
    """
    Read and decode the full body of a live request.

    Returns:
        Body text, or None if the stream failed or did not decode
    """
    try:
        with live.body_reader() as stream:
            data = stream.read()
        return data.decode(charset_from_content_type(live.content_type))
    except (OSError, ValueError) as e:
        # UnicodeDecodeError is a ValueError
        logger.warning(f"Could not read body of {live.method} {live.path_info}: {e}")
        return None


def values_correspond(expected: Sequence[PatternValue], actual: List[str]) -> bool:
    """
    Return True if there is a one-to-one pairing in which every expected
    value accepts its actual value. Order of either sequence is irrelevant.
    """
    if len(expected) != len(actual):
        return False

    if any(candidate is None for candidate in actual):
        return False

    if all(not value.is_regex for value in expected):
        return sorted(value.literal for value in expected) == sorted(actual)

    # Bipartite matching by augmenting paths; value counts are small
    candidates = [
        [j for j, candidate in enumerate(actual) if value.accepts(candidate)]
        for value in expected
    ]
    owner: Dict[int, int] = {}

    def assign(i: int, seen: set) -> bool:
        for j in candidates[i]:
            if j in seen:
                continue
            seen.add(j)
            if j not in owner or assign(owner[j], seen):
                owner[j] = i
                return True
        return False

    return all(assign(i, set()) for i in range(len(expected)))
