"""
StubDriver Expectation Registry

Thread-safe, ordered store of (expected request -> expected response)
pairs.

The test thread registers expectations while server handlers consume
them. A single lock serialises register, find_and_consume and reset, so
two concurrent requests can never claim the same single-use expectation.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .live import LiveRequest
from .matcher import MatchReport, RequestMatcher
from .request import ExpectedRequest
from .response import ExpectedResponse
from ..errors import MalformedSpecificationError

logger = logging.getLogger("stubdriver.mock.registry")


@dataclass
class Expectation:
    """
    A registered request/response pair.

    consumed flips to True exactly once, under the registry lock, the first
    time a live request matches. Reusable expectations stay eligible after
    that and keep counting matches.
    """

    id: int
    request: ExpectedRequest
    response: ExpectedResponse
    reusable: bool = False
    consumed: bool = False
    match_count: int = 0

    @property
    def available(self) -> bool:
        return self.reusable or not self.consumed

    def describe(self) -> str:
        text = f"#{self.id} {self.request.describe()} -> {self.response.describe()}"
        if self.reusable:
            text += f" (reusable, matched {self.match_count}x)"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'request': self.request.to_dict(),
            'response': self.response.to_dict(),
            'reusable': self.reusable,
            'consumed': self.consumed,
            'match_count': self.match_count
        }


class ExpectationRegistry:
    """
    Ordered collection of expectations shared between the test thread and
    server handler threads.

    Example:
        registry = ExpectationRegistry()
        registry.register(on_request('/a').build(), give_response('ok').build())

        expectation = registry.find_and_consume(live_request)
        if expectation is None:
            ...  # unexpected request

        assert registry.verify() == []
    """

    def __init__(self, matcher: Optional[RequestMatcher] = None):
        self.matcher = matcher or RequestMatcher()
        self._lock = threading.Lock()
        self._expectations: List[Expectation] = []
        self._unexpected: List[str] = []
        self._ids = itertools.count(1)

    def register(
        self,
        request: ExpectedRequest,
        response: ExpectedResponse,
        reusable: bool = False
    ) -> Expectation:
        """Append a new, unconsumed expectation."""
        if not isinstance(request, ExpectedRequest):
            raise MalformedSpecificationError(f"Expected an ExpectedRequest, got {type(request).__name__}")
        if not isinstance(response, ExpectedResponse):
            raise MalformedSpecificationError(f"Expected an ExpectedResponse, got {type(response).__name__}")

        with self._lock:
            expectation = Expectation(
                id=next(self._ids),
                request=request,
                response=response,
                reusable=reusable
            )
            self._expectations.append(expectation)

        logger.info(f"Registered expectation {expectation.describe()}")
        return expectation

    def find_and_consume(self, live: LiveRequest) -> Optional[Expectation]:
        """
        Claim the first available expectation, in registration order, that
        matches the live request.

        Returns:
            The claimed Expectation, or None if nothing matched (no side effects)
        """
        with self._lock:
            for expectation in self._expectations:
                if not expectation.available:
                    continue
                if self.matcher.is_match(live, expectation.request):
                    expectation.consumed = True
                    expectation.match_count += 1
                    logger.debug(f"Request {live.method} {live.path_info} matched #{expectation.id}")
                    return expectation
        return None

    def closest_matches(self, live: LiveRequest, limit: int = 3) -> List[MatchReport]:
        """Best near-misses among available expectations, highest score first."""
        with self._lock:
            candidates = [e.request for e in self._expectations if e.available]

        reports = [self.matcher.explain(live, request) for request in candidates]
        # sorted() is stable, so equal scores keep registration order
        reports = sorted(reports, key=lambda report: report.score, reverse=True)
        return reports[:limit]

    def record_unexpected(self, description: str):
        """Remember a request that matched nothing, for verification messages."""
        with self._lock:
            self._unexpected.append(description)

    def unexpected(self) -> List[str]:
        with self._lock:
            return list(self._unexpected)

    def verify(self) -> List[Expectation]:
        """Return every expectation never consumed; empty means all were fulfilled."""
        with self._lock:
            return [e for e in self._expectations if not e.consumed]

    def pending(self) -> List[Expectation]:
        """Alias of verify() for callers that just want to inspect."""
        return self.verify()

    def all(self) -> List[Expectation]:
        with self._lock:
            return list(self._expectations)

    def reset(self):
        """Drop all expectations and recorded unexpected requests."""
        with self._lock:
            cleared = len(self._expectations)
            self._expectations.clear()
            self._unexpected.clear()
        logger.debug(f"Registry reset ({cleared} expectations cleared)")

    def __len__(self) -> int:
        with self._lock:
            return len(self._expectations)
