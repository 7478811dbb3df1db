"""
StubDriver Errors

Exception types raised by the stub server and its builders.

Unmatched traffic is not an exception: the server answers it with a
diagnostic response and records it for verify().
"""

from typing import List, Any


class StubDriverError(Exception):
    """Base class for all StubDriver errors."""


class MalformedSpecificationError(StubDriverError, ValueError):
    """Raised when an expected request or response is built from invalid input."""


class StubServerError(StubDriverError, RuntimeError):
    """Raised on lifecycle misuse or when the HTTP listener fails to start."""


class UnfulfilledExpectationError(StubDriverError, AssertionError):
    """
    Raised by StubServer.verify() when traffic deviated from expectation.

    Attributes:
        pending: Expectations that were never consumed
        unexpected: Descriptions of requests that matched no expectation
    """

    def __init__(self, pending: List[Any], unexpected: List[str]):
        self.pending = list(pending)
        self.unexpected = list(unexpected)
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        lines = []
        if self.pending:
            lines.append(f"{len(self.pending)} expectation(s) not fulfilled:")
            lines.extend(f"  - {expectation.describe()}" for expectation in self.pending)
        if self.unexpected:
            lines.append(f"{len(self.unexpected)} unexpected request(s):")
            lines.extend(f"  - {description}" for description in self.unexpected)
        return "\n".join(lines)
