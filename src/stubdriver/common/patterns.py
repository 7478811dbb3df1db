"""
StubDriver Pattern Values

A value used throughout request matching that is either a literal string
or a regular expression.

Literals compare with exact, case-sensitive equality. Regular expressions
must match the whole candidate string, not a substring of it.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Pattern

from ..errors import MalformedSpecificationError


class PatternKind(Enum):
    """Tag for the two PatternValue variants."""

    LITERAL = "literal"
    REGEX = "regex"


@dataclass(frozen=True)
class PatternValue:
    """
    Literal-or-regex value with an accepts() predicate.

    Exactly one of literal/pattern is set, according to kind.

    Example:
        PatternValue.of("vv").accepts("vv")               # True
        PatternValue.of(re.compile(r"v\\d")).accepts("v2")  # True
        regex(r"v\\d").accepts("xv2")                      # False, not a full match
    """

    kind: PatternKind
    literal: Optional[str] = None
    pattern: Optional[Pattern] = None

    def __post_init__(self):
        if self.kind is PatternKind.LITERAL:
            if not isinstance(self.literal, str) or self.pattern is not None:
                raise MalformedSpecificationError("Literal PatternValue requires a string literal and no pattern")
        elif self.kind is PatternKind.REGEX:
            if self.pattern is None or self.literal is not None:
                raise MalformedSpecificationError("Regex PatternValue requires a compiled pattern and no literal")
        else:
            raise MalformedSpecificationError(f"Unknown pattern kind: {self.kind!r}")

    @classmethod
    def of(cls, value: Any) -> 'PatternValue':
        """
        Coerce a builder argument into a PatternValue.

        Args:
            value: str (literal), int/float (literal of its str()),
                compiled regex, or an existing PatternValue

        Returns:
            PatternValue

        Raises:
            MalformedSpecificationError: If value is None or of an unsupported type
        """
        if isinstance(value, PatternValue):
            return value
        if isinstance(value, str):
            return cls(PatternKind.LITERAL, literal=value)
        if isinstance(value, re.Pattern):
            if not isinstance(value.pattern, str):
                raise MalformedSpecificationError("Byte patterns are not supported")
            return cls(PatternKind.REGEX, pattern=value)
        # bool is an int subclass but never a sensible parameter value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return cls(PatternKind.LITERAL, literal=str(value))
        if value is None:
            raise MalformedSpecificationError("A value or pattern is required, got None")
        raise MalformedSpecificationError(f"Cannot use {type(value).__name__} as a literal or pattern")

    @property
    def is_regex(self) -> bool:
        return self.kind is PatternKind.REGEX

    def accepts(self, candidate: Optional[str]) -> bool:
        """Return True if candidate satisfies this value."""
        if candidate is None:
            return False
        if self.kind is PatternKind.LITERAL:
            return candidate == self.literal
        return self.pattern.fullmatch(candidate) is not None

    def describe(self) -> str:
        """Short human-readable form used in diagnostics."""
        if self.kind is PatternKind.LITERAL:
            return repr(self.literal)
        return f"~/{self.pattern.pattern}/"

    def __str__(self) -> str:
        return self.describe()


def literal(value: str) -> PatternValue:
    """Build a literal PatternValue."""
    return PatternValue(PatternKind.LITERAL, literal=value)


def regex(pattern, flags: int = 0) -> PatternValue:
    """
    Build a regex PatternValue from a pattern string or compiled pattern.

    Raises:
        MalformedSpecificationError: If the pattern does not compile
    """
    if isinstance(pattern, re.Pattern):
        return PatternValue.of(pattern)
    try:
        compiled = re.compile(pattern, flags)
    except (re.error, TypeError) as e:
        raise MalformedSpecificationError(f"Invalid regular expression {pattern!r}: {e}") from e
    return PatternValue(PatternKind.REGEX, pattern=compiled)
