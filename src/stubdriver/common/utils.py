"""
StubDriver Common Utilities

Small helpers shared by the builders, the matcher and the server.
"""

import codecs
import os
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ..errors import MalformedSpecificationError

DEFAULT_CHARSET = 'utf-8'


def get_env_setting(name: str, prefix: str = 'STUBDRIVER_', default: Optional[str] = None) -> Optional[str]:
    """
    Read a StubDriver setting from the environment.

    Args:
        name: Setting name without prefix (e.g. 'PORT')
        prefix: Environment variable prefix
        default: Value returned when the variable is unset or blank

    Returns:
        Stripped value of {prefix}{name}, or default

    Example:
        port = int(get_env_setting('PORT', default='0'))
    """
    value = os.environ.get(f"{prefix}{name}")
    if value is None or not value.strip():
        return default
    return value.strip()


def charset_from_content_type(content_type: Optional[str]) -> str:
    """
    Extract the charset parameter of a Content-Type header.

    Falls back to UTF-8 when no charset is declared or the declared one is
    not known to Python's codec registry.
    """
    if not content_type:
        return DEFAULT_CHARSET

    for part in content_type.split(';')[1:]:
        key, _, value = part.partition('=')
        if key.strip().lower() == 'charset' and value.strip():
            charset = value.strip().strip('"\'')
            try:
                codecs.lookup(charset)
            except LookupError:
                return DEFAULT_CHARSET
            return charset

    return DEFAULT_CHARSET


def media_type(content_type: Optional[str]) -> Optional[str]:
    """Return the lower-cased media type of a Content-Type header, without parameters."""
    if content_type is None:
        return None
    return content_type.split(';', 1)[0].strip().lower()


def pair_up(items: Sequence[Any]) -> List[Tuple[Any, Any]]:
    """
    Turn a flat [name1, value1, name2, value2, ...] sequence into pairs.

    Raises:
        MalformedSpecificationError: If the sequence has odd length
    """
    if len(items) % 2 != 0:
        raise MalformedSpecificationError(
            f"Expected name/value pairs, got an odd number of items ({len(items)})"
        )
    return [(items[i], items[i + 1]) for i in range(0, len(items), 2)]


def truncate(text: str, limit: int = 200) -> str:
    """Shorten text for log lines and diagnostics."""
    if len(text) <= limit:
        return text
    return text[:limit] + f"... ({len(text) - limit} more chars)"


def format_params(params: Iterable[Tuple[str, Iterable[Any]]]) -> str:
    """Render a name -> values mapping as a query-string-like summary."""
    parts = []
    for name, values in params:
        for value in values:
            parts.append(f"{name}={value}")
    return '&'.join(parts)
