"""
StubDriver Common Utilities

Pattern values and helpers shared across StubDriver modules.
"""

from .patterns import PatternKind, PatternValue, literal, regex
from .utils import (
    get_env_setting,
    charset_from_content_type,
    media_type,
    pair_up,
    truncate,
    format_params
)

__all__ = [
    'PatternKind',
    'PatternValue',
    'literal',
    'regex',
    'get_env_setting',
    'charset_from_content_type',
    'media_type',
    'pair_up',
    'truncate',
    'format_params'
]
