"""Path resolution over arbitrary data trees.

- schemas.py  - PropertyPath and its typed segments
- resolver.py - parse / get / legacy dot-notation / derivation expressions
"""

from .resolver import (
    append,
    collect_values,
    exists,
    get,
    get_by_dot_notation,
    parent,
    parse,
    parse_expression,
)
from .schemas import (
    ArrayExpansionSegment,
    ArrayIndexSegment,
    PathSegment,
    PropertyPath,
    PropertySegment,
)

__all__ = [
    "ArrayExpansionSegment",
    "ArrayIndexSegment",
    "PathSegment",
    "PropertyPath",
    "PropertySegment",
    "append",
    "collect_values",
    "exists",
    "get",
    "get_by_dot_notation",
    "parent",
    "parse",
    "parse_expression",
]
