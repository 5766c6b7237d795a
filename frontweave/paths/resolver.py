"""Path parsing and data-tree navigation.

Two resolvers live here and must agree on every bracket-free path:
- ``get``: segment-based, understands ``name[N]`` array indices
- ``get_by_dot_notation``: the legacy resolver, plain ``a.b.c`` only

Derivation expressions (``commands[].c1``) are handled separately by
``parse_expression`` / ``collect_values`` because they fan out over
arrays instead of addressing a single node.
"""

import logging
import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Union

from frontweave.errors import DataValidationError

from .schemas import (
    ArrayExpansionSegment,
    ArrayIndexSegment,
    PathSegment,
    PropertyPath,
    PropertySegment,
    format_segments,
)

logger = logging.getLogger(__name__)

IDENTIFIER = r"[A-Za-z_$][A-Za-z0-9_$]*"
_IDENTIFIER_RE = re.compile(IDENTIFIER)
_SEGMENT_RE = re.compile(rf"({IDENTIFIER})(?:\[([0-9]+)\])?")
_EXPRESSION_SEGMENT_RE = re.compile(rf"({IDENTIFIER})(?:\[([0-9]*)\])?")

PathLike = Union[str, PropertyPath]


# ── Validation ────────────────────────────────────────


def _check_structure(path: Any) -> list[str]:
    """Validate dot placement and split into raw segments."""
    if not isinstance(path, str) or path.strip() == "":
        raise DataValidationError("Property path cannot be empty", "EmptyInput")
    if path.startswith("."):
        raise DataValidationError(
            "Path cannot have leading dots",
            "PatternMismatch",
            value=path,
            pattern="valid-property-path",
        )
    if path.endswith("."):
        raise DataValidationError(
            "Path cannot have trailing dots",
            "PatternMismatch",
            value=path,
            pattern="valid-property-path",
        )
    position = path.find("..")
    if position != -1:
        raise DataValidationError(
            f"Consecutive dots not allowed at position {position}",
            "PatternMismatch",
            value=path,
            pattern="valid-property-path",
        )
    return path.split(".")


def _check_repeated_names(path: str, names: list[str]) -> None:
    """Reject a path naming the same segment twice.

    This is a syntactic guard only; real schema reference cycles are
    detected by the schema loader and the directive engine.
    """
    seen: set[str] = set()
    for position, name in enumerate(names):
        if name in seen:
            raise DataValidationError(
                f'Circular reference detected at segment "{name}"',
                "PatternMismatch",
                value=path,
                pattern="non-circular-path",
                position=position,
            )
        seen.add(name)


def _invalid_segment(path: str, segment: str, position: int, pattern: str) -> DataValidationError:
    return DataValidationError(
        f'Invalid path segment "{segment}" at position {position}',
        "PatternMismatch",
        value=path,
        pattern=pattern,
        position=position,
    )


# ── Parsing ───────────────────────────────────────────


@lru_cache(maxsize=1024)
def parse(path: str) -> PropertyPath:
    """Parse ``a.b[0].c`` into a PropertyPath.

    Raises:
        DataValidationError: EmptyInput or PatternMismatch
    """
    raw_segments = _check_structure(path)
    segments: list[PathSegment] = []
    names: list[str] = []

    for position, raw in enumerate(raw_segments):
        match = _SEGMENT_RE.fullmatch(raw)
        if not match:
            raise _invalid_segment(path, raw, position, "valid-array-notation")
        name, index = match.group(1), match.group(2)
        names.append(name)
        segments.append(PropertySegment(name=name))
        if index is not None:
            segments.append(ArrayIndexSegment(index=int(index)))

    _check_repeated_names(path, names)
    return PropertyPath(raw=path, segments=tuple(segments))


@lru_cache(maxsize=512)
def parse_expression(expression: str) -> PropertyPath:
    """Parse a derivation expression; ``name[]`` expands the array.

    Repeated names are allowed here (``items[].items``): expressions only
    read data, and schema cycles are caught elsewhere.
    """
    raw_segments = _check_structure(expression)
    segments: list[PathSegment] = []

    for position, raw in enumerate(raw_segments):
        match = _EXPRESSION_SEGMENT_RE.fullmatch(raw)
        if not match:
            raise _invalid_segment(expression, raw, position, "valid-derivation-expression")
        name, index = match.group(1), match.group(2)
        segments.append(PropertySegment(name=name))
        if index == "":
            segments.append(ArrayExpansionSegment())
        elif index is not None:
            segments.append(ArrayIndexSegment(index=int(index)))

    return PropertyPath(raw=expression, segments=tuple(segments))


def _as_path(path: PathLike) -> PropertyPath:
    return path if isinstance(path, PropertyPath) else parse(path)


# ── Navigation ────────────────────────────────────────


def get(data: Any, path: PathLike) -> Any:
    """Resolve ``path`` inside ``data``.

    Raises:
        DataValidationError: InvalidType when a segment meets the wrong
            kind of node, FieldNotFound when a key or index is missing.
    """
    parsed = _as_path(path)
    current = data

    for position, segment in enumerate(parsed.segments):
        if isinstance(segment, PropertySegment):
            if not isinstance(current, Mapping):
                raise DataValidationError(
                    f"Cannot read '{segment.name}' of non-object at "
                    f"'{parsed.prefix(position) or '<root>'}'",
                    "InvalidType",
                    path=parsed.raw,
                    expected="object",
                    actual=type(current).__name__,
                )
            if segment.name not in current:
                raise DataValidationError(
                    f"Field not found: '{parsed.prefix(position + 1)}'",
                    "FieldNotFound",
                    path=parsed.raw,
                )
            current = current[segment.name]
        elif isinstance(segment, ArrayIndexSegment):
            if not isinstance(current, (list, tuple)):
                raise DataValidationError(
                    f"Cannot index non-array at '{parsed.prefix(position)}'",
                    "InvalidType",
                    path=parsed.raw,
                    expected="array",
                    actual=type(current).__name__,
                )
            if not 0 <= segment.index < len(current):
                raise DataValidationError(
                    f"Index {segment.index} out of bounds at "
                    f"'{parsed.prefix(position)}' (length {len(current)})",
                    "FieldNotFound",
                    path=parsed.raw,
                    index=segment.index,
                    length=len(current),
                )
            current = current[segment.index]
        else:
            raise DataValidationError(
                f"Array expansion is not allowed in plain paths: '{parsed.raw}'",
                "PatternMismatch",
                path=parsed.raw,
            )

    return current


def get_by_dot_notation(data: Any, path: str) -> Any:
    """Legacy resolver for bracket-free ``a.b.c`` paths."""
    names = _check_structure(path)
    for position, name in enumerate(names):
        if not _IDENTIFIER_RE.fullmatch(name):
            raise _invalid_segment(path, name, position, "valid-array-notation")
    _check_repeated_names(path, names)

    current = data
    for position, name in enumerate(names):
        walked = ".".join(names[:position])
        if not isinstance(current, Mapping):
            raise DataValidationError(
                f"Cannot read '{name}' of non-object at '{walked or '<root>'}'",
                "InvalidType",
                path=path,
                expected="object",
                actual=type(current).__name__,
            )
        if name not in current:
            raise DataValidationError(
                f"Field not found: '{'.'.join(names[: position + 1])}'",
                "FieldNotFound",
                path=path,
            )
        current = current[name]
    return current


def exists(data: Any, path: PathLike) -> bool:
    """True when ``path`` resolves; validation errors in the path propagate."""
    parsed = _as_path(path)
    try:
        get(data, parsed)
    except DataValidationError as e:
        if e.kind in ("FieldNotFound", "InvalidType"):
            return False
        raise
    return True


def collect_values(data: Any, expression: PathLike) -> list[Any]:
    """Collect every leaf matched by a derivation expression.

    A property segment applied to a list maps over its elements, ``[]``
    fans out explicitly, leaf lists are spliced in and ``None`` leaves
    are dropped.
    """
    parsed = expression if isinstance(expression, PropertyPath) else parse_expression(expression)
    frontier: list[Any] = [data]

    for segment in parsed.segments:
        next_frontier: list[Any] = []
        for node in frontier:
            if isinstance(segment, PropertySegment):
                candidates = node if isinstance(node, (list, tuple)) else [node]
                for candidate in candidates:
                    if isinstance(candidate, Mapping) and segment.name in candidate:
                        next_frontier.append(candidate[segment.name])
            elif isinstance(segment, ArrayIndexSegment):
                if isinstance(node, (list, tuple)) and 0 <= segment.index < len(node):
                    next_frontier.append(node[segment.index])
            elif isinstance(node, (list, tuple)):
                next_frontier.extend(node)
        frontier = next_frontier

    values: list[Any] = []
    for leaf in frontier:
        if isinstance(leaf, (list, tuple)):
            values.extend(v for v in leaf if v is not None)
        elif leaf is not None:
            values.append(leaf)
    return values


# ── Path arithmetic ───────────────────────────────────


def parent(path: PathLike) -> PropertyPath:
    """Drop the last segment: ``a.b[0]`` -> ``a.b``, ``a.b`` -> ``a``."""
    parsed = _as_path(path)
    remaining = list(parsed.segments)[:-1]
    if not remaining:
        raise DataValidationError(
            "Cannot get parent of root path",
            "OutOfRange",
            value=len(parsed.segments),
            min=2,
        )
    return PropertyPath(raw=format_segments(remaining), segments=tuple(remaining))


def append(path: PathLike, name: str) -> PropertyPath:
    """Append a property segment, revalidating the whole path."""
    parsed = _as_path(path)
    if not isinstance(name, str) or name.strip() == "":
        raise DataValidationError("Segment cannot be empty", "EmptyInput")
    if "." in name:
        raise DataValidationError(
            "Segment cannot contain dots",
            "PatternMismatch",
            value=name,
            pattern="valid-segment",
        )
    return parse(f"{parsed.raw}.{name}")
