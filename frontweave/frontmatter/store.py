"""Immutable per-document frontmatter tree.

FrontmatterContent wraps the parsed metadata block of one document (or
the aggregate of many). Reads go through the path resolver; every
"mutation" returns a new instance and never touches the original.
"""

import copy
import logging
from collections.abc import Mapping
from typing import Any, Iterator, Optional

from frontweave.errors import DataValidationError
from frontweave.paths import resolver
from frontweave.paths.schemas import ArrayIndexSegment, PropertyPath, PropertySegment

logger = logging.getLogger(__name__)

_MISSING = object()


class FrontmatterContent:
    """Read-only key/value tree of arbitrary depth."""

    __slots__ = ("_data", "_source")

    def __init__(self, data: Optional[Mapping[str, Any]] = None, source: Optional[str] = None):
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise DataValidationError(
                f"Frontmatter must be a mapping, got {type(data).__name__}",
                "InvalidType",
                expected="object",
                actual=type(data).__name__,
                source=source,
            )
        self._data: dict[str, Any] = copy.deepcopy(dict(data))
        self._source = source

    @classmethod
    def empty(cls) -> "FrontmatterContent":
        return cls({})

    # ── Read access ───────────────────────────────────

    @property
    def source(self) -> Optional[str]:
        """Document the content was extracted from, if any."""
        return self._source

    def get(self, path: "str | PropertyPath") -> Any:
        """Resolve ``path``; returns a copy so callers cannot mutate us.

        Raises:
            DataValidationError: FieldNotFound / InvalidType / PatternMismatch
        """
        return copy.deepcopy(resolver.get(self._data, path))

    def get_or(self, path: "str | PropertyPath", default: Any = None) -> Any:
        try:
            return self.get(path)
        except DataValidationError as e:
            if e.kind in ("FieldNotFound", "InvalidType"):
                return default
            raise

    def has(self, path: "str | PropertyPath") -> bool:
        return resolver.exists(self._data, path)

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def is_empty(self) -> bool:
        return not self._data

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data.keys()))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FrontmatterContent):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        source = f", source={self._source!r}" if self._source else ""
        return f"FrontmatterContent({self._data!r}{source})"

    # ── Derivation of new instances ───────────────────

    def with_value(self, path: "str | PropertyPath", value: Any) -> "FrontmatterContent":
        """Return a copy with ``value`` stored at ``path``.

        Intermediate mappings are created as needed; array indices must
        already exist.
        """
        parsed = path if isinstance(path, PropertyPath) else resolver.parse(path)
        data = copy.deepcopy(self._data)
        _assign(data, parsed, copy.deepcopy(value))
        return FrontmatterContent(data, source=self._source)

    def without(self, key: str) -> "FrontmatterContent":
        data = {k: v for k, v in self._data.items() if k != key}
        return FrontmatterContent(data, source=self._source)

    def merge(self, other: "FrontmatterContent | Mapping[str, Any]") -> "FrontmatterContent":
        """Deep-merge ``other`` over this content (other wins on conflicts)."""
        incoming = other.to_dict() if isinstance(other, FrontmatterContent) else dict(other)
        return FrontmatterContent(_deep_merge(self.to_dict(), incoming), source=self._source)


def _assign(data: dict[str, Any], path: PropertyPath, value: Any) -> None:
    segments = path.segments
    current: Any = data
    for position, segment in enumerate(segments[:-1]):
        following = segments[position + 1]
        if isinstance(segment, PropertySegment):
            if not isinstance(current, dict):
                raise DataValidationError(
                    f"Cannot read '{segment.name}' of non-object at "
                    f"'{path.prefix(position) or '<root>'}'",
                    "InvalidType",
                    path=path.raw,
                    expected="object",
                    actual=type(current).__name__,
                )
            nxt = current.get(segment.name, _MISSING)
            if nxt is _MISSING or nxt is None:
                if isinstance(following, ArrayIndexSegment):
                    raise DataValidationError(
                        f"Cannot index missing array '{path.prefix(position + 1)}'",
                        "FieldNotFound",
                        path=path.raw,
                    )
                nxt = {}
                current[segment.name] = nxt
            current = nxt
        else:
            if not isinstance(current, list) or not 0 <= segment.index < len(current):
                raise DataValidationError(
                    f"Index out of bounds at '{path.prefix(position + 1)}'",
                    "FieldNotFound",
                    path=path.raw,
                )
            current = current[segment.index]
        if not isinstance(current, (dict, list)):
            raise DataValidationError(
                f"Cannot assign below scalar at '{path.prefix(position + 1)}'",
                "InvalidType",
                path=path.raw,
            )

    last = segments[-1]
    if isinstance(last, PropertySegment):
        if not isinstance(current, dict):
            raise DataValidationError(
                f"Cannot set '{last.name}' on non-object",
                "InvalidType",
                path=path.raw,
            )
        current[last.name] = value
    else:
        if not isinstance(current, list) or not 0 <= last.index < len(current):
            raise DataValidationError(
                f"Index out of bounds at '{path.raw}'",
                "FieldNotFound",
                path=path.raw,
            )
        current[last.index] = value


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base
