"""Path value objects.

A PropertyPath is an ordered sequence of typed segments. Plain paths only
contain property and array-index segments; derivation expressions may
also contain array-expansion segments (``items[]``).
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class PropertySegment(BaseModel):
    """Access a key of a mapping."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["property"] = "property"
    name: str


class ArrayIndexSegment(BaseModel):
    """Access one element of a list."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["array_index"] = "array_index"
    index: int = Field(ge=0)


class ArrayExpansionSegment(BaseModel):
    """Fan out over every element of a list (``[]``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["array_expansion"] = "array_expansion"


PathSegment = Annotated[
    Union[PropertySegment, ArrayIndexSegment, ArrayExpansionSegment],
    Field(discriminator="kind"),
]


def format_segments(segments: "tuple[PathSegment, ...] | list[PathSegment]") -> str:
    """Render segments back to ``a.b[0].c`` notation."""
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, PropertySegment):
            parts.append(segment.name)
        elif isinstance(segment, ArrayIndexSegment):
            suffix = f"[{segment.index}]"
            if parts:
                parts[-1] += suffix
            else:
                parts.append(suffix)
        else:
            if parts:
                parts[-1] += "[]"
            else:
                parts.append("[]")
    return ".".join(parts)


class PropertyPath(BaseModel):
    """A validated access path such as ``items[0].name``."""

    model_config = ConfigDict(frozen=True)

    raw: str = Field(description="The path as written")
    segments: tuple[PathSegment, ...] = Field(default=())

    @property
    def depth(self) -> int:
        """Number of property segments (array indices do not add depth)."""
        return sum(1 for s in self.segments if isinstance(s, PropertySegment))

    @property
    def has_array_access(self) -> bool:
        return any(not isinstance(s, PropertySegment) for s in self.segments)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.segments if isinstance(s, PropertySegment)]

    def is_parent_of(self, other: "PropertyPath") -> bool:
        if len(self.segments) >= len(other.segments):
            return False
        return other.segments[: len(self.segments)] == self.segments

    def is_child_of(self, other: "PropertyPath") -> bool:
        return other.is_parent_of(self)

    def prefix(self, length: int) -> str:
        """Render the first ``length`` segments (used in error messages)."""
        return format_segments(self.segments[:length])

    def __str__(self) -> str:
        return self.raw
