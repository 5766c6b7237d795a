"""Directive vocabulary and the values passed to and from handlers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from frontweave.errors import DirectiveError


class DirectiveKind(str, Enum):
    """Every schema annotation the engine knows how to apply."""

    FRONTMATTER_PART = "x-frontmatter-part"
    EXTRACT_FROM = "x-extract-from"
    COLLECT_PATTERN = "x-collect-pattern"
    FLATTEN_ARRAYS = "x-flatten-arrays"
    DERIVED_FROM = "x-derived-from"
    DERIVED_UNIQUE = "x-derived-unique"
    JMESPATH_FILTER = "x-jmespath-filter"
    TEMPLATE_FORMAT = "x-template-format"
    TEMPLATE_ITEMS = "x-template-items"
    TEMPLATE = "x-template"


# Bind output structure; they never change data
BINDING_KINDS = frozenset({
    DirectiveKind.TEMPLATE_FORMAT,
    DirectiveKind.TEMPLATE_ITEMS,
    DirectiveKind.TEMPLATE,
})


@dataclass(frozen=True)
class DirectiveInvocation:
    """One directive applied at one schema property.

    ``container`` is the object holding the property (None for the schema
    root). Handlers must treat ``container``, ``root`` and ``documents`` as
    read-only and return the keys to set on ``container``.
    """

    kind: DirectiveKind
    value: Any
    property_name: str
    property_path: str
    property_schema: dict[str, Any]
    container: Optional[dict[str, Any]]
    root: dict[str, Any]
    documents: Optional[list[dict[str, Any]]] = None
    required: bool = False
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.container is None

    @property
    def has_value(self) -> bool:
        return self.container is not None and self.container.get(self.property_name) is not None

    @property
    def current_value(self) -> Any:
        if self.container is None:
            return None
        return self.container.get(self.property_name)

    def error(self, message: str, kind: str, **details: Any) -> DirectiveError:
        return DirectiveError(
            message,
            kind,
            directive=self.kind.value,
            property_path=self.property_path or "<root>",
            required=self.required,
            **details,
        )


class DirectiveOutcome(BaseModel):
    """Result of a directive pass over one data tree."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: dict[str, Any] = Field(default_factory=dict, description="Transformed data tree")
    errors: list[DirectiveError] = Field(
        default_factory=list, description="Directive failures, in application order"
    )
    applied: list[str] = Field(
        default_factory=list, description="'<directive>@<property path>' entries"
    )

    @property
    def success(self) -> bool:
        return not self.errors

    def fatal_errors(self) -> list[DirectiveError]:
        """Errors on properties their parent schema lists as required."""
        return [e for e in self.errors if e.required]

    def warnings(self) -> list[DirectiveError]:
        return [e for e in self.errors if not e.required]
