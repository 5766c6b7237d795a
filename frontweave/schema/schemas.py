"""Schema models.

A Schema is a fully ``$ref``-resolved JSON Schema document plus the file
it came from. Helpers expose the directive annotations the pipeline
needs before the directive engine runs: template bindings, the output
format, the frontmatter-part property and per-document validation rules.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

TEMPLATE = "x-template"
TEMPLATE_ITEMS = "x-template-items"
TEMPLATE_FORMAT = "x-template-format"
FRONTMATTER_PART = "x-frontmatter-part"

# Properties carrying one of these are filled in by the directive engine
COMPUTED_DIRECTIVES = (
    FRONTMATTER_PART,
    "x-derived-from",
    "x-extract-from",
    "x-collect-pattern",
    "x-jmespath-filter",
)


class ValidationRules(BaseModel):
    """Per-document checks applied while extracting frontmatter."""

    required: list[str] = Field(
        default_factory=list, description="Top-level keys every document must carry"
    )
    types: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Declared JSON types per top-level key (any of)",
    )

    def is_empty(self) -> bool:
        return not self.required and not self.types


class Schema(BaseModel):
    """A loaded, resolved schema."""

    path: str = Field(default="", description="Source file; empty for in-memory schemas")
    definition: dict[str, Any] = Field(
        ..., description="Schema tree with every $ref inlined"
    )

    @property
    def directory(self) -> Path:
        return Path(self.path).parent if self.path else Path.cwd()

    @property
    def properties(self) -> dict[str, Any]:
        props = self.definition.get("properties")
        return props if isinstance(props, dict) else {}

    # ── Template bindings ─────────────────────────────

    def template_binding(self) -> Optional[str]:
        return _non_empty(self.definition.get(TEMPLATE))

    def items_template_binding(self) -> Optional[str]:
        """Root ``x-template-items``, else the one on the frontmatter-part property."""
        binding = _non_empty(self.definition.get(TEMPLATE_ITEMS))
        if binding:
            return binding
        part = self.frontmatter_part_schema()
        if part is not None:
            return _non_empty(part.get(TEMPLATE_ITEMS))
        return None

    def template_format(self) -> Optional[str]:
        return _non_empty(self.definition.get(TEMPLATE_FORMAT))

    # ── Frontmatter part ──────────────────────────────

    def find_frontmatter_part_path(self) -> Optional[str]:
        """Dotted path of the first property marked ``x-frontmatter-part``.

        Only object properties are descended; the search is breadth-first
        so the shallowest marker wins.
        """
        found = self._find_frontmatter_part()
        return found[0] if found else None

    def frontmatter_part_schema(self) -> Optional[dict[str, Any]]:
        found = self._find_frontmatter_part()
        return found[1] if found else None

    def document_schema(self) -> dict[str, Any]:
        """Schema each individual document is expected to match."""
        part = self.frontmatter_part_schema()
        if part is not None and isinstance(part.get("items"), dict):
            return part["items"]
        return self.definition

    def _find_frontmatter_part(self) -> Optional[tuple[str, dict[str, Any]]]:
        queue: list[tuple[str, dict[str, Any]]] = [("", self.definition)]
        seen: set[int] = set()
        while queue:
            prefix, node = queue.pop(0)
            if id(node) in seen:
                continue
            seen.add(id(node))
            props = node.get("properties")
            if not isinstance(props, dict):
                continue
            for name, prop in props.items():
                if not isinstance(prop, dict):
                    continue
                path = f"{prefix}.{name}" if prefix else name
                if prop.get(FRONTMATTER_PART) is True:
                    return path, prop
                if isinstance(prop.get("properties"), dict):
                    queue.append((path, prop))
        return None

    # ── Validation rules ──────────────────────────────

    def validation_rules(self) -> ValidationRules:
        """Checks for a raw document; fields the pipeline computes are skipped."""
        doc = self.document_schema()
        props = doc.get("properties")
        props = props if isinstance(props, dict) else {}

        def computed(name: str) -> bool:
            prop = props.get(name)
            if not isinstance(prop, dict):
                return False
            return "default" in prop or any(key in prop for key in COMPUTED_DIRECTIVES)

        required = [
            r for r in doc.get("required", [])
            if isinstance(r, str) and not computed(r)
        ]
        types: dict[str, list[str]] = {}
        if props:
            for name, prop in props.items():
                if not isinstance(prop, dict) or "type" not in prop or computed(name):
                    continue
                declared = prop["type"]
                types[name] = [declared] if isinstance(declared, str) else list(declared)
        return ValidationRules(required=required, types=types)


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None
