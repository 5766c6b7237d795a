"""Schema loader.

Reads a JSON or YAML schema file, inlines every ``$ref`` and checks the
structure the directive engine relies on:
- ``#/definitions/...`` and ``#/$defs/...`` (any JSON pointer) in the same file
- ``other.json`` / ``other.yaml#/definitions/x`` relative to the referring file
- reference cycles are reported as CircularReference, but only when a
  property actually expands them; unused definitions are left as written
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml

from frontweave.errors import SchemaError

from .schemas import Schema

logger = logging.getLogger(__name__)

# Sections that only hold $ref targets; they are expanded where referenced
DEFINITION_KEYS = ("definitions", "$defs")

# Expected python type for each directive value
DIRECTIVE_VALUE_TYPES: dict[str, Union[type, tuple[type, ...]]] = {
    "x-template": str,
    "x-template-items": str,
    "x-template-format": str,
    "x-frontmatter-part": bool,
    "x-flatten-arrays": str,
    "x-derived-from": str,
    "x-derived-unique": bool,
    "x-jmespath-filter": str,
    "x-extract-from": str,
    "x-collect-pattern": dict,
}


def load_schema(path: Union[str, Path]) -> Schema:
    """Load, resolve and validate a schema file.

    Raises:
        SchemaError: SchemaNotFound, InvalidSchema, RefResolutionFailed
            or CircularReference
    """
    schema_path = Path(path)
    resolver = _RefResolver()
    document = resolver.document(schema_path.resolve())
    definition = resolver.resolve(document, schema_path.resolve(), ())
    validate_structure(definition, str(schema_path))

    logger.info(f"Loaded schema {schema_path} ({len(definition.get('properties', {}))} top-level properties)")
    return Schema(path=str(schema_path), definition=definition)


def schema_from_dict(definition: dict[str, Any], path: str = "") -> Schema:
    """Build a Schema from an in-memory definition (local refs only)."""
    base = Path(path).resolve() if path else Path.cwd() / "<memory>"
    resolver = _RefResolver()
    resolver.register(base, definition)
    resolved = resolver.resolve(definition, base, ())
    validate_structure(resolved, path or "<memory>")
    return Schema(path=path, definition=resolved)


def read_structured_file(path: Path) -> Any:
    """Parse a JSON or YAML file (JSON files go through ``json`` for exact errors)."""
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


class _RefResolver:
    """Inlines ``$ref`` nodes, tracking the chain of refs being expanded."""

    def __init__(self):
        self._documents: dict[Path, Any] = {}

    def register(self, path: Path, document: Any) -> None:
        self._documents[path] = document

    def document(self, path: Path) -> Any:
        if path in self._documents:
            return self._documents[path]
        if not path.exists():
            raise SchemaError(
                f"Schema file not found: {path}", "SchemaNotFound", path=str(path)
            )
        try:
            data = read_structured_file(path)
        except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
            raise SchemaError(
                f"Schema file is not valid UTF-8 JSON/YAML: {path}: {e}",
                "InvalidSchema",
                path=str(path),
            ) from e
        except OSError as e:
            raise SchemaError(
                f"Could not read schema file {path}: {e}", "SchemaNotFound", path=str(path)
            ) from e
        if not isinstance(data, dict):
            raise SchemaError(
                f"Schema root must be an object: {path}",
                "InvalidSchema",
                path=str(path),
                actual=type(data).__name__,
            )
        self._documents[path] = data
        return data

    def resolve(self, node: Any, base: Path, chain: tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [self.resolve(item, base, chain) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if ref is None:
            return {
                key: value if key in DEFINITION_KEYS else self.resolve(value, base, chain)
                for key, value in node.items()
            }

        if not isinstance(ref, str) or not ref:
            raise SchemaError(f"Invalid $ref value: {ref!r}", "RefResolutionFailed", ref=ref)

        target_file, pointer = self._split(ref, base)
        key = f"{target_file}#{pointer}"
        if key in chain:
            cycle = " -> ".join(list(chain[chain.index(key):]) + [key])
            raise SchemaError(
                f"Circular $ref detected: {cycle}",
                "CircularReference",
                ref=ref,
                chain=list(chain),
            )

        target = _follow_pointer(self.document(target_file), pointer, ref)
        resolved = self.resolve(target, target_file, chain + (key,))

        # Sibling keywords next to $ref override the referenced schema
        siblings = {k: v for k, v in node.items() if k != "$ref"}
        if siblings:
            if not isinstance(resolved, dict):
                raise SchemaError(
                    f"$ref '{ref}' does not point to an object", "RefResolutionFailed", ref=ref
                )
            merged = dict(resolved)
            merged.update(self.resolve(siblings, base, chain))
            return merged
        return resolved

    @staticmethod
    def _split(ref: str, base: Path) -> tuple[Path, str]:
        file_part, _, pointer = ref.partition("#")
        if file_part:
            if "://" in file_part:
                raise SchemaError(
                    f"Remote $ref is not supported: {ref}", "RefResolutionFailed", ref=ref
                )
            target = (base.parent / file_part).resolve()
        else:
            target = base
        return target, pointer


def _follow_pointer(document: Any, pointer: str, ref: str) -> Any:
    if pointer in ("", "/"):
        return document
    current = document
    for token in pointer.lstrip("/").split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict) and token in current:
            current = current[token]
        elif isinstance(current, list) and token.isdigit() and int(token) < len(current):
            current = current[int(token)]
        else:
            raise SchemaError(
                f"Cannot resolve $ref '{ref}': '{token}' not found",
                "RefResolutionFailed",
                ref=ref,
            )
    return current


def validate_structure(definition: Any, source: str = "") -> None:
    """Check nesting and directive value types.

    Raises:
        SchemaError: InvalidSchema naming the offending location
    """
    if not isinstance(definition, dict):
        raise SchemaError("Schema root must be an object", "InvalidSchema", path=source)

    stack: list[tuple[str, Any]] = [("#", definition)]
    visiting: set[int] = set()
    while stack:
        location, node = stack.pop()
        if id(node) in visiting:
            continue
        visiting.add(id(node))

        for key, expected in DIRECTIVE_VALUE_TYPES.items():
            if key in node and not isinstance(node[key], expected):
                raise SchemaError(
                    f"{key} at {location} must be {_type_name(expected)}, "
                    f"got {type(node[key]).__name__}",
                    "InvalidSchema",
                    path=source,
                    location=location,
                )
        pattern = node.get("x-collect-pattern")
        if pattern is not None and not _valid_collect_pattern(pattern):
            raise SchemaError(
                f"x-collect-pattern at {location} needs string 'source' and 'format'",
                "InvalidSchema",
                path=source,
                location=location,
            )

        required = node.get("required")
        if required is not None and not (
            isinstance(required, list) and all(isinstance(r, str) for r in required)
        ):
            raise SchemaError(
                f"'required' at {location} must be a list of strings",
                "InvalidSchema",
                path=source,
                location=location,
            )

        props = node.get("properties")
        if props is not None:
            if not isinstance(props, dict):
                raise SchemaError(
                    f"'properties' at {location} must be an object",
                    "InvalidSchema",
                    path=source,
                    location=location,
                )
            for name, prop in props.items():
                if not isinstance(prop, dict):
                    raise SchemaError(
                        f"Property '{name}' at {location} must be an object schema",
                        "InvalidSchema",
                        path=source,
                        location=f"{location}/properties/{name}",
                    )
                stack.append((f"{location}/properties/{name}", prop))

        items = node.get("items")
        if isinstance(items, dict):
            stack.append((f"{location}/items", items))
        elif items is not None and not isinstance(items, (list, bool)):
            raise SchemaError(
                f"'items' at {location} must be an object schema",
                "InvalidSchema",
                path=source,
                location=location,
            )


def _valid_collect_pattern(pattern: dict[str, Any]) -> bool:
    return isinstance(pattern.get("source"), str) and isinstance(pattern.get("format"), str)


def _type_name(expected: Union[type, tuple[type, ...]]) -> str:
    names = {str: "a string", bool: "a boolean", dict: "an object"}
    if isinstance(expected, tuple):
        return " or ".join(names.get(t, t.__name__) for t in expected)
    return names.get(expected, expected.__name__)
