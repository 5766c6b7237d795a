"""Built-in directive handlers.

A handler takes a DirectiveInvocation and returns the keys to set on the
enclosing object (an empty dict leaves the data untouched). Handlers
never mutate their inputs; failures are raised as DirectiveError.
"""

import copy
import json
import logging
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Callable, Optional

import jmespath
from jmespath import exceptions as jmespath_exceptions

from frontweave.errors import DataValidationError
from frontweave.paths import resolver
from frontweave.paths.schemas import ArrayExpansionSegment, PropertySegment
from frontweave.settings import SUPPORTED_OUTPUT_FORMATS

from .schemas import DirectiveInvocation, DirectiveKind

logger = logging.getLogger(__name__)

DirectiveHandler = Callable[[DirectiveInvocation], dict[str, Any]]


def _require_string(invocation: DirectiveInvocation) -> str:
    value = invocation.value
    if not isinstance(value, str) or not value.strip():
        raise invocation.error(
            f"{invocation.kind.value} must be a non-empty string",
            "InvalidDirective",
            value=repr(value),
        )
    return value


# ── Per-document part ────────────────────────────────


def handle_frontmatter_part(invocation: DirectiveInvocation) -> dict[str, Any]:
    """The marked array receives one entry per processed document."""
    if invocation.value is not True or invocation.is_root or invocation.documents is None:
        return {}
    return {invocation.property_name: copy.deepcopy(invocation.documents)}


# ── Extraction ───────────────────────────────────────


def handle_extract_from(invocation: DirectiveInvocation) -> dict[str, Any]:
    """Copy the value at a path relative to the enclosing object."""
    if invocation.is_root:
        return {}
    expression = _require_string(invocation)
    try:
        parsed = resolver.parse_expression(expression)
    except DataValidationError as e:
        raise invocation.error(
            f"Invalid x-extract-from path '{expression}': {e.message}",
            "ExtractionFailed",
            expression=expression,
        ) from e

    first = parsed.segments[0]
    if isinstance(first, PropertySegment) and first.name not in invocation.container:
        raise invocation.error(
            f"Cannot extract '{expression}': '{first.name}' is not present",
            "ExtractionFailed",
            expression=expression,
        )

    if any(isinstance(s, ArrayExpansionSegment) for s in parsed.segments):
        value = resolver.collect_values(invocation.container, parsed)
    else:
        try:
            value = resolver.get(invocation.container, parsed)
        except DataValidationError as e:
            raise invocation.error(
                f"Cannot extract '{expression}': {e.message}",
                "ExtractionFailed",
                expression=expression,
                cause=e.kind,
            ) from e
    return {invocation.property_name: copy.deepcopy(value)}


def handle_collect_pattern(invocation: DirectiveInvocation) -> dict[str, Any]:
    """Gather ``{key, value}`` pairs whose key fully matches ``format``."""
    if invocation.is_root:
        return {}
    collect = invocation.value
    if not isinstance(collect, Mapping):
        raise invocation.error("x-collect-pattern must be an object", "InvalidDirective")
    source, pattern = collect.get("source"), collect.get("format")
    if not isinstance(source, str) or not isinstance(pattern, str):
        raise invocation.error(
            "x-collect-pattern needs string 'source' and 'format'",
            "InvalidDirective",
        )
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise invocation.error(
            f"x-collect-pattern format is not a valid regex: {e}",
            "InvalidDirective",
            format=pattern,
        ) from e

    try:
        origin = resolver.get(invocation.container, resolver.parse_expression(source))
    except DataValidationError as e:
        raise invocation.error(
            f"Cannot collect from '{source}': {e.message}",
            "ExtractionFailed",
            source=source,
        ) from e
    if not isinstance(origin, Mapping):
        raise invocation.error(
            f"x-collect-pattern source '{source}' is not an object",
            "ExtractionFailed",
            source=source,
            actual=type(origin).__name__,
        )

    collected = [
        {"key": key, "value": copy.deepcopy(value)}
        for key, value in origin.items()
        if regex.fullmatch(str(key))
    ]
    return {invocation.property_name: collected}


# ── Flatten ──────────────────────────────────────────


def flatten_value(value: Any) -> list[Any]:
    """None -> [], scalar -> [scalar], nested lists -> depth-first flat list."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        return [value]
    flat: list[Any] = []
    for item in value:
        if isinstance(item, (list, tuple)):
            flat.extend(flatten_value(item))
        else:
            flat.append(item)
    return flat


def handle_flatten_arrays(invocation: DirectiveInvocation) -> dict[str, Any]:
    if invocation.is_root:
        return {}
    target = invocation.value
    if not isinstance(target, str) or not target.strip():
        raise invocation.error(
            "x-flatten-arrays must name a property",
            "InvalidFlattenInput",
            value=repr(target),
        )
    return {target: flatten_value(copy.deepcopy(invocation.container.get(target)))}


# ── Derivation ───────────────────────────────────────


def coerce_to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def derive_values(data: Any, expression: str, unique: bool = False) -> list[str]:
    """Collect, stringify and sort every value matched by ``expression``."""
    values = [coerce_to_string(v) for v in resolver.collect_values(data, expression)]
    if unique:
        values = list(set(values))
    return sorted(values)


def handle_derived_from(invocation: DirectiveInvocation) -> dict[str, Any]:
    """Values are resolved against the aggregated root, not the enclosing object."""
    if invocation.is_root:
        return {}
    expression = _require_string(invocation)
    try:
        parsed = resolver.parse_expression(expression)
    except DataValidationError as e:
        raise invocation.error(
            f"Invalid x-derived-from expression '{expression}': {e.message}",
            "DerivationFailed",
            expression=expression,
        ) from e

    first = parsed.segments[0]
    if isinstance(first, PropertySegment) and first.name not in invocation.root:
        raise invocation.error(
            f"Cannot derive from '{expression}': '{first.name}' is not present",
            "DerivationFailed",
            expression=expression,
        )
    return {invocation.property_name: derive_values(invocation.root, expression)}


def handle_derived_unique(invocation: DirectiveInvocation) -> dict[str, Any]:
    """Only meaningful next to x-derived-from; otherwise ignored."""
    if invocation.is_root or invocation.value is not True:
        return {}
    if "x-derived-from" not in invocation.property_schema:
        return {}
    current = invocation.current_value
    if not isinstance(current, list):
        return {}
    return {invocation.property_name: sorted(set(current))}


# ── Filtering ────────────────────────────────────────


class FilterDirectiveHandler:
    """Evaluates ``x-jmespath-filter`` expressions.

    The expression runs against the property's current value, or against
    the aggregated root when the property has no value yet. Compiled
    expressions are cached per handler.
    """

    def __init__(self):
        self._compiled: dict[str, Any] = {}

    def compile(self, expression: str, invocation: Optional[DirectiveInvocation] = None):
        if expression in self._compiled:
            return self._compiled[expression]
        try:
            compiled = jmespath.compile(expression)
        except jmespath_exceptions.JMESPathError as e:
            message = f"Invalid JMESPath expression '{expression}': {e}"
            if invocation is not None:
                raise invocation.error(message, "FilterCompileFailed", expression=expression) from e
            raise
        self._compiled[expression] = compiled
        return compiled

    def __call__(self, invocation: DirectiveInvocation) -> dict[str, Any]:
        if invocation.is_root:
            return {}
        expression = _require_string(invocation)
        compiled = self.compile(expression, invocation)

        target = invocation.current_value if invocation.has_value else invocation.root
        if isinstance(target, list) and target and isinstance(target[0], list):
            target = flatten_value(target)

        try:
            result = compiled.search(copy.deepcopy(target))
        except jmespath_exceptions.JMESPathError as e:
            raise invocation.error(
                f"JMESPath filter '{expression}' failed: {e}",
                "FilterExecutionFailed",
                expression=expression,
            ) from e

        if result is None:
            logger.debug(f"Filter '{expression}' matched nothing at {invocation.property_path}")
            return {}
        if isinstance(result, list) and result and isinstance(result[0], list):
            result = [
                item for item in flatten_value(result)
                if item is not None and item != [] and item != {}
            ]
        return {invocation.property_name: result}


# ── Template bindings ────────────────────────────────


def handle_template_binding(invocation: DirectiveInvocation) -> dict[str, Any]:
    """Bindings only need checking here; the template resolver reads them."""
    value = invocation.value
    if not isinstance(value, str) or not value.strip():
        raise invocation.error(
            f"{invocation.kind.value} must be a non-empty string",
            "InvalidDirective",
            value=repr(value),
        )
    if invocation.kind is DirectiveKind.TEMPLATE_FORMAT and value not in SUPPORTED_OUTPUT_FORMATS:
        raise invocation.error(
            f"Unsupported output format '{value}'. "
            f"Supported: {', '.join(SUPPORTED_OUTPUT_FORMATS)}",
            "InvalidDirective",
            value=value,
        )
    return {}


def builtin_handlers() -> dict[DirectiveKind, DirectiveHandler]:
    return {
        DirectiveKind.FRONTMATTER_PART: handle_frontmatter_part,
        DirectiveKind.EXTRACT_FROM: handle_extract_from,
        DirectiveKind.COLLECT_PATTERN: handle_collect_pattern,
        DirectiveKind.FLATTEN_ARRAYS: handle_flatten_arrays,
        DirectiveKind.DERIVED_FROM: handle_derived_from,
        DirectiveKind.DERIVED_UNIQUE: handle_derived_unique,
        DirectiveKind.JMESPATH_FILTER: FilterDirectiveHandler(),
        DirectiveKind.TEMPLATE_FORMAT: handle_template_binding,
        DirectiveKind.TEMPLATE_ITEMS: handle_template_binding,
        DirectiveKind.TEMPLATE: handle_template_binding,
    }
