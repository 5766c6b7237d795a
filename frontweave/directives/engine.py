"""Directive engine - applies schema directives to a data tree.

The schema is walked with an explicit worklist of (schema node, data
object) pairs; an ``items`` schema is paired with every object element of
the matching data array. Directives run phase by phase in the order of
the active OrderingStrategy, so every property carrying a directive of
one kind is processed before any directive of the next kind runs.

Handler failures are collected into the DirectiveOutcome instead of
aborting the pass. Schema defaults are injected after the last phase.
"""

import copy
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from frontweave.errors import DataValidationError, DirectiveError, SchemaError
from frontweave.frontmatter.store import FrontmatterContent
from frontweave.schema.schemas import Schema

from .ordering import OrderingStrategy, get_ordering_strategy
from .registry import DirectiveRegistry, get_directive_registry
from .schemas import DirectiveInvocation, DirectiveKind, DirectiveOutcome

logger = logging.getLogger(__name__)

_KIND_VALUES = {k.value for k in DirectiveKind}

# A directive is skipped at a site where its prerequisite failed
_PREREQUISITES = {DirectiveKind.DERIVED_UNIQUE: DirectiveKind.DERIVED_FROM}


@dataclass
class _Site:
    """A schema property paired with the data object that holds it."""

    schema: dict[str, Any]
    container: Optional[dict[str, Any]]
    name: str
    path: str
    required: bool


class DirectiveEngine:
    """Applies directives to data; holds no per-run state."""

    def __init__(
        self,
        strategy: Optional[OrderingStrategy] = None,
        registry: Optional[DirectiveRegistry] = None,
    ):
        self.strategy = strategy or get_ordering_strategy()
        self.registry = registry or get_directive_registry()

    # ── Entry points ──────────────────────────────────

    def aggregate(
        self,
        schema: Union[Schema, dict[str, Any]],
        documents: Iterable[Union[FrontmatterContent, Mapping[str, Any]]],
    ) -> DirectiveOutcome:
        """Combine per-document trees into one aggregate and apply directives.

        With a frontmatter-part property the documents become that array;
        without one a single document is used as-is and several are
        shallow-merged in order.
        """
        definition = _definition(schema)
        trees = [
            d.to_dict() if isinstance(d, FrontmatterContent) else copy.deepcopy(dict(d))
            for d in documents
        ]
        part_path = (
            schema.find_frontmatter_part_path()
            if isinstance(schema, Schema)
            else Schema(definition=definition).find_frontmatter_part_path()
        )

        if part_path:
            base: dict[str, Any] = {}
            node = base
            for name in part_path.split(".")[:-1]:
                node = node.setdefault(name, {})
            return self.apply(definition, base, documents=trees)

        base = {}
        for tree in trees:
            base.update(tree)
        return self.apply(definition, base)

    def apply(
        self,
        schema: Union[Schema, dict[str, Any]],
        data: Mapping[str, Any],
        documents: Optional[list[dict[str, Any]]] = None,
        kinds: Optional[Iterable[Union[DirectiveKind, str]]] = None,
    ) -> DirectiveOutcome:
        """Apply every directive (or only ``kinds``) to a copy of ``data``.

        Raises:
            SchemaError: CircularReference when the schema graph loops back
                onto one of its own ancestors
        """
        start_time = time.time()
        definition = _definition(schema)
        result = copy.deepcopy(dict(data))
        selected = None if kinds is None else {DirectiveKind(k) for k in kinds}

        # Walk once up front so cycles surface even without directives
        self._sites(definition, result)

        present = self.present_kinds(definition)
        if selected is not None:
            present &= selected
        stages = self.strategy.stages(present)
        logger.debug(
            f"Applying {len(present)} directive kinds in {len(stages)} stages "
            f"({self.strategy.name} order)"
        )

        errors: list[DirectiveError] = []
        applied: list[str] = []
        failed: set[tuple[DirectiveKind, str]] = set()

        for kind in self.strategy.order:
            if kind not in present:
                continue
            handler = self.registry.get(kind)
            if handler is None:
                logger.warning(f"No handler registered for {kind.value}; skipping")
                continue

            for site in self._sites(definition, result):
                if kind.value not in site.schema:
                    continue
                prerequisite = _PREREQUISITES.get(kind)
                if prerequisite is not None and (prerequisite, site.path) in failed:
                    logger.debug(
                        f"Skipping {kind.value} at {site.path or '<root>'}: "
                        f"{prerequisite.value} failed"
                    )
                    continue
                invocation = DirectiveInvocation(
                    kind=kind,
                    value=site.schema[kind.value],
                    property_name=site.name,
                    property_path=site.path,
                    property_schema=site.schema,
                    container=site.container,
                    root=result,
                    documents=documents,
                    required=site.required,
                )
                try:
                    updates = handler(invocation)
                except DirectiveError as e:
                    error = e
                except DataValidationError as e:
                    error = invocation.error(e.message, "InvalidDirective", cause=e.kind)
                except Exception as e:
                    logger.warning(
                        f"{kind.value} handler raised {type(e).__name__} at "
                        f"{site.path or '<root>'}: {e}"
                    )
                    error = invocation.error(
                        f"{kind.value} failed: {e}", "InvalidDirective", cause=type(e).__name__
                    )
                else:
                    error = None

                if error is not None:
                    logger.debug(f"{kind.value} failed at {site.path or '<root>'}: {error.message}")
                    errors.append(error)
                    failed.add((kind, site.path))
                    continue

                if updates and site.container is not None:
                    site.container.update(updates)
                applied.append(f"{kind.value}@{site.path or '<root>'}")

        inject_defaults(definition, result)

        elapsed = int((time.time() - start_time) * 1000)
        logger.debug(
            f"Directive pass finished in {elapsed}ms: "
            f"{len(applied)} applied, {len(errors)} errors"
        )
        return DirectiveOutcome(data=result, errors=errors, applied=applied)

    # ── Schema walking ────────────────────────────────

    def present_kinds(self, definition: dict[str, Any]) -> set[DirectiveKind]:
        """Directive kinds used anywhere in the schema."""
        found: set[DirectiveKind] = set()
        stack = [definition]
        seen: set[int] = set()
        while stack:
            node = stack.pop()
            if not isinstance(node, dict) or id(node) in seen:
                continue
            seen.add(id(node))
            found.update(DirectiveKind(k) for k in node if k in _KIND_VALUES)
            props = node.get("properties")
            if isinstance(props, dict):
                stack.extend(props.values())
            if isinstance(node.get("items"), dict):
                stack.append(node["items"])
        return found

    def _sites(self, definition: dict[str, Any], data: dict[str, Any]) -> list[_Site]:
        sites = [_Site(schema=definition, container=None, name="", path="", required=False)]
        worklist: list[tuple[dict[str, Any], dict[str, Any], str, tuple[int, ...]]] = [
            (definition, data, "", (id(definition),))
        ]

        while worklist:
            node, obj, prefix, ancestors = worklist.pop(0)
            props = node.get("properties")
            if not isinstance(props, dict):
                continue
            required = set(node.get("required") or [])

            for name, prop in props.items():
                if not isinstance(prop, dict):
                    continue
                path = f"{prefix}.{name}" if prefix else name
                _check_cycle(prop, ancestors, path)
                sites.append(_Site(prop, obj, name, path, name in required))

                value = obj.get(name)
                if isinstance(value, dict) and isinstance(prop.get("properties"), dict):
                    worklist.append((prop, value, path, ancestors + (id(prop),)))
                elif isinstance(value, list) and isinstance(prop.get("items"), dict):
                    items = prop["items"]
                    _check_cycle(items, ancestors + (id(prop),), f"{path}[]")
                    for index, element in enumerate(value):
                        if isinstance(element, dict):
                            worklist.append(
                                (items, element, f"{path}[{index}]", ancestors + (id(prop), id(items)))
                            )
        return sites


def _check_cycle(node: dict[str, Any], ancestors: tuple[int, ...], path: str) -> None:
    if id(node) in ancestors:
        raise SchemaError(
            f"Schema refers back to one of its ancestors at '{path}'",
            "CircularReference",
            property_path=path,
        )


def _definition(schema: Union[Schema, dict[str, Any]]) -> dict[str, Any]:
    return schema.definition if isinstance(schema, Schema) else schema


def inject_defaults(node: dict[str, Any], obj: dict[str, Any], _ancestors: tuple[int, ...] = ()) -> None:
    """Fill absent properties from schema ``default`` values, in place.

    Nested objects are walked; arrays are not.
    """
    props = node.get("properties")
    if not isinstance(props, dict) or id(node) in _ancestors:
        return
    for name, prop in props.items():
        if not isinstance(prop, dict):
            continue
        if name not in obj and "default" in prop:
            obj[name] = copy.deepcopy(prop["default"])
        value = obj.get(name)
        if isinstance(value, dict):
            inject_defaults(prop, value, _ancestors + (id(node),))


# Global engine instance (default strategy and registry)
_engine: Optional[DirectiveEngine] = None


def get_directive_engine() -> DirectiveEngine:
    """Get the global directive engine instance."""
    global _engine
    if _engine is None:
        _engine = DirectiveEngine()
    return _engine
