"""Schema directive processing.

- schemas.py  - DirectiveKind, DirectiveInvocation, DirectiveOutcome
- ordering.py - validated directive orderings (canonical, filter-first)
- handlers.py - built-in handlers (flatten, derive, extract, filter, ...)
- registry.py - handler registry singleton
- engine.py   - worklist schema walk applying directives phase by phase
"""

from .engine import DirectiveEngine, get_directive_engine, inject_defaults
from .handlers import coerce_to_string, derive_values, flatten_value
from .ordering import (
    CANONICAL_ORDER,
    FILTER_FIRST_ORDER,
    OrderingStrategy,
    get_ordering_strategy,
    list_ordering_strategies,
    register_ordering_strategy,
)
from .registry import DirectiveRegistry, get_directive_registry
from .schemas import BINDING_KINDS, DirectiveInvocation, DirectiveKind, DirectiveOutcome

__all__ = [
    "BINDING_KINDS",
    "CANONICAL_ORDER",
    "FILTER_FIRST_ORDER",
    "DirectiveEngine",
    "DirectiveInvocation",
    "DirectiveKind",
    "DirectiveOutcome",
    "DirectiveRegistry",
    "OrderingStrategy",
    "coerce_to_string",
    "derive_values",
    "flatten_value",
    "get_directive_engine",
    "get_directive_registry",
    "get_ordering_strategy",
    "inject_defaults",
    "list_ordering_strategies",
    "register_ordering_strategy",
]
