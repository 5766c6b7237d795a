"""Directive ordering strategies.

A strategy is a total order over DirectiveKind, checked exhaustively when
it is built. Two ship with the package:
- canonical: extraction, flatten, derive, dedupe, then filter, then bindings
- filter-first: the legacy order, filtering before flatten and derive
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from frontweave.errors import ConfigurationError
from frontweave.settings import DEFAULT_ORDERING_STRATEGY

from .schemas import BINDING_KINDS, DirectiveKind

logger = logging.getLogger(__name__)

CANONICAL_ORDER: tuple[DirectiveKind, ...] = (
    DirectiveKind.FRONTMATTER_PART,
    DirectiveKind.EXTRACT_FROM,
    DirectiveKind.COLLECT_PATTERN,
    DirectiveKind.FLATTEN_ARRAYS,
    DirectiveKind.DERIVED_FROM,
    DirectiveKind.DERIVED_UNIQUE,
    DirectiveKind.JMESPATH_FILTER,
    DirectiveKind.TEMPLATE_FORMAT,
    DirectiveKind.TEMPLATE_ITEMS,
    DirectiveKind.TEMPLATE,
)

FILTER_FIRST_ORDER: tuple[DirectiveKind, ...] = (
    DirectiveKind.FRONTMATTER_PART,
    DirectiveKind.EXTRACT_FROM,
    DirectiveKind.COLLECT_PATTERN,
    DirectiveKind.JMESPATH_FILTER,
    DirectiveKind.FLATTEN_ARRAYS,
    DirectiveKind.DERIVED_FROM,
    DirectiveKind.DERIVED_UNIQUE,
    DirectiveKind.TEMPLATE_FORMAT,
    DirectiveKind.TEMPLATE_ITEMS,
    DirectiveKind.TEMPLATE,
)


@dataclass(frozen=True)
class OrderingStrategy:
    """A validated total order over every directive kind."""

    name: str
    order: tuple[DirectiveKind, ...]

    def __post_init__(self):
        try:
            kinds = tuple(DirectiveKind(k) for k in self.order)
        except ValueError as e:
            raise ConfigurationError(
                f"Ordering strategy '{self.name}' names an unknown directive: {e}",
                strategy=self.name,
            ) from e

        duplicates = sorted({k.value for k in kinds if kinds.count(k) > 1})
        missing = [k.value for k in DirectiveKind if k not in kinds]
        if duplicates or missing:
            raise ConfigurationError(
                f"Ordering strategy '{self.name}' must list every directive exactly once"
                f" (duplicated: {duplicates or 'none'}, missing: {missing or 'none'})",
                strategy=self.name,
                duplicated=duplicates,
                missing=missing,
            )
        object.__setattr__(self, "order", kinds)

    def position(self, kind: Union[DirectiveKind, str]) -> int:
        return self.order.index(DirectiveKind(kind))

    def sort(self, kinds: Iterable[Union[DirectiveKind, str]]) -> list[DirectiveKind]:
        return sorted({DirectiveKind(k) for k in kinds}, key=self.position)

    def stages(self, present: Iterable[Union[DirectiveKind, str]]) -> list[tuple[int, list[DirectiveKind]]]:
        """Group the present kinds into numbered stages.

        Each data directive gets its own stage; template bindings share
        the final one.
        """
        ordered = self.sort(present)
        stages: list[tuple[int, list[DirectiveKind]]] = []
        bindings = [k for k in ordered if k in BINDING_KINDS]
        for kind in ordered:
            if kind not in BINDING_KINDS:
                stages.append((len(stages) + 1, [kind]))
        if bindings:
            stages.append((len(stages) + 1, bindings))
        return stages


_strategies: dict[str, OrderingStrategy] = {
    "canonical": OrderingStrategy("canonical", CANONICAL_ORDER),
    "filter-first": OrderingStrategy("filter-first", FILTER_FIRST_ORDER),
}


def get_ordering_strategy(name: Optional[str] = None) -> OrderingStrategy:
    """Look up a strategy; defaults to FRONTWEAVE_DIRECTIVE_ORDER."""
    key = name or DEFAULT_ORDERING_STRATEGY
    strategy = _strategies.get(key)
    if strategy is None:
        raise ConfigurationError(
            f"Unknown directive ordering strategy '{key}'. "
            f"Available: {', '.join(sorted(_strategies))}",
            strategy=key,
        )
    return strategy


def register_ordering_strategy(strategy: OrderingStrategy, replace: bool = False) -> None:
    if strategy.name in _strategies and not replace:
        raise ConfigurationError(
            f"Ordering strategy '{strategy.name}' is already registered",
            strategy=strategy.name,
        )
    _strategies[strategy.name] = strategy
    logger.info(f"Registered directive ordering strategy: {strategy.name}")


def list_ordering_strategies() -> list[str]:
    return sorted(_strategies)
