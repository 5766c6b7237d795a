"""Directive handler registry.

Maps each DirectiveKind to the callable that applies it:
- Lazy loading of the built-in handlers with a _loaded guard
- Custom handlers can replace a built-in (e.g. another query language)
- Global singleton via get_directive_registry()
"""

import logging
from typing import Optional, Union

from frontweave.errors import ConfigurationError

from .handlers import DirectiveHandler, builtin_handlers
from .schemas import DirectiveKind

logger = logging.getLogger(__name__)


class DirectiveRegistry:
    """Registry of directive handlers keyed by kind."""

    def __init__(self):
        self._handlers: dict[DirectiveKind, DirectiveHandler] = {}
        self._loaded = False

    def load(self) -> None:
        """Register the built-in handlers (once)."""
        if self._loaded:
            return
        for kind, handler in builtin_handlers().items():
            self._handlers.setdefault(kind, handler)
        self._loaded = True
        logger.debug(f"Loaded {len(self._handlers)} directive handlers")

    def get(self, kind: Union[DirectiveKind, str]) -> Optional[DirectiveHandler]:
        self.load()
        return self._handlers.get(DirectiveKind(kind))

    def register(self, kind: Union[DirectiveKind, str], handler: DirectiveHandler) -> None:
        """Install ``handler`` for ``kind``, replacing any existing one."""
        if not callable(handler):
            raise ConfigurationError(
                f"Handler for {kind} is not callable", directive=str(kind)
            )
        self.load()
        self._handlers[DirectiveKind(kind)] = handler
        logger.info(f"Registered directive handler for {DirectiveKind(kind).value}")

    def list_kinds(self) -> list[DirectiveKind]:
        self.load()
        return list(self._handlers.keys())

    def count(self) -> int:
        self.load()
        return len(self._handlers)

    def reload(self) -> None:
        """Drop custom handlers and reinstall the built-ins."""
        self._loaded = False
        self._handlers.clear()
        self.load()


# Global registry instance
_registry: Optional[DirectiveRegistry] = None


def get_directive_registry() -> DirectiveRegistry:
    """Get the global directive registry instance."""
    global _registry
    if _registry is None:
        _registry = DirectiveRegistry()
        _registry.load()
    return _registry
