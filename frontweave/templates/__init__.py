"""Template resolution and rendering.

- resolver.py - template path / items template / output format lookup
- renderer.py - Jinja2 rendering of structured and markdown templates
"""

from .renderer import (
    ITEMS_MARKER,
    TemplateRenderer,
    extract_items_data,
    get_template_renderer,
    render_output,
    serialize,
    to_xml,
)
from .resolver import TemplatePaths, resolve_template_paths

__all__ = [
    "ITEMS_MARKER",
    "TemplatePaths",
    "TemplateRenderer",
    "extract_items_data",
    "get_template_renderer",
    "render_output",
    "resolve_template_paths",
    "serialize",
    "to_xml",
]
