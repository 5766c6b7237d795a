"""Template rendering.

Structured templates (JSON/YAML) are walked leaf by leaf:
- a string that is exactly ``{{ path }}`` yields the raw value at that
  path, so lists and objects keep their shape
- any other string with Jinja2 syntax renders through Jinja2
- the ``{@items}`` marker expands to the rendered items

Markdown templates are plain text rendered through Jinja2 in one go.
The result is serialized to the requested format and written to disk.
"""

import copy
import json
import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from jinja2 import BaseLoader, Environment, StrictUndefined
from jinja2 import TemplateError as JinjaTemplateError

from frontweave.errors import DataValidationError, TemplateError
from frontweave.frontmatter.store import FrontmatterContent
from frontweave.paths import resolver
from frontweave.schema.schemas import Schema
from frontweave.settings import SUPPORTED_OUTPUT_FORMATS

logger = logging.getLogger(__name__)

ITEMS_MARKER = "{@items}"

_SINGLE_PLACEHOLDER = re.compile(
    r"\{\{\s*([A-Za-z_$][\w$]*(?:\[[0-9]+\])?(?:\.[A-Za-z_$][\w$]*(?:\[[0-9]+\])?)*)\s*\}\}"
)
_XML_NAME = re.compile(r"[^A-Za-z0-9_.-]")


class TemplateRenderer:
    """Renders main/items templates into a single output document."""

    def __init__(self):
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self.env.filters["to_json"] = lambda value: json.dumps(value, ensure_ascii=False)
        self.env.filters["join_lines"] = lambda items: "\n".join(f"- {item}" for item in items)

    # ── Loading ───────────────────────────────────────

    def load_template(self, path: str, output_format: str) -> Any:
        """Load a template file: text for markdown, parsed JSON/YAML otherwise."""
        template_file = Path(path)
        if not template_file.is_file():
            raise TemplateError(
                f"Template file not found: {path}", "TemplateNotFound", template_path=path
            )
        try:
            text = template_file.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise TemplateError(
                f"Template {path} is not valid UTF-8: {e}",
                "TemplateRenderFailed",
                template_path=path,
            ) from e
        if output_format == "markdown":
            return text
        try:
            if template_file.suffix.lower() == ".json":
                return json.loads(text)
            return yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise TemplateError(
                f"Template {path} is not valid JSON/YAML: {e}",
                "TemplateRenderFailed",
                template_path=path,
            ) from e

    # ── Rendering ─────────────────────────────────────

    def render_string(self, text: str, context: Mapping[str, Any]) -> str:
        try:
            return self.env.from_string(text).render(**context)
        except JinjaTemplateError as e:
            raise TemplateError(
                f"Template rendering error in {text!r}: {e}",
                "TemplateRenderFailed",
            ) from e

    def render_structure(
        self,
        template: Any,
        context: Mapping[str, Any],
        items: Optional[list[Any]] = None,
    ) -> Any:
        """Substitute variables throughout a parsed template tree."""
        if isinstance(template, dict):
            return {
                self._render_key(key, context): self.render_structure(value, context, items)
                for key, value in template.items()
            }
        if isinstance(template, list):
            rendered: list[Any] = []
            for element in template:
                if element == ITEMS_MARKER:
                    rendered.extend(copy.deepcopy(items or []))
                else:
                    rendered.append(self.render_structure(element, context, items))
            return rendered
        if isinstance(template, str):
            return self._render_leaf(template, context, items)
        return template

    def _render_key(self, key: Any, context: Mapping[str, Any]) -> Any:
        if isinstance(key, str) and ("{{" in key or "{%" in key):
            return self.render_string(key, context)
        return key

    def _render_leaf(self, text: str, context: Mapping[str, Any], items: Optional[list[Any]]) -> Any:
        if text.strip() == ITEMS_MARKER:
            return copy.deepcopy(items or [])

        match = _SINGLE_PLACEHOLDER.fullmatch(text.strip())
        if match:
            try:
                return copy.deepcopy(resolver.get(context, match.group(1)))
            except DataValidationError as e:
                raise TemplateError(
                    f"Template variable '{match.group(1)}' could not be resolved: {e.message}",
                    "TemplateRenderFailed",
                    variable=match.group(1),
                    cause=e.kind,
                ) from e

        if ITEMS_MARKER in text:
            text = text.replace(ITEMS_MARKER, json.dumps(items or [], ensure_ascii=False))
        if "{{" in text or "{%" in text:
            return self.render_string(text, context)
        return text

    def render_items(
        self,
        items_data: list[Any],
        items_template: Any,
        output_format: str,
    ) -> list[Any]:
        """Render each item through the items template (raw items when unbound)."""
        if items_template is None:
            return copy.deepcopy(items_data)
        rendered = []
        for index, item in enumerate(items_data):
            context = _item_context(item, index)
            if output_format == "markdown":
                rendered.append(self.render_string(items_template, context))
            else:
                rendered.append(self.render_structure(items_template, context))
        return rendered

    def render(
        self,
        template_path: str,
        items_template_path: Optional[str],
        main_data: list[dict[str, Any]],
        items_data: Optional[list[Any]],
        output_format: str,
    ) -> str:
        """Render to a string in ``output_format``."""
        if output_format not in SUPPORTED_OUTPUT_FORMATS:
            raise TemplateError(
                f"Unsupported output format '{output_format}'",
                "UnsupportedFormat",
                output_format=output_format,
            )

        template = self.load_template(template_path, output_format)
        items_template = (
            self.load_template(items_template_path, output_format)
            if items_template_path
            else None
        )

        aggregate = copy.deepcopy(main_data[0]) if main_data else {}
        items = self.render_items(items_data or [], items_template, output_format)

        context = dict(aggregate)
        context.setdefault("items", items)

        if output_format == "markdown":
            if not isinstance(template, str):
                template = str(template)
            markdown_items = "\n".join(str(i) for i in items)
            return self.render_string(template, context).replace(ITEMS_MARKER, markdown_items)

        result = self.render_structure(template, context, items)
        return serialize(result, output_format)


# ── Serialization ────────────────────────────────────


def serialize(data: Any, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if output_format == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    if output_format == "xml":
        return to_xml(data)
    if output_format == "markdown":
        return data if isinstance(data, str) else yaml.safe_dump(data, sort_keys=False)
    raise TemplateError(
        f"Unsupported output format '{output_format}'",
        "UnsupportedFormat",
        output_format=output_format,
    )


def _xml_tag(name: Any) -> str:
    tag = _XML_NAME.sub("_", str(name)) or "item"
    if not (tag[0].isalpha() or tag[0] == "_"):
        tag = f"_{tag}"
    return tag


def _xml_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _build_xml(parent: ET.Element, value: Any) -> None:
    if isinstance(value, dict):
        for key, child_value in value.items():
            if isinstance(child_value, list):
                container = ET.SubElement(parent, _xml_tag(key))
                for element in child_value:
                    _build_xml(ET.SubElement(container, "item"), element)
            else:
                _build_xml(ET.SubElement(parent, _xml_tag(key)), child_value)
    elif isinstance(value, list):
        for element in value:
            _build_xml(ET.SubElement(parent, "item"), element)
    else:
        parent.text = _xml_text(value)


def to_xml(data: Any) -> str:
    """Single-key objects name the root element; anything else goes under <root>."""
    if isinstance(data, dict) and len(data) == 1 and not isinstance(next(iter(data.values())), list):
        name, body = next(iter(data.items()))
        root = ET.Element(_xml_tag(name))
        _build_xml(root, body)
    else:
        root = ET.Element("root")
        _build_xml(root, data)
    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


# ── Module-level helpers ─────────────────────────────


def _item_context(item: Any, index: int) -> dict[str, Any]:
    context = dict(item) if isinstance(item, dict) else {"value": item}
    context.setdefault("item", item)
    context.setdefault("index", index)
    return context


def write_output(content: str, output_path: str) -> None:
    target = Path(output_path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        raise TemplateError(
            f"Could not write output {output_path}: {e}",
            "TemplateRenderFailed",
            output_path=output_path,
        ) from e


def render_output(
    template_path: str,
    items_template_path: Optional[str],
    main_data: list[dict[str, Any]],
    items_data: Optional[list[Any]],
    output_path: str,
    output_format: str,
    verbose: bool = False,
) -> None:
    """Render and write the output file.

    Raises:
        TemplateError: TemplateNotFound, TemplateRenderFailed, UnsupportedFormat
    """
    content = get_template_renderer().render(
        template_path, items_template_path, main_data, items_data, output_format
    )
    write_output(content, output_path)
    if verbose:
        logger.info(f"Wrote {len(content)} characters of {output_format} to {output_path}")
    else:
        logger.debug(f"Wrote {output_format} output to {output_path}")


def extract_items_data(
    schema: Schema,
    documents: list[FrontmatterContent],
    main_data: Optional[list[dict[str, Any]]] = None,
) -> list[Any]:
    """Items for the items template: the frontmatter-part array.

    Taken from the aggregate when it already holds the (directive-processed)
    array, otherwise from the documents themselves. Empty when the schema
    has no frontmatter-part property.
    """
    part_path = schema.find_frontmatter_part_path()
    if not part_path:
        return []
    if main_data:
        try:
            items = resolver.get(main_data[0], part_path)
        except DataValidationError:
            items = None
        if isinstance(items, list):
            return copy.deepcopy(items)
    return [doc.to_dict() for doc in documents]


# Global renderer instance
_renderer: Optional[TemplateRenderer] = None


def get_template_renderer() -> TemplateRenderer:
    """Get the global template renderer instance."""
    global _renderer
    if _renderer is None:
        _renderer = TemplateRenderer()
    return _renderer
