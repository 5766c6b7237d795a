"""Template path resolution.

Explicit config paths win over schema bindings; schema-relative bindings
are resolved against the schema file's directory.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from frontweave.errors import SchemaError, TemplateError
from frontweave.schema.schemas import Schema
from frontweave.settings import DEFAULT_OUTPUT_FORMAT, SUPPORTED_OUTPUT_FORMATS

if TYPE_CHECKING:
    from frontweave.pipeline.config import PipelineConfig

logger = logging.getLogger(__name__)


class TemplatePaths(BaseModel):
    """Where the main and items templates live, and what to render to."""

    template_path: str = Field(..., min_length=1)
    items_template_path: Optional[str] = Field(default=None)
    output_format: str = Field(default=DEFAULT_OUTPUT_FORMAT, min_length=1)


def _relative_to_schema(schema: Schema, binding: str) -> str:
    path = Path(binding)
    if path.is_absolute():
        return str(path)
    return str(schema.directory / path)


def resolve_template_paths(schema: Schema, config: "PipelineConfig") -> TemplatePaths:
    """Resolve template, items template and output format.

    Raises:
        SchemaError: InvalidTemplate when neither config nor schema names a template
        TemplateError: UnsupportedFormat
    """
    if config.template_path:
        template_path = config.template_path
    else:
        binding = schema.template_binding()
        if not binding:
            raise SchemaError(
                "No template configured and the schema has no x-template binding",
                "InvalidTemplate",
                schema_path=schema.path,
            )
        template_path = _relative_to_schema(schema, binding)

    items_template_path: Optional[str] = config.items_template_path or None
    if not items_template_path:
        binding = schema.items_template_binding()
        if binding:
            items_template_path = _relative_to_schema(schema, binding)

    output_format = schema.template_format() or config.output_format or DEFAULT_OUTPUT_FORMAT
    if output_format not in SUPPORTED_OUTPUT_FORMATS:
        raise TemplateError(
            f"Unsupported output format '{output_format}'. "
            f"Supported: {', '.join(SUPPORTED_OUTPUT_FORMATS)}",
            "UnsupportedFormat",
            output_format=output_format,
        )

    logger.debug(
        f"Resolved templates: main={template_path}, items={items_template_path}, "
        f"format={output_format}"
    )
    return TemplatePaths(
        template_path=template_path,
        items_template_path=items_template_path,
        output_format=output_format,
    )
