"""Collaborators the pipeline commands depend on.

Commands only talk to a PipelineContext, so any piece (schema source,
document reader, renderer) can be swapped without touching the state
machine. DefaultPipelineContext wires the library-backed implementations.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable

from frontweave.frontmatter.extractor import ExtractionOptions, transform_documents
from frontweave.frontmatter.store import FrontmatterContent
from frontweave.schema.loader import load_schema
from frontweave.schema.schemas import Schema, ValidationRules
from frontweave.templates.renderer import extract_items_data, render_output
from frontweave.templates.resolver import TemplatePaths, resolve_template_paths

from .config import PipelineConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class PipelineContext(Protocol):
    """Protocol for the pipeline's external collaborators."""

    def load_schema(self, path: str) -> Schema: ...

    def resolve_template_paths(self, schema: Schema, config: PipelineConfig) -> TemplatePaths: ...

    def transform_documents(
        self,
        input_pattern: Union[str, list[str]],
        validation_rules: ValidationRules,
        schema: Schema,
        options: ExtractionOptions,
    ) -> list[FrontmatterContent]: ...

    def extract_items_data(
        self,
        schema: Schema,
        processed_documents: list[FrontmatterContent],
        main_data: Optional[list[dict[str, Any]]] = None,
    ) -> list[Any]: ...

    def render_output(
        self,
        template_path: str,
        items_template_path: Optional[str],
        main_data: list[dict[str, Any]],
        items_data: Optional[list[Any]],
        output_path: str,
        output_format: str,
        verbose: bool = False,
    ) -> None: ...


@dataclass
class DefaultPipelineContext:
    """File-system backed collaborators (PyYAML, Jinja2, jmespath)."""

    skip_invalid_documents: bool = False
    base_dir: Optional[str] = None

    def load_schema(self, path: str) -> Schema:
        return load_schema(path)

    def resolve_template_paths(self, schema: Schema, config: PipelineConfig) -> TemplatePaths:
        return resolve_template_paths(schema, config)

    def transform_documents(
        self,
        input_pattern: Union[str, list[str]],
        validation_rules: ValidationRules,
        schema: Schema,
        options: ExtractionOptions,
    ) -> list[FrontmatterContent]:
        if self.skip_invalid_documents or self.base_dir:
            options = options.model_copy(update={
                "skip_invalid": options.skip_invalid or self.skip_invalid_documents,
                "base_dir": options.base_dir or self.base_dir,
            })
        return transform_documents(input_pattern, validation_rules, schema, options)

    def extract_items_data(
        self,
        schema: Schema,
        processed_documents: list[FrontmatterContent],
        main_data: Optional[list[dict[str, Any]]] = None,
    ) -> list[Any]:
        return extract_items_data(schema, processed_documents, main_data)

    def render_output(
        self,
        template_path: str,
        items_template_path: Optional[str],
        main_data: list[dict[str, Any]],
        items_data: Optional[list[Any]],
        output_path: str,
        output_format: str,
        verbose: bool = False,
    ) -> None:
        render_output(
            template_path,
            items_template_path,
            main_data,
            items_data,
            output_path,
            output_format,
            verbose,
        )
