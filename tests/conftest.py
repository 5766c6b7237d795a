"""Shared fixtures for the frontweave test suite.

Projects are written into ``tmp_path``: a schema, a main template and a
handful of markdown documents carrying YAML frontmatter.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest

from frontweave.directives import DirectiveEngine, DirectiveRegistry, get_ordering_strategy
from frontweave.pipeline import DefaultPipelineContext, PipelineConfig

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)

COMMANDS_SCHEMA = {
    "type": "object",
    "x-template": "template.json",
    "properties": {
        "commands": {
            "type": "array",
            "x-frontmatter-part": True,
            "items": {
                "type": "object",
                "properties": {"c1": {"type": "string"}},
                "required": ["c1"],
            },
        },
        "c1_values": {
            "type": "array",
            "x-derived-from": "commands[].c1",
            "x-derived-unique": True,
            "items": {"type": "string"},
        },
    },
    "required": ["commands", "c1_values"],
}

COMMANDS_TEMPLATE = {
    "c1_values": "{{ c1_values }}",
    "total": "{{ commands | length }}",
}


def write_document(directory: Path, name: str, frontmatter: str, body: str = "") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(f"---\n{frontmatter}---\n{body}", encoding="utf-8")
    return path


@dataclass
class Project:
    root: Path
    schema_path: Path
    template_path: Path
    docs_dir: Path
    output_dir: Path

    @property
    def input_pattern(self) -> str:
        return str(self.docs_dir / "*.md")

    def config(self, output_name: str = "out.json", **overrides) -> PipelineConfig:
        values = {
            "schema_path": str(self.schema_path),
            "input_pattern": self.input_pattern,
            "output_path": str(self.output_dir / output_name),
            "max_workers": 2,
        }
        values.update(overrides)
        return PipelineConfig(**values)


@pytest.fixture
def project(tmp_path) -> Project:
    """Two documents (c1: adv / c1: basic) and a derive-unique schema."""
    schema_path = tmp_path / "schema.json"
    schema_path.write_text(json.dumps(COMMANDS_SCHEMA, indent=2), encoding="utf-8")
    template_path = tmp_path / "template.json"
    template_path.write_text(json.dumps(COMMANDS_TEMPLATE, indent=2), encoding="utf-8")

    docs_dir = tmp_path / "docs"
    write_document(docs_dir, "a.md", "c1: adv\n", "# Advanced\n")
    write_document(docs_dir, "b.md", "c1: basic\n", "# Basic\n")

    return Project(
        root=tmp_path,
        schema_path=schema_path,
        template_path=template_path,
        docs_dir=docs_dir,
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def engine() -> DirectiveEngine:
    """Canonical-order engine with a private handler registry."""
    return DirectiveEngine(strategy=get_ordering_strategy("canonical"), registry=DirectiveRegistry())


@pytest.fixture
def filter_first_engine() -> DirectiveEngine:
    return DirectiveEngine(strategy=get_ordering_strategy("filter-first"), registry=DirectiveRegistry())


class RecordingContext(DefaultPipelineContext):
    """Default collaborators that record calls and can be told to fail."""

    def __init__(self, failures: Optional[dict[str, BaseException]] = None, on_call=None):
        super().__init__()
        self.calls: list[str] = []
        self.failures = failures or {}
        self.on_call = on_call

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.on_call is not None:
            self.on_call(name)
        if name in self.failures:
            raise self.failures[name]

    def load_schema(self, path):
        self._record("load_schema")
        return super().load_schema(path)

    def resolve_template_paths(self, schema, config):
        self._record("resolve_template_paths")
        return super().resolve_template_paths(schema, config)

    def transform_documents(self, input_pattern, validation_rules, schema, options):
        self._record("transform_documents")
        return super().transform_documents(input_pattern, validation_rules, schema, options)

    def extract_items_data(self, schema, processed_documents, main_data=None):
        self._record("extract_items_data")
        return super().extract_items_data(schema, processed_documents, main_data)

    def render_output(self, *args, **kwargs):
        self._record("render_output")
        return super().render_output(*args, **kwargs)
