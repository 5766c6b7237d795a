from __future__ import annotations

import json

import pytest
import yaml

from frontweave.errors import SchemaError, TemplateError
from frontweave.frontmatter import FrontmatterContent
from frontweave.pipeline import PipelineConfig
from frontweave.schema import Schema, schema_from_dict
from frontweave.templates import (
    TemplateRenderer,
    extract_items_data,
    render_output,
    resolve_template_paths,
    serialize,
    to_xml,
)

from .conftest import COMMANDS_SCHEMA


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestResolveTemplatePaths:
    def test_schema_bindings_are_relative_to_schema(self, tmp_path):
        schema = Schema(
            path=str(tmp_path / "schemas" / "schema.json"),
            definition={"x-template": "t.json", "x-template-items": "i.json"},
        )
        paths = resolve_template_paths(schema, PipelineConfig())
        assert paths.template_path == str(tmp_path / "schemas" / "t.json")
        assert paths.items_template_path == str(tmp_path / "schemas" / "i.json")
        assert paths.output_format == "json"

    def test_config_paths_win(self, tmp_path):
        schema = Schema(path=str(tmp_path / "schema.json"), definition={"x-template": "t.json"})
        config = PipelineConfig(
            template_path="/srv/main.yaml",
            items_template_path="/srv/item.yaml",
            output_format="yaml",
        )
        paths = resolve_template_paths(schema, config)
        assert paths.template_path == "/srv/main.yaml"
        assert paths.items_template_path == "/srv/item.yaml"
        assert paths.output_format == "yaml"

    def test_schema_format_wins_over_config(self, tmp_path):
        schema = Schema(
            path=str(tmp_path / "schema.json"),
            definition={"x-template": "t.json", "x-template-format": "xml"},
        )
        assert resolve_template_paths(schema, PipelineConfig(output_format="yaml")).output_format == "xml"

    def test_no_template_anywhere(self, tmp_path):
        schema = Schema(path=str(tmp_path / "schema.json"), definition={"type": "object"})
        with pytest.raises(SchemaError) as exc_info:
            resolve_template_paths(schema, PipelineConfig())
        assert exc_info.value.kind == "InvalidTemplate"

    def test_unsupported_format(self, tmp_path):
        schema = Schema(
            path=str(tmp_path / "schema.json"),
            definition={"x-template": "t.json", "x-template-format": "pdf"},
        )
        with pytest.raises(TemplateError) as exc_info:
            resolve_template_paths(schema, PipelineConfig())
        assert exc_info.value.kind == "UnsupportedFormat"

    def test_config_rejects_unknown_format(self):
        with pytest.raises(ValueError):
            PipelineConfig(output_format="pdf")


class TestRenderStructure:
    CONTEXT = {
        "title": "Guide",
        "tags": ["a", "b"],
        "docs": [{"name": "one"}, {"name": "two"}],
        "name": "key",
    }

    def test_single_placeholder_keeps_raw_value(self, renderer):
        result = renderer.render_structure(
            {"tags": "{{ tags }}", "second": "{{ docs[1].name }}", "n": 5, "none": None},
            self.CONTEXT,
        )
        assert result == {"tags": ["a", "b"], "second": "two", "n": 5, "none": None}

    def test_mixed_text_renders_through_jinja(self, renderer):
        result = renderer.render_structure(
            {"heading": "# {{ title }} ({{ tags | length }})", "csv": "{{ tags | join(',') }}"},
            self.CONTEXT,
        )
        assert result == {"heading": "# Guide (2)", "csv": "a,b"}

    def test_keys_are_rendered(self, renderer):
        assert renderer.render_structure({"{{ name }}": 1}, self.CONTEXT) == {"key": 1}

    def test_items_marker_splices_into_lists(self, renderer):
        result = renderer.render_structure(["first", "{@items}", "last"], {}, items=[1, 2])
        assert result == ["first", 1, 2, "last"]

    def test_items_marker_as_value(self, renderer):
        assert renderer.render_structure({"all": "{@items}"}, {}, items=[{"x": 1}]) == {"all": [{"x": 1}]}

    def test_undefined_placeholder(self, renderer):
        with pytest.raises(TemplateError) as exc_info:
            renderer.render_structure({"a": "{{ missing }}"}, self.CONTEXT)
        assert exc_info.value.kind == "TemplateRenderFailed"

    def test_undefined_variable_in_text(self, renderer):
        with pytest.raises(TemplateError) as exc_info:
            renderer.render_structure({"a": "Hello {{ missing }}!"}, self.CONTEXT)
        assert exc_info.value.kind == "TemplateRenderFailed"


class TestRender:
    MAIN = [{"title": "Commands", "commands": [{"c1": "adv"}, {"c1": "basic"}]}]
    ITEMS = [{"c1": "adv"}, {"c1": "basic"}]

    def test_json_with_items_template(self, renderer, tmp_path):
        main = _write_json(
            tmp_path / "main.json",
            {"title": "{{ title }}", "entries": "{@items}", "count": "{{ items | length }}"},
        )
        item = _write_json(tmp_path / "item.json", {"name": "{{ c1 }}", "position": "{{ index }}"})
        output = json.loads(renderer.render(main, item, self.MAIN, self.ITEMS, "json"))
        assert output == {
            "title": "Commands",
            "entries": [{"name": "adv", "position": 0}, {"name": "basic", "position": 1}],
            "count": "2",
        }

    def test_items_without_template_are_raw(self, renderer, tmp_path):
        main = _write_json(tmp_path / "main.json", {"entries": "{@items}"})
        output = json.loads(renderer.render(main, None, self.MAIN, self.ITEMS, "json"))
        assert output == {"entries": self.ITEMS}

    def test_yaml_template_and_output(self, renderer, tmp_path):
        main = tmp_path / "main.yaml"
        main.write_text("title: '{{ title }}'\nvalues: '{{ commands }}'\n", encoding="utf-8")
        output = yaml.safe_load(renderer.render(str(main), None, self.MAIN, [], "yaml"))
        assert output == {"title": "Commands", "values": [{"c1": "adv"}, {"c1": "basic"}]}

    def test_xml_output(self, renderer, tmp_path):
        main = _write_json(tmp_path / "main.json", {"report": {"title": "{{ title }}", "flags": [True]}})
        output = renderer.render(main, None, self.MAIN, [], "xml")
        assert output.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<report>')
        assert "<title>Commands</title>" in output
        assert "<item>true</item>" in output

    def test_markdown_output(self, renderer, tmp_path):
        main = tmp_path / "main.md"
        main.write_text("# {{ title }}\n\n{@items}\n", encoding="utf-8")
        item = tmp_path / "item.md"
        item.write_text("- {{ c1 }}\n", encoding="utf-8")
        output = renderer.render(str(main), str(item), self.MAIN, self.ITEMS, "markdown")
        assert output.startswith("# Commands\n\n")
        assert "- adv\n- basic" in output

    def test_missing_template(self, renderer, tmp_path):
        with pytest.raises(TemplateError) as exc_info:
            renderer.render(str(tmp_path / "missing.json"), None, self.MAIN, [], "json")
        assert exc_info.value.kind == "TemplateNotFound"

    def test_malformed_template(self, renderer, tmp_path):
        main = tmp_path / "main.json"
        main.write_text("{not json", encoding="utf-8")
        with pytest.raises(TemplateError) as exc_info:
            renderer.render(str(main), None, self.MAIN, [], "json")
        assert exc_info.value.kind == "TemplateRenderFailed"

    def test_undecodable_template(self, renderer, tmp_path):
        main = tmp_path / "main.json"
        main.write_bytes(b"\xff\xfe{}")
        with pytest.raises(TemplateError) as exc_info:
            renderer.render(str(main), None, self.MAIN, [], "json")
        assert exc_info.value.kind == "TemplateRenderFailed"

    def test_render_output_writes_file(self, tmp_path):
        main = _write_json(tmp_path / "main.json", {"title": "{{ title }}"})
        target = tmp_path / "nested" / "dir" / "out.json"
        render_output(main, None, self.MAIN, None, str(target), "json")
        assert json.loads(target.read_text(encoding="utf-8")) == {"title": "Commands"}


class TestSerialize:
    def test_json_is_indented(self):
        assert serialize({"a": [1]}, "json") == '{\n  "a": [\n    1\n  ]\n}\n'

    def test_yaml_keeps_key_order(self):
        assert serialize({"b": 1, "a": [1]}, "yaml") == "b: 1\na:\n- 1\n"

    def test_xml_wraps_multiple_keys_in_root(self):
        output = to_xml({"a": 1, "b": None, "c": ["x"]})
        assert "<root>" in output
        assert "<a>1</a>" in output
        assert "<b />" in output
        assert "<c>" in output and "<item>x</item>" in output

    def test_unsupported_format(self):
        with pytest.raises(TemplateError) as exc_info:
            serialize({}, "pdf")
        assert exc_info.value.kind == "UnsupportedFormat"


class TestExtractItemsData:
    def test_prefers_processed_aggregate(self):
        schema = schema_from_dict(COMMANDS_SCHEMA)
        documents = [FrontmatterContent({"c1": "adv"})]
        main_data = [{"commands": [{"c1": "adv", "extra": 1}]}]
        assert extract_items_data(schema, documents, main_data) == [{"c1": "adv", "extra": 1}]

    def test_falls_back_to_documents(self):
        schema = schema_from_dict(COMMANDS_SCHEMA)
        documents = [FrontmatterContent({"c1": "adv"}), FrontmatterContent({"c1": "basic"})]
        assert extract_items_data(schema, documents) == [{"c1": "adv"}, {"c1": "basic"}]

    def test_no_frontmatter_part(self):
        schema = schema_from_dict({"properties": {"title": {"type": "string"}}})
        assert extract_items_data(schema, [FrontmatterContent({"title": "x"})]) == []
