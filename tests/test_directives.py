from __future__ import annotations

from datetime import date

import pytest

from frontweave.directives import (
    CANONICAL_ORDER,
    DirectiveEngine,
    DirectiveKind,
    DirectiveRegistry,
    OrderingStrategy,
    coerce_to_string,
    derive_values,
    flatten_value,
    get_ordering_strategy,
    list_ordering_strategies,
    register_ordering_strategy,
)
from frontweave.errors import ConfigurationError, SchemaError
from frontweave.frontmatter import FrontmatterContent
from frontweave.schema import schema_from_dict

from .conftest import COMMANDS_SCHEMA

TAGS = {"docs": [{"tag": "a"}, {"tag": "b"}, {"tag": "a"}, {"tag": "c"}]}


class TestFlatten:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, []),
            ("x", ["x"]),
            ([], []),
            ([1, [2, [3, [4]]], 5], [1, 2, 3, 4, 5]),
            ([[], ["a"], [[]]], ["a"]),
        ],
    )
    def test_flatten_value(self, value, expected):
        assert flatten_value(value) == expected

    def test_engine_flattens_named_property(self, engine):
        schema = {"properties": {"tags": {"type": "array", "x-flatten-arrays": "tags"}}}
        outcome = engine.apply(schema, {"tags": [["a", ["b"]], "c"]})
        assert outcome.data["tags"] == ["a", "b", "c"]
        assert outcome.success

    def test_engine_flattens_absent_and_scalar_values(self, engine):
        schema = {"properties": {"tags": {"x-flatten-arrays": "tags"}}}
        assert engine.apply(schema, {}).data["tags"] == []
        assert engine.apply(schema, {"tags": "solo"}).data["tags"] == ["solo"]

    def test_non_string_target_is_rejected(self, engine):
        schema = {"properties": {"tags": {"x-flatten-arrays": 3}}}
        outcome = engine.apply(schema, {"tags": [1]})
        assert [e.kind for e in outcome.errors] == ["InvalidFlattenInput"]
        assert outcome.data["tags"] == [1]


class TestDerive:
    def test_derive_values_sorted_with_duplicates(self):
        assert derive_values(TAGS, "docs[].tag") == ["a", "a", "b", "c"]

    def test_derive_values_unique(self):
        assert derive_values(TAGS, "docs[].tag", unique=True) == ["a", "b", "c"]

    def test_values_are_coerced_to_strings(self):
        data = {"d": [{"v": True}, {"v": 2.0}, {"v": "x"}, {"v": 1.5}]}
        assert derive_values(data, "d[].v") == ["1.5", "2", "true", "x"]

    def test_coerce_to_string(self):
        assert coerce_to_string(False) == "false"
        assert coerce_to_string(date(2024, 1, 2)) == "2024-01-02"
        assert coerce_to_string({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'
        assert coerce_to_string(7) == "7"

    def test_engine_derives_with_and_without_unique(self, engine):
        schema = {
            "properties": {
                "docs": {"type": "array"},
                "all_tags": {"x-derived-from": "docs[].tag"},
                "tags": {"x-derived-from": "docs[].tag", "x-derived-unique": True},
            }
        }
        outcome = engine.apply(schema, TAGS)
        assert outcome.data["all_tags"] == ["a", "a", "b", "c"]
        assert outcome.data["tags"] == ["a", "b", "c"]

    def test_unique_without_derived_from_is_ignored(self, engine):
        schema = {"properties": {"tags": {"x-derived-unique": True}}}
        assert engine.apply(schema, {"tags": ["b", "b"]}).data["tags"] == ["b", "b"]

    def test_missing_source_on_required_property_is_fatal(self, engine):
        schema = {
            "properties": {"names": {"x-derived-from": "missing[].x"}},
            "required": ["names"],
        }
        outcome = engine.apply(schema, {})
        assert not outcome.success
        [error] = outcome.fatal_errors()
        assert error.kind == "DerivationFailed"
        assert error.property_path == "names"
        assert error.directive == "x-derived-from"

    def test_missing_source_on_optional_property_is_a_warning(self, engine):
        schema = {"properties": {"names": {"x-derived-from": "missing[].x"}}}
        outcome = engine.apply(schema, {})
        assert outcome.fatal_errors() == []
        assert [e.kind for e in outcome.warnings()] == ["DerivationFailed"]
        assert "names" not in outcome.data

    def test_unique_is_skipped_when_derivation_fails(self, engine):
        schema = {
            "properties": {
                "tags": {"x-derived-from": "missing[].x", "x-derived-unique": True},
            }
        }
        outcome = engine.apply(schema, {"tags": [1, "a", 1]})
        assert outcome.data["tags"] == [1, "a", 1]
        assert [e.directive for e in outcome.warnings()] == ["x-derived-from"]
        assert "x-derived-unique@tags" not in outcome.applied


class TestOrderingStrategy:
    def test_builtin_strategies(self):
        assert list_ordering_strategies()[:2] == ["canonical", "filter-first"]
        canonical = get_ordering_strategy("canonical")
        assert canonical.position(DirectiveKind.DERIVED_FROM) < canonical.position(
            DirectiveKind.JMESPATH_FILTER
        )
        filter_first = get_ordering_strategy("filter-first")
        assert filter_first.position("x-jmespath-filter") < filter_first.position("x-flatten-arrays")

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError):
            get_ordering_strategy("alphabetical")

    def test_duplicates_and_missing_kinds_are_rejected(self):
        order = CANONICAL_ORDER[:-1] + (DirectiveKind.FRONTMATTER_PART,)
        with pytest.raises(ConfigurationError) as exc_info:
            OrderingStrategy("broken", order)
        assert exc_info.value.details["duplicated"] == ["x-frontmatter-part"]
        assert exc_info.value.details["missing"] == ["x-template"]

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ConfigurationError):
            OrderingStrategy("broken", ("x-unknown",) + CANONICAL_ORDER)

    def test_string_kinds_are_normalized(self):
        strategy = OrderingStrategy("strings", tuple(k.value for k in CANONICAL_ORDER))
        assert strategy.order == CANONICAL_ORDER

    def test_stages_group_bindings_last(self):
        strategy = get_ordering_strategy("canonical")
        present = {
            DirectiveKind.TEMPLATE,
            DirectiveKind.DERIVED_FROM,
            DirectiveKind.FLATTEN_ARRAYS,
            DirectiveKind.TEMPLATE_FORMAT,
        }
        assert strategy.stages(present) == [
            (1, [DirectiveKind.FLATTEN_ARRAYS]),
            (2, [DirectiveKind.DERIVED_FROM]),
            (3, [DirectiveKind.TEMPLATE_FORMAT, DirectiveKind.TEMPLATE]),
        ]

    def test_register_custom_strategy(self):
        strategy = OrderingStrategy("test-reversed", tuple(reversed(CANONICAL_ORDER)))
        register_ordering_strategy(strategy, replace=True)
        assert get_ordering_strategy("test-reversed") is strategy
        with pytest.raises(ConfigurationError):
            register_ordering_strategy(strategy)


class TestOrderingEffect:
    SCHEMA = {
        "properties": {
            "docs": {"type": "array"},
            "tags": {
                "x-derived-from": "docs[].tag",
                "x-derived-unique": True,
                "x-jmespath-filter": "[?@ != 'b']",
            },
        }
    }

    def test_canonical_filters_derived_values(self, engine):
        assert engine.apply(self.SCHEMA, TAGS).data["tags"] == ["a", "c"]

    def test_filter_first_runs_before_derivation(self, filter_first_engine):
        assert filter_first_engine.apply(self.SCHEMA, TAGS).data["tags"] == ["a", "b", "c"]


class TestFilter:
    def test_filter_against_current_value(self, engine):
        schema = {"properties": {"items": {"x-jmespath-filter": "[?active].name"}}}
        data = {"items": [{"name": "x", "active": True}, {"name": "y", "active": False}]}
        assert engine.apply(schema, data).data["items"] == ["x"]

    def test_filter_against_root_when_absent(self, engine):
        schema = {
            "properties": {
                "docs": {"type": "array"},
                "names": {"x-jmespath-filter": "docs[].tag"},
            }
        }
        assert engine.apply(schema, TAGS).data["names"] == ["a", "b", "a", "c"]

    def test_nested_lists_are_flattened_before_filtering(self, engine):
        schema = {"properties": {"v": {"x-jmespath-filter": "[?@ > `1`]"}}}
        assert engine.apply(schema, {"v": [[1, 2], [3]]}).data["v"] == [2, 3]

    def test_no_match_leaves_value_unchanged(self, engine):
        schema = {"properties": {"meta": {"x-jmespath-filter": "missing"}}}
        assert engine.apply(schema, {"meta": {"a": 1}}).data["meta"] == {"a": 1}

    def test_compile_failure(self, engine):
        schema = {"properties": {"v": {"x-jmespath-filter": "[?"}}}
        outcome = engine.apply(schema, {"v": [1]})
        assert [e.kind for e in outcome.errors] == ["FilterCompileFailed"]

    def test_execution_failure(self, engine):
        schema = {"properties": {"n": {"x-jmespath-filter": "length(@)"}}}
        outcome = engine.apply(schema, {"n": 5})
        assert [e.kind for e in outcome.errors] == ["FilterExecutionFailed"]
        assert outcome.data["n"] == 5


class TestExtraction:
    def test_extract_from(self, engine):
        schema = {
            "properties": {
                "meta": {"type": "object"},
                "title": {"x-extract-from": "meta.title"},
                "authors": {"x-extract-from": "meta.people[].name"},
            }
        }
        data = {"meta": {"title": "T", "people": [{"name": "ann"}, {"name": "bo"}]}}
        outcome = engine.apply(schema, data)
        assert outcome.data["title"] == "T"
        assert outcome.data["authors"] == ["ann", "bo"]

    def test_extract_from_missing_source(self, engine):
        schema = {"properties": {"title": {"x-extract-from": "meta.title"}}}
        outcome = engine.apply(schema, {})
        assert [e.kind for e in outcome.errors] == ["ExtractionFailed"]

    def test_extract_inside_array_items(self, engine):
        schema = {
            "properties": {
                "docs": {
                    "type": "array",
                    "items": {"properties": {"name": {"x-extract-from": "meta.name"}}},
                }
            }
        }
        data = {"docs": [{"meta": {"name": "one"}}, {"meta": {"name": "two"}}]}
        docs = engine.apply(schema, data).data["docs"]
        assert [d["name"] for d in docs] == ["one", "two"]

    def test_collect_pattern(self, engine):
        schema = {
            "properties": {
                "meta": {"type": "object"},
                "options": {"x-collect-pattern": {"source": "meta", "format": "opt_.*"}},
            }
        }
        data = {"meta": {"opt_a": 1, "other": 2, "opt_b": {"x": 3}, "xopt_c": 4}}
        assert engine.apply(schema, data).data["options"] == [
            {"key": "opt_a", "value": 1},
            {"key": "opt_b", "value": {"x": 3}},
        ]

    def test_collect_pattern_source_must_be_object(self, engine):
        schema = {"properties": {"options": {"x-collect-pattern": {"source": "meta", "format": ".*"}}}}
        outcome = engine.apply(schema, {"meta": [1, 2]})
        assert [e.kind for e in outcome.errors] == ["ExtractionFailed"]

    def test_collect_pattern_bad_regex(self, engine):
        schema = {"properties": {"options": {"x-collect-pattern": {"source": "meta", "format": "("}}}}
        outcome = engine.apply(schema, {"meta": {}})
        assert [e.kind for e in outcome.errors] == ["InvalidDirective"]


class TestAggregate:
    def test_documents_fill_the_frontmatter_part(self, engine):
        schema = schema_from_dict(COMMANDS_SCHEMA)
        documents = [FrontmatterContent({"c1": "adv"}), {"c1": "basic"}, {"c1": "adv"}]
        outcome = engine.aggregate(schema, documents)
        assert outcome.success
        assert outcome.data["commands"] == [{"c1": "adv"}, {"c1": "basic"}, {"c1": "adv"}]
        assert outcome.data["c1_values"] == ["adv", "basic"]

    def test_nested_frontmatter_part(self, engine):
        schema = {
            "properties": {
                "data": {
                    "type": "object",
                    "properties": {"docs": {"type": "array", "x-frontmatter-part": True}},
                }
            }
        }
        outcome = engine.aggregate(schema, [{"n": 1}, {"n": 2}])
        assert outcome.data == {"data": {"docs": [{"n": 1}, {"n": 2}]}}

    def test_documents_are_merged_without_a_part(self, engine):
        schema = {"properties": {"title": {"type": "string"}}}
        outcome = engine.aggregate(schema, [{"a": 1, "title": "x"}, {"title": "y"}])
        assert outcome.data == {"a": 1, "title": "y"}


class TestEngine:
    def test_defaults_are_injected_except_inside_arrays(self, engine):
        schema = {
            "properties": {
                "status": {"default": "draft"},
                "meta": {"type": "object", "properties": {"v": {"default": 1}}},
                "items": {"type": "array", "items": {"properties": {"z": {"default": 0}}}},
                "kept": {"default": "unused"},
            }
        }
        data = {"meta": {}, "items": [{}], "kept": "mine"}
        assert engine.apply(schema, data).data == {
            "status": "draft",
            "meta": {"v": 1},
            "items": [{}],
            "kept": "mine",
        }

    def test_input_is_not_mutated(self, engine):
        schema = {"properties": {"tags": {"x-derived-from": "docs[].tag"}, "extra": {"default": 1}}}
        data = {"docs": [{"tag": "a"}]}
        engine.apply(schema, data)
        assert data == {"docs": [{"tag": "a"}]}

    def test_self_referencing_schema_is_rejected(self, engine):
        node: dict = {"type": "object", "properties": {}}
        node["properties"]["child"] = node
        schema = {"properties": {"node": node}}
        with pytest.raises(SchemaError) as exc_info:
            engine.apply(schema, {"node": {"child": {}}})
        assert exc_info.value.kind == "CircularReference"

    def test_kinds_limit_the_pass(self, engine):
        schema = {
            "properties": {
                "docs": {"type": "array"},
                "tags": {"x-derived-from": "docs[].tag", "x-jmespath-filter": "[?@ != 'b']"},
            }
        }
        outcome = engine.apply(schema, TAGS, kinds=["x-derived-from"])
        assert outcome.data["tags"] == ["a", "a", "b", "c"]
        assert outcome.applied == ["x-derived-from@tags"]

    def test_invalid_template_format_is_reported(self, engine):
        outcome = engine.apply({"x-template-format": "pdf"}, {})
        [error] = outcome.errors
        assert error.kind == "InvalidDirective"
        assert error.property_path == "<root>"

    def test_custom_handler(self):
        registry = DirectiveRegistry()
        registry.register(DirectiveKind.DERIVED_FROM, lambda inv: {inv.property_name: ["custom"]})
        engine = DirectiveEngine(strategy=get_ordering_strategy("canonical"), registry=registry)
        schema = {"properties": {"names": {"x-derived-from": "anything"}}}
        assert engine.apply(schema, {}).data["names"] == ["custom"]
        assert registry.count() == len(DirectiveKind)

    def test_handler_crash_is_recorded_not_raised(self):
        def crash(invocation):
            raise TypeError("boom")

        registry = DirectiveRegistry()
        registry.register(DirectiveKind.DERIVED_FROM, crash)
        engine = DirectiveEngine(strategy=get_ordering_strategy("canonical"), registry=registry)
        schema = {
            "properties": {
                "names": {"x-derived-from": "docs[].tag"},
                "extra": {"default": 1},
            }
        }
        outcome = engine.apply(schema, TAGS)
        [error] = outcome.warnings()
        assert error.kind == "InvalidDirective"
        assert error.details["cause"] == "TypeError"
        assert "boom" in error.message
        assert outcome.data["extra"] == 1

    def test_unique_alone_on_mixed_values_does_not_abort(self, engine):
        schema = {
            "properties": {
                "tags": {"x-derived-from": "docs[].tag", "x-derived-unique": True},
            }
        }
        outcome = engine.apply(schema, {"tags": [1, "a"]}, kinds=["x-derived-unique"])
        assert outcome.data["tags"] == [1, "a"]
        assert [e.kind for e in outcome.errors] == ["InvalidDirective"]

    def test_non_callable_handler_is_rejected(self):
        with pytest.raises(ConfigurationError):
            DirectiveRegistry().register(DirectiveKind.TEMPLATE, "not a function")
