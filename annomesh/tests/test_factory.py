"""
Unit Tests: Configurable Factory

Tests:
    - Property parsing
    - FilterConfig parsing and errors
    - Build walk diagnostics (unknown type, missing property, bad values)
    - Default resolution order
    - Built-in filter registry
"""

import json

import pytest

from annomesh.core.errors import (
    ConfigurationError,
    ErrorCode,
    FilterConstructionError,
    MissingPropertyError,
    UnknownFilterTypeError,
)
from annomesh.factory.config import FilterConfig
from annomesh.factory.configurable import ConfigurableFactory
from annomesh.factory.properties import IntegerProperty, JSONProperty, StringProperty
from annomesh.filter.base import AcceptAllFilter, FilterChain
from annomesh.filter.recency import GroupRecencyFilter
from annomesh.filter.registry import build_filter_chain, create_filter_factory
from annomesh.filter.scriptable import ScriptableFilter


def node(name, children=(), **properties):
    return FilterConfig(name=name, properties=properties, children=tuple(children))


class TestProperties:
    """Tests for typed property parsing."""

    def test_required_when_no_default(self):
        assert StringProperty("script", "expr").required
        assert not IntegerProperty("count", "n", 1).required

    def test_integer_parse(self):
        prop = IntegerProperty("count", "n", 1, minimum=1)
        assert prop.parse(3) == 3
        assert prop.parse(" 7 ") == 7
        for bad in (0, "x", 1.5, True):
            with pytest.raises(ValueError):
                prop.parse(bad)

    def test_string_parse(self):
        with pytest.raises(ValueError):
            StringProperty("script", "expr").parse(5)

    def test_json_parse(self):
        prop = JSONProperty("counts", "overrides", {})
        assert prop.parse('{"a": 2}') == {"a": 2}
        assert prop.parse({"a": 2}) == {"a": 2}
        with pytest.raises(ValueError):
            prop.parse("{not json")
        with pytest.raises(ValueError):
            prop.parse(5)


class TestFilterConfig:
    """Tests for the declarative filter tree."""

    def test_from_json(self):
        config = FilterConfig.from_json(json.dumps({
            "name": "chain",
            "children": [
                {"name": "script", "properties": {"script": "True"}},
                {"name": "group-recency"},
            ],
        }))
        assert config.name == "chain"
        assert [child.name for child in config.children] == ["script", "group-recency"]
        assert config.children[0].properties["script"] == "True"

    def test_to_dict_round_trip(self):
        data = {"name": "chain", "children": [{"name": "group-recency", "properties": {"count": 2}}]}
        assert FilterConfig.from_dict(data).to_dict() == data

    def test_properties_are_read_only(self):
        config = node("script", script="True")
        with pytest.raises(TypeError):
            config.properties["script"] = "False"

    def test_error_names_path(self):
        with pytest.raises(ConfigurationError) as info:
            FilterConfig.from_dict({"name": "chain", "children": [{"properties": {}}]})
        assert info.value.context["path"] == "$.children[0]"

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"name": ""},
            {"name": "x", "properties": []},
            {"name": "x", "children": {}},
        ],
    )
    def test_malformed_nodes(self, data):
        with pytest.raises(ConfigurationError):
            FilterConfig.from_dict(data)

    def test_from_json_rejects_non_json(self):
        with pytest.raises(ConfigurationError) as info:
            FilterConfig.from_json("{")
        assert info.value.code == ErrorCode.CONFIGURATION_INVALID

    def test_load(self, tmp_path):
        path = tmp_path / "filters.json"
        path.write_text('{"name": "accept-all"}', encoding="utf-8")
        assert FilterConfig.load(path).name == "accept-all"
        with pytest.raises(ConfigurationError):
            FilterConfig.load(tmp_path / "missing.json")


class TestConfigurableFactory:
    """Tests for the generic build walk."""

    def _factory(self, resolver=None):
        factory = ConfigurableFactory("test", default_resolver=resolver)
        factory.register(
            "echo",
            lambda props, children: dict(props),
            properties=(
                StringProperty("label", "required label"),
                IntegerProperty("size", "optional size", 4),
            ),
        )
        factory.register("group", lambda props, children: list(children), composite=True)
        return factory

    def test_builds_with_declared_default(self):
        report = self._factory().build(node("echo", label="a"))
        assert report.ok
        assert report.product == {"label": "a", "size": 4}

    def test_unknown_type(self):
        report = self._factory().build(node("nope"))
        assert report.product is None
        [error] = report.diagnostics
        assert isinstance(error, UnknownFilterTypeError)
        assert error.context["path"] == "$"

    def test_missing_required_property(self):
        report = self._factory().build(node("echo"))
        [error] = report.diagnostics
        assert isinstance(error, MissingPropertyError)
        assert error.context["property"] == "label"

    def test_undeclared_property(self):
        report = self._factory().build(node("echo", label="a", colour="red"))
        [error] = report.diagnostics
        assert isinstance(error, FilterConstructionError)
        assert error.context["property"] == "colour"

    def test_unparseable_property(self):
        report = self._factory().build(node("echo", label="a", size="big"))
        [error] = report.diagnostics
        assert isinstance(error, FilterConstructionError)
        assert error.context["property"] == "size"

    def test_constructor_exception_is_collected(self):
        factory = self._factory()

        def explode(props, children):
            raise RuntimeError("boom")

        factory.register("explode", explode)
        report = factory.build(node("explode"))
        [error] = report.diagnostics
        assert isinstance(error, FilterConstructionError)
        assert isinstance(error.cause, RuntimeError)

    def test_constructor_returning_none(self):
        factory = self._factory()
        factory.register("nothing", lambda props, children: None)
        report = factory.build(node("nothing"))
        assert report.product is None
        assert len(report.diagnostics) == 1

    def test_children_on_leaf_rejected(self):
        report = self._factory().build(node("echo", [node("echo", label="b")], label="a"))
        assert report.product is None
        assert isinstance(report.diagnostics[0], FilterConstructionError)

    def test_failed_child_dropped(self):
        report = self._factory().build(
            node("group", [node("echo", label="a"), node("nope"), node("echo", label="c")])
        )
        assert [child["label"] for child in report.product] == ["a", "c"]
        assert not report.ok
        [error] = report.diagnostics
        assert error.context["path"] == "$.children[1]"

    def test_resolver_precedes_declared_default(self):
        calls = []

        def resolver(type_name, property_name):
            calls.append((type_name, property_name))
            return {"label": "from-resolver"}.get(property_name)

        report = self._factory(resolver).build(node("echo"))
        assert report.product == {"label": "from-resolver", "size": 4}
        assert ("echo", "size") in calls

    def test_configured_value_precedes_resolver(self):
        report = self._factory(lambda t, p: "ignored" if p == "label" else None).build(
            node("echo", label="configured")
        )
        assert report.product["label"] == "configured"

    def test_explicit_null_uses_resolver_then_default(self):
        report = self._factory(lambda t, p: "resolved" if p == "label" else None).build(
            node("echo", label=None, size=None)
        )
        assert report.product == {"label": "resolved", "size": 4}

    def test_explicit_null_on_required_property(self):
        [error] = self._factory().build(node("echo", label=None)).diagnostics
        assert isinstance(error, MissingPropertyError)

    def test_resolver_failure_is_diagnostic(self):
        def resolver(type_name, property_name):
            raise KeyError(property_name)

        report = self._factory(resolver).build(node("echo", label="a"))
        assert report.product is None
        assert isinstance(report.diagnostics[0], FilterConstructionError)

    def test_last_registration_wins(self):
        factory = self._factory()
        factory.register("echo", lambda props, children: "replaced")
        assert factory.build(node("echo")).product == "replaced"
        assert "echo" in factory
        assert factory.registered() == ["echo", "group"]


class TestFilterRegistry:
    """Tests for the built-in filter types."""

    def test_registered_types(self):
        assert create_filter_factory().registered() == ["accept-all", "chain", "group-recency", "script"]

    def test_chain_tree(self):
        config = node("chain", [node("script", script="group != 'spam'"), node("group-recency", count=2)])
        chain, diagnostics = build_filter_chain(config, create_filter_factory())
        assert diagnostics == []
        assert isinstance(chain, FilterChain)
        script, recency = chain.filters
        assert isinstance(script, ScriptableFilter)
        assert isinstance(recency, GroupRecencyFilter)
        assert recency.count == 2

    def test_recency_defaults_to_one(self):
        chain, _ = build_filter_chain(node("group-recency"), create_filter_factory())
        [recency] = chain.filters
        assert recency.count == 1

    def test_recency_counts(self):
        chain, diagnostics = build_filter_chain(
            node("group-recency", counts='{"vip": 5}'), create_filter_factory()
        )
        assert diagnostics == []
        assert chain.filters[0].budget("vip") == 5

    def test_recency_bad_counts(self):
        chain, diagnostics = build_filter_chain(
            node("group-recency", counts={"vip": 0}), create_filter_factory()
        )
        assert len(chain) == 0
        assert isinstance(diagnostics[0], FilterConstructionError)

    def test_recency_null_count_defaults_to_one(self):
        config = FilterConfig.from_dict({"name": "group-recency", "properties": {"count": None}})
        chain, diagnostics = build_filter_chain(config, create_filter_factory())
        assert diagnostics == []
        assert chain.filters[0].count == 1

    def test_script_required(self):
        chain, diagnostics = build_filter_chain(node("script"), create_filter_factory())
        assert len(chain) == 0
        assert isinstance(diagnostics[0], MissingPropertyError)

    def test_script_that_does_not_parse(self):
        chain, diagnostics = build_filter_chain(node("script", script="a =="), create_filter_factory())
        assert len(chain) == 0
        assert isinstance(diagnostics[0], FilterConstructionError)

    def test_non_chain_root_is_wrapped(self):
        chain, _ = build_filter_chain(node("accept-all"), create_filter_factory())
        assert isinstance(chain.filters[0], AcceptAllFilter)

    def test_none_config(self):
        chain, diagnostics = build_filter_chain(None, create_filter_factory())
        assert len(chain) == 0
        assert diagnostics == []

    def test_resolver_supplies_script(self):
        factory = create_filter_factory(lambda t, p: "coordinate > 3" if (t, p) == ("script", "script") else None)
        chain, diagnostics = build_filter_chain(node("script"), factory)
        assert diagnostics == []
        assert chain.filters[0].script == "coordinate > 3"
