"""
Filter Registry: Built-in Filter Types

Registers the filter constructors the store knows about by type name:

    script         ScriptableFilter      script (required)
    group-recency  GroupRecencyFilter    count (default 1), counts (per group)
    chain          FilterChain           children, evaluated in order
    accept-all     AcceptAllFilter
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from annomesh.core import constants as C
from annomesh.core.errors import ConfigurationError
from annomesh.factory.config import FilterConfig
from annomesh.factory.configurable import ConfigurableFactory, DefaultResolver
from annomesh.factory.properties import IntegerProperty, JSONProperty, StringProperty
from annomesh.filter.base import AcceptAllFilter, AnnotationFilter, FilterChain
from annomesh.filter.recency import GroupRecencyFilter
from annomesh.filter.scriptable import ScriptableFilter

SCRIPT = StringProperty(
    "script",
    "Boolean expression evaluated against a single annotation",
    None,
)
RECENCY_COUNT = IntegerProperty(
    "count",
    "Number of most recent annotations kept per group",
    C.DEFAULT_RECENCY_COUNT,
    minimum=1,
)
RECENCY_COUNTS = JSONProperty(
    "counts",
    "Per-group overrides of count, as an object of group -> count",
    {},
)


def _build_script(props: Mapping[str, Any], children: list) -> AnnotationFilter:
    return ScriptableFilter(props["script"])


def _build_recency(props: Mapping[str, Any], children: list) -> AnnotationFilter:
    counts = props["counts"]
    if not isinstance(counts, dict):
        raise ValueError("counts must be an object of group -> count")
    return GroupRecencyFilter(props["count"], counts)


def _build_chain(props: Mapping[str, Any], children: list) -> AnnotationFilter:
    return FilterChain(children)


def _build_accept_all(props: Mapping[str, Any], children: list) -> AnnotationFilter:
    return AcceptAllFilter()


def create_filter_factory(
    default_resolver: Optional[DefaultResolver] = None,
) -> ConfigurableFactory[AnnotationFilter]:
    """Factory with every built-in filter type registered."""
    factory: ConfigurableFactory[AnnotationFilter] = ConfigurableFactory(
        "annotation-filter",
        default_resolver=default_resolver,
    )
    factory.register("script", _build_script, properties=(SCRIPT,))
    factory.register("group-recency", _build_recency, properties=(RECENCY_COUNT, RECENCY_COUNTS))
    factory.register(C.FILTER_CHAIN_TYPE, _build_chain, composite=True)
    factory.register("accept-all", _build_accept_all)
    return factory


def build_filter_chain(
    config: Optional[FilterConfig],
    factory: ConfigurableFactory[AnnotationFilter],
) -> tuple[FilterChain, list[ConfigurationError]]:
    """
    Build the store-level chain from a tree root.

    A chain root is used as is, any other root is wrapped in a
    one-element chain, and a root that fails to build leaves the
    empty (accept-all) chain.
    """
    if config is None:
        return FilterChain(), []

    report = factory.build(config)
    product = report.product
    if product is None:
        return FilterChain(), report.diagnostics
    if isinstance(product, FilterChain):
        return product, report.diagnostics
    return FilterChain([product]), report.diagnostics
