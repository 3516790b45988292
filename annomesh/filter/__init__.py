"""
Filter module: the AnnotationFilter capability, conjunctive chains and
the built-in filter implementations.
"""

from annomesh.filter.base import (
    AnnotationFilter,
    AcceptAllFilter,
    FilterChain,
    scan_local,
)
from annomesh.filter.recency import GroupRecencyFilter
from annomesh.filter.scriptable import ScriptableFilter
from annomesh.filter.registry import build_filter_chain, create_filter_factory

__all__ = [
    "AnnotationFilter",
    "AcceptAllFilter",
    "FilterChain",
    "scan_local",
    "GroupRecencyFilter",
    "ScriptableFilter",
    "build_filter_chain",
    "create_filter_factory",
]
