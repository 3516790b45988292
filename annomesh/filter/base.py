"""
Annotation Filters: Predicate Capability and Conjunctive Chains

A filter is anything with accepts(annotation) -> bool. Callers never
need concrete filter types.

Scan scoping:
    Filters that keep per-read state (recency counters) expose
    for_scan(), returning a fresh instance for one read. Stateless
    filters return themselves. The store calls for_scan() on its chain
    snapshot at the start of every read, so the configured chain is
    never mutated by reads and needs no locking.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Protocol, runtime_checkable

from annomesh.core.types import Annotation


@runtime_checkable
class AnnotationFilter(Protocol):
    """Predicate over a single annotation."""

    def accepts(self, annotation: Annotation[Any]) -> bool:
        ...


def scan_local(annotation_filter: AnnotationFilter) -> AnnotationFilter:
    """Scan-local instance of a filter (the filter itself when stateless)."""
    for_scan = getattr(annotation_filter, "for_scan", None)
    if for_scan is None:
        return annotation_filter
    return for_scan()


class AcceptAllFilter:
    """Accepts every annotation."""

    __slots__ = ()

    def accepts(self, annotation: Annotation[Any]) -> bool:
        return True

    def __repr__(self) -> str:
        return "AcceptAllFilter()"


class FilterChain:
    """
    Ordered conjunction of filters.

    Evaluates members in configured order and stops at the first
    rejection, so stateful filters later in the chain only see
    annotations every earlier filter accepted. An empty chain accepts
    everything.
    """

    __slots__ = ("_filters",)

    def __init__(self, filters: Iterable[AnnotationFilter] = ()) -> None:
        self._filters: tuple[AnnotationFilter, ...] = tuple(filters)

    def accepts(self, annotation: Annotation[Any]) -> bool:
        for member in self._filters:
            if not member.accepts(annotation):
                return False
        return True

    def for_scan(self) -> FilterChain:
        return FilterChain(scan_local(member) for member in self._filters)

    @property
    def filters(self) -> tuple[AnnotationFilter, ...]:
        return self._filters

    def __iter__(self) -> Iterator[AnnotationFilter]:
        return iter(self._filters)

    def __len__(self) -> int:
        return len(self._filters)

    def __repr__(self) -> str:
        return f"FilterChain({list(self._filters)!r})"
