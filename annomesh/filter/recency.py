"""
Group Recency Filter: N Most Recent Annotations per Group

Keeps, per distinct group key, at most N accepted annotations. The
store offers candidates in descending write_timestamp order, so the
first N seen for a group are its N most recent within the read.

State is scan-local: for_scan() hands out an empty instance and the
configured instance is never touched by reads.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Mapping, Optional

from annomesh.core.types import Annotation


def _check_count(count: Any, label: str) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValueError(f"{label} must be a positive integer, got {count!r}")
    return count


class GroupRecencyFilter:
    """
    Accepts an annotation while its group's retained-count budget lasts.

    count applies to every group; counts_by_group overrides it for
    named groups.

    Usage:
        f = GroupRecencyFilter(count=2, counts_by_group={"urgent": 10}).for_scan()
        [f.accepts(a) for a in newest_first]
    """

    __slots__ = ("_count", "_counts_by_group", "_retained")

    def __init__(
        self,
        count: int,
        counts_by_group: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._count = _check_count(count, "count")
        self._counts_by_group = {
            str(group): _check_count(value, f"count for group {group!r}")
            for group, value in (counts_by_group or {}).items()
        }
        self._retained: defaultdict[str, list[Annotation[Any]]] = defaultdict(list)

    @property
    def count(self) -> int:
        return self._count

    def budget(self, group: str) -> int:
        return self._counts_by_group.get(group, self._count)

    def accepts(self, annotation: Annotation[Any]) -> bool:
        retained = self._retained[annotation.group]
        if len(retained) >= self.budget(annotation.group):
            return False
        retained.append(annotation)
        return True

    def for_scan(self) -> GroupRecencyFilter:
        return GroupRecencyFilter(self._count, self._counts_by_group)

    def retained(self, group: str) -> tuple[Annotation[Any], ...]:
        """Annotations accepted so far for a group, in acceptance order."""
        return tuple(self._retained.get(group, ()))

    def __repr__(self) -> str:
        if self._counts_by_group:
            return f"GroupRecencyFilter(count={self._count}, counts_by_group={self._counts_by_group})"
        return f"GroupRecencyFilter(count={self._count})"
