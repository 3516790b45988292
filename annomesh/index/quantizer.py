"""
Level Quantizers: Coordinate to Bucket Mapping

A quantizer maps an orderable coordinate to an integer bucket at a
given resolution level. Lower levels are coarser: level 0 merges the
most coordinates per bucket.

Monotonic invariant:
    bucket(c, L1) == bucket(c', L1)  =>  bucket(c, L2) == bucket(c', L2)
    for every L2 < L1.

Both implementations hold it because every coarser width is an exact
multiple of the next finer width, so buckets nest.

Implementations:
    - PyramidQuantizer: tile pyramid, width doubles per coarser level
    - TableQuantizer: explicit width per level, nesting validated

Complexity: O(1) for bucket(), width(), bucket_bounds()
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Mapping, Protocol, TypeVar, runtime_checkable

from annomesh.core import constants as C
from annomesh.core.errors import ConfigurationError, InvalidRangeError
from annomesh.core.types import Result, Ok, Err

T = TypeVar("T")

KeyFn = Callable[[Any], int]


def floor_key(coordinate: Any) -> int:
    """Default ordinal key: numeric coordinates rounded towards negative infinity."""
    return math.floor(coordinate)


def epoch_millis(coordinate: datetime) -> int:
    """Ordinal key for datetime coordinates. Naive datetimes are taken as UTC."""
    if coordinate.tzinfo is None:
        coordinate = coordinate.replace(tzinfo=timezone.utc)
    return int(coordinate.timestamp() * 1000)


# =============================================================================
# QUANTIZER PROTOCOL
# =============================================================================
@runtime_checkable
class LevelQuantizer(Protocol[T]):
    """Structural interface consumed by the store and the backends."""

    @property
    def max_level(self) -> int:
        ...

    def key(self, coordinate: T) -> int:
        """Ordinal key of a coordinate."""
        ...

    def width(self, level: int) -> int:
        """Ordinal units per bucket at level."""
        ...

    def bucket(self, coordinate: T, level: int) -> int:
        ...

    def bucket_bounds(self, bucket: int, level: int) -> tuple[int, int]:
        """Inclusive ordinal range covered by a bucket."""
        ...

    def validate_level(self, level: int) -> Result[int, InvalidRangeError]:
        ...


class _QuantizerBase(Generic[T]):
    """Shared bucket arithmetic; subclasses supply width() and max_level."""

    __slots__ = ("_key",)

    def __init__(self, key: KeyFn = floor_key) -> None:
        self._key = key

    @property
    def max_level(self) -> int:
        raise NotImplementedError

    def width(self, level: int) -> int:
        raise NotImplementedError

    def key(self, coordinate: T) -> int:
        ordinal = self._key(coordinate)
        if not isinstance(ordinal, int) or isinstance(ordinal, bool):
            raise TypeError(
                f"Ordinal key for {coordinate!r} must be int, got {type(ordinal).__name__}"
            )
        return ordinal

    def bucket(self, coordinate: T, level: int) -> int:
        return self.key(coordinate) // self.width(level)

    def bucket_bounds(self, bucket: int, level: int) -> tuple[int, int]:
        w = self.width(level)
        return bucket * w, (bucket + 1) * w - 1

    def validate_level(self, level: int) -> Result[int, InvalidRangeError]:
        if not isinstance(level, int) or isinstance(level, bool):
            return Err(InvalidRangeError.bad_level(level, self.max_level))
        if level < 0 or level > self.max_level:
            return Err(InvalidRangeError.bad_level(level, self.max_level))
        return Ok(level)


# =============================================================================
# PYRAMID QUANTIZER
# =============================================================================
class PyramidQuantizer(_QuantizerBase[T]):
    """
    Tile-pyramid binning.

    width(level) = finest_width * 2 ** (max_level - level)

    Level max_level has the finest buckets; each step towards level 0
    merges two neighbouring buckets.

    Usage:
        q = PyramidQuantizer(finest_width=1, max_level=3)
        q.bucket(13, 3)  # 13
        q.bucket(13, 1)  # 3  (width 4)
    """

    __slots__ = ("_finest_width", "_max_level")

    def __init__(
        self,
        finest_width: int = C.DEFAULT_FINEST_WIDTH,
        max_level: int = C.DEFAULT_MAX_LEVEL,
        key: KeyFn = floor_key,
    ) -> None:
        if finest_width < 1:
            raise ConfigurationError.invalid("finest_width must be >= 1", finest_width=finest_width)
        if max_level < 0:
            raise ConfigurationError.invalid("max_level must be >= 0", max_level=max_level)
        super().__init__(key)
        self._finest_width = finest_width
        self._max_level = max_level

    @property
    def max_level(self) -> int:
        return self._max_level

    def width(self, level: int) -> int:
        return self._finest_width << (self._max_level - level)

    def __repr__(self) -> str:
        return f"PyramidQuantizer(finest_width={self._finest_width}, max_level={self._max_level})"


# =============================================================================
# TABLE QUANTIZER
# =============================================================================
class TableQuantizer(_QuantizerBase[T]):
    """
    Explicit bucket width per level.

    Levels must cover 0..max_level without gaps and every coarser width
    must be a multiple of the next finer one.

    Usage:
        q = TableQuantizer({1: 10, 2: 5})  # level 0 defaults to level 1's width
    """

    __slots__ = ("_widths",)

    def __init__(self, widths: Mapping[int, int], key: KeyFn = floor_key) -> None:
        super().__init__(key)
        if not widths:
            raise ConfigurationError.invalid("width table is empty")
        table = dict(widths)
        top = max(table)
        if min(table) < 0:
            raise ConfigurationError.invalid("levels must be >= 0", levels=sorted(table))
        # Leading coarse levels may be omitted; they inherit the first declared width
        first = min(table)
        for level in range(first):
            table[level] = table[first]
        missing = [level for level in range(top + 1) if level not in table]
        if missing:
            raise ConfigurationError.invalid("width table has gaps", missing=missing)
        for level in range(top + 1):
            if table[level] < 1:
                raise ConfigurationError.invalid(
                    "bucket widths must be >= 1", level=level, width=table[level]
                )
        for level in range(top):
            coarse, fine = table[level], table[level + 1]
            if coarse % fine != 0:
                raise ConfigurationError.invalid(
                    "coarser width must be a multiple of the finer width",
                    level=level,
                    coarse=coarse,
                    fine=fine,
                )
        self._widths = tuple(table[level] for level in range(top + 1))

    @property
    def max_level(self) -> int:
        return len(self._widths) - 1

    def width(self, level: int) -> int:
        return self._widths[level]

    def __repr__(self) -> str:
        return f"TableQuantizer({dict(enumerate(self._widths))})"
