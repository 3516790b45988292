"""
Core Type Definitions for the Annotation Store

Result/Either monads for zero-exception control flow, plus the
annotation data model shared by the store, the filters and the
storage backends.

Design Principles:
- Never use null for absence (use Optional or Result)
- Annotations are immutable once written; replacement is remove + write
- Identity is (coordinate, group, write_timestamp); payload is opaque
- Bins are read-time materializations, never persisted
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    TypeVar,
    Union,
)

from annomesh.core import constants as C

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type / coordinate type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries the full error for exhaustive handling at the call site.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision timestamp for event ordering.

    Stores nanoseconds since Unix epoch. Used for annotation write
    stamps and for error correlation.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        """Capture current time with nanosecond precision."""
        return cls(nanos=time.time_ns())

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"


# =============================================================================
# ANNOTATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class Annotation(Generic[T]):
    """
    A single stored record keyed by an orderable coordinate.

    Equality and hashing use the identity triple
    (coordinate, group, write_timestamp). The payload is opaque
    to the store and excluded from comparison, so it may hold
    unhashable JSON-like values.

    Usage:
        a = Annotation.create(coordinate=12, group="alerts", payload={"p": 1})
        a.identity  # (12, "alerts", 1718000000000000000)
    """

    coordinate: T
    group: str
    payload: Any = field(default=None, compare=False)
    write_timestamp: int = 0

    @classmethod
    def create(cls, coordinate: T, group: str, payload: Any = None) -> Annotation[T]:
        """Create an annotation stamped with the current wall clock."""
        return cls(
            coordinate=coordinate,
            group=group,
            payload=payload,
            write_timestamp=Timestamp.now().nanos,
        )

    @property
    def identity(self) -> tuple[T, str, int]:
        return (self.coordinate, self.group, self.write_timestamp)

    def has_valid_timestamp(self) -> bool:
        """Write stamps are unsigned 64-bit integers."""
        return (
            isinstance(self.write_timestamp, int)
            and not isinstance(self.write_timestamp, bool)
            and 0 <= self.write_timestamp <= C.UINT64_MAX
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-like view; also the input schema of scripted filters."""
        return {
            "coordinate": self.coordinate,
            "group": self.group,
            "payload": self.payload,
            "timestamp": self.write_timestamp,
        }

    def __repr__(self) -> str:
        return (
            f"Annotation({self.coordinate!r}, group={self.group!r}, "
            f"ts={self.write_timestamp})"
        )


# =============================================================================
# ANNOTATION BIN
# =============================================================================
@dataclass(frozen=True, slots=True)
class AnnotationBin(Generic[T]):
    """
    All surviving annotations whose coordinate falls into one
    resolution bucket at a given level.

    Invariant: every member maps to bin_key at level.
    Members are kept in arrival (write) order.
    """

    bin_key: int
    level: int
    members: tuple[Annotation[T], ...] = ()

    def __len__(self) -> int:
        return len(self.members)

    def groups(self) -> set[str]:
        """Distinct group keys present in this bin."""
        return {member.group for member in self.members}

    def __repr__(self) -> str:
        return f"AnnotationBin(key={self.bin_key}, level={self.level}, n={len(self.members)})"
