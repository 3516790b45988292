"""
Error Hierarchy for the Annotation Store

Design Principles:
- Forbid exceptions for control flow on the request path (use Result types)
- Configuration-time errors are collected as diagnostics, never raised
  through the build walk
- Read-time filter errors fail closed and never abort a scan
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation

Usage:
    result = await store.read_annotations(0, 100, level=3)
    match result:
        case Ok(bins):
            render(bins)
        case Err(InvalidRangeError() as error):
            reject_request(error)
        case Err(StorageUnavailableError() as error):
            report_outage(error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from annomesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Request errors (read/write arguments)
    - 2xxx: Configuration errors (filter trees, settings)
    - 3xxx: Script evaluation errors
    - 4xxx: Storage errors
    """

    # Request errors (1xxx)
    INVALID_RANGE = 1001
    INVALID_LEVEL = 1002
    INVALID_ANNOTATION = 1003

    # Configuration errors (2xxx)
    CONFIGURATION_INVALID = 2001
    UNKNOWN_FILTER_TYPE = 2002
    MISSING_PROPERTY = 2003
    FILTER_CONSTRUCTION_FAILED = 2004

    # Script errors (3xxx)
    SCRIPT_RAISED = 3001
    SCRIPT_NON_BOOLEAN = 3002

    # Storage errors (4xxx)
    STORAGE_UNAVAILABLE = 4001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class AnnomeshError(Exception):
    """
    Base class for all annotation store errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> AnnomeshError:
        """
        Add context to error (returns new instance of the same class).

        Context should not contain payload contents.
        """
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for logging/API responses."""
        data = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# REQUEST ERRORS (HARD REJECTIONS)
# =============================================================================
@dataclass
class InvalidRangeError(AnnomeshError):
    """Bad start/stop/level on a read. The request is rejected."""

    @classmethod
    def inverted(cls, start: Any, stop: Any) -> InvalidRangeError:
        return cls(
            code=ErrorCode.INVALID_RANGE,
            message=f"Range start {start!r} is greater than stop {stop!r}",
            context={"start": repr(start), "stop": repr(stop)},
        )

    @classmethod
    def incomparable(
        cls,
        start: Any,
        stop: Any,
        cause: Optional[BaseException] = None,
    ) -> InvalidRangeError:
        return cls(
            code=ErrorCode.INVALID_RANGE,
            message=f"Range bounds {start!r} and {stop!r} cannot be ordered or binned",
            cause=cause,
            context={"start": repr(start), "stop": repr(stop)},
        )

    @classmethod
    def bad_level(cls, level: Any, max_level: int) -> InvalidRangeError:
        return cls(
            code=ErrorCode.INVALID_LEVEL,
            message=f"Level {level!r} outside supported range [0, {max_level}]",
            context={"level": repr(level), "max_level": max_level},
        )


@dataclass
class InvalidAnnotationError(AnnomeshError):
    """An annotation cannot be indexed. The write is rejected."""

    @classmethod
    def unkeyable(
        cls,
        coordinate: Any,
        cause: Optional[BaseException] = None,
    ) -> InvalidAnnotationError:
        return cls(
            code=ErrorCode.INVALID_ANNOTATION,
            message=f"Coordinate {coordinate!r} cannot be mapped to an ordinal key",
            cause=cause,
            context={"coordinate": repr(coordinate)[:100]},
        )

    @classmethod
    def bad_group(cls, group: Any) -> InvalidAnnotationError:
        return cls(
            code=ErrorCode.INVALID_ANNOTATION,
            message=f"Group key must be a string, got {type(group).__name__}",
            context={"group": repr(group)[:100]},
        )

    @classmethod
    def bad_timestamp(cls, write_timestamp: Any) -> InvalidAnnotationError:
        return cls(
            code=ErrorCode.INVALID_ANNOTATION,
            message=f"Write timestamp {write_timestamp!r} is not an unsigned 64-bit integer",
            context={"write_timestamp": repr(write_timestamp)},
        )

    @classmethod
    def unstorable(cls, coordinate: Any, reason: str) -> InvalidAnnotationError:
        return cls(
            code=ErrorCode.INVALID_ANNOTATION,
            message=f"Annotation at {coordinate!r} cannot be stored: {reason}",
            context={"coordinate": repr(coordinate)[:100], "reason": reason},
        )


# =============================================================================
# CONFIGURATION ERRORS (FAIL-SOFT)
# =============================================================================
@dataclass
class ConfigurationError(AnnomeshError):
    """Malformed configuration document or settings."""

    @classmethod
    def invalid(
        cls,
        reason: str,
        cause: Optional[BaseException] = None,
        **context: Any,
    ) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIGURATION_INVALID,
            message=f"Invalid configuration: {reason}",
            cause=cause,
            context=context,
        )


@dataclass
class UnknownFilterTypeError(ConfigurationError):
    """Filter type name has no registered constructor."""

    @classmethod
    def for_name(cls, type_name: str, known: list[str]) -> UnknownFilterTypeError:
        return cls(
            code=ErrorCode.UNKNOWN_FILTER_TYPE,
            message=f"Unknown filter type '{type_name}'",
            context={"type_name": type_name, "registered": sorted(known)},
        )


@dataclass
class MissingPropertyError(ConfigurationError):
    """Required property has neither a configured value nor a default."""

    @classmethod
    def for_property(cls, type_name: str, property_name: str) -> MissingPropertyError:
        return cls(
            code=ErrorCode.MISSING_PROPERTY,
            message=f"Filter '{type_name}' requires property '{property_name}'",
            context={"type_name": type_name, "property": property_name},
        )


@dataclass
class FilterConstructionError(ConfigurationError):
    """Constructor-level failure while building a filter node."""

    @classmethod
    def wrap(
        cls,
        type_name: str,
        cause: BaseException,
    ) -> FilterConstructionError:
        return cls(
            code=ErrorCode.FILTER_CONSTRUCTION_FAILED,
            message=f"Failed to construct filter '{type_name}': {cause}",
            cause=cause,
            context={"type_name": type_name},
        )

    @classmethod
    def invalid_property(
        cls,
        type_name: str,
        property_name: str,
        reason: str,
    ) -> FilterConstructionError:
        return cls(
            code=ErrorCode.FILTER_CONSTRUCTION_FAILED,
            message=f"Filter '{type_name}' property '{property_name}': {reason}",
            context={"type_name": type_name, "property": property_name},
        )

    @classmethod
    def unexpected_children(cls, type_name: str, count: int) -> FilterConstructionError:
        return cls(
            code=ErrorCode.FILTER_CONSTRUCTION_FAILED,
            message=f"Filter '{type_name}' does not accept children (got {count})",
            context={"type_name": type_name, "children": count},
        )


# =============================================================================
# SCRIPT ERRORS (FAIL-CLOSED)
# =============================================================================
@dataclass
class ScriptEvaluationError(AnnomeshError):
    """
    Scripted predicate failed on one annotation.

    Never leaves the filter: it is logged and the annotation is rejected.
    """

    @classmethod
    def raised(cls, script: str, cause: BaseException) -> ScriptEvaluationError:
        return cls(
            code=ErrorCode.SCRIPT_RAISED,
            message=f"Script raised {type(cause).__name__}: {cause}",
            cause=cause,
            context={"script": script[:100]},
        )

    @classmethod
    def non_boolean(cls, script: str, value: Any) -> ScriptEvaluationError:
        return cls(
            code=ErrorCode.SCRIPT_NON_BOOLEAN,
            message=f"Script returned {type(value).__name__}, expected bool",
            context={"script": script[:100], "value": repr(value)[:100]},
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class StorageUnavailableError(AnnomeshError):
    """Backing store failed. Surfaced unmodified; no retry in this core."""

    @classmethod
    def operation_failed(
        cls,
        operation: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> StorageUnavailableError:
        return cls(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            message=f"Storage operation '{operation}' failed: {reason}",
            cause=cause,
            context={"operation": operation, "reason": reason},
        )
