"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the store:
- Result/Either monads for zero-exception control flow
- Annotation and AnnotationBin data model
- Error taxonomy with per-failure constructors
- Configuration management with validation
"""

from annomesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    Annotation,
    AnnotationBin,
)
from annomesh.core.errors import (
    ErrorCode,
    AnnomeshError,
    InvalidRangeError,
    InvalidAnnotationError,
    ConfigurationError,
    UnknownFilterTypeError,
    MissingPropertyError,
    FilterConstructionError,
    ScriptEvaluationError,
    StorageUnavailableError,
)
from annomesh.core.config import AnnomeshConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "Annotation",
    "AnnotationBin",
    "ErrorCode",
    "AnnomeshError",
    "InvalidRangeError",
    "InvalidAnnotationError",
    "ConfigurationError",
    "UnknownFilterTypeError",
    "MissingPropertyError",
    "FilterConstructionError",
    "ScriptEvaluationError",
    "StorageUnavailableError",
    "AnnomeshConfig",
]
