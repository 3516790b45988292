"""
Indexed Annotation Store with a Configurable Filter Pipeline

Stores point-like annotations keyed by an orderable coordinate (tile
index, timestamp) and serves level-binned range reads through a chain
of predicate filters assembled from a declarative configuration tree.

- Level binning: lower levels are coarser, buckets nest across levels
- Filter chain: ordered conjunction, fail-closed scripted predicates,
  scan-local recency budgets
- Configurable factory: registry of filter types built from a JSON tree
  with fail-soft diagnostics
- Backends: in-memory sorted index, Redis sorted set

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from annomesh.core.types import (
    Result,
    Ok,
    Err,
    Annotation,
    AnnotationBin,
)
from annomesh.core.errors import (
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

from annomesh.index import PyramidQuantizer, TableQuantizer, epoch_millis
from annomesh.factory import FilterConfig, ConfigurableFactory
from annomesh.filter import (
    AnnotationFilter,
    FilterChain,
    GroupRecencyFilter,
    ScriptableFilter,
    create_filter_factory,
)
from annomesh.storage import InMemoryAnnotationBackend, RedisAnnotationBackend
from annomesh.service import AnnotationService, AnnotationStore, build_store

__all__ = [
    # Version
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "Annotation",
    "AnnotationBin",
    "AnnomeshConfig",
    # Errors
    "AnnomeshError",
    "InvalidRangeError",
    "InvalidAnnotationError",
    "ConfigurationError",
    "UnknownFilterTypeError",
    "MissingPropertyError",
    "FilterConstructionError",
    "ScriptEvaluationError",
    "StorageUnavailableError",
    # Index
    "PyramidQuantizer",
    "TableQuantizer",
    "epoch_millis",
    # Filters
    "FilterConfig",
    "ConfigurableFactory",
    "AnnotationFilter",
    "FilterChain",
    "GroupRecencyFilter",
    "ScriptableFilter",
    "create_filter_factory",
    # Storage
    "InMemoryAnnotationBackend",
    "RedisAnnotationBackend",
    # Service
    "AnnotationService",
    "AnnotationStore",
    "build_store",
]
