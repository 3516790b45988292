"""
Service module: the AnnotationService contract, its store
implementation and configuration-driven wiring.
"""

from annomesh.service.protocols import AnnotationService
from annomesh.service.store import AnnotationStore, StoreMetrics
from annomesh.service.bootstrap import build_store

__all__ = [
    "AnnotationService",
    "AnnotationStore",
    "StoreMetrics",
    "build_store",
]
