"""
Annotation Service Contract

The only surface the external service boundary (HTTP, RPC) depends on.
Every method returns a Result whose error is an AnnomeshError.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, Sequence, TypeVar, runtime_checkable

from annomesh.core.errors import AnnomeshError
from annomesh.core.types import Annotation, AnnotationBin, Result

T = TypeVar("T")


@runtime_checkable
class AnnotationService(Protocol[T]):
    """Write, range-read-by-level and remove annotations."""

    @abstractmethod
    async def write_annotation(self, annotation: Annotation[T]) -> Result[None, AnnomeshError]:
        ...

    @abstractmethod
    async def write_annotations(
        self,
        annotations: Sequence[Annotation[T]],
    ) -> Result[None, AnnomeshError]:
        ...

    @abstractmethod
    async def read_annotations(
        self,
        start: T,
        stop: T,
        level: int,
    ) -> Result[list[AnnotationBin[T]], AnnomeshError]:
        """Non-empty bins intersecting [start, stop] at level, ascending bin key."""
        ...

    @abstractmethod
    async def remove_annotation(self, annotation: Annotation[T]) -> Result[None, AnnomeshError]:
        ...

    @abstractmethod
    async def remove_annotations(
        self,
        annotations: Sequence[Annotation[T]],
    ) -> Result[None, AnnomeshError]:
        ...
