"""
Backing Store Protocol: Level-Scoped Range Scans

Structural subtyping protocol (PEP 544) for pluggable annotation
backends. The store consumes nothing but this surface.

Design Principles:
    - Zero-exception control flow via Result[T, str]
    - Async-first; one await point per scan
    - Scans return whole buckets, ordered by bucket ascending then
      write order
    - Deletion is by identity and absent records are not an error
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, Sequence, runtime_checkable

from annomesh.core.types import Annotation, Result


@runtime_checkable
class AnnotationBackend(Protocol):
    """
    Physical storage collaborator.

    Implementations must tolerate concurrent scans and writes; reads
    are not required to observe writes that are still in flight.
    """

    @abstractmethod
    async def scan_range(
        self,
        bucket_start: int,
        bucket_stop: int,
        level: int,
    ) -> Result[list[Annotation[Any]], str]:
        """
        Every annotation in buckets [bucket_start, bucket_stop] at level.

        Returns:
            Ok(annotations): bucket ascending, then write order
            Err(message): backend unavailable
        """
        ...

    @abstractmethod
    async def put_many(
        self,
        annotations: Sequence[Annotation[Any]],
    ) -> Result[int, str]:
        """Persist annotations; returns the number written."""
        ...

    @abstractmethod
    async def delete_many(
        self,
        annotations: Sequence[Annotation[Any]],
    ) -> Result[int, str]:
        """Delete every record matching each identity; returns the number removed."""
        ...
