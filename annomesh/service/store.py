"""
Annotation Store: Level-Binned Reads Through a Filter Chain

Implements the AnnotationService contract on top of any
AnnotationBackend.

Read path:
    validate (start <= stop, 0 <= level <= max_level)
    -> bucket range at level
    -> snapshot the active chain, derive a scan-local copy
    -> backend.scan_range (the single await point)
    -> offer candidates newest first to the chain
    -> group survivors per bucket, arrival order kept, empty bins omitted

Copy-on-write configuration:
    The chain is one attribute holding an immutable FilterChain.
    reconfigure() builds a new chain under a lock that reads never take
    and swaps the reference. A read keeps the snapshot it started with.

Error Handling:
    InvalidRangeError / InvalidAnnotationError  -> Err, request rejected
    backend failure                             -> Err(StorageUnavailableError)
    filter failures                             -> logged, annotation rejected
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, Sequence, TypeVar

from annomesh.core.errors import (
    AnnomeshError,
    InvalidAnnotationError,
    InvalidRangeError,
    StorageUnavailableError,
)
from annomesh.core.types import Annotation, AnnotationBin, Result, Ok, Err
from annomesh.factory.config import FilterConfig
from annomesh.factory.configurable import BuildReport, ConfigurableFactory
from annomesh.filter.base import AnnotationFilter, FilterChain
from annomesh.filter.registry import build_filter_chain, create_filter_factory
from annomesh.index.quantizer import LevelQuantizer
from annomesh.observability.logging import StructuredLogger
from annomesh.storage.protocols import AnnotationBackend

T = TypeVar("T")

logger = StructuredLogger("annomesh.store")


# =============================================================================
# METRICS
# =============================================================================
@dataclass(slots=True)
class StoreMetrics:
    """
    Operation counters for one store.

    Plain increments; exact under asyncio's single-threaded scheduling.
    """
    writes: int = 0
    reads: int = 0
    removes: int = 0
    bins_returned: int = 0
    filtered_out: int = 0
    filter_errors: int = 0
    rejected_requests: int = 0
    storage_errors: int = 0
    read_latency_sum_ns: int = 0

    def avg_read_latency_ms(self) -> float:
        if self.reads == 0:
            return 0.0
        return (self.read_latency_sum_ns / self.reads) / 1_000_000


# =============================================================================
# ANNOTATION STORE
# =============================================================================
class AnnotationStore(Generic[T]):
    """
    Indexed annotation store with a configurable filter pipeline.

    Example:
        quantizer = PyramidQuantizer(max_level=8)
        store = AnnotationStore(
            InMemoryAnnotationBackend(quantizer),
            quantizer,
            filter_config=FilterConfig("group-recency", {"count": 3}),
        )
        await store.write_annotation(Annotation.create(12, "alerts"))
        result = await store.read_annotations(0, 255, level=4)
    """

    __slots__ = (
        "_backend",
        "_quantizer",
        "_factory",
        "_chain",
        "_diagnostics",
        "_reconfigure_lock",
        "_metrics",
    )

    def __init__(
        self,
        backend: AnnotationBackend,
        quantizer: LevelQuantizer[T],
        filter_config: Optional[FilterConfig] = None,
        factory: Optional[ConfigurableFactory[AnnotationFilter]] = None,
    ) -> None:
        self._backend = backend
        self._quantizer = quantizer
        self._factory = factory or create_filter_factory()
        self._chain, self._diagnostics = build_filter_chain(filter_config, self._factory)
        self._reconfigure_lock = asyncio.Lock()
        self._metrics = StoreMetrics()

    @property
    def filter_chain(self) -> FilterChain:
        """Current chain snapshot."""
        return self._chain

    @property
    def diagnostics(self) -> list:
        """Diagnostics of the last chain build."""
        return list(self._diagnostics)

    @property
    def metrics(self) -> StoreMetrics:
        return self._metrics

    @property
    def quantizer(self) -> LevelQuantizer[T]:
        return self._quantizer

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------

    async def reconfigure(self, config: Optional[FilterConfig]) -> BuildReport[FilterChain]:
        """
        Build a new chain and swap it in.

        Reconfigurations are serialized; reads are never blocked and
        keep the chain they started with. None installs the empty chain.
        """
        async with self._reconfigure_lock:
            chain, diagnostics = build_filter_chain(config, self._factory)
            self._chain = chain
            self._diagnostics = diagnostics
        logger.info(
            "Filter chain swapped",
            filters=len(chain),
            diagnostics=len(diagnostics),
        )
        return BuildReport(product=chain, diagnostics=list(diagnostics))

    async def close(self) -> None:
        """Release backend resources. Backends without close() hold none."""
        close = getattr(self._backend, "close", None)
        if close is not None:
            await close()
        logger.debug("Annotation store closed")

    # -------------------------------------------------------------------------
    # WRITE PATH
    # -------------------------------------------------------------------------

    async def write_annotation(self, annotation: Annotation[T]) -> Result[None, AnnomeshError]:
        return await self.write_annotations([annotation])

    async def write_annotations(
        self,
        annotations: Sequence[Annotation[T]],
    ) -> Result[None, AnnomeshError]:
        """Validate the whole batch, then persist it. Duplicates stay duplicates."""
        batch = list(annotations)
        for annotation in batch:
            error = self._validate(annotation, writing=True)
            if error is not None:
                self._metrics.rejected_requests += 1
                return Err(error)
        if not batch:
            return Ok(None)

        result = await self._call_backend("put_many", self._backend.put_many(batch))
        if result.is_err():
            return result
        self._metrics.writes += len(batch)
        logger.debug("Annotations written", count=len(batch))
        return Ok(None)

    # -------------------------------------------------------------------------
    # REMOVE PATH
    # -------------------------------------------------------------------------

    async def remove_annotation(self, annotation: Annotation[T]) -> Result[None, AnnomeshError]:
        return await self.remove_annotations([annotation])

    async def remove_annotations(
        self,
        annotations: Sequence[Annotation[T]],
    ) -> Result[None, AnnomeshError]:
        """Delete exact identity matches. Absent records are a no-op."""
        batch = list(annotations)
        for annotation in batch:
            error = self._validate(annotation, writing=False)
            if error is not None:
                self._metrics.rejected_requests += 1
                return Err(error)
        if not batch:
            return Ok(None)

        result = await self._call_backend("delete_many", self._backend.delete_many(batch))
        if result.is_err():
            return result
        removed = result.unwrap()
        self._metrics.removes += removed
        logger.debug("Annotations removed", requested=len(batch), removed=removed)
        return Ok(None)

    # -------------------------------------------------------------------------
    # READ PATH
    # -------------------------------------------------------------------------

    async def read_annotations(
        self,
        start: T,
        stop: T,
        level: int,
    ) -> Result[list[AnnotationBin[T]], AnnomeshError]:
        started_ns = time.perf_counter_ns()

        level_check = self._quantizer.validate_level(level)
        if level_check.is_err():
            self._metrics.rejected_requests += 1
            return level_check

        try:
            inverted = start > stop
            bucket_start = self._quantizer.bucket(start, level)
            bucket_stop = self._quantizer.bucket(stop, level)
        except (TypeError, ValueError, OverflowError) as e:
            self._metrics.rejected_requests += 1
            return Err(InvalidRangeError.incomparable(start, stop, e))
        if inverted:
            self._metrics.rejected_requests += 1
            return Err(InvalidRangeError.inverted(start, stop))

        # Snapshot before the await so a concurrent swap is not observed
        chain = self._chain.for_scan()

        scan = await self._call_backend(
            "scan_range",
            self._backend.scan_range(bucket_start, bucket_stop, level),
        )
        if scan.is_err():
            return scan
        candidates: list[Annotation[T]] = scan.unwrap()

        accepted = self._apply_filters(chain, candidates)
        bins = self._bin(candidates, accepted, level)

        self._metrics.reads += 1
        self._metrics.bins_returned += len(bins)
        self._metrics.filtered_out += len(candidates) - sum(accepted)
        self._metrics.read_latency_sum_ns += time.perf_counter_ns() - started_ns
        logger.debug(
            "Annotations read",
            read_level=level,
            bucket_start=bucket_start,
            bucket_stop=bucket_stop,
            candidates=len(candidates),
            bins=len(bins),
        )
        return Ok(bins)

    def _apply_filters(
        self,
        chain: FilterChain,
        candidates: list[Annotation[T]],
    ) -> list[bool]:
        """
        Offer candidates newest first; returns acceptance per candidate index.

        The sort is stable, so equal timestamps keep arrival order.
        """
        accepted = [False] * len(candidates)
        order = sorted(
            range(len(candidates)),
            key=lambda i: candidates[i].write_timestamp,
            reverse=True,
        )
        for i in order:
            try:
                accepted[i] = chain.accepts(candidates[i])
            except Exception as e:
                # Fail closed: a broken filter hides the annotation, never the scan
                self._metrics.filter_errors += 1
                logger.warning(
                    "Filter raised; annotation rejected",
                    reason=f"{type(e).__name__}: {e}",
                    annotation_group=candidates[i].group,
                )
        return accepted

    def _bin(
        self,
        candidates: list[Annotation[T]],
        accepted: list[bool],
        level: int,
    ) -> list[AnnotationBin[T]]:
        members: dict[int, list[Annotation[T]]] = {}
        for annotation, keep in zip(candidates, accepted):
            if keep:
                key = self._quantizer.bucket(annotation.coordinate, level)
                members.setdefault(key, []).append(annotation)
        return [
            AnnotationBin(bin_key=key, level=level, members=tuple(members[key]))
            for key in sorted(members)
        ]

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    def _validate(
        self,
        annotation: Annotation[T],
        writing: bool,
    ) -> Optional[InvalidAnnotationError]:
        if not isinstance(annotation.group, str):
            return InvalidAnnotationError.bad_group(annotation.group)
        if writing and not annotation.has_valid_timestamp():
            return InvalidAnnotationError.bad_timestamp(annotation.write_timestamp)
        try:
            self._quantizer.key(annotation.coordinate)
        except (TypeError, ValueError, OverflowError) as e:
            return InvalidAnnotationError.unkeyable(annotation.coordinate, e)
        check = getattr(self._backend, "check_annotation", None)
        if writing and check is not None:
            reason = check(annotation)
            if reason is not None:
                return InvalidAnnotationError.unstorable(annotation.coordinate, reason)
        return None

    async def _call_backend(
        self,
        operation: str,
        call: Awaitable[Result[Any, str]],
    ) -> Result[Any, StorageUnavailableError]:
        """Await a backend call; failures surface as StorageUnavailableError."""
        try:
            result = await call
        except Exception as e:
            error = StorageUnavailableError.operation_failed(operation, f"{type(e).__name__}: {e}", e)
        else:
            if result.is_ok():
                return result
            error = StorageUnavailableError.operation_failed(operation, str(result.error))

        self._metrics.storage_errors += 1
        logger.error("Backend operation failed", error=error.to_dict())
        return Err(error)
