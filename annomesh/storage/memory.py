"""
In-Memory Annotation Backend

Keeps every annotation in a list sorted by (ordinal key, write
sequence). A level scan converts the bucket range to an ordinal range
through the quantizer and bisects it.

Complexity:
    put_many      O(k log N + k N) worst case (list insertion)
    scan_range    O(log N + m), m = matches
    delete_many   O(k (log N + d))

Thread Safety:
    Mutations and scans hold an asyncio.Lock; scans copy the slice
    they return.
"""

from __future__ import annotations

import asyncio
import bisect
import copy
import itertools
from dataclasses import replace
from typing import Any, Sequence

from annomesh.core.types import Annotation, Result, Ok
from annomesh.index.quantizer import LevelQuantizer


class InMemoryAnnotationBackend:
    """
    AnnotationBackend for tests, demos and single-process deployments.

    Example:
        backend = InMemoryAnnotationBackend(PyramidQuantizer(max_level=8))
        await backend.put_many([a1, a2])
        result = await backend.scan_range(0, 3, level=2)
    """

    __slots__ = ("_quantizer", "_keys", "_records", "_sequence", "_lock")

    def __init__(self, quantizer: LevelQuantizer[Any]) -> None:
        self._quantizer = quantizer
        # Parallel lists: sort keys (ordinal, sequence) and records
        self._keys: list[tuple[int, int]] = []
        self._records: list[Annotation[Any]] = []
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def scan_range(
        self,
        bucket_start: int,
        bucket_stop: int,
        level: int,
    ) -> Result[list[Annotation[Any]], str]:
        lo, _ = self._quantizer.bucket_bounds(bucket_start, level)
        _, hi = self._quantizer.bucket_bounds(bucket_stop, level)
        async with self._lock:
            left = bisect.bisect_left(self._keys, (lo, -1))
            right = bisect.bisect_right(self._keys, (hi, float("inf")))
            keys = self._keys[left:right]
            records = self._records[left:right]
        # Index order is (ordinal, sequence); scans want (bucket, sequence)
        width = self._quantizer.width(level)
        order = sorted(range(len(records)), key=lambda i: (keys[i][0] // width, keys[i][1]))
        return Ok([records[i] for i in order])

    async def put_many(
        self,
        annotations: Sequence[Annotation[Any]],
    ) -> Result[int, str]:
        # Stored records own their payloads; later caller edits do not leak in
        owned = [replace(a, payload=copy.deepcopy(a.payload)) for a in annotations]
        async with self._lock:
            for annotation in owned:
                key = (self._quantizer.key(annotation.coordinate), next(self._sequence))
                index = bisect.bisect_right(self._keys, key)
                self._keys.insert(index, key)
                self._records.insert(index, annotation)
        return Ok(len(annotations))

    async def delete_many(
        self,
        annotations: Sequence[Annotation[Any]],
    ) -> Result[int, str]:
        removed = 0
        async with self._lock:
            for annotation in annotations:
                ordinal = self._quantizer.key(annotation.coordinate)
                left = bisect.bisect_left(self._keys, (ordinal, -1))
                right = bisect.bisect_right(self._keys, (ordinal, float("inf")))
                doomed = [
                    i for i in range(left, right)
                    if self._records[i].identity == annotation.identity
                ]
                for i in reversed(doomed):
                    del self._keys[i]
                    del self._records[i]
                removed += len(doomed)
        return Ok(removed)
