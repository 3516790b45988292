"""
Redis Annotation Backend
========================

AnnotationBackend on a single Redis sorted set.

Memory Model:
-------------
- {prefix}:annotations  ZSET, score = ordinal key of the coordinate,
                        member = codec-encoded annotation (see codec.py)
- {prefix}:sequence     STRING counter handing out write sequences

The write sequence is embedded in every member, so duplicate writes of
the same annotation stay distinct members and scans can restore
arrival order inside a bucket.

Algorithmic Complexity:
-----------------------
| Operation    | Time              | Notes                          |
|--------------|-------------------|--------------------------------|
| put_many     | O(k log N)        | one INCRBY + pipelined ZADD    |
| scan_range   | O(log N + m)      | ZRANGEBYSCORE on ordinal range |
| delete_many  | O(k (log N + d))  | exact-score lookup + ZREM      |

Constraints:
------------
Coordinates and payloads must be JSON-native. Ordinal keys must fit a
double exactly (|key| <= 2**53).
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from annomesh.core.config import RedisConfig
from annomesh.core.types import Annotation, Result, Ok, Err
from annomesh.index.quantizer import LevelQuantizer
from annomesh.observability.logging import StructuredLogger
from annomesh.storage.codec import CodecError, decode_annotation, encode_annotation

MAX_EXACT_SCORE: int = 2**53


def _stored_form(value: Any) -> Any:
    """The value as it reads back after a JSON round trip."""
    return json.loads(json.dumps(value))

logger = StructuredLogger("annomesh.storage")


class RedisAnnotationBackend:
    """
    Redis-backed AnnotationBackend.

    Example:
        >>> backend = RedisAnnotationBackend(RedisConfig(host="redis"), quantizer)
        >>> await backend.connect()
        >>> await backend.put_many([annotation])
        >>> await backend.close()
    """

    __slots__ = ("_config", "_quantizer", "_client", "_owns_client")

    def __init__(
        self,
        config: RedisConfig,
        quantizer: LevelQuantizer[Any],
        client: Optional[Any] = None,
    ) -> None:
        self._config = config
        self._quantizer = quantizer
        self._client = client
        self._owns_client = client is None

    @property
    def annotations_key(self) -> str:
        return f"{self._config.key_prefix}:annotations"

    @property
    def sequence_key(self) -> str:
        return f"{self._config.key_prefix}:sequence"

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, str]:
        """Create the client (unless one was injected) and ping it."""
        try:
            if self._client is None:
                self._client = aioredis.Redis(**self._config.get_connection_kwargs())
            await self._client.ping()
        except (RedisError, OSError) as e:
            await self.close()
            return Err(f"Redis connection failed: {e}")
        logger.info(
            "Redis backend connected",
            redis_host=self._config.host,
            redis_port=self._config.port,
            key_prefix=self._config.key_prefix,
        )
        return Ok(None)

    async def close(self) -> None:
        """Close an owned client. Safe to call multiple times."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # VALIDATION
    # -------------------------------------------------------------------------

    def check_annotation(self, annotation: Annotation[Any]) -> Optional[str]:
        """
        Reason the annotation cannot be stored faithfully, or None.

        Identity must read back unchanged after the JSON round trip,
        otherwise the record could never be matched for deletion.
        """
        try:
            stored, _ = decode_annotation(encode_annotation(annotation, 0))
        except (TypeError, ValueError) as e:
            return f"not JSON-serializable: {e}"
        if stored.identity != annotation.identity:
            return "identity changes when stored as JSON"
        if abs(self._quantizer.key(annotation.coordinate)) > MAX_EXACT_SCORE:
            return "ordinal key exceeds exact sorted-set score range"
        return None

    # -------------------------------------------------------------------------
    # BACKEND OPERATIONS
    # -------------------------------------------------------------------------

    async def scan_range(
        self,
        bucket_start: int,
        bucket_stop: int,
        level: int,
    ) -> Result[list[Annotation[Any]], str]:
        if self._client is None:
            return Err("Not connected")
        lo, _ = self._quantizer.bucket_bounds(bucket_start, level)
        _, hi = self._quantizer.bucket_bounds(bucket_stop, level)
        try:
            members = await self._client.zrangebyscore(self.annotations_key, lo, hi)
        except (RedisError, OSError) as e:
            return Err(f"Redis scan failed: {e}")

        decoded: list[tuple[int, int, Annotation[Any]]] = []
        for member in members:
            try:
                annotation, sequence = decode_annotation(member)
            except CodecError as e:
                return Err(f"Corrupt annotation member: {e}")
            decoded.append((self._quantizer.bucket(annotation.coordinate, level), sequence, annotation))
        decoded.sort(key=lambda item: (item[0], item[1]))
        return Ok([annotation for _, _, annotation in decoded])

    async def put_many(
        self,
        annotations: Sequence[Annotation[Any]],
    ) -> Result[int, str]:
        if self._client is None:
            return Err("Not connected")
        if not annotations:
            return Ok(0)

        scores = []
        for annotation in annotations:
            score = self._quantizer.key(annotation.coordinate)
            if abs(score) > MAX_EXACT_SCORE:
                return Err(f"Ordinal key {score} exceeds exact sorted-set score range")
            scores.append(score)

        try:
            last = await self._client.incrby(self.sequence_key, len(annotations))
            first = last - len(annotations) + 1
            mapping = {
                encode_annotation(annotation, first + i): score
                for i, (annotation, score) in enumerate(zip(annotations, scores))
            }
        except (TypeError, ValueError) as e:
            return Err(f"Annotation is not JSON-serializable: {e}")
        except (RedisError, OSError) as e:
            return Err(f"Redis sequence allocation failed: {e}")

        try:
            await self._client.zadd(self.annotations_key, mapping)
        except (RedisError, OSError) as e:
            return Err(f"Redis write failed: {e}")
        return Ok(len(mapping))

    async def delete_many(
        self,
        annotations: Sequence[Annotation[Any]],
    ) -> Result[int, str]:
        if self._client is None:
            return Err("Not connected")
        removed = 0
        try:
            for annotation in annotations:
                # Compare in stored form: JSON turns tuples into lists
                try:
                    target = _stored_form(list(annotation.identity))
                except (TypeError, ValueError):
                    continue
                score = self._quantizer.key(annotation.coordinate)
                members = await self._client.zrangebyscore(self.annotations_key, score, score)
                doomed = []
                for member in members:
                    try:
                        stored, _ = decode_annotation(member)
                    except CodecError as e:
                        logger.warning("Skipping corrupt member during delete", reason=str(e))
                        continue
                    if list(stored.identity) == target:
                        doomed.append(member)
                if doomed:
                    removed += await self._client.zrem(self.annotations_key, *doomed)
        except (RedisError, OSError) as e:
            return Err(f"Redis delete failed: {e}")
        return Ok(removed)
