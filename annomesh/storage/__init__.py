"""
Storage module: backing store protocol and implementations.

- AnnotationBackend: level-scoped range scan contract
- InMemoryAnnotationBackend: sorted in-process index
- RedisAnnotationBackend: sorted-set index on Redis
"""

from annomesh.storage.protocols import AnnotationBackend
from annomesh.storage.memory import InMemoryAnnotationBackend
from annomesh.storage.redis_store import RedisAnnotationBackend
from annomesh.storage.codec import CodecError, decode_annotation, encode_annotation

__all__ = [
    "AnnotationBackend",
    "InMemoryAnnotationBackend",
    "RedisAnnotationBackend",
    "CodecError",
    "decode_annotation",
    "encode_annotation",
]
