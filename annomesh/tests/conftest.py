"""Shared fixtures for the annotation store tests."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from annomesh.core.types import Annotation
from annomesh.factory.config import FilterConfig
from annomesh.index.quantizer import TableQuantizer
from annomesh.service.store import AnnotationStore
from annomesh.storage.memory import InMemoryAnnotationBackend


def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


def ann(coordinate: Any, group: str = "g", ts: int = 1, payload: Any = None) -> Annotation[Any]:
    return Annotation(coordinate=coordinate, group=group, payload=payload, write_timestamp=ts)


def assert_ok(result, message: str = "Expected Ok result"):
    if result.is_err():
        raise AssertionError(f"{message}: {result.error}")
    return result.unwrap()


def assert_err(result, message: str = "Expected Err result"):
    if result.is_ok():
        raise AssertionError(f"{message}: Got Ok({result.unwrap()!r})")
    return result.error


@pytest.fixture
def quantizer() -> TableQuantizer:
    """Level 1 buckets of 10, level 2 buckets of 5 (level 0 inherits 10)."""
    return TableQuantizer({1: 10, 2: 5})


@pytest.fixture
def make_store(quantizer):
    def _make(filter_config: Optional[FilterConfig] = None) -> AnnotationStore[int]:
        return AnnotationStore(InMemoryAnnotationBackend(quantizer), quantizer, filter_config)
    return _make


class FakeRedis:
    """
    In-process stand-in for the redis.asyncio commands the backend uses.

    Sorted set semantics: unique members, ordered by (score, member).
    """

    def __init__(self) -> None:
        self.zsets: dict[str, dict[bytes, float]] = {}
        self.counters: dict[str, int] = {}
        self.fail_with: Optional[Exception] = None
        self.pings = 0
        self.closed = 0

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def ping(self) -> bool:
        self._check()
        self.pings += 1
        return True

    async def aclose(self) -> None:
        self.closed += 1

    async def incrby(self, key: str, amount: int) -> int:
        self._check()
        self.counters[key] = self.counters.get(key, 0) + amount
        return self.counters[key]

    async def zadd(self, key: str, mapping: dict[bytes, float]) -> int:
        self._check()
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    async def zrangebyscore(self, key: str, lo: float, hi: float) -> list[bytes]:
        self._check()
        zset = self.zsets.get(key, {})
        ordered = sorted(zset.items(), key=lambda item: (item[1], item[0]))
        return [member for member, score in ordered if lo <= score <= hi]

    async def zrem(self, key: str, *members: bytes) -> int:
        self._check()
        zset = self.zsets.get(key, {})
        removed = 0
        for member in members:
            if zset.pop(member, None) is not None:
                removed += 1
        return removed


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
