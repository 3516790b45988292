"""
Integration Tests: Annotation Store

Tests:
    - Level binning of reads (whole bins, empty bins omitted)
    - Filter chain application (script, recency, fail-closed)
    - Write/remove validation and idempotence
    - Copy-on-write reconfiguration against in-flight reads
    - Storage failure surfacing
    - Closing the backend
    - Metrics
"""

import asyncio
from datetime import datetime

import pytest

from annomesh.core.config import RedisConfig
from annomesh.core.errors import (
    ErrorCode,
    InvalidAnnotationError,
    InvalidRangeError,
    StorageUnavailableError,
    UnknownFilterTypeError,
)
from annomesh.core.types import Err, Ok
from annomesh.factory.config import FilterConfig
from annomesh.filter.registry import create_filter_factory
from annomesh.index.quantizer import TableQuantizer
from annomesh.service.protocols import AnnotationService
from annomesh.service.store import AnnotationStore
from annomesh.storage import redis_store
from annomesh.storage.memory import InMemoryAnnotationBackend
from annomesh.storage.redis_store import RedisAnnotationBackend
from annomesh.tests.conftest import ann, assert_err, assert_ok, run


def chain(*children):
    return FilterConfig(name="chain", children=children)


def script(expr):
    return FilterConfig(name="script", properties={"script": expr})


def recency(count, **overrides):
    properties = {"count": count}
    if overrides:
        properties["counts"] = overrides
    return FilterConfig(name="group-recency", properties=properties)


def shape(bins):
    return [(b.bin_key, [a.coordinate for a in b.members]) for b in bins]


class GatedBackend(InMemoryAnnotationBackend):
    """Memory backend whose scans park until released."""

    def __init__(self, quantizer):
        super().__init__(quantizer)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def scan_range(self, bucket_start, bucket_stop, level):
        self.entered.set()
        await self.release.wait()
        return await super().scan_range(bucket_start, bucket_stop, level)


class BrokenBackend:
    """Backend that fails every call, by Err or by raising."""

    def __init__(self, raise_error=False):
        self.raise_error = raise_error

    async def _fail(self):
        if self.raise_error:
            raise ConnectionError("socket closed")
        return Err("backend offline")

    async def scan_range(self, bucket_start, bucket_stop, level):
        return await self._fail()

    async def put_many(self, annotations):
        return await self._fail()

    async def delete_many(self, annotations):
        return await self._fail()


class ExplodingFilter:
    def accepts(self, annotation):
        raise RuntimeError("filter bug")


class TestBinning:
    """Reads return whole bins at the requested level."""

    def test_levels(self, make_store):
        store = make_store()

        async def scenario():
            assert_ok(await store.write_annotations([ann(10), ann(12), ann(15)]))
            coarse = assert_ok(await store.read_annotations(10, 15, level=1))
            fine = assert_ok(await store.read_annotations(10, 15, level=2))
            return coarse, fine

        coarse, fine = run(scenario())
        assert shape(coarse) == [(1, [10, 12, 15])]
        assert all(b.level == 1 for b in coarse)
        assert shape(fine) == [(2, [10, 12]), (3, [15])]

    def test_whole_bins_extend_past_range(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotations([ann(10), ann(19), ann(20)])
            return assert_ok(await store.read_annotations(12, 13, level=1))

        assert shape(run(scenario())) == [(1, [10, 19])]

    def test_empty_bins_omitted(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotations([ann(1), ann(25)])
            return assert_ok(await store.read_annotations(0, 29, level=1))

        assert shape(run(scenario())) == [(0, [1]), (2, [25])]

    def test_empty_result(self, make_store):
        assert run(make_store().read_annotations(0, 100, level=0)) == Ok([])

    def test_degenerate_range(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotations([ann(7)])
            return assert_ok(await store.read_annotations(7, 7, level=2))

        assert shape(run(scenario())) == [(1, [7])]

    def test_members_keep_arrival_order(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotations([ann(14, ts=9), ann(11, ts=1), ann(13, ts=5)])
            return assert_ok(await store.read_annotations(10, 14, level=2))

        assert shape(run(scenario())) == [(2, [14, 11, 13])]

    def test_duplicate_writes_are_distinct(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotation(ann(3))
            await store.write_annotation(ann(3))
            return assert_ok(await store.read_annotations(0, 9, level=1))

        [only] = run(scenario())
        assert len(only) == 2


class TestFiltering:
    """The configured chain decides which annotations survive."""

    def test_recency_keeps_newest(self, make_store):
        store = make_store(recency(2))

        async def scenario():
            await store.write_annotations([ann(1, ts=3), ann(2, ts=5), ann(3, ts=4)])
            return assert_ok(await store.read_annotations(0, 9, level=1))

        [only] = run(scenario())
        assert sorted(a.write_timestamp for a in only.members) == [4, 5]
        assert [a.coordinate for a in only.members] == [2, 3]

    def test_recency_is_per_group(self, make_store):
        store = make_store(recency(1, vip=2))

        async def scenario():
            await store.write_annotations([
                ann(1, "g", 1), ann(2, "g", 2),
                ann(3, "vip", 1), ann(4, "vip", 2), ann(5, "vip", 3),
            ])
            return assert_ok(await store.read_annotations(0, 9, level=1))

        [only] = run(scenario())
        assert [a.coordinate for a in only.members] == [2, 4, 5]

    def test_recency_spans_whole_read(self, make_store):
        store = make_store(recency(1))

        async def scenario():
            await store.write_annotations([ann(1, ts=1), ann(25, ts=2)])
            return assert_ok(await store.read_annotations(0, 29, level=1))

        assert shape(run(scenario())) == [(2, [25])]

    def test_recency_resets_between_reads(self, make_store):
        store = make_store(recency(1))

        async def scenario():
            await store.write_annotations([ann(1, ts=1)])
            first = assert_ok(await store.read_annotations(0, 9, level=1))
            second = assert_ok(await store.read_annotations(0, 9, level=1))
            return first, second

        first, second = run(scenario())
        assert shape(first) == shape(second) == [(0, [1])]

    def test_chain_order_feeds_recency_only_survivors(self, make_store):
        store = make_store(chain(script('payload != "skip"'), recency(1)))

        async def scenario():
            await store.write_annotations([ann(1, ts=1), ann(2, ts=2), ann(3, ts=3, payload="skip")])
            return assert_ok(await store.read_annotations(0, 9, level=1))

        assert shape(run(scenario())) == [(0, [2])]

    def test_script_filter(self, make_store):
        store = make_store(script('group != "spam"'))

        async def scenario():
            await store.write_annotations([ann(1, "spam"), ann(2, "ham"), ann(12, "spam")])
            return assert_ok(await store.read_annotations(0, 19, level=1))

        assert shape(run(scenario())) == [(0, [2])]

    def test_failing_script_hides_annotation_only(self, make_store):
        store = make_store(script('payload["severity"] > 1'))

        async def scenario():
            await store.write_annotations([ann(1, payload={"severity": 3}), ann(2, payload=None)])
            return assert_ok(await store.read_annotations(0, 9, level=1))

        assert shape(run(scenario())) == [(0, [1])]

    def test_raising_filter_fails_closed(self, quantizer):
        factory = create_filter_factory()
        factory.register("explode", lambda props, children: ExplodingFilter())
        store = AnnotationStore(
            InMemoryAnnotationBackend(quantizer),
            quantizer,
            FilterConfig(name="explode"),
            factory=factory,
        )

        async def scenario():
            await store.write_annotations([ann(1), ann(2)])
            return await store.read_annotations(0, 9, level=1)

        assert run(scenario()) == Ok([])
        assert store.metrics.filter_errors == 2

    def test_script_cannot_change_stored_payload(self, make_store):
        store = make_store(script('payload.pop("secret", 0) == 1'))

        async def scenario():
            await store.write_annotation(ann(1, payload={"secret": 1, "x": 2}))
            filtered = assert_ok(await store.read_annotations(0, 9, level=1))
            await store.reconfigure(None)
            unfiltered = assert_ok(await store.read_annotations(0, 9, level=1))
            return filtered, unfiltered

        filtered, unfiltered = run(scenario())
        assert shape(filtered) == [(0, [1])]
        [only] = unfiltered
        assert only.members[0].payload == {"secret": 1, "x": 2}

    def test_bad_config_installs_empty_chain(self, make_store):
        store = make_store(FilterConfig(name="no-such-filter"))
        assert len(store.filter_chain) == 0
        assert isinstance(store.diagnostics[0], UnknownFilterTypeError)

        async def scenario():
            await store.write_annotations([ann(1)])
            return assert_ok(await store.read_annotations(0, 9, level=1))

        assert shape(run(scenario())) == [(0, [1])]


class TestReconfigure:
    """Chain swaps are copy-on-write."""

    def test_swap_applies_to_later_reads(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotations([ann(1, "a"), ann(2, "b")])
            before = assert_ok(await store.read_annotations(0, 9, level=1))
            report = await store.reconfigure(script('group == "a"'))
            after = assert_ok(await store.read_annotations(0, 9, level=1))
            cleared = await store.reconfigure(None)
            reset = assert_ok(await store.read_annotations(0, 9, level=1))
            return before, report, after, cleared, reset

        before, report, after, cleared, reset = run(scenario())
        assert shape(before) == [(0, [1, 2])]
        assert report.ok
        assert shape(after) == [(0, [1])]
        assert len(cleared.product) == 0
        assert shape(reset) == [(0, [1, 2])]

    def test_in_flight_read_keeps_its_chain(self, quantizer):
        async def scenario():
            backend = GatedBackend(quantizer)
            store = AnnotationStore(backend, quantizer)
            await store.write_annotations([ann(1), ann(2)])

            read = asyncio.create_task(store.read_annotations(0, 9, level=1))
            await backend.entered.wait()
            await store.reconfigure(script("False"))
            backend.release.set()
            in_flight = assert_ok(await read)
            later = assert_ok(await store.read_annotations(0, 9, level=1))
            return in_flight, later

        in_flight, later = run(scenario())
        assert shape(in_flight) == [(0, [1, 2])]
        assert later == []

    def test_reconfigure_reports_diagnostics(self, make_store):
        store = make_store(recency(2))
        report = run(store.reconfigure(chain(recency(1), FilterConfig(name="missing"))))
        assert not report.ok
        assert len(report.product) == 1
        assert isinstance(report.diagnostics[0], UnknownFilterTypeError)
        assert store.diagnostics == report.diagnostics


class TestValidation:
    """Bad requests are rejected before touching the backend."""

    @pytest.mark.parametrize(
        "start, stop, level",
        [
            (20, 10, 1),
            (0, 10, -1),
            (0, 10, 3),
            (0, 10, "1"),
            ("a", 10, 1),
        ],
    )
    def test_invalid_range(self, make_store, start, stop, level):
        store = make_store()
        error = assert_err(run(store.read_annotations(start, stop, level)))
        assert isinstance(error, InvalidRangeError)
        assert store.metrics.rejected_requests == 1

    @pytest.mark.parametrize(
        "annotation",
        [
            ann(1, group=5),
            ann(1, ts=-1),
            ann(1, ts=2**64),
            ann("not-a-number"),
        ],
    )
    def test_invalid_annotation(self, make_store, annotation):
        store = make_store()

        async def scenario():
            result = await store.write_annotations([ann(1), annotation])
            scan = assert_ok(await store.read_annotations(0, 9, level=1))
            return result, scan

        result, scan = run(scenario())
        assert isinstance(assert_err(result), InvalidAnnotationError)
        assert scan == []

    @pytest.mark.parametrize(
        "annotation",
        [
            ann((3, 4)),
            ann([3, 4], payload=datetime(2024, 1, 1)),
        ],
    )
    def test_unstorable_annotation(self, fake_redis, annotation):
        pairs = TableQuantizer({0: 10}, key=lambda c: c[0])
        store = AnnotationStore(RedisAnnotationBackend(RedisConfig(), pairs, client=fake_redis), pairs)
        error = assert_err(run(store.write_annotation(annotation)))
        assert isinstance(error, InvalidAnnotationError)
        assert error.code is ErrorCode.INVALID_ANNOTATION
        assert fake_redis.zsets == {}
        assert store.metrics.rejected_requests == 1

    def test_remove_is_idempotent(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotations([ann(1, ts=1), ann(1, ts=2)])
            first = await store.remove_annotation(ann(1, ts=1))
            second = await store.remove_annotation(ann(1, ts=1))
            remaining = assert_ok(await store.read_annotations(0, 9, level=1))
            return first, second, remaining

        first, second, remaining = run(scenario())
        assert first == Ok(None)
        assert second == Ok(None)
        [only] = remaining
        assert [a.write_timestamp for a in only.members] == [2]

    def test_remove_ignores_payload(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotation(ann(1, payload={"v": 1}))
            await store.remove_annotation(ann(1, payload={"v": 2}))
            return assert_ok(await store.read_annotations(0, 9, level=1))

        assert run(scenario()) == []

    def test_empty_batches(self, make_store):
        store = make_store()
        assert run(store.write_annotations([])) == Ok(None)
        assert run(store.remove_annotations([])) == Ok(None)


class TestStorageFailures:
    """Backend failures surface as StorageUnavailableError."""

    @pytest.mark.parametrize("raise_error", [False, True])
    def test_every_operation(self, quantizer, raise_error):
        store = AnnotationStore(BrokenBackend(raise_error), quantizer)

        async def scenario():
            return (
                await store.write_annotation(ann(1)),
                await store.read_annotations(0, 9, level=1),
                await store.remove_annotation(ann(1)),
            )

        for result in run(scenario()):
            assert isinstance(assert_err(result), StorageUnavailableError)
        assert store.metrics.storage_errors == 3

    def test_raised_cause_is_kept(self, quantizer):
        store = AnnotationStore(BrokenBackend(raise_error=True), quantizer)
        error = assert_err(run(store.read_annotations(0, 9, level=1)))
        assert isinstance(error.cause, ConnectionError)


class TestMetrics:
    """Store counters."""

    def test_counters(self, make_store):
        store = make_store(recency(1))

        async def scenario():
            await store.write_annotations([ann(1, ts=1), ann(2, ts=2), ann(25, ts=3, group="h")])
            await store.read_annotations(0, 29, level=1)
            await store.remove_annotation(ann(1, ts=1))

        run(scenario())
        metrics = store.metrics
        assert metrics.writes == 3
        assert metrics.reads == 1
        assert metrics.bins_returned == 2
        assert metrics.filtered_out == 1
        assert metrics.removes == 1
        assert metrics.avg_read_latency_ms() >= 0.0

    def test_satisfies_service_protocol(self, make_store):
        assert isinstance(make_store(), AnnotationService)


class TestClose:
    """close() releases the backend."""

    def test_closes_backend(self, quantizer, fake_redis, monkeypatch):
        monkeypatch.setattr(redis_store.aioredis, "Redis", lambda **kwargs: fake_redis)
        backend = RedisAnnotationBackend(RedisConfig(), quantizer)
        store = AnnotationStore(backend, quantizer)

        async def scenario():
            assert_ok(await backend.connect())
            await store.close()

        run(scenario())
        assert fake_redis.closed == 1

    def test_backend_without_close(self, quantizer):
        run(AnnotationStore(BrokenBackend(), quantizer).close())

    def test_memory_store(self, make_store):
        store = make_store()

        async def scenario():
            await store.write_annotation(ann(1))
            await store.close()
            return assert_ok(await store.read_annotations(0, 9, level=1))

        assert shape(run(scenario())) == [(0, [1])]
