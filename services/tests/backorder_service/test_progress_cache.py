from typing import cast

import pytest
from prometheus_client import REGISTRY

from services.backorder_service.app.progress_cache import ProgressCache
from services.common.cache import RedisType


class _MemoryRedis:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._store[key] = value
        self.ttls[key] = ex

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


class _ErrorRedis:
    def __init__(self) -> None:
        self.get_calls = 0
        self.set_calls = 0
        self.delete_calls = 0

    async def get(self, key: str) -> str | None:
        self.get_calls += 1
        raise RuntimeError(f"cache get failure for {key}")

    async def set(self, key: str, value: str, ex: int | None = None) -> None:  # noqa: ARG002
        self.set_calls += 1
        raise RuntimeError(f"cache set failure for {key}")

    async def delete(self, key: str) -> None:
        self.delete_calls += 1
        raise RuntimeError(f"cache delete failure for {key}")


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


_CACHE_METRIC = "backorder_progress_cache_events_total"

_PAYLOAD = {
    "itemId": 42,
    "mode": "allowed",
    "sold": 7,
    "limit": 10,
    "show": True,
    "label": "7/10 sold on backorder",
}


@pytest.mark.asyncio
async def test_cache_round_trip_counts_hits_and_misses() -> None:
    redis = _MemoryRedis()
    cache = ProgressCache(cast(RedisType, redis), ttl_seconds=30)
    miss = _MetricTracker(_CACHE_METRIC, {"event": "miss"})
    hit = _MetricTracker(_CACHE_METRIC, {"event": "hit"})
    write = _MetricTracker(_CACHE_METRIC, {"event": "write"})

    assert await cache.get(42) is None
    await cache.set(42, _PAYLOAD)
    assert await cache.get(42) == _PAYLOAD

    assert redis.ttls["backorder_progress:42"] == 30
    assert miss.delta() == pytest.approx(1.0)
    assert hit.delta() == pytest.approx(1.0)
    assert write.delta() == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_invalidate_removes_entry() -> None:
    redis = _MemoryRedis()
    cache = ProgressCache(cast(RedisType, redis), ttl_seconds=30)
    invalidated = _MetricTracker(_CACHE_METRIC, {"event": "invalidate"})

    await cache.set(42, _PAYLOAD)
    await cache.invalidate(42)

    assert await cache.get(42) is None
    assert invalidated.delta() == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_corrupt_entry_is_dropped() -> None:
    redis = _MemoryRedis()
    redis._store["backorder_progress:9"] = "{not json"
    cache = ProgressCache(cast(RedisType, redis), ttl_seconds=30)

    assert await cache.get(9) is None
    assert "backorder_progress:9" not in redis._store


@pytest.mark.asyncio
async def test_redis_errors_are_reported_as_misses() -> None:
    redis = _ErrorRedis()
    cache = ProgressCache(cast(RedisType, redis), ttl_seconds=30)
    errors = _MetricTracker(_CACHE_METRIC, {"event": "error"})

    assert await cache.get(1) is None
    await cache.set(1, _PAYLOAD)
    await cache.invalidate(1)

    assert (redis.get_calls, redis.set_calls, redis.delete_calls) == (1, 1, 1)
    assert errors.delta() == pytest.approx(3.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [0, -5])
async def test_cache_disabled_without_ttl(ttl: int) -> None:
    redis = _MemoryRedis()
    cache = ProgressCache(cast(RedisType, redis), ttl_seconds=ttl)

    await cache.set(1, _PAYLOAD)

    assert cache.enabled is False
    assert redis._store == {}
    assert await cache.get(1) is None


@pytest.mark.asyncio
async def test_cache_disabled_without_client() -> None:
    cache = ProgressCache(None, ttl_seconds=60)

    await cache.set(1, _PAYLOAD)
    await cache.invalidate(1)

    assert cache.enabled is False
    assert await cache.get(1) is None
