"""Redis cache for storefront progress views."""

from __future__ import annotations

import json
import logging
from contextlib import suppress
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from services.common.cache import RedisType

from .metrics import BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL

_LOGGER = logging.getLogger(__name__)


class ProgressCache:
    """Caches serialized progress payloads keyed by item id.

    A missing client or a zero TTL turns every call into a no-op. Redis
    failures are counted and reported as misses so reads fall back to the
    database.
    """

    def __init__(self, redis: RedisType | None, *, ttl_seconds: int, key_prefix: str = "backorder_progress") -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._redis is not None and self._ttl > 0

    def _key(self, item_id: int) -> str:
        return f"{self._key_prefix}:{item_id}"

    async def get(self, item_id: int) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        key = self._key(item_id)
        try:
            cached = await self._redis.get(key)
        except Exception as exc:
            _LOGGER.warning("Progress cache read failed for item %s: %s", item_id, exc)
            BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        if not cached:
            BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        try:
            payload = json.loads(cached)
        except json.JSONDecodeError:
            with suppress(Exception):
                await self._redis.delete(key)
            BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="miss").inc()
            return None
        BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="hit").inc()
        return payload

    async def set(self, item_id: int, payload: dict[str, Any]) -> None:
        if not self.enabled:
            return
        try:
            await self._redis.set(self._key(item_id), json.dumps(payload), ex=self._ttl)
        except Exception as exc:
            _LOGGER.warning("Progress cache write failed for item %s: %s", item_id, exc)
            BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            return
        BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="write").inc()

    async def invalidate(self, item_id: int) -> None:
        if not self.enabled:
            return
        try:
            await self._redis.delete(self._key(item_id))
        except Exception as exc:
            _LOGGER.warning("Progress cache invalidation failed for item %s: %s", item_id, exc)
            BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="error").inc()
            return
        BACKORDER_PROGRESS_CACHE_EVENTS_TOTAL.labels(event="invalidate").inc()


_STALE_ITEMS_KEY = "backorder_progress_stale"


def mark_stale(session: AsyncSession, item_id: int) -> None:
    """Queue ``item_id`` for cache invalidation once ``session`` has committed.

    Dropping the key before commit would let a concurrent reader cache the
    pre-commit record for a full TTL.
    """

    session.info.setdefault(_STALE_ITEMS_KEY, set()).add(item_id)


async def invalidate_committed(session: AsyncSession, cache: ProgressCache | None) -> list[int]:
    """Invalidate every item queued by :func:`mark_stale`; call after commit."""

    item_ids = sorted(session.info.pop(_STALE_ITEMS_KEY, ()))
    if cache is not None:
        for item_id in item_ids:
            await cache.invalidate(item_id)
    return item_ids
