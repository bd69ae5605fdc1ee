"""Event publishing helpers for the backorder service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from services.common.messaging import EventProducer

from .ledger import BackorderRecord

LIMIT_EXCEEDED_TOPIC = "backorder.limit.exceeded.v1"
POLICY_UPDATED_TOPIC = "backorder.policy.updated.v1"
ORDER_STATUS_TOPIC = "order.status.changed.v1"


class BackorderEventPublisher:
    """Publishes backorder lifecycle events."""

    def __init__(self, producer: EventProducer | None) -> None:
        self._producer = producer

    async def _emit(self, topic: str, payload: dict[str, Any]) -> None:
        if self._producer is None:
            return
        envelope = {
            "eventType": topic,
            "occurredAt": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        await self._producer.send(topic, envelope)

    async def limit_exceeded(self, *, item_id: int, sold: int, limit: int, action: str) -> None:
        await self._emit(
            LIMIT_EXCEEDED_TOPIC,
            {"itemId": item_id, "sold": sold, "limit": limit, "action": action},
        )

    async def policy_updated(self, record: BackorderRecord) -> None:
        await self._emit(
            POLICY_UPDATED_TOPIC,
            {
                "itemId": record.item_id,
                "mode": record.mode.value,
                "limit": record.limit,
                "sold": record.sold,
            },
        )
