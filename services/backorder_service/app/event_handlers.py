"""Background handling of order completion events."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker

from services.common import lifespan_session

from .events import ORDER_STATUS_TOPIC, BackorderEventPublisher
from .metrics import (
    BACKORDER_EVENTS_DROPPED_TOTAL,
    BACKORDER_EVENTS_PROCESSED_TOTAL,
    normalise_event_reason,
)
from .progress_cache import ProgressCache, invalidate_committed
from .providers import AlertProvider
from .repository import BackorderRepository
from .services import FulfillmentProcessor, LimitAction, OrderLine

_LOGGER = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"


def _parse_positive_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
        return value if value > 0 else None
    return None


def _parse_lines(items: Any) -> list[OrderLine] | None:
    if not isinstance(items, list) or not items:
        return None
    lines: list[OrderLine] = []
    for entry in items:
        if not isinstance(entry, dict):
            return None
        product_id = _parse_positive_int(entry.get("productId"))
        quantity = _parse_positive_int(entry.get("quantity"))
        if product_id is None or quantity is None:
            return None
        lines.append(
            OrderLine(
                product_id=product_id,
                variation_id=_parse_positive_int(entry.get("variationId")),
                quantity=quantity,
            )
        )
    return lines


class OrderEventHandler:
    """Records backorder sales when an order reaches the completed state."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        action: LimitAction,
        alert_recipient: str,
        alert_provider: AlertProvider | None,
        event_publisher: BackorderEventPublisher | None,
        cache: ProgressCache | None,
    ) -> None:
        self._session_factory = session_factory
        self._action = action
        self._alert_recipient = alert_recipient
        self._alert_provider = alert_provider
        self._event_publisher = event_publisher
        self._cache = cache

    async def handle(self, topic: str, payload: Any) -> None:
        processed = False
        outcome = "unsupported_topic"
        if topic == ORDER_STATUS_TOPIC:
            processed, outcome = await self._handle_order_status(payload)

        if processed:
            BACKORDER_EVENTS_PROCESSED_TOTAL.labels(topic=topic).inc()
        else:
            reason = normalise_event_reason(outcome)
            _LOGGER.debug("Dropped %s event: %s", topic, reason)
            BACKORDER_EVENTS_DROPPED_TOTAL.labels(topic=topic, reason=reason).inc()

    async def _handle_order_status(self, payload: Any) -> tuple[bool, str]:
        if not isinstance(payload, dict):
            return False, "invalid_payload"
        order = payload.get("order")
        if not isinstance(order, dict):
            return False, "invalid_payload"

        raw_status = payload.get("currentStatus") or order.get("status") or ""
        if not isinstance(raw_status, str):
            return False, "invalid_payload"
        status = raw_status.strip().lower()
        if status != COMPLETED_STATUS:
            return False, "ignored_status"

        lines = _parse_lines(order.get("items"))
        if lines is None:
            return False, "invalid_payload"

        raw_order_id = order.get("id") or order.get("orderId")
        order_id = str(raw_order_id) if raw_order_id is not None else None

        try:
            async with lifespan_session(self._session_factory) as session:
                processor = FulfillmentProcessor(
                    BackorderRepository(session),
                    action=self._action,
                    alert_provider=self._alert_provider,
                    alert_recipient=self._alert_recipient,
                    event_publisher=self._event_publisher,
                )
                fulfillment = await processor.process_order(order_id, lines)
            await invalidate_committed(session, self._cache)
        except Exception:
            _LOGGER.exception("Failed to record backorder fulfillment for order %s", order_id)
            return False, "processing_error"

        if fulfillment.duplicate:
            return False, "duplicate_order"
        return True, "processed"
