"""Backorder orchestration built on top of the ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Sequence

from .events import BackorderEventPublisher
from .ledger import (
    BackorderLedger,
    BackorderMode,
    BackorderRecord,
    FulfillmentResult,
    InvalidArgumentError,
    NotFoundError,
    ProgressView,
)
from .metrics import (
    BACKORDER_ALERT_FAILURES_TOTAL,
    BACKORDER_LIMIT_EXCEEDED_TOTAL,
    BACKORDER_POLICY_UPDATES_TOTAL,
    BACKORDER_PURCHASE_WARNINGS_TOTAL,
    BACKORDER_UNITS_RECORDED_TOTAL,
)
from .progress_cache import ProgressCache, mark_stale
from .providers import AlertProvider, limit_exceeded_message
from .models import SellableItem
from .repository import BackorderRepository, record_from_item

_LOGGER = logging.getLogger(__name__)

LimitAction = Literal["notify", "disable", "ignore"]
PurchaseContext = Literal["cart", "checkout"]

CART_WARNING = "Warning: This quantity exceeds the backorder limit. You may experience delays."
CHECKOUT_WARNING = "Warning: Your cart contains items that exceed the backorder limit. Proceed with caution."


@dataclass(slots=True)
class SettingUpdate:
    item_id: int
    mode: BackorderMode | None = None
    limit: int | None = None


@dataclass(slots=True)
class SettingOutcome:
    item_id: int
    record: BackorderRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class OrderLine:
    product_id: int
    quantity: int
    variation_id: int | None = None

    @property
    def target_id(self) -> int:
        return self.variation_id or self.product_id


@dataclass(slots=True)
class LineOutcome:
    item_id: int
    quantity: int
    result: FulfillmentResult | None = None
    auto_disabled: bool = False
    error: str | None = None


@dataclass(slots=True)
class OrderFulfillment:
    order_id: str | None
    duplicate: bool = False
    lines: list[LineOutcome] = field(default_factory=list)


@dataclass(slots=True)
class PurchaseLineCheck:
    item_id: int
    quantity: int
    warning: str | None = None


@dataclass(slots=True)
class PurchaseCheck:
    allowed: bool
    lines: list[PurchaseLineCheck]

    @property
    def notices(self) -> list[str]:
        seen: list[str] = []
        for line in self.lines:
            if line.warning and line.warning not in seen:
                seen.append(line.warning)
        return seen


class BackorderAdminService:
    """Admin-side policy changes with the inventory manage-stock sync."""

    def __init__(
        self,
        repository: BackorderRepository,
        *,
        event_publisher: BackorderEventPublisher | None = None,
    ) -> None:
        self.repository = repository
        self.ledger = BackorderLedger(repository)
        self.event_publisher = event_publisher

    async def set_policy(self, item_id: int, mode: BackorderMode, limit: int) -> BackorderRecord:
        record = await self.ledger.set_policy(item_id, mode, limit)
        # Stock tracking follows the backorder mode.
        await self.repository.set_manage_stock([item_id], manage_stock=record.accepts_backorders)
        BACKORDER_POLICY_UPDATES_TOTAL.labels(mode=record.mode.value).inc()
        mark_stale(self.repository.session, item_id)
        await self._publish_policy(record)
        return record

    async def _publish_policy(self, record: BackorderRecord) -> None:
        if self.event_publisher is None:
            return
        try:
            await self.event_publisher.policy_updated(record)
        except Exception:
            # The policy change stands even when the event cannot be delivered.
            BACKORDER_ALERT_FAILURES_TOTAL.labels(stage="publish").inc()
            _LOGGER.exception("Failed to publish policy update for item %s", record.item_id)

    async def list_settings(
        self,
        *,
        category: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[SellableItem, BackorderRecord]], int]:
        """Return a page of catalog items paired with their backorder records."""

        items, total = await self.repository.list_items(
            category=category, search=search, limit=limit, offset=offset
        )
        return [(item, record_from_item(item)) for item in items], total

    async def apply_settings(self, updates: Sequence[SettingUpdate]) -> list[SettingOutcome]:
        outcomes: list[SettingOutcome] = []
        for update in updates:
            current = await self.repository.get_record(update.item_id)
            mode = update.mode if update.mode is not None else current.mode
            limit = update.limit if update.limit is not None else current.limit
            try:
                record = await self.set_policy(update.item_id, mode, limit)
            except (NotFoundError, InvalidArgumentError) as exc:
                _LOGGER.warning("Skipping backorder settings for item %s: %s", update.item_id, exc)
                outcomes.append(SettingOutcome(item_id=update.item_id, error=str(exc)))
                continue
            outcomes.append(SettingOutcome(item_id=update.item_id, record=record))
        return outcomes


class FulfillmentProcessor:
    """Records completed orders against the ledger and applies the limit policy."""

    def __init__(
        self,
        repository: BackorderRepository,
        *,
        action: LimitAction = "notify",
        alert_provider: AlertProvider | None = None,
        alert_recipient: str = "admin@example.com",
        event_publisher: BackorderEventPublisher | None = None,
    ) -> None:
        self.repository = repository
        self.ledger = BackorderLedger(repository)
        self.action = action
        self.alert_provider = alert_provider
        self.alert_recipient = alert_recipient
        self.event_publisher = event_publisher

    async def process_order(self, order_id: str | None, lines: Sequence[OrderLine]) -> OrderFulfillment:
        if order_id is not None and await self.repository.is_order_recorded(order_id):
            _LOGGER.info("Order %s already recorded; skipping backorder accounting", order_id)
            return OrderFulfillment(order_id=order_id, duplicate=True)

        fulfillment = OrderFulfillment(order_id=order_id)
        for line in lines:
            fulfillment.lines.append(await self._process_line(line))

        if order_id is not None:
            await self.repository.mark_order_recorded(order_id)
        return fulfillment

    async def _process_line(self, line: OrderLine) -> LineOutcome:
        item_id = line.target_id
        outcome = LineOutcome(item_id=item_id, quantity=line.quantity)
        try:
            result = await self.ledger.record_fulfillment(item_id, line.quantity)
        except InvalidArgumentError as exc:
            _LOGGER.warning("Rejected fulfillment line for item %s: %s", item_id, exc)
            outcome.error = str(exc)
            return outcome

        outcome.result = result
        if result.recorded:
            BACKORDER_UNITS_RECORDED_TOTAL.inc(line.quantity)
            mark_stale(self.repository.session, item_id)
        if result.limit_exceeded:
            outcome.auto_disabled = await self._handle_limit_exceeded(result)
        return outcome

    async def _handle_limit_exceeded(self, result: FulfillmentResult) -> bool:
        BACKORDER_LIMIT_EXCEEDED_TOTAL.labels(action=self.action).inc()
        _LOGGER.warning(
            "Backorder limit exceeded for item %s (sold=%s, limit=%s, action=%s)",
            result.item_id,
            result.new_sold,
            result.limit,
            self.action,
        )
        if self.action == "ignore":
            return False

        await self._send_alert(result)
        await self._publish_exceeded(result)

        if self.action == "disable":
            admin = BackorderAdminService(self.repository, event_publisher=self.event_publisher)
            await admin.set_policy(result.item_id, BackorderMode.DISABLED, result.limit)
            return True
        return False

    async def _send_alert(self, result: FulfillmentResult) -> None:
        if self.alert_provider is None:
            return
        item = await self.repository.get_item(result.item_id)
        item_name = item.name if item is not None else f"item {result.item_id}"
        subject, body = limit_exceeded_message(item_name=item_name, sold=result.new_sold, limit=result.limit)
        try:
            await self.alert_provider.send(recipient=self.alert_recipient, subject=subject, body=body)
        except Exception:
            # Alert delivery never affects recorded counters.
            BACKORDER_ALERT_FAILURES_TOTAL.labels(stage="provider").inc()
            _LOGGER.exception("Failed to deliver backorder limit alert for item %s", result.item_id)

    async def _publish_exceeded(self, result: FulfillmentResult) -> None:
        if self.event_publisher is None:
            return
        try:
            await self.event_publisher.limit_exceeded(
                item_id=result.item_id,
                sold=result.new_sold,
                limit=result.limit,
                action=self.action,
            )
        except Exception:
            BACKORDER_ALERT_FAILURES_TOTAL.labels(stage="publish").inc()
            _LOGGER.exception("Failed to publish limit exceeded event for item %s", result.item_id)


class PurchaseValidator:
    """Advisory cart and checkout checks; purchases are never blocked."""

    def __init__(self, repository: BackorderRepository) -> None:
        self.ledger = BackorderLedger(repository)

    async def validate_lines(self, context: PurchaseContext, lines: Sequence[OrderLine]) -> PurchaseCheck:
        message = CART_WARNING if context == "cart" else CHECKOUT_WARNING
        checks: list[PurchaseLineCheck] = []
        for line in lines:
            result = await self.ledger.validate_purchase(line.target_id, line.quantity)
            warning = message if result.warning else None
            if warning:
                BACKORDER_PURCHASE_WARNINGS_TOTAL.labels(context=context).inc()
            checks.append(PurchaseLineCheck(item_id=line.target_id, quantity=line.quantity, warning=warning))
        return PurchaseCheck(allowed=True, lines=checks)


def progress_payload(view: ProgressView) -> dict[str, object]:
    return {
        "itemId": view.item_id,
        "mode": view.mode.value,
        "sold": view.sold,
        "limit": view.limit,
        "show": view.show,
        "label": view.label,
    }


class ProgressService:
    """Storefront progress reads with optional caching."""

    def __init__(self, repository: BackorderRepository, *, cache: ProgressCache | None = None) -> None:
        self.ledger = BackorderLedger(repository)
        self.cache = cache

    async def get_progress(self, item_id: int) -> dict[str, object]:
        if self.cache is not None:
            cached = await self.cache.get(item_id)
            if cached is not None:
                return cached
        payload = progress_payload(await self.ledger.progress(item_id))
        if self.cache is not None:
            await self.cache.set(item_id, payload)
        return payload
