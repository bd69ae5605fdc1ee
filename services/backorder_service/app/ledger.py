"""Backorder accounting and limit rules.

The ledger owns one :class:`BackorderRecord` per sellable item and the rules
that tie its ``mode``, ``limit`` and ``sold`` fields together:

* ``set_policy`` stores mode and limit; disabling always resets ``sold``.
* ``record_fulfillment`` adds completed order quantities to ``sold`` for items
  that accept backorders and reports whether the limit is now exceeded. It
  never changes ``mode``; callers layer any auto-disable policy on top.
* ``validate_purchase`` is advisory only and never blocks a purchase.
* ``progress`` is the read model used for storefront display.

Persistence goes through the :class:`BackorderStore` port so the rules can be
exercised without a database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

from services.common.tracing import get_tracer

_LOGGER = logging.getLogger(__name__)

LIMIT_WARNING = "Requested quantity exceeds the backorder limit."


class BackorderMode(str, Enum):
    DISABLED = "disabled"
    ALLOWED = "allowed"
    ALLOWED_NOTIFY = "allowed_notify"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    ON_BACKORDER = "on_backorder"


class BackorderError(Exception):
    """Base class for ledger errors."""


class NotFoundError(BackorderError):
    """Raised when a policy is set for an item missing from the catalog."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Sellable item {item_id} not found")
        self.item_id = item_id


class InvalidArgumentError(BackorderError):
    """Raised for a negative limit or a non-positive quantity."""


@dataclass(frozen=True, slots=True)
class BackorderRecord:
    item_id: int
    mode: BackorderMode = BackorderMode.DISABLED
    limit: int = 0
    sold: int = 0
    stock_status: StockStatus = StockStatus.IN_STOCK

    @property
    def accepts_backorders(self) -> bool:
        return self.mode is not BackorderMode.DISABLED


@dataclass(frozen=True, slots=True)
class FulfillmentResult:
    item_id: int
    new_sold: int
    limit: int
    limit_exceeded: bool
    recorded: bool = True


@dataclass(frozen=True, slots=True)
class ValidationResult:
    allowed: bool
    warning: str | None = None


@dataclass(frozen=True, slots=True)
class ProgressView:
    item_id: int
    mode: BackorderMode
    sold: int
    limit: int
    show: bool

    @property
    def label(self) -> str | None:
        if not self.show:
            return None
        return f"{self.sold}/{self.limit} sold on backorder"


class BackorderStore(Protocol):
    async def item_exists(self, item_id: int) -> bool: ...

    async def get_record(self, item_id: int) -> BackorderRecord: ...

    async def put_record(self, record: BackorderRecord) -> BackorderRecord: ...

    async def increment_sold(self, item_id: int, quantity: int) -> BackorderRecord | None: ...


def limit_exceeded(limit: int, sold: int) -> bool:
    """A zero limit means unlimited and is never exceeded."""

    return limit > 0 and sold > limit


def _require_positive(value: int, name: str) -> None:
    if value <= 0:
        msg = f"{name} must be positive"
        raise InvalidArgumentError(msg)


class BackorderLedger:
    """Applies the backorder accounting rules against a store."""

    def __init__(self, store: BackorderStore) -> None:
        self.store = store
        self._tracer = get_tracer()

    async def set_policy(self, item_id: int, mode: BackorderMode | str, limit: int) -> BackorderRecord:
        try:
            mode = BackorderMode(mode)
        except ValueError as exc:
            raise InvalidArgumentError(f"unknown backorder mode: {mode!r}") from exc
        if limit < 0:
            msg = "limit must be non-negative"
            raise InvalidArgumentError(msg)
        if not await self.store.item_exists(item_id):
            raise NotFoundError(item_id)

        with self._tracer.start_as_current_span("backorder.set_policy") as span:
            span.set_attribute("backorder.item_id", item_id)
            span.set_attribute("backorder.mode", mode.value)
            current = await self.store.get_record(item_id)
            updated = replace(current, mode=mode, limit=limit)
            if mode is BackorderMode.DISABLED:
                updated = replace(updated, sold=0)
            stored = await self.store.put_record(updated)

        _LOGGER.info(
            "Backorder policy for item %s set to %s (limit=%s, sold=%s)",
            item_id,
            stored.mode.value,
            stored.limit,
            stored.sold,
        )
        return stored

    async def record_fulfillment(self, item_id: int, quantity: int) -> FulfillmentResult:
        _require_positive(quantity, "quantity")
        with self._tracer.start_as_current_span("backorder.record_fulfillment") as span:
            span.set_attribute("backorder.item_id", item_id)
            span.set_attribute("backorder.quantity", quantity)
            updated = await self.store.increment_sold(item_id, quantity)
            if updated is None:
                # Untracked or disabled items do not count towards backorders.
                current = await self.store.get_record(item_id)
                return FulfillmentResult(
                    item_id=item_id,
                    new_sold=current.sold,
                    limit=current.limit,
                    limit_exceeded=False,
                    recorded=False,
                )
            exceeded = limit_exceeded(updated.limit, updated.sold)
            span.set_attribute("backorder.limit_exceeded", exceeded)

        _LOGGER.debug("Recorded %s backorder units for item %s (sold=%s)", quantity, item_id, updated.sold)
        return FulfillmentResult(
            item_id=item_id,
            new_sold=updated.sold,
            limit=updated.limit,
            limit_exceeded=exceeded,
        )

    async def validate_purchase(self, item_id: int, requested_quantity: int) -> ValidationResult:
        _require_positive(requested_quantity, "requested quantity")
        record = await self.store.get_record(item_id)
        if limit_exceeded(record.limit, record.sold + requested_quantity):
            return ValidationResult(allowed=True, warning=LIMIT_WARNING)
        return ValidationResult(allowed=True)

    async def progress(self, item_id: int) -> ProgressView:
        record = await self.store.get_record(item_id)
        return ProgressView(
            item_id=item_id,
            mode=record.mode,
            sold=record.sold,
            limit=record.limit,
            show=record.limit > 0,
        )
