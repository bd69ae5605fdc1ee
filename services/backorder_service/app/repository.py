"""Persistence helpers for the backorder service."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import Select, and_, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .ledger import BackorderMode, BackorderRecord, StockStatus
from .models import BackorderSetting, FulfilledOrder, SellableItem

_RECORD_COLUMNS = (
    BackorderSetting.mode,
    BackorderSetting.limit,
    BackorderSetting.sold,
    BackorderSetting.stock_status,
)


def _to_record(item_id: int, row) -> BackorderRecord:
    mode, limit, sold, stock_status = row
    return BackorderRecord(
        item_id=item_id,
        mode=BackorderMode(mode),
        limit=limit,
        sold=sold,
        stock_status=StockStatus(stock_status),
    )


def record_from_item(item: SellableItem) -> BackorderRecord:
    """Build a record from an item with its eagerly loaded setting."""

    setting = item.backorder
    if setting is None:
        return BackorderRecord(item_id=item.id)
    return _to_record(item.id, (setting.mode, setting.limit, setting.sold, setting.stock_status))


class BackorderRepository:
    """Catalog access plus the ledger's storage port.

    Record reads and writes go through column-level statements rather than
    ORM instances so a counter incremented earlier in the same session is
    never shadowed by a stale identity map entry.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Storage port -------------------------------------------------------------------------

    async def item_exists(self, item_id: int) -> bool:
        result = await self.session.execute(select(SellableItem.id).where(SellableItem.id == item_id))
        return result.scalar_one_or_none() is not None

    async def get_record(self, item_id: int) -> BackorderRecord:
        result = await self.session.execute(
            select(*_RECORD_COLUMNS).where(BackorderSetting.item_id == item_id)
        )
        row = result.one_or_none()
        if row is None:
            return BackorderRecord(item_id=item_id)
        return _to_record(item_id, row)

    async def put_record(self, record: BackorderRecord) -> BackorderRecord:
        values = {
            BackorderSetting.mode: record.mode.value,
            BackorderSetting.limit: record.limit,
            BackorderSetting.sold: record.sold,
            BackorderSetting.stock_status: record.stock_status.value,
        }
        result = await self.session.execute(
            update(BackorderSetting)
            .where(BackorderSetting.item_id == record.item_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.execute(
                insert(BackorderSetting).values({BackorderSetting.item_id: record.item_id, **values})
            )
        return record

    async def increment_sold(self, item_id: int, quantity: int) -> BackorderRecord | None:
        result = await self.session.execute(
            update(BackorderSetting)
            .where(
                BackorderSetting.item_id == item_id,
                BackorderSetting.mode != BackorderMode.DISABLED.value,
            )
            .values(
                {
                    BackorderSetting.sold: BackorderSetting.sold + quantity,
                    BackorderSetting.stock_status: StockStatus.ON_BACKORDER.value,
                }
            )
            .returning(*_RECORD_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return _to_record(item_id, row)

    # Catalog ------------------------------------------------------------------------------

    async def create_item(
        self,
        *,
        sku: str,
        name: str,
        item_type: str,
        parent_id: int | None,
        category: str | None,
        manage_stock: bool,
    ) -> SellableItem:
        item = SellableItem(
            sku=sku,
            name=name,
            item_type=item_type,
            parent_id=parent_id,
            category=category,
            manage_stock=manage_stock,
        )
        self.session.add(item)
        await self.session.flush()
        await self.session.refresh(item, attribute_names=["backorder", "created_at", "updated_at"])
        return item

    async def get_item(self, item_id: int) -> SellableItem | None:
        result = await self.session.execute(select(SellableItem).where(SellableItem.id == item_id))
        return result.scalar_one_or_none()

    async def get_by_sku(self, sku: str) -> SellableItem | None:
        result = await self.session.execute(select(SellableItem).where(SellableItem.sku == sku))
        return result.scalar_one_or_none()

    async def list_items(
        self,
        *,
        category: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[SellableItem], int]:
        filters = []
        if category is not None:
            filters.append(SellableItem.category == category)
        if search:
            filters.append(func.lower(SellableItem.name).contains(search.lower()))

        base: Select[tuple[SellableItem]] = select(SellableItem).order_by(SellableItem.id)
        count: Select[tuple[int]] = select(func.count(SellableItem.id))
        if filters:
            clause = and_(*filters)
            base = base.where(clause)
            count = count.where(clause)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars().unique()), total

    async def list_variation_ids(self, parent_id: int) -> list[int]:
        result = await self.session.execute(
            select(SellableItem.id)
            .where(SellableItem.parent_id == parent_id, SellableItem.item_type == "variation")
            .order_by(SellableItem.id)
        )
        return list(result.scalars())

    async def update_item(
        self,
        item: SellableItem,
        *,
        name: str | None,
        category: str | None,
        manage_stock: bool | None,
    ) -> SellableItem:
        if name is not None:
            item.name = name
        if category is not None:
            item.category = category
        if manage_stock is not None:
            item.manage_stock = manage_stock
        await self.session.flush()
        await self.session.refresh(item, attribute_names=["backorder", "updated_at"])
        return item

    async def set_manage_stock(self, item_ids: Iterable[int], *, manage_stock: bool) -> int:
        ids = list(item_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            update(SellableItem)
            .where(SellableItem.id.in_(ids))
            .values({SellableItem.manage_stock: manage_stock})
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def delete_item(self, item: SellableItem) -> None:
        await self.session.delete(item)
        await self.session.flush()

    # Fulfilled orders ---------------------------------------------------------------------

    async def is_order_recorded(self, order_id: str) -> bool:
        return await self.session.get(FulfilledOrder, order_id) is not None

    async def mark_order_recorded(self, order_id: str) -> None:
        self.session.add(FulfilledOrder(order_id=order_id))
        await self.session.flush()
