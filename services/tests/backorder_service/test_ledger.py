from dataclasses import replace

import pytest

from services.backorder_service.app.ledger import (
    BackorderLedger,
    BackorderMode,
    BackorderRecord,
    InvalidArgumentError,
    NotFoundError,
    StockStatus,
)


class _MemoryStore:
    """Dict-backed storage port for exercising the ledger rules."""

    def __init__(self, *item_ids: int) -> None:
        self.items = set(item_ids)
        self.records: dict[int, BackorderRecord] = {}

    async def item_exists(self, item_id: int) -> bool:
        return item_id in self.items

    async def get_record(self, item_id: int) -> BackorderRecord:
        return self.records.get(item_id, BackorderRecord(item_id=item_id))

    async def put_record(self, record: BackorderRecord) -> BackorderRecord:
        self.records[record.item_id] = record
        return record

    async def increment_sold(self, item_id: int, quantity: int) -> BackorderRecord | None:
        record = self.records.get(item_id)
        if record is None or not record.accepts_backorders:
            return None
        updated = replace(record, sold=record.sold + quantity, stock_status=StockStatus.ON_BACKORDER)
        self.records[item_id] = updated
        return updated


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", list(BackorderMode))
@pytest.mark.parametrize("limit", [0, 1, 50])
async def test_set_policy_is_reflected_in_progress(mode: BackorderMode, limit: int) -> None:
    ledger = BackorderLedger(_MemoryStore(1))

    await ledger.set_policy(1, mode, limit)
    view = await ledger.progress(1)

    assert view.mode is mode
    assert view.limit == limit
    assert view.show is (limit > 0)


@pytest.mark.asyncio
async def test_fulfillment_accumulates_and_flags_exceeded_limit() -> None:
    store = _MemoryStore(42)
    ledger = BackorderLedger(store)
    await ledger.set_policy(42, BackorderMode.ALLOWED, 10)

    first = await ledger.record_fulfillment(42, 7)
    assert first.new_sold == 7
    assert first.limit_exceeded is False

    view = await ledger.progress(42)
    assert (view.mode, view.sold, view.limit, view.show) == (BackorderMode.ALLOWED, 7, 10, True)
    assert view.label == "7/10 sold on backorder"
    assert store.records[42].stock_status is StockStatus.ON_BACKORDER

    second = await ledger.record_fulfillment(42, 5)
    assert second.new_sold == 12
    assert second.limit == 10
    assert second.limit_exceeded is True
    # Exceeding the limit never changes the mode.
    assert (await ledger.progress(42)).mode is BackorderMode.ALLOWED


@pytest.mark.asyncio
async def test_reaching_limit_exactly_is_not_exceeded() -> None:
    ledger = BackorderLedger(_MemoryStore(3))
    await ledger.set_policy(3, BackorderMode.ALLOWED_NOTIFY, 5)

    result = await ledger.record_fulfillment(3, 5)

    assert result.new_sold == 5
    assert result.limit_exceeded is False


@pytest.mark.asyncio
async def test_disabling_resets_sold() -> None:
    ledger = BackorderLedger(_MemoryStore(42))
    await ledger.set_policy(42, BackorderMode.ALLOWED, 10)
    await ledger.record_fulfillment(42, 12)

    record = await ledger.set_policy(42, BackorderMode.DISABLED, 0)

    assert record.sold == 0
    assert (await ledger.progress(42)).sold == 0


@pytest.mark.asyncio
async def test_changing_limit_keeps_sold_when_still_enabled() -> None:
    ledger = BackorderLedger(_MemoryStore(8))
    await ledger.set_policy(8, BackorderMode.ALLOWED, 10)
    await ledger.record_fulfillment(8, 4)

    record = await ledger.set_policy(8, BackorderMode.ALLOWED_NOTIFY, 20)

    assert record.sold == 4
    assert record.limit == 20


@pytest.mark.asyncio
async def test_disabled_item_fulfillment_is_a_no_op() -> None:
    store = _MemoryStore(5)
    ledger = BackorderLedger(store)
    await ledger.set_policy(5, BackorderMode.DISABLED, 10)

    result = await ledger.record_fulfillment(5, 3)

    assert result.recorded is False
    assert result.new_sold == 0
    assert result.limit_exceeded is False
    assert store.records[5].stock_status is StockStatus.IN_STOCK


@pytest.mark.asyncio
async def test_unknown_item_fulfillment_is_a_no_op() -> None:
    ledger = BackorderLedger(_MemoryStore())

    result = await ledger.record_fulfillment(404, 2)

    assert result.recorded is False
    assert result.new_sold == 0


@pytest.mark.asyncio
async def test_unlimited_item_never_exceeds_or_shows() -> None:
    ledger = BackorderLedger(_MemoryStore(7))
    await ledger.set_policy(7, BackorderMode.ALLOWED, 0)

    result = await ledger.record_fulfillment(7, 1000)
    view = await ledger.progress(7)

    assert result.limit_exceeded is False
    assert view.show is False
    assert view.label is None
    assert view.sold == 1000


@pytest.mark.asyncio
async def test_validate_purchase_on_unconfigured_item() -> None:
    ledger = BackorderLedger(_MemoryStore())

    result = await ledger.validate_purchase(99, 3)

    assert result.allowed is True
    assert result.warning is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("sold", "requested", "expect_warning"),
    [(0, 10, False), (0, 11, True), (9, 1, False), (9, 2, True)],
)
async def test_validate_purchase_warns_only_past_limit(sold: int, requested: int, expect_warning: bool) -> None:
    store = _MemoryStore(1)
    ledger = BackorderLedger(store)
    await ledger.set_policy(1, BackorderMode.ALLOWED, 10)
    if sold:
        await ledger.record_fulfillment(1, sold)

    result = await ledger.validate_purchase(1, requested)

    assert result.allowed is True
    assert (result.warning is not None) is expect_warning
    assert store.records[1].sold == sold


@pytest.mark.asyncio
async def test_validate_purchase_never_warns_without_limit() -> None:
    ledger = BackorderLedger(_MemoryStore(1))
    await ledger.set_policy(1, BackorderMode.ALLOWED, 0)

    result = await ledger.validate_purchase(1, 10_000)

    assert result.warning is None


@pytest.mark.asyncio
async def test_non_positive_quantities_are_rejected() -> None:
    ledger = BackorderLedger(_MemoryStore(1))

    with pytest.raises(InvalidArgumentError):
        await ledger.record_fulfillment(1, 0)
    with pytest.raises(InvalidArgumentError):
        await ledger.validate_purchase(1, 0)
    with pytest.raises(InvalidArgumentError):
        await ledger.record_fulfillment(1, -4)


@pytest.mark.asyncio
async def test_set_policy_rejects_negative_limit_and_unknown_items() -> None:
    ledger = BackorderLedger(_MemoryStore(1))

    with pytest.raises(InvalidArgumentError):
        await ledger.set_policy(1, BackorderMode.ALLOWED, -1)
    with pytest.raises(NotFoundError):
        await ledger.set_policy(2, BackorderMode.ALLOWED, 5)
    with pytest.raises(InvalidArgumentError):
        await ledger.set_policy(1, "sometimes", 5)


@pytest.mark.asyncio
async def test_variation_records_are_independent_of_parent() -> None:
    ledger = BackorderLedger(_MemoryStore(10, 11))
    await ledger.set_policy(10, BackorderMode.ALLOWED, 5)
    await ledger.set_policy(11, BackorderMode.ALLOWED, 5)

    await ledger.record_fulfillment(11, 4)

    assert (await ledger.progress(10)).sold == 0
    assert (await ledger.progress(11)).sold == 4
