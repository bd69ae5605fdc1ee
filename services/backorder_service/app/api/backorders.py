"""HTTP routes for backorder settings, validation, fulfillment and progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import (
    get_admin_service,
    get_fulfillment_processor,
    get_progress_service,
    get_purchase_validator,
)
from ..ledger import BackorderRecord, InvalidArgumentError, NotFoundError
from ..schemas import (
    BackorderListEntry,
    BackorderListResponse,
    BackorderRecordResponse,
    BulkSettingResult,
    BulkSettingsRequest,
    BulkSettingsResponse,
    FulfillmentLineResponse,
    FulfillmentRequest,
    FulfillmentResponse,
    PolicyUpdate,
    ProgressResponse,
    ValidationLineResponse,
    ValidationRequest,
    ValidationResponse,
)
from ..services import (
    BackorderAdminService,
    FulfillmentProcessor,
    OrderLine,
    ProgressService,
    PurchaseValidator,
    SettingUpdate,
)

router = APIRouter(prefix="/backorders", tags=["backorders"])


def _serialize_record(record: BackorderRecord) -> dict[str, object]:
    return {
        "itemId": record.item_id,
        "mode": record.mode,
        "limit": record.limit,
        "sold": record.sold,
        "stockStatus": record.stock_status.value,
    }


def _serialize_entry(item, record: BackorderRecord) -> dict[str, object]:
    return {
        "sku": item.sku,
        "name": item.name,
        "type": item.item_type,
        "parentId": item.parent_id,
        "category": item.category,
        "manageStock": item.manage_stock,
        **_serialize_record(record),
    }


def _to_order_lines(lines) -> list[OrderLine]:
    return [
        OrderLine(product_id=line.product_id, variation_id=line.variation_id, quantity=line.quantity)
        for line in lines
    ]


@router.get("", response_model=BackorderListResponse)
async def list_backorder_settings(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    service: BackorderAdminService = Depends(get_admin_service),
) -> BackorderListResponse:
    rows, total = await service.list_settings(
        category=category.strip() if category else None,
        search=search.strip() if search else None,
        limit=limit,
        offset=offset,
    )
    entries = [BackorderListEntry.model_validate(_serialize_entry(item, record)) for item, record in rows]
    return BackorderListResponse(items=entries, total=total)


@router.put("", response_model=BulkSettingsResponse)
async def apply_backorder_settings(
    payload: BulkSettingsRequest,
    service: BackorderAdminService = Depends(get_admin_service),
) -> BulkSettingsResponse:
    outcomes = await service.apply_settings(
        [SettingUpdate(item_id=entry.item_id, mode=entry.mode, limit=entry.limit) for entry in payload.items]
    )
    results = [
        BulkSettingResult.model_validate(
            {
                "itemId": outcome.item_id,
                "status": "updated" if outcome.ok else "failed",
                "record": _serialize_record(outcome.record) if outcome.record is not None else None,
                "error": outcome.error,
            }
        )
        for outcome in outcomes
    ]
    updated = sum(1 for outcome in outcomes if outcome.ok)
    return BulkSettingsResponse(results=results, updated=updated, failed=len(outcomes) - updated)


@router.put("/{item_id}", response_model=BackorderRecordResponse)
async def set_backorder_policy(
    item_id: int,
    payload: PolicyUpdate,
    service: BackorderAdminService = Depends(get_admin_service),
) -> BackorderRecordResponse:
    try:
        record = await service.set_policy(item_id, payload.mode, payload.limit)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return BackorderRecordResponse.model_validate(_serialize_record(record))


@router.get("/{item_id}/progress", response_model=ProgressResponse)
async def get_backorder_progress(
    item_id: int,
    service: ProgressService = Depends(get_progress_service),
) -> ProgressResponse:
    return ProgressResponse.model_validate(await service.get_progress(item_id))


@router.post("/validate", response_model=ValidationResponse)
async def validate_purchase(
    payload: ValidationRequest,
    validator: PurchaseValidator = Depends(get_purchase_validator),
) -> ValidationResponse:
    try:
        check = await validator.validate_lines(payload.context, _to_order_lines(payload.lines))
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    lines = [
        ValidationLineResponse.model_validate(
            {"itemId": line.item_id, "quantity": line.quantity, "warning": line.warning}
        )
        for line in check.lines
    ]
    return ValidationResponse(allowed=check.allowed, lines=lines, notices=check.notices)


@router.post("/fulfillments", response_model=FulfillmentResponse)
async def record_fulfillment(
    payload: FulfillmentRequest,
    processor: FulfillmentProcessor = Depends(get_fulfillment_processor),
) -> FulfillmentResponse:
    fulfillment = await processor.process_order(payload.order_id, _to_order_lines(payload.lines))
    lines = []
    for outcome in fulfillment.lines:
        result = outcome.result
        lines.append(
            FulfillmentLineResponse.model_validate(
                {
                    "itemId": outcome.item_id,
                    "quantity": outcome.quantity,
                    "recorded": bool(result and result.recorded),
                    "sold": result.new_sold if result else None,
                    "limit": result.limit if result else None,
                    "limitExceeded": bool(result and result.limit_exceeded),
                    "autoDisabled": outcome.auto_disabled,
                    "error": outcome.error,
                }
            )
        )
    return FulfillmentResponse.model_validate(
        {"orderId": fulfillment.order_id, "duplicate": fulfillment.duplicate, "lines": lines}
    )
