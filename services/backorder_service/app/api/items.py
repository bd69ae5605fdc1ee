"""HTTP routes for the sellable item catalog."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..dependencies import get_repository
from ..progress_cache import mark_stale
from ..repository import BackorderRepository
from ..schemas import ItemCreate, ItemResponse, ItemUpdate

_LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/items", tags=["items"])


def _serialize_item(item) -> dict[str, object]:
    return {
        "id": item.id,
        "sku": item.sku,
        "name": item.name,
        "type": item.item_type,
        "parentId": item.parent_id,
        "category": item.category,
        "manageStock": item.manage_stock,
        "createdAt": item.created_at,
        "updatedAt": item.updated_at,
    }


async def _require_item(repository: BackorderRepository, item_id: int):
    item = await repository.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sellable item not found")
    return item


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: ItemCreate,
    repository: BackorderRepository = Depends(get_repository),
) -> ItemResponse:
    if await repository.get_by_sku(payload.sku) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="SKU already exists")
    if payload.parent_id is not None:
        parent = await repository.get_item(payload.parent_id)
        if parent is None or parent.item_type != "variable":
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="parentId must reference a variable product",
            )

    item = await repository.create_item(
        sku=payload.sku,
        name=payload.name,
        item_type=payload.item_type,
        parent_id=payload.parent_id,
        category=payload.category,
        manage_stock=payload.manage_stock,
    )
    return ItemResponse.model_validate(_serialize_item(item))


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(item_id: int, repository: BackorderRepository = Depends(get_repository)) -> ItemResponse:
    item = await _require_item(repository, item_id)
    return ItemResponse.model_validate(_serialize_item(item))


@router.patch("/{item_id}", response_model=ItemResponse)
async def update_item(
    item_id: int,
    payload: ItemUpdate,
    repository: BackorderRepository = Depends(get_repository),
) -> ItemResponse:
    item = await _require_item(repository, item_id)
    updated = await repository.update_item(
        item,
        name=payload.name,
        category=payload.category,
        manage_stock=payload.manage_stock,
    )
    if updated.item_type == "variable" and payload.manage_stock is not None:
        variation_ids = await repository.list_variation_ids(updated.id)
        synced = await repository.set_manage_stock(variation_ids, manage_stock=updated.manage_stock)
        _LOGGER.info("Synced manage_stock=%s onto %s variations of item %s", updated.manage_stock, synced, item_id)
    return ItemResponse.model_validate(_serialize_item(updated))


@router.delete("/{item_id}")
async def delete_item(
    item_id: int,
    repository: BackorderRepository = Depends(get_repository),
) -> Response:
    item = await _require_item(repository, item_id)
    affected = [item.id, *await repository.list_variation_ids(item.id)]
    await repository.delete_item(item)
    for affected_id in affected:
        mark_stale(repository.session, affected_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
