"""Pydantic schemas for the backorder service."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator, model_validator

from .ledger import BackorderMode


def _clean_required(value: str, field_name: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = f"{field_name} must be non-empty"
        raise ValueError(msg)
    return cleaned


class ItemCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    item_type: Literal["simple", "variable", "variation"] = Field(default="simple", alias="type")
    parent_id: PositiveInt | None = Field(default=None, alias="parentId")
    category: str | None = Field(default=None, max_length=100)
    manage_stock: bool = Field(default=False, alias="manageStock")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sku")
    @classmethod
    def _strip_sku(cls, value: str) -> str:
        return _clean_required(value, "sku")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _clean_required(value, "name")

    @field_validator("category")
    @classmethod
    def _strip_category(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @model_validator(mode="after")
    def _check_parent(self) -> ItemCreate:
        if self.item_type == "variation" and self.parent_id is None:
            msg = "variations require parentId"
            raise ValueError(msg)
        if self.item_type != "variation" and self.parent_id is not None:
            msg = "only variations may set parentId"
            raise ValueError(msg)
        return self


class ItemUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    manage_stock: bool | None = Field(default=None, alias="manageStock")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _clean_required(value, "name")


class ItemResponse(BaseModel):
    id: PositiveInt
    sku: str
    name: str
    item_type: str = Field(alias="type")
    parent_id: int | None = Field(alias="parentId")
    category: str | None
    manage_stock: bool = Field(alias="manageStock")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class PolicyUpdate(BaseModel):
    mode: BackorderMode
    limit: NonNegativeInt = 0


class BulkSettingEntry(BaseModel):
    item_id: PositiveInt = Field(alias="itemId")
    mode: BackorderMode | None = None
    limit: NonNegativeInt | None = None

    model_config = ConfigDict(populate_by_name=True)


class BulkSettingsRequest(BaseModel):
    items: list[BulkSettingEntry] = Field(min_length=1)


class BackorderRecordResponse(BaseModel):
    item_id: int = Field(alias="itemId")
    mode: BackorderMode
    limit: int
    sold: int
    stock_status: str = Field(alias="stockStatus")

    model_config = ConfigDict(populate_by_name=True)


class BulkSettingResult(BaseModel):
    item_id: int = Field(alias="itemId")
    status: Literal["updated", "failed"]
    record: BackorderRecordResponse | None = None
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class BulkSettingsResponse(BaseModel):
    results: list[BulkSettingResult]
    updated: int
    failed: int


class BackorderListEntry(BaseModel):
    item_id: int = Field(alias="itemId")
    sku: str
    name: str
    item_type: str = Field(alias="type")
    parent_id: int | None = Field(alias="parentId")
    category: str | None
    manage_stock: bool = Field(alias="manageStock")
    mode: BackorderMode
    limit: int
    sold: int
    stock_status: str = Field(alias="stockStatus")

    model_config = ConfigDict(populate_by_name=True)


class BackorderListResponse(BaseModel):
    items: list[BackorderListEntry]
    total: int


class ProgressResponse(BaseModel):
    item_id: int = Field(alias="itemId")
    mode: BackorderMode
    sold: int
    limit: int
    show: bool
    label: str | None

    model_config = ConfigDict(populate_by_name=True)


class PurchaseLine(BaseModel):
    product_id: PositiveInt = Field(alias="productId")
    variation_id: PositiveInt | None = Field(default=None, alias="variationId")
    quantity: PositiveInt

    model_config = ConfigDict(populate_by_name=True)


class ValidationRequest(BaseModel):
    context: Literal["cart", "checkout"] = "cart"
    lines: list[PurchaseLine] = Field(min_length=1)


class ValidationLineResponse(BaseModel):
    item_id: int = Field(alias="itemId")
    quantity: int
    warning: str | None

    model_config = ConfigDict(populate_by_name=True)


class ValidationResponse(BaseModel):
    allowed: bool
    lines: list[ValidationLineResponse]
    notices: list[str]


class FulfillmentRequest(BaseModel):
    order_id: str | None = Field(default=None, alias="orderId", min_length=1, max_length=64)
    lines: list[PurchaseLine] = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class FulfillmentLineResponse(BaseModel):
    item_id: int = Field(alias="itemId")
    quantity: int
    recorded: bool
    sold: int | None
    limit: int | None
    limit_exceeded: bool = Field(alias="limitExceeded")
    auto_disabled: bool = Field(alias="autoDisabled")
    error: str | None

    model_config = ConfigDict(populate_by_name=True)


class FulfillmentResponse(BaseModel):
    order_id: str | None = Field(alias="orderId")
    duplicate: bool
    lines: list[FulfillmentLineResponse]

    model_config = ConfigDict(populate_by_name=True)
