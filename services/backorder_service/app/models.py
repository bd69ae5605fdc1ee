"""SQLAlchemy models for the backorder service."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for backorder ORM models."""


class SellableItem(Base):
    __tablename__ = "sellable_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[str] = mapped_column(String(16), nullable=False, default="simple")
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("sellable_items.id", ondelete="CASCADE"), nullable=True, index=True
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    manage_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    backorder: Mapped[BackorderSetting | None] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        uselist=False,
    )


class BackorderSetting(Base):
    __tablename__ = "backorder_settings"

    item_id: Mapped[int] = mapped_column(
        ForeignKey("sellable_items.id", ondelete="CASCADE"), primary_key=True
    )
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="disabled", server_default="disabled")
    limit: Mapped[int] = mapped_column("backorder_limit", Integer, nullable=False, default=0, server_default="0")
    sold: Mapped[int] = mapped_column("backorder_sold", Integer, nullable=False, default=0, server_default="0")
    stock_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="in_stock", server_default="in_stock"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    item: Mapped[SellableItem] = relationship(back_populates="backorder")


class FulfilledOrder(Base):
    __tablename__ = "fulfilled_orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
