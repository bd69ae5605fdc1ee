"""Dependency wiring for the backorder service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import ServiceSettings, lifespan_session

from .progress_cache import invalidate_committed
from .repository import BackorderRepository
from .services import BackorderAdminService, FulfillmentProcessor, ProgressService, PurchaseValidator


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an AsyncSession for the current request lifecycle.

    Progress cache entries touched by the request are dropped only after the
    session commits.
    """

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session
    await invalidate_committed(session, getattr(request.app.state, "progress_cache", None))


def get_repository(session: AsyncSession = Depends(get_session)) -> BackorderRepository:
    """Provide a repository bound to the active session."""

    return BackorderRepository(session)


def get_settings_from_app(request: Request) -> ServiceSettings:
    return request.app.state.settings


def get_progress_cache(request: Request) -> Any:
    return getattr(request.app.state, "progress_cache", None)


def get_event_publisher(request: Request) -> Any:
    return getattr(request.app.state, "event_publisher", None)


def get_alert_provider(request: Request) -> Any:
    return getattr(request.app.state, "alert_provider", None)


def get_admin_service(
    repository: BackorderRepository = Depends(get_repository),
    event_publisher: Any = Depends(get_event_publisher),
) -> BackorderAdminService:
    return BackorderAdminService(repository, event_publisher=event_publisher)


def get_fulfillment_processor(
    repository: BackorderRepository = Depends(get_repository),
    settings: ServiceSettings = Depends(get_settings_from_app),
    event_publisher: Any = Depends(get_event_publisher),
    alert_provider: Any = Depends(get_alert_provider),
) -> FulfillmentProcessor:
    return FulfillmentProcessor(
        repository,
        action=settings.backorder_limit_exceeded_action,
        alert_provider=alert_provider,
        alert_recipient=settings.backorder_alert_recipient,
        event_publisher=event_publisher,
    )


def get_purchase_validator(repository: BackorderRepository = Depends(get_repository)) -> PurchaseValidator:
    return PurchaseValidator(repository)


def get_progress_service(
    repository: BackorderRepository = Depends(get_repository),
    cache: Any = Depends(get_progress_cache),
) -> ProgressService:
    return ProgressService(repository, cache=cache)
