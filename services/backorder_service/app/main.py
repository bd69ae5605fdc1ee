from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    close_redis_connections,
    configure_logging,
    dispose_engines,
    get_settings,
    get_session_factory,
    resolve_database_url,
    resolve_redis,
)
from services.common.messaging import EventConsumer, EventProducer, InMemoryBroker

from .api.backorders import router as backorders_router
from .api.health import router as health_router
from .api.items import router as items_router
from .event_handlers import OrderEventHandler
from .events import ORDER_STATUS_TOPIC, BackorderEventPublisher
from .progress_cache import ProgressCache
from .providers import InMemoryAlertProvider

SERVICE_NAME = "Backorder Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./backorder_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Backorder Service FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    redis_client = resolve_redis(resolved_settings)
    progress_cache = ProgressCache(redis_client, ttl_seconds=resolved_settings.progress_cache_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        producer: EventProducer | None = None
        consumer: EventConsumer | None = None
        app.state.session_factory = session_factory
        app.state.progress_cache = progress_cache
        broker = InMemoryBroker()
        app.state.broker = broker
        try:
            producer = EventProducer(broker)
            await producer.connect()
            event_publisher = BackorderEventPublisher(producer)
            alert_provider = InMemoryAlertProvider()
            app.state.event_publisher = event_publisher
            app.state.alert_provider = alert_provider
            handler = OrderEventHandler(
                session_factory,
                action=resolved_settings.backorder_limit_exceeded_action,
                alert_recipient=resolved_settings.backorder_alert_recipient,
                alert_provider=alert_provider,
                event_publisher=event_publisher,
                cache=progress_cache,
            )
            consumer = EventConsumer(broker, [ORDER_STATUS_TOPIC], handler.handle)
            await consumer.start()
            app.state.order_event_consumer = consumer
            yield
        finally:
            app.state.session_factory = None
            app.state.progress_cache = None
            app.state.event_publisher = None
            app.state.alert_provider = None
            app.state.order_event_consumer = None
            app.state.broker = None
            if consumer is not None:
                await consumer.stop()
            if producer is not None:
                await producer.close()
            await dispose_engines()
            if redis_client is not None:
                await close_redis_connections()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(items_router)
    app.include_router(backorders_router)
    return app


app = create_app()
