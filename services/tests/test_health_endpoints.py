from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from services.backorder_service.app.main import create_app
from services.common import ServiceSettings, dispose_engines


@pytest.mark.asyncio
@pytest.mark.parametrize("enable_metrics", [True, False])
async def test_health_endpoint_returns_ok(tmp_path, enable_metrics: bool) -> None:
    settings = ServiceSettings(
        enable_metrics=enable_metrics,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'health.db'}",
    )
    app = create_app(settings)

    async with lifespan(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")
            ready = await client.get("/health/ready")
            metrics = await client.get("/metrics")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert ready.status_code == 200
    assert ready.json() == {"status": "ready", "database": "ok"}
    assert app.title == "Backorder Service"
    if enable_metrics:
        assert metrics.status_code == 200
        assert "backorder_units_recorded_total" in metrics.text
    else:
        assert metrics.status_code == 404
    await dispose_engines()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
