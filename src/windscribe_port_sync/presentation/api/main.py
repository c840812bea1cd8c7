import asyncio

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from starlette.responses import Response

from windscribe_port_sync.config import settings
from windscribe_port_sync.presentation.api.metrics import build_metrics
from windscribe_port_sync.presentation.api.routes.health import router as health_router
from windscribe_port_sync.presentation.api.routes.port import router as port_router
from windscribe_port_sync.presentation.container import Services, build_services


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Windscribe Port Sync", version="0.1.0")
    app.include_router(health_router)
    app.include_router(port_router)

    registry = CollectorRegistry()
    app.state.services = services or build_services(settings)
    app.state.registry_metrics = build_metrics(registry)
    app.state.sync_lock = asyncio.Lock()

    @app.get("/metrics")
    def metrics() -> Response:  # type: ignore[misc]
        data = generate_latest(registry)
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    return app
