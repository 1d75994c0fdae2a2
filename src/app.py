"""Logistics FastAPI application.

Web server for stock, reservations, price quotes and fulfillment. Every
request runs inside the logistics domain context; services are built once
at startup and stopped on shutdown.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from logistics.api import (
    availability_router,
    fulfillment_router,
    maintenance_router,
    quote_router,
    register_error_handlers,
    reservation_router,
    stock_router,
)
from logistics.collaborators import delivery_stats
from logistics.config import Settings
from logistics.domain import logistics
from logistics.network.warehouse import seed_network
from logistics.services import ServiceContainer, build_services
from logistics.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV controls which config overlay is applied.
logistics.init()


def create_app(services: ServiceContainer | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application around ``services`` (constructed from settings when omitted)."""
    settings = settings or (services.settings if services else Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = app.state.services
        with logistics.domain_context():
            added = seed_network(primary_id=container.settings.primary_warehouse_id)
        if added:
            logger.info("Seeded warehouse network", warehouses=added)
        container.start()
        try:
            yield
        finally:
            container.stop()

    app = FastAPI(
        title="Logistics API",
        description="Multi-warehouse stock, pricing and fulfillment",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the logistics domain context and tag log lines with the request."""
        add_context(method=request.method, path=request.url.path)
        try:
            with logistics.domain_context():
                return await call_next(request)
        finally:
            clear_context()

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(stock_router)
    app.include_router(availability_router)
    app.include_router(reservation_router)
    app.include_router(quote_router)
    app.include_router(fulfillment_router)
    app.include_router(maintenance_router)
    register_error_handlers(app)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        container = app.state.services
        return JSONResponse(
            content={
                "status": "ok",
                "domain": logistics.name,
                "environment": container.settings.environment,
                "scheduler": {
                    "running": container.scheduler.is_running,
                    "jobs": container.scheduler.job_ids(),
                },
                "event_processing": logistics.config["event_processing"],
                "deliveries": delivery_stats.snapshot(),
            }
        )

    return app


app = create_app()
