import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture

# A Wednesday in April: neither a peak nor an off-peak pricing month
DEFAULT_NOW = datetime(2026, 4, 15, 10, 0, tzinfo=UTC)


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay before the logistics domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def logistics_bed():
    from logistics.domain import logistics

    bed = DomainFixture(logistics)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(logistics_bed):
    """Run each test in a domain context and wipe stored data afterwards."""
    with logistics_bed.domain_context():
        yield

        from logistics.collaborators import reset_collaborators
        from logistics.reservation.reorder import reset_reorder_requester
        from protean import current_domain

        reset_collaborators()
        reset_reorder_requester()

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------
class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock():
    return FrozenClock()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------
@pytest.fixture()
def settings():
    from logistics.config import Settings

    return Settings(
        environment="test",
        scheduler_enabled=False,
        shipping_estimator="fake",
        signal_cache_seconds=0,
    )


@pytest.fixture()
def services(settings, clock):
    """The full service graph on in-memory collaborators, network seeded."""
    from logistics.collaborators.audit import InMemoryAuditSink
    from logistics.collaborators.broadcast import InMemoryBroadcast
    from logistics.collaborators.purchasing import InMemoryPurchasing
    from logistics.collaborators.staff import InMemoryStaffDirectory
    from logistics.network.warehouse import seed_network
    from logistics.pricing.signals import StaticMarketSignals
    from logistics.services import build_services

    container = build_services(
        settings,
        clock=clock,
        staff=InMemoryStaffDirectory(allow_all=True),
        audit=InMemoryAuditSink(),
        broadcast=InMemoryBroadcast(),
        purchasing=InMemoryPurchasing(),
        signals=StaticMarketSignals(),
    )
    seed_network()
    return container


@pytest.fixture()
def api_client(services):
    """A TestClient over every logistics router, wired to ``services``."""
    from fastapi import FastAPI
    from fastapi.testclient import TestClient
    from logistics.api import (
        availability_router,
        fulfillment_router,
        maintenance_router,
        quote_router,
        register_error_handlers,
        reservation_router,
        stock_router,
    )
    from logistics.domain import logistics

    app = FastAPI()
    app.state.services = services

    @app.middleware("http")
    async def domain_context_middleware(request, call_next):
        with logistics.domain_context():
            return await call_next(request)

    for router in (
        stock_router,
        availability_router,
        reservation_router,
        quote_router,
        fulfillment_router,
        maintenance_router,
    ):
        app.include_router(router)
    register_error_handlers(app)
    return TestClient(app)
