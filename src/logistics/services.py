"""Service wiring for the logistics context.

``build_services`` constructs every service explicitly from ``Settings`` and
returns a ``ServiceContainer`` that owns the background work: cache sweeps
and the reservation expiry job. Anything can be swapped through keyword
overrides, which is how tests plug in fakes. The audit sink, broadcaster,
purchasing service and reorder requester are also registered for the
event handlers that use them.
"""

from dataclasses import dataclass, field
from datetime import timedelta

import structlog

from logistics.collaborators import set_audit_sink, set_broadcast, set_purchasing
from logistics.collaborators.audit import AuditSinkPort, LoggingAuditSink
from logistics.collaborators.bins import BinDirectoryPort, InMemoryBinDirectory
from logistics.collaborators.broadcast import BroadcastPort, LoggingBroadcast
from logistics.collaborators.catalog import CatalogPort, InMemoryCatalog
from logistics.collaborators.orders import InMemoryOrderSource, OrderSourcePort
from logistics.collaborators.purchasing import LoggingPurchasing, PurchasingPort
from logistics.collaborators.staff import InMemoryStaffDirectory, StaffDirectoryPort
from logistics.config import Settings
from logistics.domain import logistics
from logistics.fulfillment.state_machine import FulfillmentStateMachine
from logistics.picking.optimizer import PickingOptimizer
from logistics.pricing.engine import PricingEngine, PricingPolicy
from logistics.pricing.signals import CachedMarketSignals, MarketSignalProvider, NetworkMarketSignals
from logistics.reservation.coordinator import ReservationCoordinator
from logistics.reservation.reorder import ReorderRequester, set_reorder_requester
from logistics.shipping import build_shipping_estimator
from logistics.shipping.port import ShippingEstimator
from logistics.stock.ledger import InventoryLedger
from logistics.utils.cache import TTLCache
from logistics.utils.locking import KeyedLock
from logistics.utils.scheduling import MaintenanceScheduler
from logistics.utils.time import Clock, utc_now

logger = structlog.get_logger(__name__)

SWEEP_JOB_ID = "reservations.sweep_expired"
CACHE_SWEEP_JOB_ID = "caches.sweep"


@dataclass
class ServiceContainer:
    settings: Settings
    ledger: InventoryLedger
    coordinator: ReservationCoordinator
    pricing: PricingEngine
    optimizer: PickingOptimizer
    shipping: ShippingEstimator
    fulfillment: FulfillmentStateMachine
    catalog: CatalogPort
    orders: OrderSourcePort
    bins: BinDirectoryPort
    staff: StaffDirectoryPort
    audit: AuditSinkPort
    broadcast: BroadcastPort
    purchasing: PurchasingPort
    scheduler: MaintenanceScheduler
    caches: list[TTLCache] = field(default_factory=list)
    started: bool = False

    def start(self) -> None:
        """Start the maintenance jobs when enabled."""
        if self.started:
            return
        if self.settings.scheduler_enabled:
            self.scheduler.add_interval_job(
                SWEEP_JOB_ID,
                self.ledger.sweep_expired,
                seconds=self.settings.sweep_interval_minutes * 60,
                name="Release expired reservations",
            )
            self.scheduler.add_interval_job(
                CACHE_SWEEP_JOB_ID,
                self.sweep_caches,
                seconds=self.settings.cache_sweep_interval_seconds,
                name="Drop expired cache entries",
            )
            self.scheduler.start()
        self.started = True
        logger.info("Logistics services started", environment=self.settings.environment)

    def stop(self) -> None:
        if not self.started:
            return
        self.scheduler.stop()
        self.started = False
        logger.info("Logistics services stopped")

    def sweep_caches(self) -> int:
        return sum(cache.sweep() for cache in self.caches)


def build_services(settings: Settings | None = None, **overrides) -> ServiceContainer:
    """Construct the service graph.

    Recognised overrides: ``clock``, ``catalog``, ``orders``, ``bins``,
    ``staff``, ``audit``, ``broadcast``, ``purchasing``, ``shipping``,
    ``signals`` (a MarketSignalProvider used before caching) and
    ``scheduler`` (an APScheduler scheduler).
    """
    settings = settings or Settings.from_env()
    clock: Clock = overrides.pop("clock", utc_now)
    catalog = overrides.pop("catalog", None) or InMemoryCatalog()
    orders = overrides.pop("orders", None) or InMemoryOrderSource()
    bins = overrides.pop("bins", None) or InMemoryBinDirectory()
    staff = overrides.pop("staff", None) or InMemoryStaffDirectory()
    audit = overrides.pop("audit", None) or LoggingAuditSink()
    broadcast = overrides.pop("broadcast", None) or LoggingBroadcast()
    purchasing = overrides.pop("purchasing", None) or LoggingPurchasing()
    shipping = overrides.pop("shipping", None) or build_shipping_estimator(settings.shipping_estimator, clock)
    signals: MarketSignalProvider | None = overrides.pop("signals", None)
    scheduler = MaintenanceScheduler(logistics, overrides.pop("scheduler", None))
    if overrides:
        raise TypeError(f"Unknown service overrides: {', '.join(sorted(overrides))}")

    ledger = InventoryLedger(
        locks=KeyedLock(),
        clock=clock,
        reservation_ttl=timedelta(hours=settings.reservation_ttl_hours),
    )
    reorders = ReorderRequester(
        purchasing,
        suppress_for=timedelta(minutes=settings.reorder_suppression_minutes),
        clock=clock,
    )
    coordinator = ReservationCoordinator(ledger, primary_warehouse_id=settings.primary_warehouse_id)

    caches: list[TTLCache] = [reorders.recent]
    signals = signals or NetworkMarketSignals(ledger, clock=clock)
    if settings.signal_cache_seconds > 0:
        signal_cache = TTLCache(ttl=timedelta(seconds=settings.signal_cache_seconds), clock=clock, name="market-signals")
        signals = CachedMarketSignals(signals, signal_cache)
        caches.append(signal_cache)

    policy = PricingPolicy.from_settings(settings)
    issued_quotes = TTLCache(ttl=policy.quote_ttl, clock=clock, name="issued-quotes")
    caches.append(issued_quotes)
    pricing = PricingEngine(signals, catalog=catalog, policy=policy, clock=clock, issued_quotes=issued_quotes)

    optimizer = PickingOptimizer(bins)
    fulfillment = FulfillmentStateMachine(
        coordinator=coordinator,
        optimizer=optimizer,
        shipping=shipping,
        catalog=catalog,
        orders=orders,
        staff=staff,
        clock=clock,
    )

    set_audit_sink(audit)
    set_broadcast(broadcast)
    set_purchasing(purchasing)
    set_reorder_requester(reorders)

    return ServiceContainer(
        settings=settings,
        ledger=ledger,
        coordinator=coordinator,
        pricing=pricing,
        optimizer=optimizer,
        shipping=shipping,
        fulfillment=fulfillment,
        catalog=catalog,
        orders=orders,
        bins=bins,
        staff=staff,
        audit=audit,
        broadcast=broadcast,
        purchasing=purchasing,
        scheduler=scheduler,
        caches=caches,
    )
