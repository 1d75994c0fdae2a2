"""Market signals feeding the pricing pipeline.

A signal the provider cannot supply is ``None`` (or no competitor prices)
and the matching adjustment is skipped rather than guessed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta

from protean.utils.globals import current_domain

from logistics.stock.ledger import InventoryLedger
from logistics.stock.stock import Reservation, ReservationStatus
from logistics.utils.cache import TTLCache
from logistics.utils.time import Clock, as_utc, utc_now

DEMAND_WINDOW = timedelta(days=7)


@dataclass(frozen=True)
class MarketSignals:
    order_velocity: int | None = None  # units ordered over the trailing window
    inventory_level: int | None = None  # available units across the network
    competitor_prices: tuple[float, ...] = field(default_factory=tuple)

    @property
    def average_competitor_price(self) -> float | None:
        if not self.competitor_prices:
            return None
        return sum(self.competitor_prices) / len(self.competitor_prices)


class MarketSignalProvider(ABC):
    @abstractmethod
    def signals_for(self, product_id: str) -> MarketSignals: ...


class StaticMarketSignals(MarketSignalProvider):
    """Fixed signals per product, with a fallback for everything else."""

    def __init__(self, default: MarketSignals | None = None):
        self.default = default or MarketSignals()
        self._signals: dict[str, MarketSignals] = {}

    def set(self, product_id: str, **values) -> MarketSignals:
        if "competitor_prices" in values:
            values["competitor_prices"] = tuple(values["competitor_prices"])
        signals = MarketSignals(**values)
        self._signals[product_id] = signals
        return signals

    def signals_for(self, product_id: str) -> MarketSignals:
        return self._signals.get(product_id, self.default)


class CompetitorPriceFeed:
    """Latest competitor prices per product, as pushed by a price scraper."""

    def __init__(self):
        self._prices: dict[str, tuple[float, ...]] = {}

    def update(self, product_id: str, prices: list[float]) -> None:
        self._prices[product_id] = tuple(p for p in prices if p > 0)

    def prices_for(self, product_id: str) -> tuple[float, ...]:
        return self._prices.get(product_id, ())


class NetworkMarketSignals(MarketSignalProvider):
    """Signals derived from the ledger itself.

    Velocity counts units reserved (held or sold) over the trailing week;
    inventory is the available total across every warehouse.
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        competitors: CompetitorPriceFeed | None = None,
        clock: Clock = utc_now,
        window: timedelta = DEMAND_WINDOW,
    ):
        self.ledger = ledger
        self.competitors = competitors or CompetitorPriceFeed()
        self.clock = clock
        self.window = window

    def order_velocity(self, product_id: str) -> int:
        since = self.clock() - self.window
        counted = {ReservationStatus.HELD.value, ReservationStatus.COMMITTED.value}
        return sum(
            r.quantity
            for r in current_domain.repository_for(Reservation).for_product(product_id)
            if r.status in counted and as_utc(r.created_at) >= since
        )

    def signals_for(self, product_id: str) -> MarketSignals:
        return MarketSignals(
            order_velocity=self.order_velocity(product_id),
            inventory_level=self.ledger.total_available(product_id),
            competitor_prices=self.competitors.prices_for(product_id),
        )


class CachedMarketSignals(MarketSignalProvider):
    def __init__(self, inner: MarketSignalProvider, cache: TTLCache):
        self.inner = inner
        self.cache = cache

    def signals_for(self, product_id: str) -> MarketSignals:
        return self.cache.get_or_compute(product_id, lambda: self.inner.signals_for(product_id))
