"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance keeps its own state; ids returned by creation
endpoints are remembered so follow-up calls can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class StockState:
    """A product a user received stock for."""

    product_id: str | None = None
    warehouse_id: str | None = None
    received: int = 0


@dataclass
class ReservationState:
    """One order's reservation set."""

    order_id: str | None = None
    warehouse_id: str | None = None
    reservation_ids: list[str] = field(default_factory=list)


@dataclass
class QuoteState:
    quote_ids: list[str] = field(default_factory=list)
