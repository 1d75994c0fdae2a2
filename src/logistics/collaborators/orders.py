"""Order source port — the order service's view of an order's lines."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from protean.exceptions import ObjectNotFoundError

FULFILLABLE_ORDER_STATUSES = frozenset({"confirmed", "paid"})


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    quantity: int
    priority: int = 0


@dataclass(frozen=True)
class OrderSnapshot:
    order_id: str
    status: str
    lines: tuple[OrderLine, ...] = field(default_factory=tuple)

    def is_fulfillable(self) -> bool:
        return self.status.lower() in FULFILLABLE_ORDER_STATUSES


class OrderSourcePort(ABC):
    @abstractmethod
    def get_order(self, order_id: str) -> OrderSnapshot:
        """Return the order or raise ObjectNotFoundError."""
        ...


class InMemoryOrderSource(OrderSourcePort):
    def __init__(self):
        self._orders: dict[str, OrderSnapshot] = {}

    def put(self, order_id: str, lines: list[tuple[str, int]] | list[OrderLine], status: str = "confirmed"):
        normalized = tuple(line if isinstance(line, OrderLine) else OrderLine(*line) for line in lines)
        snapshot = OrderSnapshot(order_id=order_id, status=status, lines=normalized)
        self._orders[order_id] = snapshot
        return snapshot

    def get_order(self, order_id: str) -> OrderSnapshot:
        try:
            return self._orders[order_id]
        except KeyError:
            raise ObjectNotFoundError(f"Order {order_id} does not exist")
