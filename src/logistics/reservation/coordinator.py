"""ReservationCoordinator — order-level reservations across the network.

Finds a warehouse that can supply a line and reserves whole orders
all-or-none. Per-record locking lives in the ledger; this class only
decides which warehouse supplies each line.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from protean.utils.globals import current_domain

from logistics.collaborators.orders import OrderLine
from logistics.errors import OutOfStock, PartialReservationFailure, ReservationNotFound
from logistics.network.warehouse import Warehouse
from logistics.stock.ledger import InventoryLedger
from logistics.stock.stock import Reservation, ReservationStatus

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class WarehouseOption:
    warehouse_id: str
    available: int
    transit_days: int
    shipping_cost: float

    def to_dict(self) -> dict:
        return {
            "warehouse_id": self.warehouse_id,
            "available": self.available,
            "transit_days": self.transit_days,
            "shipping_cost": self.shipping_cost,
        }


@dataclass(frozen=True)
class AvailabilityResult:
    product_id: str
    quantity: int
    options: list[WarehouseOption] = field(default_factory=list)
    shortfall: dict | None = None  # primary/preferred warehouse's deficit when it could not supply

    @property
    def is_available(self) -> bool:
        return bool(self.options)

    @property
    def best(self) -> WarehouseOption | None:
        return self.options[0] if self.options else None


# ---------------------------------------------------------------------------
# Allocation policy
# ---------------------------------------------------------------------------
class AllocationPolicy:
    """Decides which warehouse supplies each line of an order.

    The default ships every line from the requested warehouse. Split
    shipments would subclass this and return a per-line warehouse.
    """

    def allocate(self, lines: list[OrderLine], warehouse_id: str) -> list[tuple[OrderLine, str]]:
        return [(line, warehouse_id) for line in lines]


def merge_lines(lines: Iterable[OrderLine]) -> list[OrderLine]:
    """Collapse repeated products and sort by product id, the fixed lock order."""
    totals: dict[str, int] = defaultdict(int)
    priorities: dict[str, int] = {}
    for line in lines:
        totals[line.product_id] += line.quantity
        priorities[line.product_id] = max(priorities.get(line.product_id, line.priority), line.priority)
    return [OrderLine(pid, totals[pid], priorities[pid]) for pid in sorted(totals)]


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------
class ReservationCoordinator:
    def __init__(
        self,
        ledger: InventoryLedger,
        primary_warehouse_id: str = "US",
        policy: AllocationPolicy | None = None,
    ):
        self.ledger = ledger
        self.primary_warehouse_id = primary_warehouse_id
        self.policy = policy or AllocationPolicy()

    # -------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------
    def _warehouses(self) -> dict[str, Warehouse]:
        return {str(w.id): w for w in current_domain.repository_for(Warehouse).active()}

    def _available_at(self, product_id: str, warehouse_id: str) -> int:
        record = self.ledger.stock_level(product_id, warehouse_id)
        return record.available if record else 0

    def find_availability(
        self,
        product_id: str,
        quantity: int,
        preferred_warehouse_id: str | None = None,
        exclude: Iterable[str] = (),
    ) -> AvailabilityResult:
        """Where can ``quantity`` units of the product come from?

        The preferred (or primary) warehouse answers alone when it has
        enough. Otherwise every other active warehouse that can supply the
        full quantity is returned, fastest then cheapest first.
        """
        warehouses = self._warehouses()
        first_choice = preferred_warehouse_id or self.primary_warehouse_id
        excluded = set(exclude)

        first_available = self._available_at(product_id, first_choice)
        if first_choice not in excluded and first_available >= quantity and first_choice in warehouses:
            profile = warehouses[first_choice]
            option = WarehouseOption(first_choice, first_available, profile.transit_days, profile.shipping_cost())
            return AvailabilityResult(product_id, quantity, [option])

        options = []
        for record in self.ledger.stock_for_product(product_id):
            warehouse_id = str(record.warehouse_id)
            if warehouse_id == first_choice or warehouse_id in excluded or warehouse_id not in warehouses:
                continue
            if record.available >= quantity:
                profile = warehouses[warehouse_id]
                options.append(
                    WarehouseOption(warehouse_id, record.available, profile.transit_days, profile.shipping_cost())
                )
        options.sort(key=lambda o: (o.transit_days, o.shipping_cost, o.warehouse_id))

        shortfall = {
            "warehouse_id": first_choice,
            "requested": quantity,
            "available": first_available,
            "deficit": max(quantity - first_available, 0),
        }
        if not options:
            logger.info("No warehouse can supply product", product_id=product_id, quantity=quantity, **shortfall)
        return AvailabilityResult(product_id, quantity, options, shortfall)

    def shortfalls(self, lines: Iterable[OrderLine], warehouse_id: str, order_id: str | None = None) -> list[dict]:
        """Lines the warehouse cannot cover right now.

        Units already held for ``order_id`` at this warehouse count towards
        its own lines.
        """
        already_held: dict[str, int] = defaultdict(int)
        if order_id is not None:
            for reservation in self.ledger.reservations_for_order(order_id, ReservationStatus.HELD):
                if str(reservation.warehouse_id) == warehouse_id:
                    already_held[str(reservation.product_id)] += reservation.quantity

        missing = []
        for line in merge_lines(lines):
            available = self._available_at(line.product_id, warehouse_id) + already_held[line.product_id]
            if available < line.quantity:
                missing.append(
                    {
                        "product_id": line.product_id,
                        "warehouse_id": warehouse_id,
                        "requested": line.quantity,
                        "available": available,
                        "deficit": line.quantity - available,
                    }
                )
        return missing

    def alternatives_for(self, missing: list[dict], warehouse_id: str) -> list[dict]:
        alternatives = []
        for item in missing:
            result = self.find_availability(item["product_id"], item["requested"], exclude=[warehouse_id])
            alternatives.extend({"product_id": item["product_id"], **o.to_dict()} for o in result.options)
        return alternatives

    # -------------------------------------------------------------------
    # Order reservations
    # -------------------------------------------------------------------
    def reserve_order(
        self,
        order_id: str,
        lines: Iterable[OrderLine],
        warehouse_id: str,
        ttl: timedelta | None = None,
    ) -> list[Reservation]:
        """Reserve every line of an order, or nothing.

        All lines are checked and held under the locks of every record they
        touch, taken in a fixed order so two orders sharing products cannot
        deadlock. A short line raises PartialReservationFailure and leaves
        no reservation behind.
        """
        allocation = self.policy.allocate(merge_lines(lines), warehouse_id)
        try:
            made = self.ledger.reserve_many(
                [(line.product_id, source, line.quantity) for line, source in allocation], order_id, ttl
            )
        except OutOfStock as exc:
            missing = self.shortfalls([line for line, _ in allocation], warehouse_id) or [exc.as_missing_item()]
            exc.alternatives = self.alternatives_for(missing, warehouse_id)
            logger.warning(
                "Order reservation failed",
                order_id=order_id,
                warehouse_id=warehouse_id,
                failed_product=exc.product_id,
                missing=len(missing),
            )
            raise PartialReservationFailure(order_id, exc, missing) from exc

        logger.info("Order reserved", order_id=order_id, warehouse_id=warehouse_id, lines=len(made))
        return made

    def ensure_order_reserved(
        self,
        order_id: str,
        lines: Iterable[OrderLine],
        warehouse_id: str,
        ttl: timedelta | None = None,
    ) -> tuple[list[Reservation], list[Reservation]]:
        """Make sure the order's lines are held at ``warehouse_id``.

        Holds already covering a line are kept and only the missing units
        are reserved. Holds that no longer fit (other warehouse, dropped
        product, larger than the line) are released after the new ones
        succeeded, so a failure leaves the old holds in place. Returns
        ``(reservations, newly_made)``.
        """
        held_here: dict[str, list[Reservation]] = defaultdict(list)
        stale: list[Reservation] = []
        for reservation in self.ledger.reservations_for_order(order_id, ReservationStatus.HELD):
            if str(reservation.warehouse_id) == warehouse_id:
                held_here[str(reservation.product_id)].append(reservation)
            else:
                stale.append(reservation)

        keep: list[Reservation] = []
        to_reserve: list[OrderLine] = []
        for line in merge_lines(lines):
            holds = held_here.pop(line.product_id, [])
            covered = sum(r.quantity for r in holds)
            if covered <= line.quantity:
                keep.extend(holds)
                if covered < line.quantity:
                    to_reserve.append(OrderLine(line.product_id, line.quantity - covered, line.priority))
            else:
                stale.extend(holds)
                to_reserve.append(line)
        for holds in held_here.values():
            stale.extend(holds)

        fresh = self.reserve_order(order_id, to_reserve, warehouse_id, ttl) if to_reserve else []
        if stale:
            self.ledger.release_many([str(r.id) for r in stale])
            logger.info("Released stale order holds", order_id=order_id, released=len(stale))
        return keep + fresh, fresh

    def release_order(self, order_id: str, persist_with: Iterable = ()) -> list[Reservation]:
        held = self.ledger.reservations_for_order(order_id, ReservationStatus.HELD)
        return self.ledger.release_many([str(r.id) for r in held], persist_with=persist_with)

    def commit_order(self, order_id: str, warehouse_id: str, persist_with: Iterable = ()) -> list[Reservation]:
        """Commit the order's holds at ``warehouse_id`` together with ``persist_with``.

        Raises ReservationNotFound when nothing is held there.
        """
        held = [
            r
            for r in self.ledger.reservations_for_order(order_id, ReservationStatus.HELD)
            if str(r.warehouse_id) == warehouse_id
        ]
        if not held:
            raise ReservationNotFound(f"No held reservation for order {order_id} at {warehouse_id}")
        return self.ledger.commit_many([str(r.id) for r in held], persist_with=persist_with)

