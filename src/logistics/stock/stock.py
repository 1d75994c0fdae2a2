"""StockRecord and Reservation aggregates (CQRS) — the stock ledger.

Counter Model (one StockRecord per product per warehouse):
    available: sellable units not yet reserved
    reserved:  units held against in-flight reservations

    receive  → available += n
    reserve  → available -= n, reserved += n   (creates a HELD Reservation)
    release  → available += n, reserved -= n   (HELD → RELEASED / EXPIRED)
    commit   → reserved -= n                   (HELD → COMMITTED, permanent sale)

Both counters stay non-negative. The aggregates only enforce the arithmetic;
serializing concurrent callers is the ledger service's job.
"""

from datetime import datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from logistics.domain import logistics
from logistics.errors import OutOfStock
from logistics.stock.events import (
    LowStockDetected,
    ReservationCommitted,
    ReservationHeld,
    ReservationLapsed,
    ReservationReleased,
    StockLevelChanged,
    StockReceived,
)
from logistics.utils.state import validate_transitions
from logistics.utils.time import as_utc


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReservationStatus(Enum):
    HELD = "Held"
    COMMITTED = "Committed"
    RELEASED = "Released"
    EXPIRED = "Expired"


_RESERVATION_TRANSITIONS = validate_transitions(
    ReservationStatus,
    {
        ReservationStatus.HELD: {
            ReservationStatus.COMMITTED,
            ReservationStatus.RELEASED,
            ReservationStatus.EXPIRED,
        },
        ReservationStatus.COMMITTED: set(),  # terminal
        ReservationStatus.RELEASED: set(),  # terminal
        ReservationStatus.EXPIRED: set(),  # terminal
    },
    terminal=(ReservationStatus.COMMITTED, ReservationStatus.RELEASED, ReservationStatus.EXPIRED),
)


def stock_record_id(product_id: str, warehouse_id: str) -> str:
    return f"{warehouse_id}:{product_id}"


# ---------------------------------------------------------------------------
# StockRecord
# ---------------------------------------------------------------------------
@logistics.aggregate
class StockRecord:
    product_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    available = Integer(default=0, min_value=0)
    reserved = Integer(default=0, min_value=0)
    reorder_level = Integer(default=10, min_value=0)
    reorder_quantity = Integer(default=50, min_value=0)
    last_updated = DateTime()

    @invariant.post
    def counters_cannot_be_negative(self):
        if (self.available or 0) < 0 or (self.reserved or 0) < 0:
            raise ValidationError({"available": ["Stock counters cannot be negative"]})

    @classmethod
    def open(cls, product_id, warehouse_id, now: datetime, reorder_level=None, reorder_quantity=None):
        """Start an empty record for a product at a warehouse."""
        record = cls(
            id=stock_record_id(product_id, warehouse_id),
            product_id=product_id,
            warehouse_id=warehouse_id,
            last_updated=now,
        )
        if reorder_level is not None:
            record.reorder_level = reorder_level
        if reorder_quantity is not None:
            record.reorder_quantity = reorder_quantity
        return record

    def needs_reorder(self) -> bool:
        return self.available <= self.reorder_level

    def _moved(self, movement: str, quantity: int, now: datetime) -> None:
        self.last_updated = now
        self.raise_(
            StockLevelChanged(
                stock_record_id=str(self.id),
                product_id=str(self.product_id),
                warehouse_id=str(self.warehouse_id),
                movement=movement,
                quantity=quantity,
                available=self.available,
                reserved=self.reserved,
                changed_at=now,
            )
        )

    @staticmethod
    def _require_positive(quantity: int) -> None:
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

    def receive(self, quantity: int, now: datetime) -> None:
        self._require_positive(quantity)
        self.available += quantity
        self.last_updated = now
        self.raise_(
            StockReceived(
                stock_record_id=str(self.id),
                product_id=str(self.product_id),
                warehouse_id=str(self.warehouse_id),
                quantity=quantity,
                new_available=self.available,
                received_at=now,
            )
        )

    def hold(self, quantity: int, now: datetime) -> None:
        """Move units from available to reserved, or fail with OutOfStock."""
        self._require_positive(quantity)
        if self.available < quantity:
            raise OutOfStock(str(self.product_id), str(self.warehouse_id), quantity, self.available)

        with atomic_change(self):
            self.available -= quantity
            self.reserved += quantity
        self._moved("reserve", quantity, now)

        if self.needs_reorder():
            self.raise_(
                LowStockDetected(
                    stock_record_id=str(self.id),
                    product_id=str(self.product_id),
                    warehouse_id=str(self.warehouse_id),
                    current_available=self.available,
                    reorder_level=self.reorder_level,
                    reorder_quantity=self.reorder_quantity or 0,
                    detected_at=now,
                )
            )

    def release(self, quantity: int, now: datetime) -> None:
        self._require_positive(quantity)
        if self.reserved < quantity:
            raise ValidationError({"reserved": [f"Cannot release {quantity} units, only {self.reserved} reserved"]})
        with atomic_change(self):
            self.reserved -= quantity
            self.available += quantity
        self._moved("release", quantity, now)

    def commit(self, quantity: int, now: datetime) -> None:
        self._require_positive(quantity)
        if self.reserved < quantity:
            raise ValidationError({"reserved": [f"Cannot commit {quantity} units, only {self.reserved} reserved"]})
        self.reserved -= quantity
        self._moved("commit", quantity, now)


@logistics.repository(part_of=StockRecord)
class StockRecordRepository:
    def for_product(self, product_id) -> list:
        return self._dao.query.filter(product_id=product_id).all().items

    def for_warehouse(self, warehouse_id) -> list:
        return self._dao.query.filter(warehouse_id=warehouse_id).all().items


# ---------------------------------------------------------------------------
# Reservation
# ---------------------------------------------------------------------------
@logistics.aggregate
class Reservation:
    """A time-bounded hold on stock for one order line at one warehouse."""

    order_id = Identifier(required=True)
    product_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    status = String(
        choices=ReservationStatus,
        default=ReservationStatus.HELD.value,
    )
    created_at = DateTime(required=True)
    expires_at = DateTime(required=True)
    closed_at = DateTime()

    @classmethod
    def hold(cls, order_id, product_id, warehouse_id, quantity, now: datetime, expires_at: datetime):
        reservation = cls(
            order_id=order_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            status=ReservationStatus.HELD.value,
            created_at=now,
            expires_at=expires_at,
        )
        reservation.raise_(
            ReservationHeld(
                reservation_id=str(reservation.id),
                order_id=str(order_id),
                product_id=str(product_id),
                warehouse_id=str(warehouse_id),
                quantity=quantity,
                expires_at=expires_at,
                held_at=now,
            )
        )
        return reservation

    @property
    def stock_key(self) -> str:
        return stock_record_id(str(self.product_id), str(self.warehouse_id))

    def is_held(self) -> bool:
        return ReservationStatus(self.status) == ReservationStatus.HELD

    def is_past_expiry(self, now: datetime) -> bool:
        return as_utc(self.expires_at) < as_utc(now)

    def _assert_can_transition(self, target: ReservationStatus) -> None:
        current = ReservationStatus(self.status)
        if target not in _RESERVATION_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot move reservation from {current.value} to {target.value}"]})

    def commit(self, now: datetime) -> None:
        self._assert_can_transition(ReservationStatus.COMMITTED)
        self.status = ReservationStatus.COMMITTED.value
        self.closed_at = now
        self.raise_(
            ReservationCommitted(
                reservation_id=str(self.id),
                order_id=str(self.order_id),
                quantity=self.quantity,
                committed_at=now,
            )
        )

    def release(self, now: datetime) -> None:
        self._assert_can_transition(ReservationStatus.RELEASED)
        self.status = ReservationStatus.RELEASED.value
        self.closed_at = now
        self.raise_(
            ReservationReleased(
                reservation_id=str(self.id),
                order_id=str(self.order_id),
                quantity=self.quantity,
                released_at=now,
            )
        )

    def expire(self, now: datetime) -> None:
        self._assert_can_transition(ReservationStatus.EXPIRED)
        self.status = ReservationStatus.EXPIRED.value
        self.closed_at = now
        self.raise_(
            ReservationLapsed(
                reservation_id=str(self.id),
                order_id=str(self.order_id),
                quantity=self.quantity,
                expired_at=self.expires_at,
                lapsed_at=now,
            )
        )


@logistics.repository(part_of=Reservation)
class ReservationRepository:
    def for_order(self, order_id, status: ReservationStatus | None = None) -> list:
        filters = {"order_id": order_id}
        if status is not None:
            filters["status"] = status.value
        return self._dao.query.filter(**filters).all().items

    def held(self) -> list:
        return self._dao.query.filter(status=ReservationStatus.HELD.value).all().items

    def for_product(self, product_id) -> list:
        return self._dao.query.filter(product_id=product_id).all().items
