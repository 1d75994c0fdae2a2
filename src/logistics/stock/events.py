"""Stock ledger domain events — immutable facts about stock and reservations.

All events are past tense, versioned, and carry the counters as they stood
after the change so downstream readers never need to replay arithmetic.
"""

from protean.fields import DateTime, Identifier, Integer, String

from logistics.domain import logistics


# ---------------------------------------------------------------------------
# StockRecord events
# ---------------------------------------------------------------------------
@logistics.event(part_of="StockRecord")
class StockReceived:
    """Units arrived at a warehouse and became sellable."""

    __version__ = 1

    stock_record_id = Identifier(required=True)
    product_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_available = Integer(required=True)
    received_at = DateTime(required=True)


@logistics.event(part_of="StockRecord")
class StockLevelChanged:
    """A reserve, release or commit moved units between the counters."""

    __version__ = 1

    stock_record_id = Identifier(required=True)
    product_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    movement = String(required=True, max_length=20)
    quantity = Integer(required=True)
    available = Integer(required=True)
    reserved = Integer(required=True)
    changed_at = DateTime(required=True)


@logistics.event(part_of="StockRecord")
class LowStockDetected:
    """Available units fell to or below the reorder level."""

    __version__ = 1

    stock_record_id = Identifier(required=True)
    product_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    current_available = Integer(required=True)
    reorder_level = Integer(required=True)
    reorder_quantity = Integer(default=0)
    detected_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Reservation events
# ---------------------------------------------------------------------------
@logistics.event(part_of="Reservation")
class ReservationHeld:
    """Units were set aside for an order."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    product_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    quantity = Integer(required=True)
    expires_at = DateTime(required=True)
    held_at = DateTime(required=True)


@logistics.event(part_of="Reservation")
class ReservationCommitted:
    """Held units left the building with the order."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    committed_at = DateTime(required=True)


@logistics.event(part_of="Reservation")
class ReservationReleased:
    """Held units went back to available stock."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    released_at = DateTime(required=True)


@logistics.event(part_of="Reservation")
class ReservationLapsed:
    """The hold passed its expiry and the sweep returned its units."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    expired_at = DateTime(required=True)
    lapsed_at = DateTime(required=True)
