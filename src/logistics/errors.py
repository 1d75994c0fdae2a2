"""Typed error taxonomy for the logistics context.

Errors derive from protean's exception classes so that the framework's
FastAPI handlers keep mapping them (``ValidationError`` → 400,
``ObjectNotFoundError`` → 404, ``InvalidOperationError`` → 422) unless
``logistics.api.errors`` registers a more specific status.
"""

from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError


# ---------------------------------------------------------------------------
# Stock and reservations
# ---------------------------------------------------------------------------
class OutOfStock(ValidationError):
    """Not enough available units at a warehouse to satisfy a request."""

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        requested: int,
        available: int,
        alternatives: list[dict] | None = None,
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.available = available
        self.alternatives = alternatives or []
        super().__init__(
            {
                "quantity": [
                    f"Insufficient stock for {product_id} at {warehouse_id}: "
                    f"requested {requested}, available {available}"
                ]
            }
        )

    @property
    def deficit(self) -> int:
        return max(self.requested - self.available, 0)

    def as_missing_item(self) -> dict:
        return {
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "requested": self.requested,
            "available": self.available,
            "deficit": self.deficit,
        }


class PartialReservationFailure(OutOfStock):
    """An order could not be reserved in full; nothing was kept."""

    def __init__(self, order_id: str, failed: OutOfStock, missing_items: list[dict] | None = None):
        super().__init__(
            failed.product_id,
            failed.warehouse_id,
            failed.requested,
            failed.available,
            alternatives=failed.alternatives,
        )
        self.order_id = order_id
        self.missing_items = missing_items or [failed.as_missing_item()]
        self.messages = {
            "line_items": [
                f"Order {order_id} cannot be reserved: "
                + ", ".join(f"{item['product_id']} short by {item['deficit']}" for item in self.missing_items)
            ]
        }


class ReservationNotFound(ObjectNotFoundError):
    """No held reservation exists for the given identifier."""


class ReservationExpired(InvalidOperationError):
    """The reservation passed its expiry before it could be committed."""


# ---------------------------------------------------------------------------
# Fulfillment
# ---------------------------------------------------------------------------
class InvalidTransition(ValidationError):
    """The fulfillment record's current state does not allow the requested step."""

    def __init__(self, from_state: str, attempted: str):
        self.from_state = from_state
        self.attempted = attempted
        super().__init__({"status": [f"Cannot transition from {from_state} to {attempted}"]})


class ConcurrentModification(InvalidOperationError):
    """The record changed between read and write; refetch and retry."""

    def __init__(self, entity_id: str, expected: int, actual: int):
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Record {entity_id} is at revision {actual}, expected {expected}")


class FulfillmentNotFound(ObjectNotFoundError):
    """No fulfillment record matches the identifier."""


class OrderNotEligible(ValidationError):
    """The order is not in a state that can be handed to the warehouse."""


class DuplicateFulfillment(ValidationError):
    """The order already has an active fulfillment record."""


class StaffNotAuthorized(InvalidOperationError):
    """The staff member lacks the capability for this warehouse step."""


# ---------------------------------------------------------------------------
# Pricing and shipping
# ---------------------------------------------------------------------------
class PricingPolicyViolation(Exception):
    """A pricing invariant was breached. Indicates a bug, never clamped."""


class QuoteExpired(InvalidOperationError):
    """The price quote is past its validity window."""


class ShippingUnavailable(InvalidOperationError):
    """No carrier service can take the parcel to the destination."""
