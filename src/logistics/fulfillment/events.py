"""Fulfillment domain events — immutable facts about a record's progress.

All events are past tense, versioned, and name the fulfillment and the
order so readers can follow either.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from logistics.domain import logistics


@logistics.event(part_of="FulfillmentRecord")
class FulfillmentAssigned:
    """An order was handed to a warehouse with its stock reserved."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    assigned_staff_id = Identifier(required=True)
    priority = String(required=True)
    line_count = Integer(required=True)
    zone_route = Text()
    assigned_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class PickingStarted:
    """A picker began walking the route."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    picking_task_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    started_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class PickingCompleted:
    """Picking finished; discrepancies decide whether a quality check follows."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    discrepancy_count = Integer(required=True)
    quality_issue_count = Integer(required=True)
    quality_check_required = Boolean(required=True)
    completed_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class QualityCheckCompleted:
    """Picked goods were inspected."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    passed = Boolean(required=True)
    notes = Text()
    checked_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class PackingCompleted:
    """Goods were packed and are ready for a carrier."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    package_count = Integer(required=True)
    packed_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class ShippingArranged:
    """A carrier service was selected for the parcel."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    carrier = String(required=True)
    service_level = String(required=True)
    cost = Float(required=True)
    currency = String(required=True)
    estimated_delivery = DateTime()
    arranged_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class ShipmentDispatched:
    """The label was generated and the parcel left the warehouse."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    carrier = String(required=True)
    tracking_number = String(required=True)
    estimated_delivery = DateTime()
    shipped_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class DeliveryConfirmed:
    """The carrier reported the parcel delivered."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class FulfillmentReturned:
    """The parcel came back."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String()
    returned_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class FulfillmentCancelled:
    """The fulfillment stopped before shipment and its stock was released."""

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@logistics.event(part_of="FulfillmentRecord")
class FulfillmentProgressed:
    """A transition was stored; carries what the progress feed and audit log need.

    ``details`` and ``notes`` are JSON (an object and a list of strings).
    """

    __version__ = 1

    fulfillment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    actor = String(required=True)
    action = String(required=True, max_length=50)
    status = String(required=True)
    step = String()
    progress_percent = Integer(required=True)
    estimated_completion = DateTime()
    revision = Integer(required=True)
    details = Text()
    notes = Text()
    occurred_at = DateTime(required=True)
