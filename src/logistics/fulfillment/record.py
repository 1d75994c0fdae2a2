"""FulfillmentRecord aggregate (CQRS) — one order's trip through the warehouse.

State Machine:
    PENDING → ASSIGNED → PICKING → {PICKED | PACKING}
    PICKED → PACKING            (quality check passed)
    PICKED → PICKING            (quality check failed, re-pick)
    PACKING → PACKED → SHIPPING → SHIPPED → DELIVERED → RETURNED
    PACKED → SHIPPED            (label generated with carrier data in hand)
    SHIPPED → RETURNED
    {PENDING … SHIPPING} → CANCELLED

Every transition method checks the table before touching any field, so an
illegal call leaves the record exactly as it was.
"""

import json
from datetime import datetime, timedelta
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from logistics.domain import logistics
from logistics.errors import InvalidTransition
from logistics.fulfillment.events import (
    DeliveryConfirmed,
    FulfillmentAssigned,
    FulfillmentCancelled,
    FulfillmentProgressed,
    FulfillmentReturned,
    PackingCompleted,
    PickingCompleted,
    PickingStarted,
    QualityCheckCompleted,
    ShipmentDispatched,
    ShippingArranged,
)
from logistics.utils.state import validate_transitions
from logistics.utils.time import as_utc


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class FulfillmentState(Enum):
    PENDING = "Pending"
    ASSIGNED = "Assigned"
    PICKING = "Picking"
    PICKED = "Picked"
    PACKING = "Packing"
    PACKED = "Packed"
    SHIPPING = "Shipping"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"


class StepType(Enum):
    PICKING = "Picking"
    QUALITY_CHECK = "Quality_Check"
    PACKING = "Packing"
    SHIPPING = "Shipping"


class StepStatus(Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In_Progress"
    COMPLETED = "Completed"
    SKIPPED = "Skipped"
    CANCELLED = "Cancelled"


class FulfillmentPriority(Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"
    EMERGENCY = "Emergency"


class ItemCondition(Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    MISSING = "missing"


def read_condition(raw) -> tuple[ItemCondition, str]:
    """Map a picker's condition report to an ItemCondition and the text to show.

    Blank means good. Free text that is not a known condition ('scratched',
    'Damaged-box') counts as damage and keeps its own wording.
    """
    text = str(raw or "").strip() or ItemCondition.GOOD.value
    try:
        condition = ItemCondition(text.lower())
    except ValueError:
        return ItemCondition.DAMAGED, text
    return condition, condition.value


_PRE_SHIPMENT = (
    FulfillmentState.PENDING,
    FulfillmentState.ASSIGNED,
    FulfillmentState.PICKING,
    FulfillmentState.PICKED,
    FulfillmentState.PACKING,
    FulfillmentState.PACKED,
    FulfillmentState.SHIPPING,
)

_TRANSITIONS = validate_transitions(
    FulfillmentState,
    {
        FulfillmentState.PENDING: {FulfillmentState.ASSIGNED, FulfillmentState.CANCELLED},
        FulfillmentState.ASSIGNED: {FulfillmentState.PICKING, FulfillmentState.CANCELLED},
        FulfillmentState.PICKING: {FulfillmentState.PICKED, FulfillmentState.PACKING, FulfillmentState.CANCELLED},
        FulfillmentState.PICKED: {FulfillmentState.PACKING, FulfillmentState.PICKING, FulfillmentState.CANCELLED},
        FulfillmentState.PACKING: {FulfillmentState.PACKED, FulfillmentState.CANCELLED},
        FulfillmentState.PACKED: {FulfillmentState.SHIPPING, FulfillmentState.SHIPPED, FulfillmentState.CANCELLED},
        FulfillmentState.SHIPPING: {FulfillmentState.SHIPPED, FulfillmentState.CANCELLED},
        FulfillmentState.SHIPPED: {FulfillmentState.DELIVERED, FulfillmentState.RETURNED},
        FulfillmentState.DELIVERED: {FulfillmentState.RETURNED},
        FulfillmentState.CANCELLED: set(),  # terminal
        FulfillmentState.RETURNED: set(),  # terminal
    },
    terminal=(FulfillmentState.CANCELLED, FulfillmentState.RETURNED),
    required=[(state, FulfillmentState.CANCELLED) for state in _PRE_SHIPMENT],
)

PROGRESS_PERCENT = {
    FulfillmentState.PENDING: 0,
    FulfillmentState.ASSIGNED: 10,
    FulfillmentState.PICKING: 25,
    FulfillmentState.PICKED: 50,
    FulfillmentState.PACKING: 60,
    FulfillmentState.PACKED: 75,
    FulfillmentState.SHIPPING: 85,
    FulfillmentState.SHIPPED: 90,
    FulfillmentState.DELIVERED: 100,
    FulfillmentState.RETURNED: 100,
    FulfillmentState.CANCELLED: 0,
}

# Minutes per step; picking comes from the route plan
STEP_ESTIMATES = {
    StepType.QUALITY_CHECK: 15,
    StepType.PACKING: 20,
    StepType.SHIPPING: 10,
}

_STEP_ORDER = (StepType.PICKING, StepType.QUALITY_CHECK, StepType.PACKING, StepType.SHIPPING)
_OPEN_STEP_STATUSES = (StepStatus.PENDING.value, StepStatus.IN_PROGRESS.value)


def transitions_from(state: FulfillmentState) -> frozenset:
    return _TRANSITIONS[state]


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@logistics.value_object(part_of="FulfillmentRecord")
class RouteSummary:
    """Totals of the picking plan computed at assignment."""

    estimated_minutes = Integer(min_value=0)
    walking_distance_m = Float(min_value=0.0)
    efficiency_score = Float(min_value=0.0, max_value=100.0)
    is_fallback = Boolean(default=False)


@logistics.value_object(part_of="FulfillmentRecord")
class ShippingInfo:
    """Carrier details, filled in when shipping is arranged or the label is generated."""

    carrier = String(max_length=100)
    service_level = String(max_length=100)
    tracking_number = String(max_length=100)
    estimated_delivery = DateTime()
    cost = Float()
    currency = String(max_length=3)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@logistics.entity(part_of="FulfillmentRecord")
class FulfillmentLine:
    """An ordered product and what the picker actually brought back."""

    product_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    picked_quantity = Integer(default=0, min_value=0)
    condition = String(max_length=20, choices=ItemCondition)
    discrepancy = String(max_length=255)


@logistics.entity(part_of="FulfillmentRecord")
class FulfillmentStep:
    step_type = String(required=True, choices=StepType)
    sequence = Integer(required=True, min_value=1)
    status = String(choices=StepStatus, default=StepStatus.PENDING.value)
    staff_id = Identifier()
    started_at = DateTime()
    completed_at = DateTime()
    estimated_minutes = Integer(default=0, min_value=0)
    actual_minutes = Integer(min_value=0)
    notes = Text()

    def begin(self, now: datetime, staff_id: str | None = None) -> None:
        self.status = StepStatus.IN_PROGRESS.value
        self.started_at = now
        self.completed_at = None
        if staff_id:
            self.staff_id = staff_id

    def finish(self, now: datetime, notes: str | None = None) -> None:
        started = as_utc(self.started_at) if self.started_at else as_utc(now)
        self.status = StepStatus.COMPLETED.value
        self.completed_at = now
        self.actual_minutes = max(0, int((as_utc(now) - started).total_seconds() // 60))
        if notes:
            self.notes = notes


@logistics.entity(part_of="FulfillmentRecord")
class PickLine:
    """One stop on the picking route."""

    zone = String(required=True, max_length=50)
    zone_sequence = Integer(required=True, min_value=0)
    sequence = Integer(required=True, min_value=0)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    bin_location = String(max_length=100)
    aisle = String(max_length=20)
    shelf = String(max_length=20)
    priority = Integer(default=0)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@logistics.aggregate
class FulfillmentRecord:
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    status = String(
        choices=FulfillmentState,
        default=FulfillmentState.PENDING.value,
    )
    priority = String(choices=FulfillmentPriority, default=FulfillmentPriority.NORMAL.value)
    assigned_staff_id = Identifier()
    revision = Integer(default=0, min_value=0)
    lines = HasMany(FulfillmentLine)
    steps = HasMany(FulfillmentStep)
    pick_lines = HasMany(PickLine)
    route = ValueObject(RouteSummary)
    shipping = ValueObject(ShippingInfo)
    picking_task_id = Identifier()
    package_count = Integer(min_value=0)
    estimated_completion = DateTime()
    cancellation_reason = String(max_length=500)
    return_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, order_id: str, warehouse_id: str, lines_data: list[dict], plan, now: datetime):
        """Build a PENDING record with its four steps and the picking route.

        ``plan`` is a PickingPlan; its zones become PickLine rows.
        """
        if not lines_data:
            raise ValidationError({"lines": ["A fulfillment needs at least one line"]})

        record = cls(
            order_id=order_id,
            warehouse_id=warehouse_id,
            status=FulfillmentState.PENDING.value,
            route=RouteSummary(
                estimated_minutes=plan.estimated_minutes,
                walking_distance_m=plan.walking_distance_m,
                efficiency_score=plan.efficiency_score,
                is_fallback=plan.is_fallback,
            ),
            created_at=now,
            updated_at=now,
        )
        for line in lines_data:
            record.add_lines(FulfillmentLine(**line))

        picking_step_id = str(uuid4())
        for sequence, step_type in enumerate(_STEP_ORDER, start=1):
            estimate = plan.estimated_minutes if step_type == StepType.PICKING else STEP_ESTIMATES[step_type]
            record.add_steps(
                FulfillmentStep(
                    id=picking_step_id if step_type == StepType.PICKING else str(uuid4()),
                    step_type=step_type.value,
                    sequence=sequence,
                    estimated_minutes=estimate,
                )
            )
        record.picking_task_id = picking_step_id

        for zone_sequence, zone in enumerate(plan.zones):
            for sequence, pick in enumerate(zone.picks):
                record.add_pick_lines(
                    PickLine(
                        zone=zone.zone,
                        zone_sequence=zone_sequence,
                        sequence=sequence,
                        product_id=pick.product_id,
                        quantity=pick.quantity,
                        bin_location=pick.bin_location,
                        aisle=pick.aisle,
                        shelf=pick.shelf,
                        priority=pick.priority,
                    )
                )
        return record

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def fulfillment_state(self) -> FulfillmentState:
        return FulfillmentState(self.status)

    def ordered_steps(self) -> list:
        return sorted(self.steps or [], key=lambda s: s.sequence)

    def ordered_pick_lines(self) -> list:
        return sorted(self.pick_lines or [], key=lambda p: (p.zone_sequence, p.sequence))

    def zone_route(self) -> list[str]:
        route = []
        for pick in self.ordered_pick_lines():
            if not route or route[-1] != pick.zone:
                route.append(pick.zone)
        return route

    def step(self, step_type: StepType):
        return next(s for s in self.steps or [] if s.step_type == step_type.value)

    def current_step(self):
        """The step being worked on, else the next one waiting."""
        steps = self.ordered_steps()
        active = next((s for s in steps if s.status == StepStatus.IN_PROGRESS.value), None)
        return active or next((s for s in steps if s.status == StepStatus.PENDING.value), None)

    def progress_percent(self) -> int:
        return PROGRESS_PERCENT[self.fulfillment_state]

    def remaining_minutes(self) -> int:
        return sum(s.estimated_minutes or 0 for s in self.steps or [] if s.status in _OPEN_STEP_STATUSES)

    def line_for(self, product_id: str):
        return next((line for line in self.lines or [] if str(line.product_id) == str(product_id)), None)

    def discrepancies(self) -> list[str]:
        return [line.discrepancy for line in self.lines or [] if line.discrepancy]

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def assert_can_transition(self, *targets: FulfillmentState) -> None:
        """Raise InvalidTransition unless one of ``targets`` is reachable from here."""
        allowed = _TRANSITIONS[self.fulfillment_state]
        if not any(target in allowed for target in targets):
            raise InvalidTransition(self.fulfillment_state.value, "/".join(t.value for t in targets))

    def require_status(self, attempted: FulfillmentState, *allowed: FulfillmentState) -> None:
        """Raise InvalidTransition unless the record is in one of ``allowed``."""
        if self.fulfillment_state not in allowed:
            raise InvalidTransition(self.fulfillment_state.value, attempted.value)

    def _move_to(self, target: FulfillmentState, now: datetime) -> None:
        self.assert_can_transition(target)
        self.status = target.value
        self.updated_at = now
        if target in (FulfillmentState.DELIVERED, FulfillmentState.RETURNED, FulfillmentState.CANCELLED):
            self.estimated_completion = None
        else:
            self.estimated_completion = now + timedelta(minutes=self.remaining_minutes())

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def assign(self, staff_id: str, priority: str, now: datetime) -> None:
        self.assert_can_transition(FulfillmentState.ASSIGNED)
        self.assigned_staff_id = staff_id
        self.priority = priority
        self._move_to(FulfillmentState.ASSIGNED, now)
        self.raise_(
            FulfillmentAssigned(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                warehouse_id=str(self.warehouse_id),
                assigned_staff_id=staff_id,
                priority=priority,
                line_count=len(self.lines or []),
                zone_route=",".join(self.zone_route()),
                assigned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Picking
    # -------------------------------------------------------------------
    def start_picking(self, staff_id: str, now: datetime) -> None:
        self.require_status(FulfillmentState.PICKING, FulfillmentState.ASSIGNED)
        self.step(StepType.PICKING).begin(now, staff_id)
        self._move_to(FulfillmentState.PICKING, now)
        self.raise_(
            PickingStarted(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                picking_task_id=str(self.picking_task_id),
                staff_id=staff_id,
                started_at=now,
            )
        )

    def complete_picking(self, picked_items: list[dict], quality_issues: list[str], now: datetime) -> list[str]:
        """Compare what was picked with what was ordered.

        ``picked_items`` holds ``product_id``, ``quantity_picked`` and an
        optional ``condition`` (defaults to good). Any shortfall, surplus,
        unexpected product or non-good condition is a discrepancy; with
        discrepancies or quality issues the record goes to PICKED for a
        quality check, otherwise straight to PACKING. Returns the
        discrepancies.
        """
        self.require_status(FulfillmentState.PICKED, FulfillmentState.PICKING)

        picked: dict[str, dict] = {}
        for item in picked_items:
            product_id = str(item["product_id"])
            condition, label = read_condition(item.get("condition"))
            entry = picked.setdefault(
                product_id, {"quantity": 0, "condition": ItemCondition.GOOD, "label": ItemCondition.GOOD.value}
            )
            entry["quantity"] += int(item.get("quantity_picked", 0))
            if condition != ItemCondition.GOOD:
                entry["condition"] = condition
                entry["label"] = label

        findings: dict[str, str] = {}
        for line in self.lines or []:
            product_id = str(line.product_id)
            entry = picked.get(product_id)
            if entry is None:
                findings[product_id] = f"{product_id}: not picked"
                continue
            problems = []
            if entry["quantity"] != line.quantity:
                problems.append(f"picked {entry['quantity']} of {line.quantity}")
            if entry["condition"] != ItemCondition.GOOD:
                problems.append(f"condition {entry['label']}")
            if problems:
                findings[product_id] = f"{product_id}: " + ", ".join(problems)
        unexpected = [pid for pid in picked if self.line_for(pid) is None]

        discrepancies = list(findings.values()) + [f"{pid}: not on the order" for pid in unexpected]
        issues = [issue for issue in quality_issues or [] if issue]
        needs_check = bool(discrepancies or issues)
        target = FulfillmentState.PICKED if needs_check else FulfillmentState.PACKING

        for line in self.lines or []:
            entry = picked.get(str(line.product_id))
            line.picked_quantity = entry["quantity"] if entry else 0
            line.condition = entry["condition"].value if entry else ItemCondition.MISSING.value
            line.discrepancy = findings.get(str(line.product_id))

        self.step(StepType.PICKING).finish(now, "; ".join(discrepancies + issues)[:1000] or None)
        if needs_check:
            self.step(StepType.QUALITY_CHECK).begin(now)
        else:
            self.step(StepType.QUALITY_CHECK).status = StepStatus.SKIPPED.value
            self.step(StepType.PACKING).begin(now)
        self._move_to(target, now)

        self.raise_(
            PickingCompleted(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                discrepancy_count=len(discrepancies),
                quality_issue_count=len(issues),
                quality_check_required=needs_check,
                completed_at=now,
            )
        )
        return discrepancies

    # -------------------------------------------------------------------
    # Quality check
    # -------------------------------------------------------------------
    def complete_quality_check(self, passed: bool, notes: str | None, staff_id: str, now: datetime) -> None:
        target = FulfillmentState.PACKING if passed else FulfillmentState.PICKING
        self.require_status(target, FulfillmentState.PICKED)

        check = self.step(StepType.QUALITY_CHECK)
        check.staff_id = staff_id
        if passed:
            check.finish(now, notes)
            self.step(StepType.PACKING).begin(now)
        else:
            # Back to the shelves: the check waits for the next pick
            check.status = StepStatus.PENDING.value
            check.notes = notes
            self.step(StepType.PICKING).begin(now)
            for line in self.lines or []:
                line.picked_quantity = 0
                line.condition = None
                line.discrepancy = None
        self._move_to(target, now)
        self.raise_(
            QualityCheckCompleted(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                passed=passed,
                notes=notes,
                checked_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Packing
    # -------------------------------------------------------------------
    def complete_packing(self, staff_id: str, package_count: int, now: datetime) -> None:
        self.assert_can_transition(FulfillmentState.PACKED)
        if package_count is None or package_count < 1:
            raise ValidationError({"package_count": ["At least one package is required"]})
        packing = self.step(StepType.PACKING)
        packing.staff_id = staff_id
        packing.finish(now)
        self.package_count = package_count
        self._move_to(FulfillmentState.PACKED, now)
        self.raise_(
            PackingCompleted(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                package_count=package_count,
                packed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Shipping
    # -------------------------------------------------------------------
    def arrange_shipping(self, quote, now: datetime) -> None:
        """Record the carrier service picked by the estimator. ``quote`` is a ShippingQuote."""
        self.assert_can_transition(FulfillmentState.SHIPPING)
        self.step(StepType.SHIPPING).begin(now)
        self.shipping = ShippingInfo(
            carrier=quote.carrier,
            service_level=quote.service,
            tracking_number=quote.tracking_number,
            estimated_delivery=quote.estimated_delivery,
            cost=quote.cost,
            currency=quote.currency,
        )
        self._move_to(FulfillmentState.SHIPPING, now)
        self.raise_(
            ShippingArranged(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                carrier=quote.carrier,
                service_level=quote.service,
                cost=quote.cost,
                currency=quote.currency,
                estimated_delivery=quote.estimated_delivery,
                arranged_at=now,
            )
        )

    def dispatch(
        self,
        carrier: str,
        service_level: str,
        tracking_number: str,
        estimated_delivery: datetime | None,
        now: datetime,
    ) -> None:
        """The shipping label exists and the parcel left the building."""
        self.assert_can_transition(FulfillmentState.SHIPPED)
        if not tracking_number:
            raise ValidationError({"tracking_number": ["A tracking number is required"]})
        arranged = self.shipping
        shipping_step = self.step(StepType.SHIPPING)
        if shipping_step.status != StepStatus.IN_PROGRESS.value:
            shipping_step.begin(now)
        shipping_step.finish(now)
        self.shipping = ShippingInfo(
            carrier=carrier,
            service_level=service_level,
            tracking_number=tracking_number,
            estimated_delivery=estimated_delivery,
            cost=arranged.cost if arranged else None,
            currency=arranged.currency if arranged else None,
        )
        self._move_to(FulfillmentState.SHIPPED, now)
        self.raise_(
            ShipmentDispatched(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                carrier=carrier,
                tracking_number=tracking_number,
                estimated_delivery=estimated_delivery,
                shipped_at=now,
            )
        )

    # -------------------------------------------------------------------
    # After shipment
    # -------------------------------------------------------------------
    def confirm_delivery(self, now: datetime) -> None:
        self._move_to(FulfillmentState.DELIVERED, now)
        self.raise_(DeliveryConfirmed(fulfillment_id=str(self.id), order_id=str(self.order_id), delivered_at=now))

    def record_return(self, reason: str | None, now: datetime) -> None:
        self.assert_can_transition(FulfillmentState.RETURNED)
        self.return_reason = reason
        self._move_to(FulfillmentState.RETURNED, now)
        self.raise_(
            FulfillmentReturned(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                returned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str, now: datetime) -> None:
        self.assert_can_transition(FulfillmentState.CANCELLED)
        if not reason:
            raise ValidationError({"reason": ["A cancellation reason is required"]})
        previous = self.status
        for step in self.steps or []:
            if step.status in _OPEN_STEP_STATUSES:
                step.status = StepStatus.CANCELLED.value
        self.cancellation_reason = reason
        self._move_to(FulfillmentState.CANCELLED, now)
        self.raise_(
            FulfillmentCancelled(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                reason=reason,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------
    def announce(
        self,
        actor: str | None,
        action: str,
        now: datetime,
        details: dict | None = None,
        notes: list[str] | None = None,
    ) -> None:
        """Record a stored transition for the progress feed and the audit log.

        Raised after ``revision`` is bumped, so the event carries the
        revision the write is about to store.
        """
        step = self.current_step()
        self.raise_(
            FulfillmentProgressed(
                fulfillment_id=str(self.id),
                order_id=str(self.order_id),
                actor=actor or "system",
                action=action,
                status=self.status,
                step=step.step_type if step else None,
                progress_percent=self.progress_percent(),
                estimated_completion=self.estimated_completion,
                revision=self.revision,
                details=json.dumps(details or {}, default=str),
                notes=json.dumps([note for note in notes or [] if note]),
                occurred_at=now,
            )
        )


@logistics.repository(part_of=FulfillmentRecord)
class FulfillmentRecordRepository:
    def for_order(self, order_id) -> list:
        return self._dao.query.filter(order_id=order_id).all().items

    def for_warehouse(self, warehouse_id) -> list:
        return self._dao.query.filter(warehouse_id=warehouse_id).all().items

    def by_picking_task(self, picking_task_id):
        return self._dao.query.filter(picking_task_id=picking_task_id).all().first
