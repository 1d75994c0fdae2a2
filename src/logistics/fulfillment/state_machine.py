"""FulfillmentStateMachine — drives FulfillmentRecords through the warehouse.

Each transition runs under the record's lock and follows the same order:
check the state allows it, check the staff member may do it, mutate the
record, then store it with a compare-and-set on ``revision``. The stored
record carries a FulfillmentProgressed event; its handler publishes the
progress update and the audit entry after the write committed, so their
failures never undo a transition.

Transitions that also move stock (label generation commits the order's
reservations, cancellation releases them) write the record in the same
unit of work as the ledger.
"""

from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from logistics.collaborators.catalog import CatalogPort
from logistics.collaborators.orders import OrderSourcePort
from logistics.collaborators.staff import Capability, StaffDirectoryPort
from logistics.errors import (
    ConcurrentModification,
    DuplicateFulfillment,
    FulfillmentNotFound,
    OrderNotEligible,
    OutOfStock,
    PartialReservationFailure,
    ShippingUnavailable,
    StaffNotAuthorized,
)
from logistics.fulfillment.record import (
    FulfillmentPriority,
    FulfillmentRecord,
    FulfillmentState,
)
from logistics.network.warehouse import Warehouse
from logistics.picking.optimizer import PickingOptimizer, PickingPlan
from logistics.reservation.coordinator import ReservationCoordinator, merge_lines
from logistics.shipping.port import Destination, ParcelItem, ShippingEstimator, Urgency
from logistics.utils.locking import KeyedLock
from logistics.utils.time import Clock, utc_now

logger = structlog.get_logger(__name__)

class FulfillmentStateMachine:
    def __init__(
        self,
        coordinator: ReservationCoordinator,
        optimizer: PickingOptimizer,
        shipping: ShippingEstimator,
        catalog: CatalogPort,
        orders: OrderSourcePort,
        staff: StaffDirectoryPort,
        clock: Clock = utc_now,
        locks: KeyedLock | None = None,
    ):
        self.coordinator = coordinator
        self.optimizer = optimizer
        self.shipping = shipping
        self.catalog = catalog
        self.orders = orders
        self.staff = staff
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLock()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @staticmethod
    def _repo():
        return current_domain.repository_for(FulfillmentRecord)

    def get(self, fulfillment_id: str) -> FulfillmentRecord:
        try:
            return self._repo().get(fulfillment_id)
        except ObjectNotFoundError:
            raise FulfillmentNotFound(f"Fulfillment {fulfillment_id} does not exist")

    def find_by_order(self, order_id: str) -> list[FulfillmentRecord]:
        return sorted(self._repo().for_order(order_id), key=lambda r: r.created_at)

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def assign(
        self,
        order_id: str,
        warehouse_id: str,
        staff_id: str,
        priority: str | FulfillmentPriority = FulfillmentPriority.NORMAL,
    ) -> tuple[FulfillmentRecord, PickingPlan]:
        """Hand an order to a warehouse with all of its stock reserved.

        Either the record exists and every line is held at ``warehouse_id``,
        or the call fails and nothing was created or reserved.
        """
        priority = self._priority(priority)
        with self.locks.hold(("order", order_id)):
            self._authorize(staff_id, Capability.ASSIGN, warehouse_id)
            try:
                current_domain.repository_for(Warehouse).get(warehouse_id)
            except ObjectNotFoundError:
                raise ObjectNotFoundError(f"Warehouse {warehouse_id} does not exist")

            order = self.orders.get_order(order_id)
            if not order.is_fulfillable():
                raise OrderNotEligible({"order_id": [f"Order {order_id} is {order.status}, not ready for fulfillment"]})
            lines = merge_lines(order.lines)
            if not lines:
                raise OrderNotEligible({"order_id": [f"Order {order_id} has no line items"]})

            active = [r for r in self._repo().for_order(order_id) if r.status != FulfillmentState.CANCELLED.value]
            if active:
                raise DuplicateFulfillment(
                    {"order_id": [f"Order {order_id} already has fulfillment {active[0].id} ({active[0].status})"]}
                )

            missing = self.coordinator.shortfalls(lines, warehouse_id, order_id=order_id)
            if missing:
                first = missing[0]
                failed = OutOfStock(
                    first["product_id"],
                    warehouse_id,
                    first["requested"],
                    first["available"],
                    alternatives=self.coordinator.alternatives_for(missing, warehouse_id),
                )
                logger.warning(
                    "Assignment rejected, warehouse short",
                    order_id=order_id,
                    warehouse_id=warehouse_id,
                    missing=[m["product_id"] for m in missing],
                )
                raise PartialReservationFailure(order_id, failed, missing)

            plan = self.optimizer.optimize(lines, warehouse_id)
            now = self.clock()
            record = FulfillmentRecord.create(
                order_id=order_id,
                warehouse_id=warehouse_id,
                lines_data=[
                    {"product_id": line.product_id, "sku": self._sku(line.product_id), "quantity": line.quantity}
                    for line in lines
                ],
                plan=plan,
                now=now,
            )
            record.assign(staff_id, priority.value, now)

            _, fresh = self.coordinator.ensure_order_reserved(order_id, lines, warehouse_id)
            try:
                record.revision = 1
                record.announce(staff_id, "fulfillment.assigned", now, {"priority": priority.value})
                self._repo().add(record)
            except Exception:
                logger.error("Fulfillment record not saved, releasing reservations", order_id=order_id)
                self.coordinator.ledger.release_many([str(r.id) for r in fresh])
                raise

        logger.info(
            "Fulfillment assigned",
            fulfillment_id=str(record.id),
            order_id=order_id,
            warehouse_id=warehouse_id,
            zones=plan.zone_route,
            fallback=plan.is_fallback,
        )
        return record, plan

    # -------------------------------------------------------------------
    # Picking
    # -------------------------------------------------------------------
    def start_picking(self, fulfillment_id: str, staff_id: str, expected_revision: int | None = None):
        with self._editing(fulfillment_id, expected_revision) as record:
            record.require_status(FulfillmentState.PICKING, FulfillmentState.ASSIGNED)
            self._authorize(staff_id, Capability.PICK, record.warehouse_id)
            record.start_picking(staff_id, self.clock())
            self._store(record, staff_id, "fulfillment.picking_started")
        return record

    def complete_picking(
        self,
        picking_task_id: str,
        picked_items: list[dict],
        quality_issues: Iterable[str] = (),
        staff_id: str | None = None,
        expected_revision: int | None = None,
    ) -> tuple[FulfillmentRecord, list[str]]:
        """Record what the picker brought back.

        Returns the record and the discrepancies found; any discrepancy or
        quality issue routes the record through a quality check.
        """
        quality_issues = [issue for issue in quality_issues if issue]
        task_owner = self._repo().by_picking_task(picking_task_id)
        if task_owner is None:
            raise FulfillmentNotFound(f"No fulfillment for picking task {picking_task_id}")

        with self._editing(str(task_owner.id), expected_revision) as record:
            record.require_status(FulfillmentState.PICKED, FulfillmentState.PICKING)
            actor = staff_id or record.assigned_staff_id
            self._authorize(actor, Capability.PICK, record.warehouse_id)
            discrepancies = record.complete_picking(picked_items, quality_issues, self.clock())
            self._store(
                record,
                actor,
                "fulfillment.picking_completed",
                {"discrepancies": discrepancies, "quality_issues": quality_issues},
                notes=discrepancies,
            )

        if discrepancies:
            logger.warning(
                "Picking discrepancies found",
                fulfillment_id=str(record.id),
                order_id=str(record.order_id),
                discrepancies=discrepancies,
            )
        return record, discrepancies

    # -------------------------------------------------------------------
    # Quality check and packing
    # -------------------------------------------------------------------
    def complete_quality_check(
        self,
        fulfillment_id: str,
        passed: bool,
        notes: str | None,
        staff_id: str,
        expected_revision: int | None = None,
    ):
        with self._editing(fulfillment_id, expected_revision) as record:
            target = FulfillmentState.PACKING if passed else FulfillmentState.PICKING
            record.require_status(target, FulfillmentState.PICKED)
            self._authorize(staff_id, Capability.QUALITY_CHECK, record.warehouse_id)
            record.complete_quality_check(passed, notes, staff_id, self.clock())
            self._store(
                record, staff_id, "fulfillment.quality_checked", {"passed": passed, "notes": notes}, notes=[notes]
            )
        return record

    def complete_packing(
        self,
        fulfillment_id: str,
        staff_id: str,
        package_count: int = 1,
        expected_revision: int | None = None,
    ):
        with self._editing(fulfillment_id, expected_revision) as record:
            record.assert_can_transition(FulfillmentState.PACKED)
            self._authorize(staff_id, Capability.PACK, record.warehouse_id)
            record.complete_packing(staff_id, package_count, self.clock())
            self._store(record, staff_id, "fulfillment.packed", {"package_count": package_count})
        return record

    # -------------------------------------------------------------------
    # Shipping
    # -------------------------------------------------------------------
    def arrange_shipping(
        self,
        fulfillment_id: str,
        destination: Destination,
        urgency: str | Urgency,
        staff_id: str,
        expected_revision: int | None = None,
    ):
        """Ask the shipping estimator for a carrier; PACKED → SHIPPING.

        ShippingUnavailable propagates and the record stays PACKED.
        """
        urgency = self._urgency(urgency)
        with self._editing(fulfillment_id, expected_revision) as record:
            record.assert_can_transition(FulfillmentState.SHIPPING)
            self._authorize(staff_id, Capability.SHIP, record.warehouse_id)
            items = self._parcel_items(record)
            try:
                quote = self.shipping.estimate(items, str(record.warehouse_id), destination, urgency)
            except ShippingUnavailable:
                logger.warning(
                    "No carrier for parcel, record stays packed",
                    fulfillment_id=str(record.id),
                    warehouse_id=str(record.warehouse_id),
                    country=destination.country,
                    urgency=urgency.value,
                )
                raise
            record.arrange_shipping(quote, self.clock())
            self._store(record, staff_id, "fulfillment.shipping_arranged", quote.to_dict())
        return record

    def generate_shipping_label(
        self,
        fulfillment_id: str,
        carrier: str,
        service_level: str,
        tracking_number: str,
        estimated_delivery: datetime | None,
        staff_id: str,
        expected_revision: int | None = None,
    ):
        """Mark the parcel shipped and commit the order's reservations.

        The reservation commit and the record write share one unit of
        work; if either fails the record stays where it was.
        """
        with self._editing(fulfillment_id, expected_revision) as record:
            record.assert_can_transition(FulfillmentState.SHIPPED)
            self._authorize(staff_id, Capability.SHIP, record.warehouse_id)
            record.dispatch(carrier, service_level, tracking_number, estimated_delivery, self.clock())
            self._claim(record)
            record.announce(
                staff_id,
                "fulfillment.shipped",
                self.clock(),
                {"carrier": carrier, "service_level": service_level, "tracking_number": tracking_number},
            )
            committed = self.coordinator.commit_order(
                str(record.order_id), str(record.warehouse_id), persist_with=[record]
            )
        logger.info(
            "Shipping label generated",
            fulfillment_id=str(record.id),
            tracking_number=tracking_number,
            committed=len(committed),
        )
        return record

    # -------------------------------------------------------------------
    # After shipment
    # -------------------------------------------------------------------
    def confirm_delivery(self, fulfillment_id: str, staff_id: str, expected_revision: int | None = None):
        with self._editing(fulfillment_id, expected_revision) as record:
            record.assert_can_transition(FulfillmentState.DELIVERED)
            self._authorize(staff_id, Capability.DELIVER, record.warehouse_id)
            record.confirm_delivery(self.clock())
            self._store(record, staff_id, "fulfillment.delivered")
        return record

    def record_return(
        self,
        fulfillment_id: str,
        reason: str | None,
        staff_id: str,
        expected_revision: int | None = None,
    ):
        with self._editing(fulfillment_id, expected_revision) as record:
            record.assert_can_transition(FulfillmentState.RETURNED)
            self._authorize(staff_id, Capability.RETURN, record.warehouse_id)
            record.record_return(reason, self.clock())
            self._store(record, staff_id, "fulfillment.returned", {"reason": reason})
        return record

    def cancel(self, fulfillment_id: str, reason: str, staff_id: str, expected_revision: int | None = None):
        """Stop a fulfillment before shipment and release its held stock."""
        with self._editing(fulfillment_id, expected_revision) as record:
            record.assert_can_transition(FulfillmentState.CANCELLED)
            self._authorize(staff_id, Capability.CANCEL, record.warehouse_id)
            previous = record.status
            record.cancel(reason, self.clock())
            self._claim(record)
            record.announce(
                staff_id, "fulfillment.cancelled", self.clock(), {"reason": reason, "previous_status": previous}
            )
            released = self.coordinator.release_order(str(record.order_id), persist_with=[record])
        logger.info(
            "Fulfillment cancelled",
            fulfillment_id=str(record.id),
            previous_status=previous,
            released=len(released),
        )
        return record

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    @contextmanager
    def _editing(self, fulfillment_id: str, expected_revision: int | None):
        """Lock the record, load it and check the caller's revision."""
        with self.locks.hold(("fulfillment", str(fulfillment_id))):
            record = self.get(fulfillment_id)
            if expected_revision is not None and expected_revision != record.revision:
                raise ConcurrentModification(str(record.id), expected_revision, record.revision)
            yield record

    def _claim(self, record: FulfillmentRecord) -> None:
        """Compare-and-set on the stored revision, then bump it."""
        stored = self.get(str(record.id)).revision
        if stored != record.revision:
            raise ConcurrentModification(str(record.id), record.revision, stored)
        record.revision = stored + 1

    def _store(
        self,
        record: FulfillmentRecord,
        actor: str | None,
        action: str,
        details: dict | None = None,
        notes: list[str] | None = None,
    ) -> None:
        self._claim(record)
        record.announce(actor, action, self.clock(), details, notes)
        self._repo().add(record)

    def _authorize(self, staff_id: str | None, capability: Capability, warehouse_id: str) -> None:
        if not staff_id or not self.staff.check_staff_permission(staff_id, capability, str(warehouse_id)):
            logger.warning(
                "Staff not authorized",
                staff_id=staff_id,
                capability=capability.value,
                warehouse_id=str(warehouse_id),
            )
            raise StaffNotAuthorized(f"Staff {staff_id} may not {capability.value} at {warehouse_id}")

    @staticmethod
    def _priority(priority) -> FulfillmentPriority:
        if isinstance(priority, FulfillmentPriority):
            return priority
        try:
            return FulfillmentPriority(str(priority).capitalize())
        except ValueError:
            raise ValidationError({"priority": [f"Unknown priority {priority}"]})

    @staticmethod
    def _urgency(urgency) -> Urgency:
        if isinstance(urgency, Urgency):
            return urgency
        try:
            return Urgency(str(urgency).capitalize())
        except ValueError:
            raise ValidationError({"urgency": [f"Unknown urgency {urgency}"]})

    def _sku(self, product_id: str) -> str:
        try:
            return self.catalog.get_product(product_id).sku
        except ObjectNotFoundError:
            return product_id

    def _parcel_items(self, record: FulfillmentRecord) -> list[ParcelItem]:
        items = []
        for line in record.lines:
            try:
                product = self.catalog.get_product(str(line.product_id))
            except ObjectNotFoundError:
                raise ShippingUnavailable(f"No shipping data for product {line.product_id}")
            items.append(
                ParcelItem(
                    product_id=product.product_id,
                    quantity=line.quantity,
                    weight=product.weight,
                    length=product.length,
                    width=product.width,
                    height=product.height,
                    hazardous=product.hazardous,
                )
            )
        return items

