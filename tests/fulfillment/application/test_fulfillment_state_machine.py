"""Application tests for FulfillmentStateMachine: assignment through delivery."""

from datetime import timedelta

import pytest
from logistics.collaborators import delivery_stats
from logistics.collaborators.staff import Capability
from logistics.errors import (
    ConcurrentModification,
    DuplicateFulfillment,
    FulfillmentNotFound,
    InvalidTransition,
    OrderNotEligible,
    PartialReservationFailure,
    ShippingUnavailable,
    StaffNotAuthorized,
)
from logistics.fulfillment.record import FulfillmentRecord, FulfillmentState, StepType
from logistics.fulfillment.state_machine import FulfillmentStateMachine
from logistics.shipping.port import Destination
from logistics.stock.stock import ReservationStatus
from logistics.utils.locking import KeyedLock
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

CHICAGO = Destination(country="US", postal_code="60601", city="Chicago")


def _statuses(services, order_id="ord-001"):
    return [r.status for r in services.ledger.reservations_for_order(order_id)]


def _available(services, product_id, warehouse_id="US"):
    return services.ledger.stock_level(product_id, warehouse_id).available


def _full_pick(record):
    return [{"product_id": str(line.product_id), "quantity_picked": line.quantity} for line in record.lines]


def _ship(machine, record):
    return machine.generate_shipping_label(
        str(record.id), "UPS", "Ground", "1Z999AA10123456784", None, "staff-01"
    )


class TestAssign:
    def test_assign_reserves_every_line(self, services, machine, stocked_order):
        record, plan = machine.assign(stocked_order, "US", "staff-01", priority="high")

        assert record.status == FulfillmentState.ASSIGNED.value
        assert record.priority == "High"
        assert record.revision == 1
        assert plan.zone_route == ["A", "B"]
        assert _statuses(services) == [ReservationStatus.HELD.value] * 2
        assert _available(services, "prod-kb") == 18
        assert _available(services, "prod-mp") == 19

    def test_record_is_stored_with_skus(self, machine, assigned):
        stored = current_domain.repository_for(FulfillmentRecord).get(str(assigned.id))
        assert stored.line_for("prod-kb").sku == "KB-MECH-001"
        assert stored.zone_route() == ["A", "B"]

    def test_assignment_is_announced(self, services, assigned):
        assert services.broadcast.statuses("ord-001") == ["Assigned"]
        assert services.audit.actions_for(str(assigned.id)) == ["fulfillment.assigned"]

    def test_unknown_warehouse(self, machine, stocked_order):
        with pytest.raises(ObjectNotFoundError):
            machine.assign(stocked_order, "MARS", "staff-01")

    def test_unknown_order(self, machine):
        with pytest.raises(ObjectNotFoundError):
            machine.assign("ord-404", "US", "staff-01")

    def test_unpaid_order_is_not_eligible(self, services, machine):
        services.orders.put("ord-002", [("prod-kb", 1)], status="pending")
        with pytest.raises(OrderNotEligible):
            machine.assign("ord-002", "US", "staff-01")

    def test_second_active_fulfillment_is_rejected(self, machine, assigned):
        with pytest.raises(DuplicateFulfillment) as exc_info:
            machine.assign("ord-001", "US", "staff-01")
        assert "order_id" in exc_info.value.messages

    def test_reassign_after_cancellation(self, services, machine, assigned):
        machine.cancel(str(assigned.id), "Wrong warehouse", "staff-01")
        record, _ = machine.assign("ord-001", "US", "staff-02")
        assert record.status == FulfillmentState.ASSIGNED.value
        assert len(machine.find_by_order("ord-001")) == 2

    def test_short_warehouse_creates_nothing(self, services, machine):
        services.ledger.receive_stock("prod-kb", "US", 1)
        services.ledger.receive_stock("prod-kb", "EU", 5)
        services.ledger.receive_stock("prod-mp", "US", 5)
        services.orders.put("ord-003", [("prod-kb", 2), ("prod-mp", 1)])

        with pytest.raises(PartialReservationFailure) as exc_info:
            machine.assign("ord-003", "US", "staff-01")

        assert exc_info.value.missing_items == [
            {"product_id": "prod-kb", "warehouse_id": "US", "requested": 2, "available": 1, "deficit": 1}
        ]
        assert exc_info.value.alternatives[0]["warehouse_id"] == "EU"
        assert machine.find_by_order("ord-003") == []
        assert services.ledger.reservations_for_order("ord-003") == []
        assert _available(services, "prod-mp") == 5

    def test_unknown_priority(self, machine, stocked_order):
        with pytest.raises(ValidationError) as exc_info:
            machine.assign(stocked_order, "US", "staff-01", priority="whenever")
        assert "priority" in exc_info.value.messages

    def test_missing_bins_fall_back_to_general_zone(self, services, machine):
        services.ledger.receive_stock("prod-nb", "US", 5)
        services.orders.put("ord-004", [("prod-nb", 1)])
        record, plan = machine.assign("ord-004", "US", "staff-01")
        assert plan.is_fallback
        assert record.route.is_fallback
        assert record.zone_route() == ["GENERAL"]


class TestAuthorization:
    @pytest.fixture()
    def staff(self, services):
        services.staff.allow_all = False
        services.staff.grant("staff-01", Capability.ASSIGN, Capability.PICK, warehouse_id="US")
        return services.staff

    def test_unauthorized_assignment_reserves_nothing(self, services, machine, stocked_order, staff):
        with pytest.raises(StaffNotAuthorized):
            machine.assign(stocked_order, "US", "staff-02")
        assert services.ledger.reservations_for_order(stocked_order) == []

    def test_grant_is_per_warehouse(self, services, machine, stocked_order, staff):
        services.ledger.receive_stock("prod-kb", "EU", 5)
        services.ledger.receive_stock("prod-mp", "EU", 5)
        with pytest.raises(StaffNotAuthorized):
            machine.assign(stocked_order, "EU", "staff-01")

    def test_unauthorized_step_leaves_the_record(self, machine, assigned, staff):
        with pytest.raises(StaffNotAuthorized):
            machine.start_picking(str(assigned.id), "staff-02")
        assert machine.get(str(assigned.id)).status == FulfillmentState.ASSIGNED.value


class TestPicking:
    def test_start_picking(self, services, machine, picking):
        assert picking.status == FulfillmentState.PICKING.value
        assert picking.revision == 2
        assert services.broadcast.statuses("ord-001") == ["Assigned", "Picking"]

    def test_complete_picking_by_task(self, machine, picking):
        record, discrepancies = machine.complete_picking(str(picking.picking_task_id), _full_pick(picking))
        assert discrepancies == []
        assert record.status == FulfillmentState.PACKING.value

    def test_discrepancies_reach_the_broadcast(self, services, machine, picking):
        record, discrepancies = machine.complete_picking(
            str(picking.picking_task_id), [{"product_id": "prod-kb", "quantity_picked": 2}]
        )
        assert record.status == FulfillmentState.PICKED.value
        assert services.broadcast.messages["ord-001"][-1].notes == discrepancies == ["prod-mp: not picked"]

    def test_failed_check_then_repick(self, machine, picking):
        record, _ = machine.complete_picking(
            str(picking.picking_task_id), [{"product_id": "prod-kb", "quantity_picked": 1}]
        )
        record = machine.complete_quality_check(str(record.id), False, "Short on keyboards", "staff-qc")
        assert record.status == FulfillmentState.PICKING.value

        record, discrepancies = machine.complete_picking(str(record.picking_task_id), _full_pick(record))
        assert discrepancies == []
        assert record.status == FulfillmentState.PACKING.value

    def test_passed_check_goes_to_packing(self, machine, picking):
        record, _ = machine.complete_picking(str(picking.picking_task_id), _full_pick(picking), ["Dented box"])
        record = machine.complete_quality_check(str(record.id), True, "Box replaced", "staff-qc")
        assert record.status == FulfillmentState.PACKING.value

    def test_unknown_picking_task(self, machine):
        with pytest.raises(FulfillmentNotFound):
            machine.complete_picking("task-404", [])

    def test_stale_revision_is_rejected(self, machine, assigned):
        machine.start_picking(str(assigned.id), "staff-01", expected_revision=1)
        with pytest.raises(ConcurrentModification) as exc_info:
            machine.cancel(str(assigned.id), "Stale view", "staff-01", expected_revision=1)
        assert exc_info.value.actual == 2
        assert machine.get(str(assigned.id)).status == FulfillmentState.PICKING.value


class TestShipping:
    def test_arrange_shipping(self, services, machine, packed):
        record = machine.arrange_shipping(str(packed.id), CHICAGO, "express", "staff-01")
        assert record.status == FulfillmentState.SHIPPING.value
        assert record.shipping.carrier == "FakeShip"
        # 10 + 2 * 1.2 + 0.4
        assert record.shipping.cost == 12.8

    def test_no_carrier_keeps_the_record_packed(self, services, machine, packed):
        services.shipping.configure(should_succeed=False)
        with pytest.raises(ShippingUnavailable):
            machine.arrange_shipping(str(packed.id), CHICAGO, "Standard", "staff-01")
        record = machine.get(str(packed.id))
        assert record.status == FulfillmentState.PACKED.value
        assert record.revision == packed.revision

    def test_unknown_urgency(self, machine, packed):
        with pytest.raises(ValidationError) as exc_info:
            machine.arrange_shipping(str(packed.id), CHICAGO, "teleport", "staff-01")
        assert "urgency" in exc_info.value.messages

    def test_product_without_shipping_data(self, services, machine):
        services.ledger.receive_stock("prod-nc", "US", 5)
        services.bins.place("prod-nc", "US", zone="C")
        services.orders.put("ord-005", [("prod-nc", 1)])
        record, _ = machine.assign("ord-005", "US", "staff-01")
        record = machine.start_picking(str(record.id), "staff-01")
        record, _ = machine.complete_picking(str(record.picking_task_id), _full_pick(record))
        record = machine.complete_packing(str(record.id), "staff-01")

        with pytest.raises(ShippingUnavailable):
            machine.arrange_shipping(str(record.id), CHICAGO, "Standard", "staff-01")

    def test_label_commits_the_reservations(self, services, machine, packed):
        record = _ship(machine, packed)

        assert record.status == FulfillmentState.SHIPPED.value
        assert _statuses(services) == [ReservationStatus.COMMITTED.value] * 2
        stock = services.ledger.stock_level("prod-kb", "US")
        assert (stock.available, stock.reserved) == (18, 0)
        assert machine.get(str(record.id)).revision == packed.revision + 1

    def test_label_without_holds_leaves_the_record_packed(self, services, machine, packed):
        services.coordinator.release_order("ord-001")
        with pytest.raises(ObjectNotFoundError):
            _ship(machine, packed)
        assert machine.get(str(packed.id)).status == FulfillmentState.PACKED.value

    def test_delivery_and_return(self, services, machine, packed):
        record = _ship(machine, packed)
        record = machine.confirm_delivery(str(record.id), "staff-01")
        assert record.progress_percent() == 100
        record = machine.record_return(str(record.id), "Damaged in transit", "staff-01")
        assert record.status == FulfillmentState.RETURNED.value
        assert services.broadcast.statuses("ord-001")[-3:] == ["Shipped", "Delivered", "Returned"]


class TestCancel:
    def test_cancel_releases_held_stock(self, services, machine, picking):
        record = machine.cancel(str(picking.id), "Customer cancelled", "staff-01")

        assert record.status == FulfillmentState.CANCELLED.value
        assert _statuses(services) == [ReservationStatus.RELEASED.value] * 2
        assert _available(services, "prod-kb") == 20
        assert services.audit.entries[-1].details["previous_status"] == FulfillmentState.PICKING.value

    def test_shipped_record_cannot_be_cancelled(self, services, machine, packed):
        record = _ship(machine, packed)
        with pytest.raises(InvalidTransition):
            machine.cancel(str(record.id), "Too late", "staff-01")
        assert _statuses(services) == [ReservationStatus.COMMITTED.value] * 2

    def test_unknown_fulfillment(self, machine):
        with pytest.raises(FulfillmentNotFound):
            machine.cancel("ff-404", "Nope", "staff-01")


class TestSideEffects:
    def test_broadcast_outage_does_not_block_transitions(self, services, machine, assigned):
        services.broadcast.configure(should_succeed=False)
        record = machine.start_picking(str(assigned.id), "staff-01")

        assert record.status == FulfillmentState.PICKING.value
        assert delivery_stats.failed("broadcast") == 1
        assert services.audit.actions_for(str(assigned.id))[-1] == "fulfillment.picking_started"

    def test_audit_outage_does_not_block_transitions(self, services, machine, assigned):
        services.audit.configure(should_succeed=False)
        record = machine.cancel(str(assigned.id), "Customer cancelled", "staff-01")
        assert record.status == FulfillmentState.CANCELLED.value
        assert delivery_stats.failed("audit") == 1
        assert services.broadcast.statuses("ord-001")[-1] == "Cancelled"

    def test_rejected_transition_is_not_announced(self, services, machine, assigned):
        with pytest.raises(ConcurrentModification):
            machine.start_picking(str(assigned.id), "staff-01", expected_revision=7)
        assert services.broadcast.statuses("ord-001") == ["Assigned"]
        assert services.audit.actions_for(str(assigned.id)) == ["fulfillment.assigned"]

    def test_audit_entry_carries_the_stored_revision(self, services, machine, picking):
        entry = services.audit.entries[-1]
        assert entry.actor == "staff-01"
        assert entry.details["revision"] == machine.get(str(picking.id)).revision == 2
        assert entry.details["status"] == FulfillmentState.PICKING.value

    def test_full_audit_trail(self, services, machine, packed):
        record = _ship(machine, packed)
        assert services.audit.actions_for(str(record.id)) == [
            "fulfillment.assigned",
            "fulfillment.picking_started",
            "fulfillment.picking_completed",
            "fulfillment.packed",
            "fulfillment.shipped",
        ]

    def test_progress_update_names_the_current_step(self, services, machine, picking):
        update = services.broadcast.messages["ord-001"][-1]
        assert update.step == StepType.PICKING.value
        assert update.progress_percent == 25
        assert update.estimated_completion == picking.estimated_completion

    def test_estimated_completion_moves_with_the_clock(self, machine, assigned, clock):
        clock.advance(minutes=10)
        record = machine.start_picking(str(assigned.id), "staff-01")
        assert record.estimated_completion == assigned.estimated_completion + timedelta(minutes=10)


class TestLocks:
    def test_locks_are_shared_with_an_empty_registry(self, machine):
        locks = KeyedLock()
        shared = FulfillmentStateMachine(
            coordinator=machine.coordinator,
            optimizer=machine.optimizer,
            shipping=machine.shipping,
            catalog=machine.catalog,
            orders=machine.orders,
            staff=machine.staff,
            locks=locks,
        )
        assert shared.locks is locks
