import pytest
from logistics.collaborators.catalog import Product


@pytest.fixture()
def stocked_order(services):
    """Order ``ord-001`` (2 keyboards, 1 mouse pad) with stock and bins at US."""
    services.catalog.add(Product("prod-kb", "KB-MECH-001", "Mechanical Keyboard", 120.0, weight=1.2))
    services.catalog.add(Product("prod-mp", "MP-XL-BLK", "Mouse Pad XL", 25.0, weight=0.4))
    services.bins.place("prod-mp", "US", zone="A", aisle="02", shelf="3")
    services.bins.place("prod-kb", "US", zone="B", aisle="05", shelf="1")
    services.ledger.receive_stock("prod-kb", "US", 20)
    services.ledger.receive_stock("prod-mp", "US", 20)
    services.orders.put("ord-001", [("prod-kb", 2), ("prod-mp", 1)])
    return "ord-001"


@pytest.fixture()
def machine(services):
    return services.fulfillment


@pytest.fixture()
def assigned(machine, stocked_order):
    record, _ = machine.assign(stocked_order, "US", "staff-01")
    return record


@pytest.fixture()
def picking(machine, assigned):
    return machine.start_picking(str(assigned.id), "staff-01")


def _picked_in_full(record):
    return [{"product_id": str(line.product_id), "quantity_picked": line.quantity} for line in record.lines]


@pytest.fixture()
def packing(machine, picking):
    record, _ = machine.complete_picking(str(picking.picking_task_id), _picked_in_full(picking))
    return record


@pytest.fixture()
def packed(machine, packing):
    return machine.complete_packing(str(packing.id), "staff-01", package_count=1)
