"""Shared BDD fixtures and step definitions for the fulfillment workflow."""

import pytest
from logistics.collaborators.catalog import Product
from logistics.errors import InvalidTransition, PartialReservationFailure
from pytest_bdd import given, parsers, then

_PRODUCTS = {
    "prod-kb": Product("prod-kb", "KB-MECH-001", "Mechanical Keyboard", 120.0, weight=1.2),
    "prod-mp": Product("prod-mp", "MP-XL-BLK", "Mouse Pad XL", 25.0, weight=0.4),
}
_ZONES = {"prod-mp": "A", "prod-kb": "B"}


@pytest.fixture()
def error():
    """Container for captured errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('warehouse "{warehouse_id}" holds {kb:d} units of "{first}" and {mp:d} units of "{second}"'))
def stocked_warehouse(services, warehouse_id, kb, first, mp, second):
    for product_id, quantity in ((first, kb), (second, mp)):
        services.catalog.add(_PRODUCTS[product_id])
        services.bins.place(product_id, warehouse_id, zone=_ZONES[product_id])
        services.ledger.receive_stock(product_id, warehouse_id, quantity)


@given(
    parsers.cfparse('a confirmed order "{order_id}" for {kb:d} "{first}" and {mp:d} "{second}"'),
    target_fixture="order_id",
)
def confirmed_order(services, order_id, kb, first, mp, second):
    services.orders.put(order_id, [(first, kb), (second, mp)])
    return order_id


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the fulfillment is "{status}"'))
def fulfillment_status(machine, ff, status):
    assert machine.get(str(ff.id)).status == status


@then(parsers.cfparse('the order\'s reservations are "{status}"'))
def reservation_statuses(services, order_id, status):
    reservations = services.ledger.reservations_for_order(order_id)
    assert reservations
    assert {r.status for r in reservations} == {status}


@then(
    parsers.cfparse(
        'warehouse "{warehouse_id}" has {available:d} units of "{product_id}" available and {reserved:d} reserved'
    )
)
def stock_level(services, warehouse_id, available, product_id, reserved):
    record = services.ledger.stock_level(product_id, warehouse_id)
    assert (record.available, record.reserved) == (available, reserved)


@then("the discrepancies are reported")
def discrepancies_reported(services, machine, ff, order_id):
    record = machine.get(str(ff.id))
    assert record.discrepancies()
    assert services.broadcast.messages[order_id][-1].notes == record.discrepancies()


@then("the request is rejected as an invalid transition")
def rejected_invalid_transition(error):
    assert isinstance(error["exc"], InvalidTransition)


@then("the request is rejected for missing stock")
def rejected_missing_stock(error):
    assert isinstance(error["exc"], PartialReservationFailure)


@then("no fulfillment exists for the order")
def no_fulfillment(machine, services, order_id):
    assert machine.find_by_order(order_id) == []
    assert services.ledger.reservations_for_order(order_id) == []
