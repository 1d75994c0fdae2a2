"""FastAPI routes for stock, reservations, pricing and fulfillment.

Every route resolves its services from ``request.app.state.services``,
the container built at startup. Domain errors propagate to the handlers
registered in ``logistics.api.errors``.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from protean.exceptions import ObjectNotFoundError, ValidationError

from logistics.api.schemas import (
    ArrangeShippingRequest,
    AssignFulfillmentRequest,
    AssignFulfillmentResponse,
    AvailabilityResponse,
    CompletePackingRequest,
    CompletePickingRequest,
    CompletePickingResponse,
    FulfillmentResponse,
    QualityCheckRequest,
    QuoteRequest,
    QuoteResponse,
    ReasonRequest,
    ReceiveStockRequest,
    ReservationListResponse,
    ReservationResponse,
    ReserveOrderRequest,
    ShippingLabelRequest,
    StaffActionRequest,
    StockLevelResponse,
    SweepResponse,
    WarehouseOptionResponse,
)
from logistics.collaborators.orders import OrderLine
from logistics.errors import FulfillmentNotFound
from logistics.fulfillment.record import FulfillmentState
from logistics.pricing.quote import CustomerContext
from logistics.services import ServiceContainer
from logistics.shipping.port import Destination
from logistics.stock.stock import ReservationStatus


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


# ---------------------------------------------------------------------------
# Stock Router
# ---------------------------------------------------------------------------
stock_router = APIRouter(prefix="/stock", tags=["stock"])


@stock_router.post("/receive", status_code=201, response_model=StockLevelResponse)
async def receive_stock(body: ReceiveStockRequest, services: ServiceContainer = Depends(get_services)):
    """Add received units to a warehouse, opening the stock record on first receipt."""
    record = services.ledger.receive_stock(
        body.product_id,
        body.warehouse_id,
        body.quantity,
        reorder_level=body.reorder_level,
        reorder_quantity=body.reorder_quantity,
    )
    return StockLevelResponse.from_record(record)


@stock_router.get("/{warehouse_id}/{product_id}", response_model=StockLevelResponse)
async def get_stock_level(warehouse_id: str, product_id: str, services: ServiceContainer = Depends(get_services)):
    record = services.ledger.stock_level(product_id, warehouse_id)
    if record is None:
        raise ObjectNotFoundError(f"No stock record for {product_id} at {warehouse_id}")
    return StockLevelResponse.from_record(record)


# ---------------------------------------------------------------------------
# Availability Router
# ---------------------------------------------------------------------------
availability_router = APIRouter(prefix="/availability", tags=["availability"])


@availability_router.get("/{product_id}", response_model=AvailabilityResponse)
async def find_availability(
    product_id: str,
    quantity: int = 1,
    warehouse_id: str | None = None,
    services: ServiceContainer = Depends(get_services),
):
    """Which warehouses can supply ``quantity`` units, best first."""
    result = services.coordinator.find_availability(product_id, quantity, preferred_warehouse_id=warehouse_id)
    return AvailabilityResponse(
        product_id=product_id,
        quantity=quantity,
        is_available=result.is_available,
        total_available=services.ledger.total_available(product_id),
        options=[WarehouseOptionResponse(**option.to_dict()) for option in result.options],
        shortfall=result.shortfall,
    )


# ---------------------------------------------------------------------------
# Reservation Router
# ---------------------------------------------------------------------------
reservation_router = APIRouter(prefix="/reservations", tags=["reservations"])


@reservation_router.post("", status_code=201, response_model=ReservationListResponse)
async def reserve_order(body: ReserveOrderRequest, services: ServiceContainer = Depends(get_services)):
    """Reserve every line of an order at one warehouse, or nothing."""
    reservations = services.coordinator.reserve_order(
        body.order_id,
        [OrderLine(item.product_id, item.quantity, item.priority) for item in body.line_items],
        body.warehouse_id,
        ttl=timedelta(hours=body.ttl_hours) if body.ttl_hours else None,
    )
    return ReservationListResponse(reservations=[ReservationResponse.from_reservation(r) for r in reservations])


@reservation_router.get("", response_model=ReservationListResponse)
async def list_reservations(
    order_id: str,
    status: str | None = None,
    services: ServiceContainer = Depends(get_services),
):
    try:
        wanted = ReservationStatus(status) if status else None
    except ValueError:
        raise ValidationError({"status": [f"Unknown reservation status {status}"]})
    reservations = services.ledger.reservations_for_order(order_id, wanted)
    return ReservationListResponse(reservations=[ReservationResponse.from_reservation(r) for r in reservations])


@reservation_router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(reservation_id: str, services: ServiceContainer = Depends(get_services)):
    return ReservationResponse.from_reservation(services.ledger.get_reservation(reservation_id))


@reservation_router.put("/{reservation_id}/release", response_model=ReservationResponse)
async def release_reservation(reservation_id: str, services: ServiceContainer = Depends(get_services)):
    """Give the units back. Releasing twice is harmless."""
    return ReservationResponse.from_reservation(services.ledger.release(reservation_id))


@reservation_router.put("/{reservation_id}/commit", response_model=ReservationResponse)
async def commit_reservation(reservation_id: str, services: ServiceContainer = Depends(get_services)):
    """Turn a hold into a permanent deduction. Committing twice is harmless."""
    return ReservationResponse.from_reservation(services.ledger.commit(reservation_id))


# ---------------------------------------------------------------------------
# Quote Router
# ---------------------------------------------------------------------------
quote_router = APIRouter(prefix="/quotes", tags=["quotes"])


def _customer_context(body: QuoteRequest) -> CustomerContext:
    customer = body.customer
    if customer.total_orders is not None or customer.total_spent is not None:
        return CustomerContext.from_order_history(
            customer.customer_id,
            customer.total_orders or 0,
            customer.total_spent or 0.0,
        )
    return CustomerContext(
        customer_id=customer.customer_id,
        segment=customer.segment,
        is_repeat_customer=customer.is_repeat_customer,
    )


@quote_router.post("", status_code=201, response_model=QuoteResponse)
async def create_quote(body: QuoteRequest, services: ServiceContainer = Depends(get_services)):
    quote = services.pricing.quote(body.product_id, _customer_context(body), body.quantity, body.base_price)
    return QuoteResponse.from_quote(quote)


@quote_router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(quote_id: str, services: ServiceContainer = Depends(get_services)):
    return QuoteResponse.from_quote(services.pricing.get_quote(quote_id))


# ---------------------------------------------------------------------------
# Fulfillment Router
# ---------------------------------------------------------------------------
fulfillment_router = APIRouter(prefix="/fulfillments", tags=["fulfillments"])


@fulfillment_router.post("", status_code=201, response_model=AssignFulfillmentResponse)
async def assign_fulfillment(body: AssignFulfillmentRequest, services: ServiceContainer = Depends(get_services)):
    """Assign an order to a warehouse: reserve its stock and plan the pick route."""
    record, plan = services.fulfillment.assign(body.order_id, body.warehouse_id, body.staff_id, body.priority)
    return AssignFulfillmentResponse(
        fulfillment_id=str(record.id),
        picking_task_id=str(record.picking_task_id),
        revision=record.revision,
        picking_plan=plan.to_dict(),
    )


@fulfillment_router.get("", response_model=list[FulfillmentResponse])
async def find_fulfillments(order_id: str, services: ServiceContainer = Depends(get_services)):
    return [FulfillmentResponse.from_record(r) for r in services.fulfillment.find_by_order(order_id)]


@fulfillment_router.get("/{fulfillment_id}", response_model=FulfillmentResponse)
async def get_fulfillment(fulfillment_id: str, services: ServiceContainer = Depends(get_services)):
    """Current state with step history."""
    return FulfillmentResponse.from_record(services.fulfillment.get(fulfillment_id))


@fulfillment_router.post("/{fulfillment_id}/picking/start", response_model=FulfillmentResponse)
async def start_picking(
    fulfillment_id: str,
    body: StaffActionRequest,
    services: ServiceContainer = Depends(get_services),
):
    record = services.fulfillment.start_picking(fulfillment_id, body.staff_id, body.expected_revision)
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/picking/complete", response_model=CompletePickingResponse)
async def complete_picking(
    fulfillment_id: str,
    body: CompletePickingRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Report picked quantities; discrepancies send the order to a quality check."""
    current = services.fulfillment.get(fulfillment_id)
    picking_task_id = body.picking_task_id or str(current.picking_task_id)
    if picking_task_id != str(current.picking_task_id):
        raise FulfillmentNotFound(f"Picking task {picking_task_id} does not belong to {fulfillment_id}")

    record, discrepancies = services.fulfillment.complete_picking(
        picking_task_id,
        [item.model_dump() for item in body.picked_items],
        body.quality_issues,
        staff_id=body.staff_id,
        expected_revision=body.expected_revision,
    )
    return CompletePickingResponse(
        fulfillment=FulfillmentResponse.from_record(record),
        discrepancies=discrepancies,
        quality_check_required=record.status == FulfillmentState.PICKED.value,
    )


@fulfillment_router.post("/{fulfillment_id}/quality-check", response_model=FulfillmentResponse)
async def complete_quality_check(
    fulfillment_id: str,
    body: QualityCheckRequest,
    services: ServiceContainer = Depends(get_services),
):
    record = services.fulfillment.complete_quality_check(
        fulfillment_id, body.passed, body.notes, body.staff_id, body.expected_revision
    )
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/packing/complete", response_model=FulfillmentResponse)
async def complete_packing(
    fulfillment_id: str,
    body: CompletePackingRequest,
    services: ServiceContainer = Depends(get_services),
):
    record = services.fulfillment.complete_packing(
        fulfillment_id, body.staff_id, body.package_count, body.expected_revision
    )
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/shipping/arrange", response_model=FulfillmentResponse)
async def arrange_shipping(
    fulfillment_id: str,
    body: ArrangeShippingRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Select a carrier service through the shipping estimator."""
    destination = Destination(country=body.country, postal_code=body.postal_code, city=body.city)
    record = services.fulfillment.arrange_shipping(
        fulfillment_id, destination, body.urgency, body.staff_id, body.expected_revision
    )
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/shipping-label", response_model=FulfillmentResponse)
async def generate_shipping_label(
    fulfillment_id: str,
    body: ShippingLabelRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Mark the order shipped and commit its reserved stock."""
    record = services.fulfillment.generate_shipping_label(
        fulfillment_id,
        body.carrier,
        body.service_level,
        body.tracking_number,
        body.estimated_delivery,
        body.staff_id,
        body.expected_revision,
    )
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/deliver", response_model=FulfillmentResponse)
async def confirm_delivery(
    fulfillment_id: str,
    body: StaffActionRequest,
    services: ServiceContainer = Depends(get_services),
):
    record = services.fulfillment.confirm_delivery(fulfillment_id, body.staff_id, body.expected_revision)
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/return", response_model=FulfillmentResponse)
async def record_return(
    fulfillment_id: str,
    body: ReasonRequest,
    services: ServiceContainer = Depends(get_services),
):
    record = services.fulfillment.record_return(fulfillment_id, body.reason, body.staff_id, body.expected_revision)
    return FulfillmentResponse.from_record(record)


@fulfillment_router.post("/{fulfillment_id}/cancel", response_model=FulfillmentResponse)
async def cancel_fulfillment(
    fulfillment_id: str,
    body: ReasonRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Cancel before shipment; held stock goes back to the warehouse."""
    record = services.fulfillment.cancel(fulfillment_id, body.reason, body.staff_id, body.expected_revision)
    return FulfillmentResponse.from_record(record)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/reservations/expire", response_model=SweepResponse)
async def expire_reservations(services: ServiceContainer = Depends(get_services)):
    """Run the expired-reservation sweep now instead of waiting for the next interval."""
    return SweepResponse(released=services.ledger.sweep_expired())
