"""Pydantic API schemas for the logistics services.

These are the external API contracts, kept apart from the aggregates. The
``from_*`` constructors are the only place domain objects are turned into
response payloads.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class ReceiveStockRequest(BaseModel):
    product_id: str
    warehouse_id: str
    quantity: int = Field(gt=0)
    reorder_level: int | None = Field(default=None, ge=0)
    reorder_quantity: int | None = Field(default=None, ge=0)


class LineItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    priority: int = 0


class ReserveOrderRequest(BaseModel):
    order_id: str
    warehouse_id: str
    line_items: list[LineItemRequest] = Field(min_length=1)
    ttl_hours: float | None = Field(default=None, gt=0)


class CustomerContextRequest(BaseModel):
    customer_id: str | None = None
    segment: str = "Individual"
    is_repeat_customer: bool = False
    # When given, the segment is derived from order history instead
    total_orders: int | None = Field(default=None, ge=0)
    total_spent: float | None = Field(default=None, ge=0)


class QuoteRequest(BaseModel):
    product_id: str
    customer: CustomerContextRequest = Field(default_factory=CustomerContextRequest)
    quantity: int = Field(gt=0)
    base_price: float | None = None


class AssignFulfillmentRequest(BaseModel):
    order_id: str
    warehouse_id: str
    staff_id: str
    priority: str = "Normal"


class StaffActionRequest(BaseModel):
    staff_id: str
    expected_revision: int | None = None


class PickedItemRequest(BaseModel):
    product_id: str
    quantity_picked: int = Field(ge=0)
    condition: str = "good"


class CompletePickingRequest(StaffActionRequest):
    picking_task_id: str | None = None
    picked_items: list[PickedItemRequest]
    quality_issues: list[str] = Field(default_factory=list)


class QualityCheckRequest(StaffActionRequest):
    passed: bool
    notes: str | None = None


class CompletePackingRequest(StaffActionRequest):
    package_count: int = Field(default=1, gt=0)


class ArrangeShippingRequest(StaffActionRequest):
    country: str
    postal_code: str = ""
    city: str = ""
    urgency: str = "Standard"


class ShippingLabelRequest(StaffActionRequest):
    carrier: str
    service_level: str
    tracking_number: str
    estimated_delivery: datetime | None = None


class ReasonRequest(StaffActionRequest):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StockLevelResponse(BaseModel):
    product_id: str
    warehouse_id: str
    available: int
    reserved: int
    reorder_level: int
    reorder_quantity: int
    needs_reorder: bool

    @classmethod
    def from_record(cls, record) -> "StockLevelResponse":
        return cls(
            product_id=str(record.product_id),
            warehouse_id=str(record.warehouse_id),
            available=record.available,
            reserved=record.reserved,
            reorder_level=record.reorder_level,
            reorder_quantity=record.reorder_quantity,
            needs_reorder=record.needs_reorder(),
        )


class WarehouseOptionResponse(BaseModel):
    warehouse_id: str
    available: int
    transit_days: int
    shipping_cost: float


class AvailabilityResponse(BaseModel):
    product_id: str
    quantity: int
    is_available: bool
    total_available: int
    options: list[WarehouseOptionResponse]
    shortfall: dict | None = None


class ReservationResponse(BaseModel):
    reservation_id: str
    order_id: str
    product_id: str
    warehouse_id: str
    quantity: int
    status: str
    created_at: datetime
    expires_at: datetime
    closed_at: datetime | None = None

    @classmethod
    def from_reservation(cls, reservation) -> "ReservationResponse":
        return cls(
            reservation_id=str(reservation.id),
            order_id=str(reservation.order_id),
            product_id=str(reservation.product_id),
            warehouse_id=str(reservation.warehouse_id),
            quantity=reservation.quantity,
            status=reservation.status,
            created_at=reservation.created_at,
            expires_at=reservation.expires_at,
            closed_at=reservation.closed_at,
        )


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]


class PriceFactorResponse(BaseModel):
    name: str
    delta: float
    rationale: str | None = None


class QuoteResponse(BaseModel):
    quote_id: str
    product_id: str
    customer_id: str | None
    segment: str
    is_repeat_customer: bool
    quantity: int
    base_price: float
    computed_price: float
    confidence_score: float
    factors: list[PriceFactorResponse]
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def from_quote(cls, quote) -> "QuoteResponse":
        return cls(
            quote_id=str(quote.id),
            product_id=str(quote.product_id),
            customer_id=quote.customer.customer_id,
            segment=quote.customer.segment,
            is_repeat_customer=bool(quote.customer.is_repeat_customer),
            quantity=quote.quantity,
            base_price=quote.base_price,
            computed_price=quote.computed_price,
            confidence_score=quote.confidence_score,
            factors=[
                PriceFactorResponse(name=f.name, delta=f.delta, rationale=f.rationale) for f in quote.ordered_factors()
            ],
            issued_at=quote.issued_at,
            expires_at=quote.expires_at,
        )


class FulfillmentLineResponse(BaseModel):
    product_id: str
    sku: str
    quantity: int
    picked_quantity: int
    condition: str | None = None
    discrepancy: str | None = None


class FulfillmentStepResponse(BaseModel):
    step_type: str
    sequence: int
    status: str
    staff_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    estimated_minutes: int
    actual_minutes: int | None = None
    notes: str | None = None


class PickLineResponse(BaseModel):
    zone: str
    product_id: str
    quantity: int
    bin_location: str | None = None
    priority: int


class FulfillmentResponse(BaseModel):
    fulfillment_id: str
    order_id: str
    warehouse_id: str
    status: str
    priority: str
    assigned_staff_id: str | None = None
    revision: int
    progress_percent: int
    picking_task_id: str | None = None
    package_count: int | None = None
    estimated_completion: datetime | None = None
    zone_route: list[str]
    route: dict | None = None
    shipping: dict | None = None
    lines: list[FulfillmentLineResponse]
    steps: list[FulfillmentStepResponse]
    pick_lines: list[PickLineResponse]
    cancellation_reason: str | None = None
    return_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record) -> "FulfillmentResponse":
        return cls(
            fulfillment_id=str(record.id),
            order_id=str(record.order_id),
            warehouse_id=str(record.warehouse_id),
            status=record.status,
            priority=record.priority,
            assigned_staff_id=str(record.assigned_staff_id) if record.assigned_staff_id else None,
            revision=record.revision,
            progress_percent=record.progress_percent(),
            picking_task_id=str(record.picking_task_id) if record.picking_task_id else None,
            package_count=record.package_count,
            estimated_completion=record.estimated_completion,
            zone_route=record.zone_route(),
            route=record.route.to_dict() if record.route else None,
            shipping=record.shipping.to_dict() if record.shipping else None,
            lines=[
                FulfillmentLineResponse(
                    product_id=str(line.product_id),
                    sku=line.sku,
                    quantity=line.quantity,
                    picked_quantity=line.picked_quantity or 0,
                    condition=line.condition,
                    discrepancy=line.discrepancy,
                )
                for line in record.lines
            ],
            steps=[
                FulfillmentStepResponse(
                    step_type=step.step_type,
                    sequence=step.sequence,
                    status=step.status,
                    staff_id=str(step.staff_id) if step.staff_id else None,
                    started_at=step.started_at,
                    completed_at=step.completed_at,
                    estimated_minutes=step.estimated_minutes or 0,
                    actual_minutes=step.actual_minutes,
                    notes=step.notes,
                )
                for step in record.ordered_steps()
            ],
            pick_lines=[
                PickLineResponse(
                    zone=pick.zone,
                    product_id=str(pick.product_id),
                    quantity=pick.quantity,
                    bin_location=pick.bin_location,
                    priority=pick.priority or 0,
                )
                for pick in record.ordered_pick_lines()
            ],
            cancellation_reason=record.cancellation_reason,
            return_reason=record.return_reason,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AssignFulfillmentResponse(BaseModel):
    fulfillment_id: str
    picking_task_id: str
    revision: int
    picking_plan: dict


class CompletePickingResponse(BaseModel):
    fulfillment: FulfillmentResponse
    discrepancies: list[str]
    quality_check_required: bool


class SweepResponse(BaseModel):
    released: int
