"""Fake shipping estimator — deterministic quotes for tests and development."""

from datetime import timedelta
from uuid import uuid4

from logistics.errors import ShippingUnavailable
from logistics.shipping.port import Destination, ParcelItem, ShippingEstimator, ShippingQuote, Urgency
from logistics.utils.time import Clock, utc_now

_TRANSIT_DAYS = {Urgency.STANDARD: 5, Urgency.EXPRESS: 2, Urgency.OVERNIGHT: 1}


class FakeShippingEstimator(ShippingEstimator):
    """Always quotes the same carrier unless configured to fail."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self.should_succeed = True
        self.failure_reason = "No carrier available"
        self.requests: list[tuple[str, Destination, Urgency]] = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "No carrier available"):
        """Configure the fake estimator behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def estimate(
        self,
        items: list[ParcelItem],
        warehouse_id: str,
        destination: Destination,
        urgency: Urgency,
    ) -> ShippingQuote:
        self.requests.append((warehouse_id, destination, urgency))
        if not self.should_succeed:
            raise ShippingUnavailable(self.failure_reason)

        days = _TRANSIT_DAYS[urgency]
        weight = sum(i.weight * i.quantity for i in items)
        return ShippingQuote(
            cost=round(10.0 + weight, 2),
            currency="USD",
            carrier="FakeShip",
            service=urgency.value,
            transit_days=days,
            estimated_delivery=self.clock() + timedelta(days=days),
            tracking_number=f"FAKE-{uuid4().hex[:12].upper()}",
        )
