"""Shipping estimators — pluggable cost/carrier/ETA strategies."""

from logistics.shipping.port import ShippingEstimator
from logistics.utils.time import Clock, utc_now


def build_shipping_estimator(name: str = "rate_table", clock: Clock = utc_now) -> ShippingEstimator:
    """Return the estimator named by configuration."""
    if name == "rate_table":
        from logistics.shipping.rate_table import RateTableEstimator

        return RateTableEstimator(clock=clock)
    if name == "fake":
        from logistics.shipping.fake_adapter import FakeShippingEstimator

        return FakeShippingEstimator(clock=clock)
    raise ValueError(f"Unknown shipping estimator: {name}")
