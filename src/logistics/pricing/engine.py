"""PricingEngine — base price in, explainable quote out.

Pipeline, each step recorded as a named factor when it moves the price:

    1. market demand         +5% high / -8% low
    2. inventory level       +3% scarce / -5% plentiful
    3. customer segment      enterprise -15%, business -10%
    4. loyalty               -5% for repeat individual customers
    5. quantity break        -10% at 10+, -5% at 5+
    6. competitive clamp     down to the competitor average when >10% above it
    7. seasonality           +5% peak months, -10% off-peak months

Business rules then run in order: margin floor (70% of base), new-customer
cap (at most 10% off), enterprise ceiling (at least 10% off) and rounding
to the nearest 5.
"""

import math
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from logistics.collaborators.catalog import CatalogPort
from logistics.errors import PricingPolicyViolation, QuoteExpired
from logistics.pricing.quote import CustomerContext, CustomerSegment, PriceQuote
from logistics.pricing.signals import MarketSignalProvider, MarketSignals
from logistics.utils.cache import TTLCache
from logistics.utils.time import Clock, utc_now

logger = structlog.get_logger(__name__)

BASE_CONFIDENCE = 0.85
SEGMENT_CONFIDENCE = {
    CustomerSegment.ENTERPRISE: 0.95,
    CustomerSegment.BUSINESS: 0.90,
}
CLAMPED_CONFIDENCE = 0.75

SEGMENT_DISCOUNTS = {
    CustomerSegment.ENTERPRISE: (0.15, "Enterprise Discount"),
    CustomerSegment.BUSINESS: (0.10, "Business Discount"),
}

MARGIN_FLOOR = 0.70
NEW_CUSTOMER_MAX_DISCOUNT = 0.10
ENTERPRISE_MIN_DISCOUNT = 0.10
COMPETITIVE_TOLERANCE = 1.10
ROUNDING_STEP = Decimal(5)


@dataclass(frozen=True)
class PricingPolicy:
    high_demand_velocity: int = 100
    low_demand_velocity: int = 20
    low_inventory_units: int = 50
    high_inventory_units: int = 500
    peak_months: frozenset = frozenset({12, 1, 2})
    off_peak_months: frozenset = frozenset({7, 8, 9})
    quote_ttl: timedelta = timedelta(minutes=30)

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(
            high_demand_velocity=settings.high_demand_velocity,
            low_demand_velocity=settings.low_demand_velocity,
            low_inventory_units=settings.low_inventory_units,
            high_inventory_units=settings.high_inventory_units,
            peak_months=frozenset(settings.peak_months),
            off_peak_months=frozenset(settings.off_peak_months),
            quote_ttl=timedelta(minutes=settings.quote_ttl_minutes),
        )


@dataclass
class PriceComputation:
    """Running state of one pass through the pipeline."""

    base_price: float
    price: float
    confidence: float = BASE_CONFIDENCE
    factors: list[tuple[str, float, str]] = field(default_factory=list)

    def adjust(self, name: str, new_price: float, rationale: str) -> None:
        delta = round(new_price - self.price, 2)
        self.price = new_price
        if delta:
            self.factors.append((name, delta, rationale))


def round_to_step(price: float, floor: float) -> float:
    """Nearest multiple of 5, but never under ``floor``."""
    rounded = (Decimal(str(price)) / ROUNDING_STEP).quantize(Decimal(1), rounding=ROUND_HALF_UP) * ROUNDING_STEP
    if rounded < Decimal(str(floor)):
        rounded = (Decimal(str(floor)) / ROUNDING_STEP).quantize(Decimal(1), rounding=ROUND_CEILING) * ROUNDING_STEP
    return float(rounded)


class PricingEngine:
    def __init__(
        self,
        signals: MarketSignalProvider,
        catalog: CatalogPort | None = None,
        policy: PricingPolicy | None = None,
        clock: Clock = utc_now,
        issued_quotes: TTLCache | None = None,
    ):
        self.signals = signals
        self.catalog = catalog
        self.policy = policy or PricingPolicy()
        self.clock = clock
        # Identical requests inside the validity window get the same quote back
        if issued_quotes is None:
            issued_quotes = TTLCache(ttl=self.policy.quote_ttl, clock=clock, name="issued-quotes")
        self.issued_quotes = issued_quotes

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    def quote(
        self,
        product_id: str,
        customer: CustomerContext,
        quantity: int,
        base_price: float | None = None,
    ) -> PriceQuote:
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if base_price is None:
            base_price = self._catalog_price(product_id)

        key = (
            product_id,
            customer.customer_id,
            customer.segment,
            bool(customer.is_repeat_customer),
            quantity,
            float(base_price),
        )
        now = self.clock()
        reused = self._reusable(key, now)
        if reused is not None:
            return reused

        computation = self.compute(base_price, customer, quantity, self.signals.signals_for(product_id), now)
        quote = PriceQuote.issue(
            product_id=product_id,
            customer=customer,
            quantity=quantity,
            base_price=float(base_price),
            computed_price=computation.price,
            confidence_score=computation.confidence,
            factors=computation.factors,
            issued_at=now,
            expires_at=now + self.policy.quote_ttl,
        )
        current_domain.repository_for(PriceQuote).add(quote)
        self.issued_quotes.set(key, str(quote.id))

        logger.info(
            "Price quoted",
            quote_id=str(quote.id),
            product_id=product_id,
            segment=customer.segment,
            quantity=quantity,
            base_price=base_price,
            computed_price=computation.price,
            factors=[name for name, _, _ in computation.factors],
        )
        return quote

    def get_quote(self, quote_id: str) -> PriceQuote:
        """Fetch an issued quote. Past its expiry it raises QuoteExpired."""
        quote = current_domain.repository_for(PriceQuote).get(quote_id)
        if quote.is_expired(self.clock()):
            raise QuoteExpired(f"Quote {quote_id} expired at {quote.expires_at.isoformat()}; request a new one")
        return quote

    def compute(
        self,
        base_price: float,
        customer: CustomerContext,
        quantity: int,
        signals: MarketSignals,
        now,
    ) -> PriceComputation:
        """Run the pipeline without issuing or storing anything."""
        if base_price is None or not math.isfinite(base_price) or base_price <= 0:
            self._violation(f"Base price must be a positive amount, got {base_price!r}")

        policy = self.policy
        segment = customer.segment_enum
        state = PriceComputation(base_price=base_price, price=float(base_price))

        # 1. Market demand
        velocity = signals.order_velocity
        if velocity is not None:
            if velocity > policy.high_demand_velocity:
                state.adjust("High Demand", state.price * 1.05, f"{velocity} units ordered in the last 7 days")
            elif velocity < policy.low_demand_velocity:
                state.adjust("Low Demand", state.price * 0.92, f"Only {velocity} units ordered in the last 7 days")

        # 2. Inventory level
        level = signals.inventory_level
        if level is not None:
            if level < policy.low_inventory_units:
                state.adjust("Low Inventory", state.price * 1.03, f"{level} units left across the network")
            elif level > policy.high_inventory_units:
                state.adjust("High Inventory", state.price * 0.95, f"{level} units in stock across the network")

        # 3. Customer segment
        if segment in SEGMENT_DISCOUNTS:
            rate, name = SEGMENT_DISCOUNTS[segment]
            state.adjust(name, state.price * (1 - rate), f"{segment.value} pricing tier")
            state.confidence = SEGMENT_CONFIDENCE[segment]

        # 4. Loyalty
        if segment == CustomerSegment.INDIVIDUAL and customer.is_repeat_customer:
            state.adjust("Loyalty Discount", state.price * 0.95, "Returning customer")

        # 5. Quantity break
        if quantity >= 10:
            state.adjust("Bulk Discount", state.price * 0.90, f"Order of {quantity} units")
        elif quantity >= 5:
            state.adjust("Quantity Discount", state.price * 0.95, f"Order of {quantity} units")

        # 6. Competitive clamp
        average = signals.average_competitor_price
        if average is not None and state.price > average * COMPETITIVE_TOLERANCE:
            state.adjust("Competitive Adjustment", average, f"Matched average competitor price {average:.2f}")
            state.confidence = CLAMPED_CONFIDENCE

        # 7. Seasonality
        if now.month in policy.peak_months:
            state.adjust("Peak Season", state.price * 1.05, f"Peak demand month {now.month}")
        elif now.month in policy.off_peak_months:
            state.adjust("Off-Peak Season", state.price * 0.90, f"Off-peak month {now.month}")

        # Business rules
        floor = base_price * MARGIN_FLOOR
        if state.price < floor:
            state.adjust("Margin Floor", floor, "Price raised to the 30% minimum margin")

        if not customer.is_repeat_customer and state.price < base_price * (1 - NEW_CUSTOMER_MAX_DISCOUNT):
            state.adjust(
                "New Customer Cap",
                base_price * (1 - NEW_CUSTOMER_MAX_DISCOUNT),
                "First-time customers get at most 10% off",
            )

        if segment == CustomerSegment.ENTERPRISE and state.price > base_price * (1 - ENTERPRISE_MIN_DISCOUNT):
            state.adjust(
                "Enterprise Ceiling",
                base_price * (1 - ENTERPRISE_MIN_DISCOUNT),
                "Enterprise accounts always receive at least 10% off",
            )

        state.adjust("Rounding", round_to_step(state.price, floor), "Rounded to the nearest 5")

        if not math.isfinite(state.price) or state.price < floor:
            self._violation(f"Computed price {state.price} is below the floor {floor} for base {base_price}")
        return state

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _catalog_price(self, product_id: str) -> float:
        if self.catalog is None:
            raise ValidationError({"base_price": ["No base price given and no catalog configured"]})
        return self.catalog.get_product(product_id).base_price

    def _reusable(self, key, now) -> PriceQuote | None:
        quote_id = self.issued_quotes.get(key)
        if quote_id is None:
            return None
        try:
            quote = current_domain.repository_for(PriceQuote).get(quote_id)
        except ObjectNotFoundError:
            self.issued_quotes.invalidate(key)
            return None
        if quote.is_expired(now):
            self.issued_quotes.invalidate(key)
            return None
        return quote

    @staticmethod
    def _violation(message: str) -> None:
        logger.error("Pricing policy violation", detail=message)
        raise PricingPolicyViolation(message)
