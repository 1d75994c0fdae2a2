"""PriceQuote aggregate — an explainable, time-limited price for one line.

A quote never changes after it is issued. Every adjustment that produced
the price is kept as an ordered PriceFactor so support and audit can see
why a customer paid what they paid.
"""

from datetime import datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from logistics.domain import logistics
from logistics.utils.time import as_utc


class CustomerSegment(Enum):
    INDIVIDUAL = "Individual"
    BUSINESS = "Business"
    ENTERPRISE = "Enterprise"


# Order-history thresholds for segmenting customers
ENTERPRISE_SPEND = 50_000
ENTERPRISE_ORDERS = 20
BUSINESS_SPEND = 10_000
BUSINESS_ORDERS = 5


@logistics.value_object(part_of="PriceQuote")
class CustomerContext:
    """Who the price is for."""

    customer_id = String(max_length=100)
    segment = String(choices=CustomerSegment, default=CustomerSegment.INDIVIDUAL.value)
    is_repeat_customer = Boolean(default=False)

    @classmethod
    def from_order_history(cls, customer_id: str | None, total_orders: int, total_spent: float) -> "CustomerContext":
        if total_spent > ENTERPRISE_SPEND or total_orders > ENTERPRISE_ORDERS:
            segment = CustomerSegment.ENTERPRISE
        elif total_spent > BUSINESS_SPEND or total_orders > BUSINESS_ORDERS:
            segment = CustomerSegment.BUSINESS
        else:
            segment = CustomerSegment.INDIVIDUAL
        return cls(
            customer_id=customer_id,
            segment=segment.value,
            is_repeat_customer=total_orders > 1,
        )

    @property
    def segment_enum(self) -> CustomerSegment:
        return CustomerSegment(self.segment)


@logistics.event(part_of="PriceQuote")
class PriceQuoted:
    """A price was computed and issued."""

    __version__ = 1

    quote_id = Identifier(required=True)
    product_id = Identifier(required=True)
    customer_id = String()
    quantity = Integer(required=True)
    base_price = Float(required=True)
    computed_price = Float(required=True)
    factor_count = Integer(required=True)
    issued_at = DateTime(required=True)
    expires_at = DateTime(required=True)


@logistics.entity(part_of="PriceQuote")
class PriceFactor:
    sequence = Integer(required=True, min_value=0)
    name = String(required=True, max_length=50)
    delta = Float(required=True)
    rationale = String(max_length=255)


@logistics.aggregate
class PriceQuote:
    product_id = Identifier(required=True)
    customer = ValueObject(CustomerContext)
    quantity = Integer(required=True, min_value=1)
    base_price = Float(required=True)
    computed_price = Float(required=True, min_value=0.0)
    confidence_score = Float(required=True, min_value=0.0, max_value=1.0)
    factors = HasMany(PriceFactor)
    issued_at = DateTime(required=True)
    expires_at = DateTime(required=True)

    @classmethod
    def issue(
        cls,
        product_id: str,
        customer: CustomerContext,
        quantity: int,
        base_price: float,
        computed_price: float,
        confidence_score: float,
        factors: list[tuple[str, float, str]],
        issued_at: datetime,
        expires_at: datetime,
    ) -> "PriceQuote":
        quote = cls(
            product_id=product_id,
            customer=customer,
            quantity=quantity,
            base_price=base_price,
            computed_price=computed_price,
            confidence_score=confidence_score,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        for sequence, (name, delta, rationale) in enumerate(factors):
            quote.add_factors(PriceFactor(sequence=sequence, name=name, delta=delta, rationale=rationale))
        quote.raise_(
            PriceQuoted(
                quote_id=str(quote.id),
                product_id=str(product_id),
                customer_id=customer.customer_id if customer else None,
                quantity=quantity,
                base_price=base_price,
                computed_price=computed_price,
                factor_count=len(factors),
                issued_at=issued_at,
                expires_at=expires_at,
            )
        )
        return quote

    def ordered_factors(self) -> list:
        return sorted(self.factors or [], key=lambda f: f.sequence)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(now) >= as_utc(self.expires_at)
