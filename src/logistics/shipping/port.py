"""Shipping estimator port — cost, carrier and ETA for a packed order.

The fulfillment workflow programs against this interface; implementations
are chosen through configuration.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Urgency(Enum):
    STANDARD = "Standard"
    EXPRESS = "Express"
    OVERNIGHT = "Overnight"


@dataclass(frozen=True)
class Destination:
    country: str
    postal_code: str = ""
    city: str = ""


@dataclass(frozen=True)
class ParcelItem:
    product_id: str
    quantity: int
    weight: float  # kg per unit
    length: float = 0.0  # cm
    width: float = 0.0
    height: float = 0.0
    hazardous: bool = False

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height


@dataclass(frozen=True)
class ShippingQuote:
    cost: float
    currency: str
    carrier: str
    service: str
    transit_days: int
    estimated_delivery: datetime
    tracking_number: str

    def to_dict(self) -> dict:
        return {
            "cost": self.cost,
            "currency": self.currency,
            "carrier": self.carrier,
            "service": self.service,
            "transit_days": self.transit_days,
            "estimated_delivery": self.estimated_delivery.isoformat(),
            "tracking_number": self.tracking_number,
        }


class ShippingEstimator(ABC):
    @abstractmethod
    def estimate(
        self,
        items: list[ParcelItem],
        warehouse_id: str,
        destination: Destination,
        urgency: Urgency,
    ) -> ShippingQuote:
        """Pick a carrier service for the parcel.

        STANDARD takes the cheapest option, EXPRESS and OVERNIGHT the
        fastest. Raises ShippingUnavailable when nothing can carry it.
        """
        ...
