"""Rate-table shipping estimator.

Carriers and services per regional warehouse, priced with a simple model:

    per package = 15 + 0.5 * weight + 0.1 * sqrt(volume)
    cost        = per package * packages * service multiplier * region multiplier
                  + 25 hazmat surcharge + 15 oversize surcharge

Packages are split at 30 kg or 100,000 cm³. Delivery is processing (same day
for OVERNIGHT, one day otherwise) plus transit, counting business days
only for STANDARD.
"""

import math
import random
import string
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from logistics.errors import ShippingUnavailable
from logistics.shipping.port import Destination, ParcelItem, ShippingEstimator, ShippingQuote, Urgency
from logistics.utils.time import Clock, utc_now

logger = structlog.get_logger(__name__)

BASE_FEE = 15.0
PER_KG = 0.5
PER_SQRT_CM3 = 0.1
MAX_PACKAGE_KG = 30
MAX_PACKAGE_CM3 = 100_000
HAZMAT_SURCHARGE = 25.0
OVERSIZE_SURCHARGE = 15.0
OVERSIZE_CM = 100


@dataclass(frozen=True)
class CarrierService:
    name: str
    urgency: Urgency
    transit_days: int
    multiplier: float


@dataclass(frozen=True)
class Carrier:
    name: str
    hazmat: bool
    domestic_only: bool
    services: tuple[CarrierService, ...]


def _services(*rows):
    return tuple(CarrierService(name, urgency, days, multiplier) for name, urgency, days, multiplier in rows)


_FEDEX = Carrier(
    "FedEx",
    hazmat=True,
    domestic_only=False,
    services=_services(
        ("Ground", Urgency.STANDARD, 5, 1.0),
        ("2Day", Urgency.EXPRESS, 2, 1.5),
        ("Overnight", Urgency.OVERNIGHT, 1, 3.0),
    ),
)
_UPS = Carrier(
    "UPS",
    hazmat=True,
    domestic_only=False,
    services=_services(
        ("Ground", Urgency.STANDARD, 5, 1.0),
        ("2nd Day Air", Urgency.EXPRESS, 2, 1.5),
        ("Next Day Air", Urgency.OVERNIGHT, 1, 3.0),
    ),
)
_USPS = Carrier(
    "USPS",
    hazmat=False,
    domestic_only=True,
    services=_services(
        ("Ground Advantage", Urgency.STANDARD, 5, 0.9),
        ("Priority Mail", Urgency.EXPRESS, 3, 1.3),
        ("Priority Mail Express", Urgency.OVERNIGHT, 1, 2.8),
    ),
)
_DHL = Carrier(
    "DHL",
    hazmat=True,
    domestic_only=False,
    services=_services(
        ("Express Easy", Urgency.STANDARD, 4, 1.2),
        ("Express 12:00", Urgency.EXPRESS, 2, 2.0),
        ("Express 9:00", Urgency.OVERNIGHT, 1, 3.5),
    ),
)
_YAMATO = Carrier(
    "Yamato",
    hazmat=False,
    domestic_only=True,
    services=_services(
        ("TA-Q-BIN", Urgency.STANDARD, 2, 1.0),
        ("TA-Q-BIN Time Service", Urgency.OVERNIGHT, 1, 1.8),
    ),
)
_JAPAN_POST = Carrier(
    "Japan Post",
    hazmat=False,
    domestic_only=False,
    services=_services(
        ("Yu-Pack", Urgency.STANDARD, 3, 0.9),
        ("EMS", Urgency.EXPRESS, 3, 1.6),
    ),
)
_AUSTRALIA_POST = Carrier(
    "Australia Post",
    hazmat=False,
    domestic_only=False,
    services=_services(
        ("Parcel Post", Urgency.STANDARD, 6, 1.0),
        ("Express Post", Urgency.EXPRESS, 2, 1.6),
    ),
)
_TNT = Carrier(
    "TNT",
    hazmat=True,
    domestic_only=False,
    services=_services(
        ("Road Express", Urgency.STANDARD, 4, 1.1),
        ("Overnight Express", Urgency.OVERNIGHT, 1, 3.0),
    ),
)


@dataclass(frozen=True)
class Region:
    country: str
    currency: str
    multiplier: float
    carriers: tuple[Carrier, ...]


DEFAULT_REGIONS = {
    "US": Region("US", "USD", 1.0, (_FEDEX, _UPS, _USPS)),
    "EU": Region("DE", "EUR", 1.1, (_DHL, _UPS)),
    "JP": Region("JP", "JPY", 1.2, (_YAMATO, _JAPAN_POST)),
    "AU": Region("AU", "AUD", 1.15, (_AUSTRALIA_POST, _TNT)),
}


@dataclass(frozen=True)
class RatedOption:
    carrier: Carrier
    service: CarrierService
    cost: float


def package_count(weight: float, volume: float) -> int:
    return max(math.ceil(weight / MAX_PACKAGE_KG), math.ceil(volume / MAX_PACKAGE_CM3), 1)


def add_business_days(start: datetime, days: int) -> datetime:
    current = start
    while days > 0:
        current += timedelta(days=1)
        if current.weekday() < 5:
            days -= 1
    return current


class RateTableEstimator(ShippingEstimator):
    def __init__(self, regions: dict[str, Region] | None = None, clock: Clock = utc_now, rng: random.Random | None = None):
        self.regions = regions or DEFAULT_REGIONS
        self.clock = clock
        self.rng = rng or random.Random()

    def options(self, items: list[ParcelItem], warehouse_id: str, destination: Destination, urgency: Urgency):
        """Every priced carrier service that can take the parcel at ``urgency``."""
        region = self.regions.get(warehouse_id)
        if region is None:
            return []

        weight = sum(i.weight * i.quantity for i in items)
        volume = sum(i.volume * i.quantity for i in items)
        hazardous = any(i.hazardous for i in items)
        oversize = any(max(i.length, i.width, i.height) > OVERSIZE_CM for i in items)
        packages = package_count(weight, volume)
        domestic = destination.country.upper() == region.country

        rated = []
        for carrier in region.carriers:
            if hazardous and not carrier.hazmat:
                continue
            if carrier.domestic_only and not domestic:
                continue
            for service in carrier.services:
                if service.urgency != urgency:
                    continue
                cost = (BASE_FEE + weight * PER_KG + math.sqrt(volume) * PER_SQRT_CM3) * packages
                cost *= service.multiplier * region.multiplier
                if hazardous:
                    cost += HAZMAT_SURCHARGE
                if oversize:
                    cost += OVERSIZE_SURCHARGE
                rated.append(RatedOption(carrier, service, round(cost, 2)))
        return rated

    def estimate(
        self,
        items: list[ParcelItem],
        warehouse_id: str,
        destination: Destination,
        urgency: Urgency,
    ) -> ShippingQuote:
        if not items:
            raise ShippingUnavailable("Nothing to ship")
        rated = self.options(items, warehouse_id, destination, urgency)
        if not rated:
            logger.warning(
                "No carrier service available",
                warehouse_id=warehouse_id,
                country=destination.country,
                urgency=urgency.value,
            )
            raise ShippingUnavailable(
                f"No carrier can ship {urgency.value} from {warehouse_id} to {destination.country}"
            )

        if urgency == Urgency.STANDARD:
            best = min(rated, key=lambda o: (o.cost, o.service.transit_days, o.carrier.name))
        else:
            best = min(rated, key=lambda o: (o.service.transit_days, o.cost, o.carrier.name))

        now = self.clock()
        return ShippingQuote(
            cost=best.cost,
            currency=self.regions[warehouse_id].currency,
            carrier=best.carrier.name,
            service=best.service.name,
            transit_days=best.service.transit_days,
            estimated_delivery=self.delivery_date(now, urgency, best.service.transit_days),
            tracking_number=self.tracking_number(best.carrier.name, warehouse_id, now),
        )

    @staticmethod
    def delivery_date(shipped_from: datetime, urgency: Urgency, transit_days: int) -> datetime:
        processing_days = 0 if urgency == Urgency.OVERNIGHT else 1
        total = processing_days + transit_days
        if urgency == Urgency.STANDARD:
            return add_business_days(shipped_from, total)
        return shipped_from + timedelta(days=total)

    def tracking_number(self, carrier: str, warehouse_id: str, now: datetime) -> str:
        prefix = "".join(ch for ch in carrier.upper() if ch.isalnum())[:3]
        stamp = str(int(now.timestamp() * 1000))[-8:]
        suffix = "".join(self.rng.choices(string.ascii_uppercase + string.digits, k=4))
        return f"{prefix}{warehouse_id}{stamp}{suffix}"
