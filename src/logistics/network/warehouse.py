"""Warehouse aggregate — the regional sites stock can be held at.

Each warehouse carries the figures used to rank it as a fallback source:
estimated transit days to customers, a base handling fee and a regional
shipping cost multiplier.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from logistics.domain import logistics


@logistics.event(part_of="Warehouse")
class WarehouseRegistered:
    """A warehouse joined the network."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    region = String(required=True)
    is_primary = Boolean(default=False)
    registered_at = DateTime(required=True)


@logistics.event(part_of="Warehouse")
class WarehouseDeactivated:
    """A warehouse stopped accepting new reservations."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    deactivated_at = DateTime(required=True)


@logistics.aggregate
class Warehouse:
    name = String(required=True, max_length=100)
    region = String(required=True, max_length=10)
    country = String(required=True, max_length=2)
    currency = String(required=True, max_length=3)
    shipping_cost_multiplier = Float(default=1.0, min_value=0.0)
    handling_fee = Float(default=15.0, min_value=0.0)
    transit_days = Integer(default=3, min_value=0)
    is_primary = Boolean(default=False)
    is_active = Boolean(default=True)
    registered_at = DateTime()

    @classmethod
    def register(cls, code: str, **profile) -> "Warehouse":
        now = datetime.now(UTC)
        warehouse = cls(id=code, registered_at=now, **profile)
        warehouse.raise_(
            WarehouseRegistered(
                warehouse_id=code,
                region=warehouse.region,
                is_primary=warehouse.is_primary,
                registered_at=now,
            )
        )
        return warehouse

    def shipping_cost(self) -> float:
        """Relative cost of shipping out of this warehouse."""
        return round(self.handling_fee * self.shipping_cost_multiplier, 2)

    def deactivate(self) -> None:
        if not self.is_active:
            raise ValidationError({"is_active": ["Warehouse is already inactive"]})
        if self.is_primary:
            raise ValidationError({"is_primary": ["The primary warehouse cannot be deactivated"]})
        self.is_active = False
        self.raise_(WarehouseDeactivated(warehouse_id=str(self.id), deactivated_at=datetime.now(UTC)))


@logistics.repository(part_of=Warehouse)
class WarehouseRepository:
    def active(self) -> list:
        return self._dao.query.filter(is_active=True).all().items

    def primary(self):
        return self._dao.query.filter(is_primary=True).all().first


# Regional network served out of the box
DEFAULT_NETWORK = {
    "US": {
        "name": "US Central Fulfillment Center",
        "region": "US",
        "country": "US",
        "currency": "USD",
        "shipping_cost_multiplier": 1.0,
        "transit_days": 3,
        "is_primary": True,
    },
    "EU": {
        "name": "EU Distribution Hub",
        "region": "EU",
        "country": "DE",
        "currency": "EUR",
        "shipping_cost_multiplier": 1.1,
        "transit_days": 4,
    },
    "JP": {
        "name": "Japan Fulfillment Center",
        "region": "JP",
        "country": "JP",
        "currency": "JPY",
        "shipping_cost_multiplier": 1.2,
        "transit_days": 5,
    },
    "AU": {
        "name": "Australia Fulfillment Center",
        "region": "AU",
        "country": "AU",
        "currency": "AUD",
        "shipping_cost_multiplier": 1.15,
        "transit_days": 5,
    },
}


def seed_network(network: dict | None = None, primary_id: str | None = None) -> list[str]:
    """Register any warehouse of ``network`` not yet stored. Returns the codes added."""
    network = DEFAULT_NETWORK if network is None else network
    repo = current_domain.repository_for(Warehouse)
    added = []
    for code, profile in network.items():
        try:
            repo.get(code)
            continue
        except ObjectNotFoundError:
            pass
        profile = dict(profile)
        if primary_id is not None:
            profile["is_primary"] = code == primary_id
        repo.add(Warehouse.register(code, **profile))
        added.append(code)
    return added
